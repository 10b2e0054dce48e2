"""
定位数据结构
2D-3D匹配数据、查询特征和定位结果
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple
import numpy as np

from ..camera.pose import Pose3
from ..camera.intrinsics import PinholeIntrinsics
from ..robust_estimation.estimators import DEFAULT_MAX_ITERATIONS, EstimationStatus


@dataclass
class LocalizerMatchData:
    """2D-3D匹配数据"""
    pt3d: np.ndarray                # 匹配到的3D点 [N, 3]
    pt2d: np.ndarray                # 对应的原始（带畸变）图像点 [N, 2]
    projection_matrix: Optional[np.ndarray] = None  # 估计得到的 3x4 投影矩阵
    inliers: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.intp))
    landmark_ids: Optional[np.ndarray] = None       # 3D点在数据库中的索引 [N]
    error_max: float = float('inf')  # 残差上限（像素），inf表示使用默认阈值
    max_iteration: int = DEFAULT_MAX_ITERATIONS

    def __post_init__(self):
        self.pt3d = np.asarray(self.pt3d, dtype=np.float64).reshape(-1, 3)
        self.pt2d = np.asarray(self.pt2d, dtype=np.float64).reshape(-1, 2)
        self.inliers = np.asarray(self.inliers, dtype=np.intp)
        if len(self.pt3d) != len(self.pt2d):
            raise ValueError(f"pt2d and pt3d must have the same length: "
                             f"{len(self.pt2d)} vs {len(self.pt3d)}")

    @property
    def num_correspondences(self) -> int:
        return len(self.pt2d)

    def inlier_correspondences(self) -> Tuple[np.ndarray, np.ndarray]:
        """内点的 (pt2d, pt3d)"""
        return self.pt2d[self.inliers], self.pt3d[self.inliers]


@dataclass
class Regions:
    """查询图像特征"""
    keypoints: np.ndarray           # 特征点像素坐标 [N, 2]
    descriptors: np.ndarray         # 描述子 [N, D]

    def __post_init__(self):
        self.keypoints = np.asarray(self.keypoints, dtype=np.float64).reshape(-1, 2)
        if len(self.keypoints) != len(self.descriptors):
            raise ValueError(f"Got {len(self.keypoints)} keypoints but "
                             f"{len(self.descriptors)} descriptors")


@dataclass
class LocalizationResult:
    """定位结果数据结构"""
    success: bool                   # 是否定位成功
    status: EstimationStatus        # 鲁棒估计状态
    pose: Optional[Pose3]           # 相机位姿
    intrinsics: Optional[PinholeIntrinsics]  # 内参（调用方内参的副本或估计值）
    match_data: LocalizerMatchData  # 使用的2D-3D数据及内点
    refined: bool = False           # 是否经过非线性优化改进
    processing_time: float = 0.0    # 处理时间(ms)

    @property
    def num_inliers(self) -> int:
        return len(self.match_data.inliers)

    def is_reliable(self, min_inliers: int = 12) -> bool:
        """判断定位结果是否可靠"""
        return self.success and self.num_inliers >= min_inliers
