"""
针孔相机内参
基于OpenCV的投影与去畸变（畸变模型视为黑盒）
"""

from dataclasses import dataclass, field
from typing import List, Optional
import numpy as np
import cv2

from .pose import Pose3

# 参与优化的内参名称，顺序即参数向量顺序
PARAMETER_NAMES = ['fx', 'fy', 'cx', 'cy', 'k1', 'k2']


@dataclass(eq=False)
class PinholeIntrinsics:
    """针孔相机内参，畸变系数按OpenCV顺序 (k1, k2, p1, p2, k3)"""
    width: int
    height: int
    fx: float
    fy: float
    cx: float
    cy: float
    dist_coeffs: np.ndarray = field(default_factory=lambda: np.zeros(5))

    def __post_init__(self):
        self.dist_coeffs = np.asarray(self.dist_coeffs, dtype=np.float64).reshape(-1).copy()
        if self.dist_coeffs.size < 5:
            self.dist_coeffs = np.concatenate([self.dist_coeffs, np.zeros(5 - self.dist_coeffs.size)])

    @classmethod
    def from_matrix(cls, K: np.ndarray, width: int, height: int,
                    dist_coeffs: Optional[np.ndarray] = None) -> 'PinholeIntrinsics':
        """从3x3内参矩阵构造"""
        K = np.asarray(K, dtype=np.float64)
        return cls(
            width=width, height=height,
            fx=float(K[0, 0]), fy=float(K[1, 1]),
            cx=float(K[0, 2]), cy=float(K[1, 2]),
            dist_coeffs=np.zeros(5) if dist_coeffs is None else dist_coeffs
        )

    @property
    def K(self) -> np.ndarray:
        """3x3 内参矩阵"""
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0]
        ])

    def has_distortion(self) -> bool:
        return bool(np.any(self.dist_coeffs != 0.0))

    def project(self, pose: Pose3, points_3d: np.ndarray) -> np.ndarray:
        """
        将世界坐标系3D点投影为（带畸变的）像素坐标

        Args:
            pose: 相机位姿
            points_3d: 3D点 [N, 3]

        Returns:
            points_2d: 像素坐标 [N, 2]
        """
        points_3d = np.ascontiguousarray(points_3d, dtype=np.float64).reshape(-1, 1, 3)
        projected, _ = cv2.projectPoints(
            points_3d,
            pose.rvec.reshape(3, 1),
            pose.translation.reshape(3, 1),
            self.K,
            self.dist_coeffs
        )
        return projected.reshape(-1, 2)

    def residuals(self, pose: Pose3, points_3d: np.ndarray, points_2d: np.ndarray) -> np.ndarray:
        """逐点像素重投影误差 [N]"""
        return np.linalg.norm(self.project(pose, points_3d) - points_2d, axis=1)

    def undistort_points(self, points_2d: np.ndarray) -> np.ndarray:
        """带畸变像素坐标 -> 无畸变像素坐标"""
        points_2d = np.ascontiguousarray(points_2d, dtype=np.float64)
        if not self.has_distortion() or len(points_2d) == 0:
            return points_2d.copy()
        undistorted = cv2.undistortPoints(points_2d.reshape(-1, 1, 2), self.K,
                                          self.dist_coeffs, P=self.K)
        return undistorted.reshape(-1, 2)

    def get_parameter_vector(self) -> List[float]:
        """优化用参数向量 [fx, fy, cx, cy, k1, k2]"""
        return [self.fx, self.fy, self.cx, self.cy,
                float(self.dist_coeffs[0]), float(self.dist_coeffs[1])]

    def set_parameter_vector(self, values: List[float]) -> None:
        """从参数向量更新内参"""
        if len(values) != len(PARAMETER_NAMES):
            raise ValueError(f"Expected {len(PARAMETER_NAMES)} values, got {len(values)}")
        self.fx, self.fy, self.cx, self.cy = (float(v) for v in values[:4])
        self.dist_coeffs[0] = values[4]
        self.dist_coeffs[1] = values[5]

    def copy(self) -> 'PinholeIntrinsics':
        return PinholeIntrinsics(self.width, self.height, self.fx, self.fy,
                                 self.cx, self.cy, self.dist_coeffs.copy())

    def __str__(self) -> str:
        return (f"PinholeIntrinsics({self.width}x{self.height}, f=({self.fx:.3f}, {self.fy:.3f}), "
                f"c=({self.cx:.3f}, {self.cy:.3f}), dist={self.dist_coeffs.tolist()})")
