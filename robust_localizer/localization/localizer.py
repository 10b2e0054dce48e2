"""
SfM定位器
2D-3D匹配的鲁棒后方交会与位姿非线性优化
"""

import math
import time
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, Tuple
import numpy as np
import cv2
from scipy.optimize import least_squares

from .match_data import LocalizerMatchData, LocalizationResult, Regions
from ..camera.pose import Pose3
from ..camera.intrinsics import PinholeIntrinsics
from ..robust_estimation.estimators import RobustEstimator, EstimationStatus, run_estimator
from ..robust_estimation.kernel_adaptors import ResectionKernel, ResectionKernelK
from ..solvers.geometry_utils import nearest_rotation
from ..utils.config_manager import ConfigManager

logger = logging.getLogger(__name__)


def _resolve_config(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return ConfigManager.merge_configs(ConfigManager.default_config(), config or {})


def _pose_from_calibrated_projection(P: np.ndarray, K: np.ndarray) -> Pose3:
    Rt = np.linalg.solve(K, P)
    return Pose3.from_rt(nearest_rotation(Rt[:, :3]), Rt[:, 3])


def _decompose_projection(P: np.ndarray, image_size: Tuple[int, int]) -> Tuple[Pose3, PinholeIntrinsics]:
    """P = K [R|t] 分解为正焦距的内参和位姿"""
    K, R, center_h = cv2.decomposeProjectionMatrix(P)[:3]
    # RQ分解的符号不唯一，统一成正的对角元
    signs = np.sign(np.diag(K))
    signs[signs == 0] = 1.0
    D = np.diag(signs)
    K = K @ D
    R = D @ R
    if np.linalg.det(R) < 0:
        R = -R
    K = K / K[2, 2]

    center = center_h[:3, 0] / center_h[3, 0]
    width, height = image_size
    return Pose3(R, center), PinholeIntrinsics.from_matrix(K, width, height)


def _reprojection_rmse(intrinsics: PinholeIntrinsics, pose: Pose3,
                       pt3d: np.ndarray, pt2d: np.ndarray) -> float:
    residuals = intrinsics.residuals(pose, pt3d, pt2d)
    return float(np.sqrt(np.mean(residuals ** 2)))


class SfMLocalizer(ABC):
    """
    SfM定位器基类

    子类负责维护场景数据库并从查询特征建立2D-3D匹配；
    鲁棒后方交会和位姿优化以静态方法提供，不依赖数据库即可使用。
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = _resolve_config(config)

    @abstractmethod
    def init(self, points_3d: np.ndarray, descriptors: np.ndarray) -> bool:
        """用场景3D点及其描述子初始化定位数据库"""
        pass

    @abstractmethod
    def localize(self, image_size: Tuple[int, int],
                 intrinsics: Optional[PinholeIntrinsics],
                 query_regions: Regions) -> LocalizationResult:
        """
        定位一张查询图像

        Args:
            image_size: 图像尺寸 (width, height)
            intrinsics: 相机内参，None表示未知
            query_regions: 查询图像的特征点和描述子

        Returns:
            LocalizationResult
        """
        pass

    @staticmethod
    def localize_from_matches(image_size: Tuple[int, int],
                              intrinsics: Optional[PinholeIntrinsics],
                              match_data: LocalizerMatchData,
                              estimator=RobustEstimator.LORANSAC,
                              config: Optional[Dict[str, Any]] = None) -> LocalizationResult:
        """
        由已有的2D-3D匹配鲁棒估计相机位姿

        已知内参时先对图像点去畸变，用 P3P + K-DLT 估计 [R|t]；
        未知内参时用6点DLT估计投影矩阵，再分解出内参和位姿。
        match_data 的 inliers、projection_matrix、error_max 会被就地更新。

        Args:
            image_size: 图像尺寸 (width, height)
            intrinsics: 相机内参，None表示未知
            match_data: 2D-3D匹配数据
            estimator: RobustEstimator 或其字符串取值，不支持的取值抛出ValueError
            config: 配置字典，缺省项取默认配置

        Returns:
            LocalizationResult，失败时 success=False 且 pose 为 None
        """
        start_time = time.time()
        estimator = RobustEstimator.from_value(estimator)
        config = _resolve_config(config)
        localizer_config = config['Localizer']

        if math.isinf(match_data.error_max):
            match_data.error_max = float(localizer_config['default_error_max'])
            logger.warning(f"No residual upper bound given, using default {match_data.error_max} px")

        if intrinsics is None:
            kernel = ResectionKernel(match_data.pt2d, match_data.pt3d, image_size)
        else:
            kernel = ResectionKernelK(intrinsics.undistort_points(match_data.pt2d),
                                      match_data.pt3d, intrinsics.K)

        result = run_estimator(kernel, match_data.error_max, estimator,
                               config['RobustEstimation'],
                               max_iterations=match_data.max_iteration)

        match_data.inliers = result.inliers
        match_data.projection_matrix = result.model
        min_inliers = int(math.ceil(localizer_config['min_inlier_factor'] * kernel.min_samples))

        def failure(status: EstimationStatus) -> LocalizationResult:
            return LocalizationResult(
                success=False, status=status, pose=None,
                intrinsics=None if intrinsics is None else intrinsics.copy(),
                match_data=match_data,
                processing_time=(time.time() - start_time) * 1000
            )

        if not result.success:
            logger.warning(f"Robust resection failed: {result.status.value} "
                           f"({match_data.num_correspondences} correspondences)")
            return failure(result.status)

        if result.num_inliers < min_inliers:
            logger.warning(f"Resection rejected: {result.num_inliers} inliers < {min_inliers} required")
            return failure(EstimationStatus.NO_SOLUTION)

        if intrinsics is None:
            pose, estimated = _decompose_projection(result.model, image_size)
            logger.info(f"Estimated intrinsics from projection matrix: {estimated}")
        else:
            pose = _pose_from_calibrated_projection(result.model, intrinsics.K)
            estimated = intrinsics.copy()

        processing_time = (time.time() - start_time) * 1000
        logger.info(f"Localized with {estimator.value}: {result.num_inliers}/"
                    f"{match_data.num_correspondences} inliers, "
                    f"{result.num_iterations} iterations, {processing_time:.1f}ms")

        return LocalizationResult(
            success=True,
            status=EstimationStatus.SUCCESS,
            pose=pose,
            intrinsics=estimated,
            match_data=match_data,
            processing_time=processing_time
        )

    @staticmethod
    def refine_pose(intrinsics: PinholeIntrinsics, pose: Pose3,
                    match_data: LocalizerMatchData,
                    refine_pose: bool = True,
                    refine_intrinsics: bool = False,
                    config: Optional[Dict[str, Any]] = None) -> bool:
        """
        在内点上最小化原始（带畸变）像素的重投影误差

        只有当优化后的RMSE比初始值至少低 min_rmse_gain 时才写回 pose / intrinsics，
        否则两者保持不变并返回False。

        Args:
            intrinsics: 相机内参，refine_intrinsics=True 时就地更新
            pose: 相机位姿，refine_pose=True 时就地更新
            match_data: 带内点的2D-3D匹配数据
            refine_pose: 是否优化位姿
            refine_intrinsics: 是否优化内参 (fx, fy, cx, cy, k1, k2)
            config: 配置字典

        Returns:
            是否改进并写回
        """
        if not refine_pose and not refine_intrinsics:
            logger.warning("Nothing to refine: both pose and intrinsics are fixed")
            return False
        if intrinsics is None:
            raise ValueError("Pose refinement requires camera intrinsics")

        refinement_config = _resolve_config(config)['Refinement']
        pt2d, pt3d = match_data.inlier_correspondences()
        if len(pt2d) < 3:
            logger.warning(f"Too few inliers for refinement: {len(pt2d)}")
            return False

        x0 = []
        if refine_pose:
            x0.extend(pose.rvec.tolist() + pose.translation.tolist())
        if refine_intrinsics:
            x0.extend(intrinsics.get_parameter_vector())
        x0 = np.asarray(x0, dtype=np.float64)

        def unpack(x: np.ndarray) -> Tuple[Pose3, PinholeIntrinsics]:
            offset = 0
            candidate_pose, candidate_intrinsics = pose, intrinsics
            if refine_pose:
                candidate_pose = Pose3.from_rvec_tvec(x[0:3], x[3:6])
                offset = 6
            if refine_intrinsics:
                candidate_intrinsics = intrinsics.copy()
                candidate_intrinsics.set_parameter_vector(x[offset:offset + 6])
            return candidate_pose, candidate_intrinsics

        def residual_fn(x: np.ndarray) -> np.ndarray:
            candidate_pose, candidate_intrinsics = unpack(x)
            return (candidate_intrinsics.project(candidate_pose, pt3d) - pt2d).ravel()

        initial_rmse = _reprojection_rmse(intrinsics, pose, pt3d, pt2d)

        method = refinement_config['method']
        if method == 'lm' and 2 * len(pt2d) < len(x0):
            method = 'trf'
        tolerance = refinement_config['tolerance']

        try:
            solution = least_squares(
                residual_fn, x0,
                method=method,
                max_nfev=refinement_config['max_nfev'],
                ftol=tolerance, xtol=tolerance, gtol=tolerance
            )
        except (ValueError, np.linalg.LinAlgError, cv2.error) as e:
            logger.warning(f"Pose refinement failed: {e}")
            return False

        refined_pose, refined_intrinsics = unpack(solution.x)
        refined_rmse = _reprojection_rmse(refined_intrinsics, refined_pose, pt3d, pt2d)

        if not np.isfinite(refined_rmse) or \
                refined_rmse >= initial_rmse - refinement_config['min_rmse_gain']:
            logger.debug(f"Refinement kept initial estimate: RMSE {initial_rmse:.6f} -> {refined_rmse:.6f}")
            return False

        if refine_pose:
            pose.rotation[...] = refined_pose.rotation
            pose.center[...] = refined_pose.center
        if refine_intrinsics:
            intrinsics.set_parameter_vector(refined_intrinsics.get_parameter_vector())
        match_data.projection_matrix = intrinsics.K @ pose.as_matrix()

        logger.info(f"Refined {len(pt2d)} inliers: RMSE {initial_rmse:.4f} -> {refined_rmse:.4f} px "
                    f"({solution.nfev} evaluations)")
        return True
