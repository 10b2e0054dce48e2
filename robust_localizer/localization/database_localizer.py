"""
单观测数据库定位器
每个3D点只保存一个描述子，查询特征与数据库描述子匹配后做鲁棒后方交会
"""

import logging
from typing import Dict, Any, Optional, Tuple
import numpy as np

from .localizer import SfMLocalizer
from .match_data import LocalizerMatchData, LocalizationResult, Regions
from ..robust_estimation.estimators import EstimationStatus
from ..solvers.resection_solver import ResectionDLTSolver, ResectionKDLTSolver
from ..camera.intrinsics import PinholeIntrinsics
from ..matchers.matcher_base import DescriptorMatcherBase
from ..matchers.descriptor_matcher import BruteForceMatcher
from ..matchers.matcher_utils import compute_match_statistics

logger = logging.getLogger(__name__)


class SingleObservationDatabaseLocalizer(SfMLocalizer):
    """基于描述子暴力匹配的定位器"""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 matcher: Optional[DescriptorMatcherBase] = None):
        super().__init__(config)
        self.matcher = matcher or BruteForceMatcher(self.config['Matcher'])

        self.points_3d: Optional[np.ndarray] = None
        self.descriptors: Optional[np.ndarray] = None

    @property
    def is_initialized(self) -> bool:
        return self.points_3d is not None

    @property
    def num_landmarks(self) -> int:
        return 0 if self.points_3d is None else len(self.points_3d)

    def init(self, points_3d: np.ndarray, descriptors: np.ndarray) -> bool:
        points_3d = np.asarray(points_3d, dtype=np.float64)
        descriptors = np.asarray(descriptors)

        if points_3d.ndim != 2 or points_3d.shape[1] != 3:
            logger.error(f"Expected 3D points of shape (N, 3), got {points_3d.shape}")
            return False
        if len(points_3d) != len(descriptors):
            logger.error(f"Got {len(points_3d)} points but {len(descriptors)} descriptors")
            return False
        if len(points_3d) == 0:
            logger.error("Cannot initialize localizer with an empty database")
            return False

        self.points_3d = points_3d
        self.descriptors = descriptors
        logger.info(f"Localization database initialized with {len(points_3d)} landmarks")
        return True

    def localize(self, image_size: Tuple[int, int],
                 intrinsics: Optional[PinholeIntrinsics],
                 query_regions: Regions,
                 estimator=None) -> LocalizationResult:
        if not self.is_initialized:
            raise RuntimeError("Localizer database not initialized, call init() first")

        matches = self.matcher.match(query_regions.descriptors, self.descriptors)
        stats = compute_match_statistics(matches)
        logger.debug(f"{stats['num_matches']} putative 2D-3D matches, "
                     f"median distance {stats['median_distance']:.3f} "
                     f"({matches.processing_time:.1f}ms)")

        match_data = LocalizerMatchData(
            pt3d=self.points_3d[matches.train_indices],
            pt2d=query_regions.keypoints[matches.query_indices],
            landmark_ids=matches.train_indices,
            max_iteration=self.config['RobustEstimation']['max_iterations']
        )

        # 少于最小二乘后方交会所需点数时不必进入鲁棒估计
        min_matches = (ResectionDLTSolver if intrinsics is None else ResectionKDLTSolver).MINIMUM_SAMPLES
        if not self.matcher.is_match_reliable(matches, min_matches):
            logger.warning(f"Too few 2D-3D matches for resection: {matches.num_matches} < {min_matches}")
            return LocalizationResult(
                success=False, status=EstimationStatus.DEGENERATE_INPUT, pose=None,
                intrinsics=None if intrinsics is None else intrinsics.copy(),
                match_data=match_data,
                processing_time=matches.processing_time
            )

        result = self.localize_from_matches(
            image_size, intrinsics, match_data,
            estimator or self.config['RobustEstimation']['estimator'],
            self.config
        )
        if not result.success:
            return result

        localizer_config = self.config['Localizer']
        if localizer_config['refine_pose'] or localizer_config['refine_intrinsics']:
            # result.intrinsics 是副本，调用方的内参不会被修改
            result.refined = self.refine_pose(
                result.intrinsics, result.pose, result.match_data,
                refine_pose=localizer_config['refine_pose'],
                refine_intrinsics=localizer_config['refine_intrinsics'],
                config=self.config
            )
        return result
