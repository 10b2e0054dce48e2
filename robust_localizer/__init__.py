"""
Robust Localizer: LO-RANSAC robust estimation + SfM image localization

Kernel adaptors for minimal / least-squares geometric solvers, a RANSAC and
LO-RANSAC search loop with IRLS local optimization, and a 2D-3D localizer
with non-linear pose refinement.
"""

from .version import __version__
from .camera import Pose3, PinholeIntrinsics
from .robust_estimation import (
    KernelBase,
    TwoViewKernel,
    ResectionKernelK,
    ResectionKernel,
    RobustEstimator,
    EstimationStatus,
    EstimationResult,
    ransac,
    lo_ransac
)
from .localization import (
    LocalizerMatchData,
    Regions,
    LocalizationResult,
    SfMLocalizer,
    SingleObservationDatabaseLocalizer
)
from .utils import ConfigManager, setup_logging

__all__ = [
    '__version__',
    'Pose3',
    'PinholeIntrinsics',
    'KernelBase',
    'TwoViewKernel',
    'ResectionKernelK',
    'ResectionKernel',
    'RobustEstimator',
    'EstimationStatus',
    'EstimationResult',
    'ransac',
    'lo_ransac',
    'LocalizerMatchData',
    'Regions',
    'LocalizationResult',
    'SfMLocalizer',
    'SingleObservationDatabaseLocalizer',
    'ConfigManager',
    'setup_logging'
]

# Package metadata
__author__ = "Robust Localizer Team"


def get_version():
    """获取版本信息"""
    return __version__
