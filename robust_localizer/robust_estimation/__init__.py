"""
鲁棒估计模块
估计核接口、核适配器与RANSAC / LO-RANSAC估计器
"""

from .kernel_base import KernelBase
from .kernel_adaptors import KernelAdaptor, TwoViewKernel, ResectionKernelK, ResectionKernel
from .estimators import (
    RobustEstimator,
    EstimationStatus,
    EstimationResult,
    ransac,
    lo_ransac,
    run_estimator
)

__all__ = [
    'KernelBase',
    'KernelAdaptor',
    'TwoViewKernel',
    'ResectionKernelK',
    'ResectionKernel',
    'RobustEstimator',
    'EstimationStatus',
    'EstimationResult',
    'ransac',
    'lo_ransac',
    'run_estimator'
]
