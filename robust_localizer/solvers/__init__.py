"""
求解器模块
最小/最小二乘模型求解器与误差度量
"""

from .solver_base import SolverBase, ErrorBase
from .homography_solver import HomographyDLTSolver, HomographyTransferError
from .resection_solver import (
    P3PSolver,
    ResectionDLTSolver,
    ResectionKDLTSolver,
    ReprojectionError
)

__all__ = [
    'SolverBase',
    'ErrorBase',
    'HomographyDLTSolver',
    'HomographyTransferError',
    'P3PSolver',
    'ResectionDLTSolver',
    'ResectionKDLTSolver',
    'ReprojectionError'
]
