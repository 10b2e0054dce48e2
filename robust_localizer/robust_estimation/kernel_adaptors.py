"""
鲁棒估计核适配器
双视图（单应）核、已知内参的后方交会核、未知内参的后方交会核
"""

from typing import List, Optional, Sequence, Tuple
import numpy as np

from .kernel_base import KernelBase, weights_from_residuals
from ..solvers.solver_base import SolverBase, ErrorBase
from ..solvers.conditioning import apply_transform, normalization_from_image_size
from ..solvers.homography_solver import HomographyDLTSolver, HomographyTransferError
from ..solvers.resection_solver import (
    P3PSolver,
    ResectionDLTSolver,
    ResectionKDLTSolver,
    ReprojectionError
)

# 超过该条件数的候选模型视为数值退化
MAX_MODEL_CONDITION = 1e10


class KernelAdaptor(KernelBase):
    """
    通用核适配器

    求解器在归一化坐标上工作，误差始终用调用方坐标系下的模型和原始数据计算，
    因此阈值与调用方的像素单位一致。
    """

    def __init__(self, x1: np.ndarray, x2: np.ndarray,
                 x1_normalized: np.ndarray, x2_normalized: np.ndarray,
                 solver: SolverBase, error: ErrorBase,
                 ls_solver: Optional[SolverBase] = None):
        if len(x1) != len(x2):
            raise ValueError(f"Correspondence size mismatch: {len(x1)} vs {len(x2)}")

        self._x1 = x1
        self._x2 = x2
        self._x1n = x1_normalized
        self._x2n = x2_normalized
        self._solver = solver
        self._ls_solver = ls_solver if ls_solver is not None else solver
        self._error = error

        if self.min_samples > self.min_ls_samples:
            raise ValueError(f"Minimal sample count {self.min_samples} exceeds "
                             f"least-squares sample count {self.min_ls_samples}")

    @property
    def min_samples(self) -> int:
        return self._solver.MINIMUM_SAMPLES

    @property
    def min_ls_samples(self) -> int:
        return self._ls_solver.MINIMUM_SAMPLES

    def num_samples(self) -> int:
        return len(self._x1)

    def fit(self, samples: Sequence[int]) -> List[np.ndarray]:
        idx = self._check_indices(samples, self.min_samples, exact=True)
        models = self._solver.solve(self._x1n[idx], self._x2n[idx])
        return [model for model in models if self.is_valid_model(model)]

    def fit_least_squares(self, inliers: Sequence[int],
                          weights: Optional[np.ndarray] = None) -> List[np.ndarray]:
        idx = self._check_indices(inliers, self.min_ls_samples, exact=False)
        if weights is not None and len(weights) != len(idx):
            raise ValueError(f"Got {len(weights)} weights for {len(idx)} inliers")
        models = self._ls_solver.solve(self._x1n[idx], self._x2n[idx], weights)
        return [model for model in models if self.is_valid_model(model)]

    def errors(self, model: np.ndarray) -> np.ndarray:
        return self._error.error(self._denormalized(model), self._x1, self._x2)

    def error(self, sample: int, model: np.ndarray) -> float:
        errors = self._error.error(self._denormalized(model),
                                   self._x1[sample:sample + 1], self._x2[sample:sample + 1])
        return float(errors[0])

    def compute_weights(self, model: np.ndarray, inliers: Sequence[int],
                        eps: float = 0.001) -> np.ndarray:
        idx = self._check_indices(inliers, 0, exact=False)
        residuals = self._error.error(self._denormalized(model), self._x1[idx], self._x2[idx])
        return weights_from_residuals(residuals, eps)

    def unnormalize(self, model: np.ndarray) -> None:
        model[...] = self._denormalized(model)

    def is_valid_model(self, model: np.ndarray) -> bool:
        """数值有效性检查：有限且非奇异"""
        if not np.all(np.isfinite(model)):
            return False
        return np.linalg.cond(model[:, :3]) < MAX_MODEL_CONDITION

    def _denormalized(self, model: np.ndarray) -> np.ndarray:
        """返回调用方坐标系下的模型副本"""
        return model.copy()


class TwoViewKernel(KernelAdaptor):
    """
    双视图核（默认单应矩阵）

    两组图像点按图像尺寸归一化，误差为第二幅图像上的像素转移误差。
    """

    def __init__(self, x1: np.ndarray, size1: Tuple[int, int],
                 x2: np.ndarray, size2: Tuple[int, int],
                 solver: Optional[SolverBase] = None,
                 error: Optional[ErrorBase] = None,
                 ls_solver: Optional[SolverBase] = None):
        x1 = np.asarray(x1, dtype=np.float64)
        x2 = np.asarray(x2, dtype=np.float64)
        self._T1 = normalization_from_image_size(*size1)
        self._T2 = normalization_from_image_size(*size2)
        self._T2_inv = np.linalg.inv(self._T2)

        super().__init__(
            x1, x2,
            apply_transform(self._T1, x1), apply_transform(self._T2, x2),
            solver or HomographyDLTSolver(),
            error or HomographyTransferError(),
            ls_solver
        )

    def _denormalized(self, model: np.ndarray) -> np.ndarray:
        H = self._T2_inv @ model @ self._T1
        if abs(H[2, 2]) > 1e-12:
            H = H / H[2, 2]
        return H


class ResectionKernelK(KernelAdaptor):
    """
    已知内参的2D-3D后方交会核

    图像点先乘以K的逆变到归一化相机坐标；模型为归一化的 [R|t]，
    反归一化后为 P = K [R|t]。
    """

    def __init__(self, x2d: np.ndarray, x3d: np.ndarray, K: np.ndarray,
                 solver: Optional[SolverBase] = None,
                 error: Optional[ErrorBase] = None,
                 ls_solver: Optional[SolverBase] = None):
        x2d = np.asarray(x2d, dtype=np.float64)
        x3d = np.asarray(x3d, dtype=np.float64)
        self._K = np.asarray(K, dtype=np.float64)

        super().__init__(
            x2d, x3d,
            apply_transform(np.linalg.inv(self._K), x2d), x3d,
            solver or P3PSolver(),
            error or ReprojectionError(),
            ls_solver or ResectionKDLTSolver()
        )

    @property
    def K(self) -> np.ndarray:
        return self._K

    def _denormalized(self, model: np.ndarray) -> np.ndarray:
        return self._K @ model


class ResectionKernel(KernelAdaptor):
    """未知内参的2D-3D后方交会核（6点DLT），图像点按图像尺寸归一化"""

    def __init__(self, x2d: np.ndarray, x3d: np.ndarray, image_size: Tuple[int, int],
                 solver: Optional[SolverBase] = None,
                 error: Optional[ErrorBase] = None,
                 ls_solver: Optional[SolverBase] = None):
        x2d = np.asarray(x2d, dtype=np.float64)
        x3d = np.asarray(x3d, dtype=np.float64)
        self._T = normalization_from_image_size(*image_size)
        self._T_inv = np.linalg.inv(self._T)

        super().__init__(
            x2d, x3d,
            apply_transform(self._T, x2d), x3d,
            solver or ResectionDLTSolver(),
            error or ReprojectionError(),
            ls_solver
        )

    def _denormalized(self, model: np.ndarray) -> np.ndarray:
        return self._T_inv @ model
