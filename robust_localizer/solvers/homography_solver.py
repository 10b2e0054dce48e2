"""
单应矩阵求解器
4点DLT，支持加权最小二乘
"""

from typing import List, Optional
import numpy as np

from .solver_base import SolverBase, ErrorBase
from .conditioning import normalize_isotropic, to_homogeneous, from_homogeneous


class HomographyDLTSolver(SolverBase):
    """归一化DLT单应求解器，最小样本和最小二乘共用"""

    MINIMUM_SAMPLES = 4

    def solve(self, x1: np.ndarray, x2: np.ndarray,
              weights: Optional[np.ndarray] = None) -> List[np.ndarray]:
        x1 = np.asarray(x1, dtype=np.float64)
        x2 = np.asarray(x2, dtype=np.float64)
        if len(x1) < self.MINIMUM_SAMPLES or len(x1) != len(x2):
            raise ValueError(f"Homography needs >= {self.MINIMUM_SAMPLES} aligned points, "
                             f"got {len(x1)} and {len(x2)}")

        x1n, T1 = normalize_isotropic(x1)
        x2n, T2 = normalize_isotropic(x2)

        n = len(x1n)
        A = np.zeros((2 * n, 9))
        X = to_homogeneous(x1n)
        u = x2n[:, 0:1]
        v = x2n[:, 1:2]
        A[0::2, 0:3] = -X
        A[0::2, 6:9] = u * X
        A[1::2, 3:6] = -X
        A[1::2, 6:9] = v * X

        if weights is not None:
            w = np.sqrt(np.asarray(weights, dtype=np.float64))
            A *= np.repeat(w, 2)[:, None]

        _, _, Vt = np.linalg.svd(A)
        Hn = Vt[-1].reshape(3, 3)
        H = np.linalg.inv(T2) @ Hn @ T1

        if abs(H[2, 2]) > 1e-12:
            H = H / H[2, 2]
        return [H]


class HomographyTransferError(ErrorBase):
    """前向转移误差 ||x2 - H x1||"""

    def error(self, model: np.ndarray, x1: np.ndarray, x2: np.ndarray) -> np.ndarray:
        projected = from_homogeneous(to_homogeneous(x1) @ model.T)
        with np.errstate(invalid='ignore'):
            errors = np.linalg.norm(projected - x2, axis=1)
        errors[~np.isfinite(errors)] = np.inf
        return errors
