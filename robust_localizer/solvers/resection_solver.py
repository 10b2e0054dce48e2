"""
相机后方交会（Resection）求解器
基于OpenCV的P3P最小求解器 + 6点DLT（加权）最小二乘求解器
"""

import logging
from typing import List, Optional
import numpy as np
import cv2

from .solver_base import SolverBase, ErrorBase
from .conditioning import normalize_isotropic, to_homogeneous

logger = logging.getLogger(__name__)


def _check_correspondences(x2d: np.ndarray, x3d: np.ndarray, min_samples: int):
    if x2d.shape[0] != x3d.shape[0]:
        raise ValueError(f"2D/3D size mismatch: {x2d.shape[0]} vs {x3d.shape[0]}")
    if x2d.shape[0] < min_samples:
        raise ValueError(f"Need at least {min_samples} correspondences, got {x2d.shape[0]}")


def dlt_projection(x2d: np.ndarray, x3d: np.ndarray,
                   weights: Optional[np.ndarray] = None) -> np.ndarray:
    """
    线性DLT估计投影矩阵 P (3x4)，满足 x ~ P X

    Args:
        x2d: 图像点 [N, 2]
        x3d: 3D点 [N, 3]
        weights: 可选权重 [N]

    Returns:
        P: 投影矩阵，已调整符号使 det(P[:, :3]) > 0
    """
    x2n, T2 = normalize_isotropic(x2d)
    x3n, T3 = normalize_isotropic(x3d)

    n = len(x2n)
    Xh = to_homogeneous(x3n)
    A = np.zeros((2 * n, 12))
    A[0::2, 0:4] = Xh
    A[0::2, 8:12] = -x2n[:, 0:1] * Xh
    A[1::2, 4:8] = Xh
    A[1::2, 8:12] = -x2n[:, 1:2] * Xh

    if weights is not None:
        w = np.sqrt(np.asarray(weights, dtype=np.float64))
        A *= np.repeat(w, 2)[:, None]

    _, _, Vt = np.linalg.svd(A)
    Pn = Vt[-1].reshape(3, 4)
    P = np.linalg.inv(T2) @ Pn @ T3

    if np.linalg.det(P[:, :3]) < 0:
        P = -P
    return P / np.linalg.norm(P[2, :3])


class P3PSolver(SolverBase):
    """
    P3P最小求解器（已知内参，输入为归一化相机坐标）

    返回最多4个候选 [R|t]
    """

    MINIMUM_SAMPLES = 3

    def __init__(self, flags: int = cv2.SOLVEPNP_AP3P):
        self.flags = flags

    def solve(self, x2d: np.ndarray, x3d: np.ndarray,
              weights: Optional[np.ndarray] = None) -> List[np.ndarray]:
        x2d = np.ascontiguousarray(x2d, dtype=np.float64)
        x3d = np.ascontiguousarray(x3d, dtype=np.float64)
        _check_correspondences(x2d, x3d, self.MINIMUM_SAMPLES)

        try:
            num_solutions, rvecs, tvecs = cv2.solveP3P(
                x3d[:self.MINIMUM_SAMPLES].reshape(-1, 1, 3),
                x2d[:self.MINIMUM_SAMPLES].reshape(-1, 1, 2),
                np.eye(3),
                np.zeros((4, 1)),
                flags=self.flags
            )
        except cv2.error as e:
            # 退化样本（共线等）
            logger.debug(f"P3P failed on sample: {e}")
            return []

        models = []
        for i in range(num_solutions):
            R, _ = cv2.Rodrigues(rvecs[i])
            models.append(np.hstack([R, np.asarray(tvecs[i]).reshape(3, 1)]))
        return models


class ResectionDLTSolver(SolverBase):
    """6点DLT后方交会（未知内参），返回一般投影矩阵"""

    MINIMUM_SAMPLES = 6

    def solve(self, x2d: np.ndarray, x3d: np.ndarray,
              weights: Optional[np.ndarray] = None) -> List[np.ndarray]:
        _check_correspondences(x2d, x3d, self.MINIMUM_SAMPLES)
        return [dlt_projection(x2d, x3d, weights)]


class ResectionKDLTSolver(SolverBase):
    """
    已知内参的6点DLT后方交会

    输入为归一化相机坐标，DLT结果的左3x3块投影到最近的旋转矩阵，
    保证输出是合法的 [R|t]
    """

    MINIMUM_SAMPLES = 6

    def solve(self, x2d: np.ndarray, x3d: np.ndarray,
              weights: Optional[np.ndarray] = None) -> List[np.ndarray]:
        _check_correspondences(x2d, x3d, self.MINIMUM_SAMPLES)
        P = dlt_projection(x2d, x3d, weights)

        U, S, Vt = np.linalg.svd(P[:, :3])
        R = U @ Vt
        if np.linalg.det(R) < 0:
            return []
        scale = S.mean()
        if scale < 1e-12:
            return []
        t = P[:, 3] / scale
        return [np.hstack([R, t.reshape(3, 1)])]


class ReprojectionError(ErrorBase):
    """像素重投影误差，位于相机后方的点误差为inf"""

    def error(self, model: np.ndarray, x2d: np.ndarray, x3d: np.ndarray) -> np.ndarray:
        projected = to_homogeneous(x3d) @ model.T
        depth = projected[:, 2]
        errors = np.full(len(projected), np.inf)
        front = depth > 1e-12
        if np.any(front):
            uv = projected[front, :2] / depth[front, None]
            errors[front] = np.linalg.norm(uv - x2d[front], axis=1)
        return errors
