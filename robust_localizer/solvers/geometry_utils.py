"""
几何工具函数
包含3D几何计算相关的工具函数
"""

import numpy as np
import cv2


def transform_points(points: np.ndarray, R: np.ndarray, T: np.ndarray) -> np.ndarray:
    """
    使用旋转和平移变换3D点

    Args:
        points: 输入3D点 [N, 3]
        R: 旋转矩阵 [3, 3]
        T: 平移向量 [3]

    Returns:
        transformed_points: 变换后的3D点 [N, 3]
    """
    return np.asarray(points, dtype=np.float64) @ R.T + np.asarray(T).reshape(1, 3)


def nearest_rotation(M: np.ndarray) -> np.ndarray:
    """SVD投影到最近的旋转矩阵"""
    U, _, Vt = np.linalg.svd(M)
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] *= -1
        R = U @ Vt
    return R


def rotation_angle(R1: np.ndarray, R2: np.ndarray) -> float:
    """两个旋转之间的夹角（弧度）"""
    rvec, _ = cv2.Rodrigues(R1.T @ R2)
    return float(np.linalg.norm(rvec))
