"""
数据条件化（归一化）工具
拟合前对坐标做平移缩放以改善数值条件
"""

import numpy as np
from typing import Tuple


def to_homogeneous(points: np.ndarray) -> np.ndarray:
    """[N, d] -> [N, d+1]"""
    points = np.asarray(points, dtype=np.float64)
    return np.hstack([points, np.ones((points.shape[0], 1))])


def from_homogeneous(points_h: np.ndarray) -> np.ndarray:
    """[N, d+1] -> [N, d]，最后一维接近0的点返回inf"""
    w = points_h[:, -1:]
    with np.errstate(divide='ignore', invalid='ignore'):
        points = points_h[:, :-1] / w
    points[np.abs(w[:, 0]) < 1e-12] = np.inf
    return points


def apply_transform(T: np.ndarray, points: np.ndarray) -> np.ndarray:
    """用齐次变换矩阵T变换点集 [N, d]"""
    return from_homogeneous(to_homogeneous(points) @ T.T)


def normalize_isotropic(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    各向同性归一化（Hartley）：质心移到原点，平均距离缩放到sqrt(d)

    Args:
        points: 点集 [N, d]

    Returns:
        normalized: 归一化后的点 [N, d]
        T: 归一化变换 [(d+1), (d+1)]
    """
    points = np.asarray(points, dtype=np.float64)
    dim = points.shape[1]
    centroid = points.mean(axis=0)
    mean_dist = np.mean(np.linalg.norm(points - centroid, axis=1))
    scale = np.sqrt(dim) / mean_dist if mean_dist > 1e-12 else 1.0

    T = np.eye(dim + 1)
    T[:dim, :dim] *= scale
    T[:dim, dim] = -scale * centroid

    return (points - centroid) * scale, T


def normalization_from_image_size(width: int, height: int) -> np.ndarray:
    """
    根据图像尺寸构造归一化矩阵：图像中心为原点，坐标缩放到约[-1, 1]

    Returns:
        T: 3x3 归一化变换
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size: {width}x{height}")
    scale = 2.0 / max(width, height)
    return np.array([
        [scale, 0.0, -scale * width / 2.0],
        [0.0, scale, -scale * height / 2.0],
        [0.0, 0.0, 1.0]
    ])
