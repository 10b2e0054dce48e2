"""
随机采样与迭代次数上界
"""

import math
import numpy as np


def uniform_sample(rng: np.random.Generator, sample_size: int, num_samples: int) -> np.ndarray:
    """
    从 [0, num_samples) 中无放回均匀抽取 sample_size 个索引（部分Fisher-Yates洗牌）

    Args:
        rng: 随机数生成器，每次估计独立持有
        sample_size: 抽取数量
        num_samples: 索引空间大小

    Returns:
        indices: 互不相同的索引 [sample_size]
    """
    if sample_size > num_samples:
        raise ValueError(f"Cannot draw {sample_size} samples out of {num_samples}")

    pool = np.arange(num_samples)
    for i in range(sample_size):
        j = int(rng.integers(i, num_samples))
        pool[i], pool[j] = pool[j], pool[i]
    return pool[:sample_size].copy()


def iteration_bound(inlier_ratio: float, sample_size: int, confidence: float = 0.99) -> float:
    """
    RANSAC标准停止条件：以confidence概率至少抽到一次全内点样本所需迭代数

    N = log(1 - p) / log(1 - w^m)
    """
    if inlier_ratio <= 0.0:
        return math.inf
    if inlier_ratio >= 1.0:
        return 0.0

    all_inliers = inlier_ratio ** sample_size
    if all_inliers <= 0.0:
        return math.inf
    if all_inliers >= 1.0:
        return 0.0
    return math.ceil(math.log(1.0 - confidence) / math.log1p(-all_inliers))
