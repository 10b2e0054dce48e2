"""
鲁棒估计核（Kernel）基类
定义LO-RANSAC估计器使用的统一接口
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence
import numpy as np


class KernelBase(ABC):
    """
    鲁棒估计核基类

    把求解器、误差度量、数据和可选标定绑定成估计器需要的统一接口：
    最小样本拟合、最小二乘拟合、逐样本误差、权重计算、反归一化和样本数。
    """

    @property
    @abstractmethod
    def min_samples(self) -> int:
        """最小求解器所需样本数"""
        pass

    @property
    @abstractmethod
    def min_ls_samples(self) -> int:
        """最小二乘求解器所需样本数"""
        pass

    @abstractmethod
    def num_samples(self) -> int:
        """对应点总数"""
        pass

    @abstractmethod
    def fit(self, samples: Sequence[int]) -> List[np.ndarray]:
        """
        用最小样本估计模型

        Args:
            samples: 恰好 min_samples 个样本索引

        Returns:
            models: 0个（退化样本）或多个（多解）候选模型
        """
        pass

    @abstractmethod
    def fit_least_squares(self, inliers: Sequence[int],
                          weights: Optional[np.ndarray] = None) -> List[np.ndarray]:
        """
        用不少于 min_ls_samples 个样本做（加权）最小二乘估计

        Args:
            inliers: 样本索引
            weights: 可选权重，与inliers按位置对齐
        """
        pass

    @abstractmethod
    def errors(self, model: np.ndarray) -> np.ndarray:
        """所有样本在模型下的残差 [N]"""
        pass

    @abstractmethod
    def unnormalize(self, model: np.ndarray) -> None:
        """
        原地把模型从归一化坐标变换回调用方坐标系

        每个被接受的模型只能调用一次，且必须在所有拟合完成之后。
        重复调用会再次施加反归一化变换，结果未定义。
        """
        pass

    def error(self, sample: int, model: np.ndarray) -> float:
        """单个样本在模型下的残差"""
        return float(self.errors(model)[sample])

    @abstractmethod
    def compute_weights(self, model: np.ndarray, inliers: Sequence[int],
                        eps: float = 0.001) -> np.ndarray:
        """
        IRLS权重：w_i = 1 / max(eps, e_i)^2

        Args:
            model: 计算残差所用的模型
            inliers: 内点索引
            eps: 残差下限，避免除零

        Returns:
            weights: 与inliers对齐的权重 [len(inliers)]
        """
        pass

    def _check_indices(self, indices: Sequence[int], expected: int, exact: bool) -> np.ndarray:
        indices = np.asarray(indices, dtype=np.intp)
        n = self.num_samples()
        if exact and len(indices) != expected:
            raise ValueError(f"Expected exactly {expected} samples, got {len(indices)}")
        if not exact and len(indices) < expected:
            raise ValueError(f"Expected at least {expected} samples, got {len(indices)}")
        if len(indices) and (indices.min() < 0 or indices.max() >= n):
            raise ValueError(f"Sample index out of range [0, {n})")
        if len(np.unique(indices)) != len(indices):
            raise ValueError("Sample indices must be unique")
        return indices


def weights_from_residuals(residuals: np.ndarray, eps: float = 0.001) -> np.ndarray:
    """1 / max(eps, e)^2"""
    if eps <= 0:
        raise ValueError(f"Weight epsilon must be positive, got {eps}")
    return 1.0 / np.maximum(eps, np.asarray(residuals, dtype=np.float64)) ** 2
