"""
求解器基类
定义最小/最小二乘求解器与误差度量的通用接口
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import numpy as np


class SolverBase(ABC):
    """模型求解器基类"""

    # 求解所需的最少样本数
    MINIMUM_SAMPLES: int = 0

    @abstractmethod
    def solve(self, x1: np.ndarray, x2: np.ndarray,
              weights: Optional[np.ndarray] = None) -> List[np.ndarray]:
        """
        从对应点估计模型

        Args:
            x1: 第一组坐标 [N, d1]
            x2: 第二组坐标 [N, d2]
            weights: 可选的逐点权重 [N]

        Returns:
            models: 0个或多个候选模型
        """
        pass


class ErrorBase(ABC):
    """误差度量基类"""

    @abstractmethod
    def error(self, model: np.ndarray, x1: np.ndarray, x2: np.ndarray) -> np.ndarray:
        """
        计算每个对应点在模型下的残差

        Returns:
            errors: 非负残差 [N]
        """
        pass
