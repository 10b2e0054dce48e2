"""
匹配器基类
定义描述子匹配器的通用接口
"""

from abc import ABC, abstractmethod
from typing import Dict, Any
import numpy as np

from .matcher_utils import MatchingResult


class DescriptorMatcherBase(ABC):
    """描述子匹配器基类"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    @abstractmethod
    def match(self, query_descriptors: np.ndarray, train_descriptors: np.ndarray) -> MatchingResult:
        """
        执行描述子匹配

        Args:
            query_descriptors: 查询图像描述子 [N, D]
            train_descriptors: 数据库描述子 [M, D]

        Returns:
            匹配结果，包含查询/数据库索引和距离
        """
        pass

    def is_match_reliable(self, matches: MatchingResult, min_matches: int) -> bool:
        """判断匹配结果是否足够做后方交会"""
        return matches is not None and matches.num_matches >= min_matches
