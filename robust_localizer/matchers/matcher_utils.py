"""
匹配器工具函数和数据结构
"""

from dataclasses import dataclass
from typing import Dict
import numpy as np


@dataclass
class MatchingResult:
    """描述子匹配结果数据结构"""
    query_indices: np.ndarray   # 查询特征索引 [N]
    train_indices: np.ndarray   # 数据库索引 [N]
    distances: np.ndarray       # 描述子距离 [N]
    processing_time: float = 0.0  # 处理时间(ms)

    @property
    def num_matches(self) -> int:
        return len(self.query_indices)

    def filter_by_mask(self, mask: np.ndarray) -> 'MatchingResult':
        """按掩码保留匹配"""
        return MatchingResult(
            query_indices=self.query_indices[mask],
            train_indices=self.train_indices[mask],
            distances=self.distances[mask],
            processing_time=self.processing_time
        )

    def filter_by_distance(self, max_distance: float) -> 'MatchingResult':
        """按描述子距离过滤匹配点"""
        return self.filter_by_mask(self.distances <= max_distance)


def empty_matching_result() -> MatchingResult:
    return MatchingResult(
        query_indices=np.empty(0, dtype=np.intp),
        train_indices=np.empty(0, dtype=np.intp),
        distances=np.empty(0, dtype=np.float64)
    )


def keep_unique_train(matches: MatchingResult) -> MatchingResult:
    """同一个数据库条目被多个查询特征匹配时，只保留距离最小的一个"""
    if matches.num_matches == 0:
        return matches
    order = np.lexsort((matches.distances, matches.train_indices))
    sorted_train = matches.train_indices[order]
    first = np.ones(len(order), dtype=bool)
    first[1:] = sorted_train[1:] != sorted_train[:-1]
    keep = np.sort(order[first])
    return matches.filter_by_mask(keep)


def compute_match_statistics(matches: MatchingResult) -> Dict[str, float]:
    """计算匹配统计信息"""
    if matches.num_matches == 0:
        return {'num_matches': 0, 'mean_distance': float('inf'), 'median_distance': float('inf')}
    return {
        'num_matches': matches.num_matches,
        'mean_distance': float(np.mean(matches.distances)),
        'median_distance': float(np.median(matches.distances))
    }
