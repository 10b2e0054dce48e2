"""
暴力描述子匹配器
基于OpenCV BFMatcher + Lowe比值检验
"""

import time
import logging
from typing import Dict, Any
import numpy as np
import cv2

from .matcher_base import DescriptorMatcherBase
from .matcher_utils import MatchingResult, empty_matching_result, keep_unique_train

logger = logging.getLogger(__name__)


class BruteForceMatcher(DescriptorMatcherBase):
    """OpenCV暴力匹配器"""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.norm = str(config.get('norm', 'L2')).upper()
        self.ratio = config.get('ratio', 0.8)
        self.unique_train = config.get('unique_train', True)
        self.max_distance = config.get('max_distance')

        norm_map = {
            'L1': cv2.NORM_L1,
            'L2': cv2.NORM_L2,
            'HAMMING': cv2.NORM_HAMMING
        }
        if self.norm not in norm_map:
            raise ValueError(f"Unsupported matcher norm: {self.norm}")
        self._matcher = cv2.BFMatcher(norm_map[self.norm])

    def _prepare(self, descriptors: np.ndarray) -> np.ndarray:
        # 二进制描述子需要uint8，浮点距离需要float32
        if self.norm == 'HAMMING':
            return np.ascontiguousarray(descriptors, dtype=np.uint8)
        return np.ascontiguousarray(descriptors, dtype=np.float32)

    def match(self, query_descriptors: np.ndarray, train_descriptors: np.ndarray) -> MatchingResult:
        start_time = time.time()

        if len(query_descriptors) == 0 or len(train_descriptors) < 2:
            logger.debug("Not enough descriptors for ratio-test matching")
            return empty_matching_result()

        knn_matches = self._matcher.knnMatch(
            self._prepare(query_descriptors), self._prepare(train_descriptors), k=2
        )

        query_indices, train_indices, distances = [], [], []
        for pair in knn_matches:
            if len(pair) < 2:
                continue
            best, second = pair
            if best.distance < self.ratio * second.distance:
                query_indices.append(best.queryIdx)
                train_indices.append(best.trainIdx)
                distances.append(best.distance)

        matches = MatchingResult(
            query_indices=np.asarray(query_indices, dtype=np.intp),
            train_indices=np.asarray(train_indices, dtype=np.intp),
            distances=np.asarray(distances, dtype=np.float64)
        )
        if self.unique_train:
            matches = keep_unique_train(matches)
        if self.max_distance is not None:
            matches = matches.filter_by_distance(self.max_distance)

        matches.processing_time = (time.time() - start_time) * 1000
        logger.debug(f"Matched {matches.num_matches}/{len(query_descriptors)} query features")
        return matches
