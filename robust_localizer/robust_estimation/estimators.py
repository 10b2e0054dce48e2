"""
鲁棒估计器
RANSAC与LO-RANSAC（局部优化 + IRLS）搜索循环
"""

import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import numpy as np

from .kernel_base import KernelBase
from .sampling import uniform_sample, iteration_bound

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 4096


class RobustEstimator(Enum):
    """支持的鲁棒估计器"""
    RANSAC = 'ransac'
    LORANSAC = 'loransac'

    @classmethod
    def from_value(cls, value) -> 'RobustEstimator':
        """从枚举或字符串解析，不支持的取值抛出ValueError"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            supported = ', '.join(e.value for e in cls)
            raise ValueError(f"Unsupported robust estimator {value!r}, expected one of: {supported}")


class EstimationStatus(Enum):
    """估计结果状态"""
    SUCCESS = 'success'
    DEGENERATE_INPUT = 'degenerate_input'
    NO_SOLUTION = 'no_solution'


@dataclass
class EstimationResult:
    """鲁棒估计结果数据结构"""
    success: bool                   # 是否找到模型
    status: EstimationStatus        # 结果状态
    model: Optional[np.ndarray]     # 调用方坐标系下的模型，失败时为None
    inliers: np.ndarray             # 内点索引（升序）
    num_iterations: int             # 实际迭代次数
    residual_sum: float = float('inf')  # 内点残差之和
    processing_time: float = 0.0    # 处理时间(ms)

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    def is_reliable(self, min_inliers: int) -> bool:
        """判断估计结果是否可靠"""
        return self.success and self.num_inliers >= min_inliers


@dataclass
class _Hypothesis:
    """搜索过程中的候选模型及其评分"""
    model: np.ndarray
    inliers: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.intp))
    residual_sum: float = float('inf')

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    def is_better_than(self, other: Optional['_Hypothesis']) -> bool:
        """内点多者优；内点数相同时残差和小者优"""
        if self.num_inliers == 0:
            return False
        if other is None or self.num_inliers > other.num_inliers:
            return True
        return self.num_inliers == other.num_inliers and self.residual_sum < other.residual_sum


def _score(kernel: KernelBase, model: np.ndarray, threshold: float) -> _Hypothesis:
    errors = kernel.errors(model)
    mask = errors < threshold
    return _Hypothesis(model=model, inliers=np.flatnonzero(mask),
                       residual_sum=float(np.sum(errors[mask])))


def _best_candidate(kernel: KernelBase, models: List[np.ndarray],
                    threshold: float) -> Optional[_Hypothesis]:
    best = None
    for model in models:
        candidate = _score(kernel, model, threshold)
        if best is None or candidate.is_better_than(best):
            best = candidate
    return best


def _iterative_reweighted_least_squares(kernel: KernelBase, hypothesis: _Hypothesis,
                                        threshold: float, iterations: int,
                                        eps: float) -> _Hypothesis:
    """
    IRLS：用当前模型（被改进的那一个）的残差计算权重，再对其全部内点做加权最小二乘。
    新模型内点数不少于当前模型时采纳，否则停止。
    """
    current = hypothesis
    for _ in range(iterations):
        if current.num_inliers < kernel.min_ls_samples:
            break
        weights = kernel.compute_weights(current.model, current.inliers, eps)
        candidate = _best_candidate(
            kernel, kernel.fit_least_squares(current.inliers, weights), threshold
        )
        if candidate is None or candidate.num_inliers < current.num_inliers:
            break
        current = candidate
    return current


def _local_optimization(kernel: KernelBase, hypothesis: _Hypothesis, threshold: float,
                        rng: np.random.Generator, num_lo_iterations: int,
                        irls_iterations: int, eps: float) -> _Hypothesis:
    """局部优化：内点上的非最小样本内层RANSAC，然后对最优结果做IRLS"""
    min_ls = kernel.min_ls_samples
    if hypothesis.num_inliers < min_ls:
        return hypothesis

    best = hypothesis
    base_inliers = hypothesis.inliers
    sample_size = min(min_ls * 7, len(base_inliers) // 2)
    if sample_size >= min_ls:
        for _ in range(num_lo_iterations):
            subset = base_inliers[uniform_sample(rng, sample_size, len(base_inliers))]
            candidate = _best_candidate(kernel, kernel.fit_least_squares(subset), threshold)
            if candidate is None:
                continue
            candidate = _iterative_reweighted_least_squares(
                kernel, candidate, threshold, irls_iterations, eps
            )
            if candidate.is_better_than(best):
                best = candidate

    refined = _iterative_reweighted_least_squares(kernel, best, threshold, irls_iterations, eps)
    logger.debug(f"Local optimization: {hypothesis.num_inliers} -> {refined.num_inliers} inliers")
    return refined


def _failure(status: EstimationStatus, num_iterations: int, start_time: float) -> EstimationResult:
    return EstimationResult(
        success=False, status=status, model=None,
        inliers=np.empty(0, dtype=np.intp), num_iterations=num_iterations,
        processing_time=(time.time() - start_time) * 1000
    )


def _search(kernel: KernelBase, threshold: float, max_iterations: int, confidence: float,
            rng: np.random.Generator,
            should_stop: Optional[Callable[[], bool]],
            local_optimizer: Optional[Callable[[_Hypothesis], _Hypothesis]]) -> EstimationResult:
    start_time = time.time()

    if not np.isfinite(threshold) or threshold <= 0:
        raise ValueError(f"Inlier threshold must be positive and finite, got {threshold}")
    if max_iterations <= 0:
        raise ValueError(f"max_iterations must be positive, got {max_iterations}")

    n = kernel.num_samples()
    m = kernel.min_samples
    if n < m or n < kernel.min_ls_samples:
        logger.warning(f"Not enough correspondences: {n} (minimal {m}, least-squares {kernel.min_ls_samples})")
        return _failure(EstimationStatus.DEGENERATE_INPUT, 0, start_time)

    best: Optional[_Hypothesis] = None
    found_model = False
    bound = float(max_iterations)
    iteration = 0
    stopped = False

    while iteration < min(max_iterations, bound):
        if should_stop is not None and should_stop():
            logger.debug(f"Estimation stopped by caller after {iteration} iterations")
            stopped = True
            break
        iteration += 1

        models = kernel.fit(uniform_sample(rng, m, n))
        if not models:
            continue
        found_model = True

        candidate = _best_candidate(kernel, models, threshold)
        if candidate is None or not candidate.is_better_than(best):
            continue

        if local_optimizer is not None:
            candidate = local_optimizer(candidate)
        best = candidate
        bound = iteration_bound(best.num_inliers / n, m, confidence)
        logger.debug(f"Iteration {iteration}: new best with {best.num_inliers}/{n} inliers, "
                     f"bound={bound}")

    if best is None:
        # 被取消时输入本身未必退化
        status = EstimationStatus.NO_SOLUTION if found_model or stopped else EstimationStatus.DEGENERATE_INPUT
        logger.debug(f"Robust estimation failed ({status.value}) after {iteration} iterations")
        return _failure(status, iteration, start_time)

    kernel.unnormalize(best.model)

    return EstimationResult(
        success=True,
        status=EstimationStatus.SUCCESS,
        model=best.model,
        inliers=best.inliers,
        num_iterations=iteration,
        residual_sum=best.residual_sum,
        processing_time=(time.time() - start_time) * 1000
    )


def ransac(kernel: KernelBase, threshold: float,
           max_iterations: int = DEFAULT_MAX_ITERATIONS,
           confidence: float = 0.99,
           seed: Optional[int] = None,
           should_stop: Optional[Callable[[], bool]] = None) -> EstimationResult:
    """
    固定阈值RANSAC

    Args:
        kernel: 估计核
        threshold: 内点阈值（与核的误差单位一致）
        max_iterations: 迭代上限
        confidence: 自适应停止条件的置信度
        seed: 随机种子，相同种子结果可复现
        should_stop: 可选的协作取消标志，每次迭代前检查

    Returns:
        EstimationResult
    """
    return _search(kernel, threshold, max_iterations, confidence,
                   np.random.default_rng(seed), should_stop, None)


def lo_ransac(kernel: KernelBase, threshold: float,
              max_iterations: int = DEFAULT_MAX_ITERATIONS,
              confidence: float = 0.99,
              num_lo_iterations: int = 10,
              irls_iterations: int = 4,
              weight_epsilon: float = 0.001,
              seed: Optional[int] = None,
              should_stop: Optional[Callable[[], bool]] = None) -> EstimationResult:
    """
    LO-RANSAC：每找到新的最优模型，立即在其内点集上做局部优化

    Args:
        kernel: 估计核
        threshold: 内点阈值
        max_iterations: 迭代上限
        confidence: 自适应停止条件的置信度
        num_lo_iterations: 局部优化内层RANSAC的迭代数
        irls_iterations: IRLS迭代数
        weight_epsilon: IRLS权重的残差下限
        seed: 随机种子
        should_stop: 可选的协作取消标志

    Returns:
        EstimationResult
    """
    rng = np.random.default_rng(seed)

    def local_optimizer(hypothesis: _Hypothesis) -> _Hypothesis:
        return _local_optimization(kernel, hypothesis, threshold, rng,
                                   num_lo_iterations, irls_iterations, weight_epsilon)

    return _search(kernel, threshold, max_iterations, confidence, rng, should_stop, local_optimizer)


def run_estimator(kernel: KernelBase, threshold: float, estimator,
                  config: Optional[Dict[str, Any]] = None,
                  max_iterations: Optional[int] = None) -> EstimationResult:
    """
    按估计器类型和配置运行鲁棒估计

    Args:
        kernel: 估计核
        threshold: 内点阈值
        estimator: RobustEstimator 或其字符串取值
        config: RobustEstimation 配置段
        max_iterations: 覆盖配置中的迭代上限
    """
    estimator = RobustEstimator.from_value(estimator)
    config = config or {}
    max_iterations = max_iterations or config.get('max_iterations', DEFAULT_MAX_ITERATIONS)
    confidence = config.get('confidence', 0.99)
    seed = config.get('seed')

    if estimator is RobustEstimator.RANSAC:
        return ransac(kernel, threshold, max_iterations=max_iterations,
                      confidence=confidence, seed=seed)

    return lo_ransac(
        kernel, threshold,
        max_iterations=max_iterations,
        confidence=confidence,
        num_lo_iterations=config.get('num_lo_iterations', 10),
        irls_iterations=config.get('irls_iterations', 4),
        weight_epsilon=config.get('weight_epsilon', 0.001),
        seed=seed
    )
