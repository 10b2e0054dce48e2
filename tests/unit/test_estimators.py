#!/usr/bin/env python3
"""
鲁棒估计器单元测试
测试RANSAC / LO-RANSAC的搜索、局部优化、失败状态和可复现性
"""

import pytest
import numpy as np

from conftest import make_scene
from robust_localizer.camera import Pose3
from robust_localizer.solvers.geometry_utils import nearest_rotation, rotation_angle
from robust_localizer.robust_estimation.kernel_base import KernelBase
from robust_localizer.robust_estimation.kernel_adaptors import ResectionKernelK
from robust_localizer.robust_estimation.estimators import (
    RobustEstimator,
    EstimationStatus,
    EstimationResult,
    ransac,
    lo_ransac,
    run_estimator
)
from robust_localizer.robust_estimation.sampling import uniform_sample, iteration_bound


class StubKernel(KernelBase):
    """固定返回值的测试核"""

    def __init__(self, num_samples, models=None, residual=10.0):
        self._n = num_samples
        self._models = models if models is not None else [np.eye(3)]
        self._residual = residual
        self.unnormalize_calls = 0

    @property
    def min_samples(self):
        return 2

    @property
    def min_ls_samples(self):
        return 4

    def num_samples(self):
        return self._n

    def fit(self, samples):
        return [m.copy() for m in self._models]

    def fit_least_squares(self, inliers, weights=None):
        return [m.copy() for m in self._models]

    def errors(self, model):
        return np.full(self._n, self._residual)

    def unnormalize(self, model):
        self.unnormalize_calls += 1

    def compute_weights(self, model, inliers, eps=0.001):
        return np.ones(len(inliers))


def _rmse(kernel, model, indices):
    errors = kernel.errors(model)[indices]
    return float(np.sqrt(np.mean(errors ** 2)))


def _pose_error(model, scene):
    """已反归一化的 K [R|t] 相对真实位姿的旋转角误差和相机中心误差"""
    Rt = np.linalg.solve(scene['intrinsics'].K, model)
    pose = Pose3.from_rt(nearest_rotation(Rt[:, :3]), Rt[:, 3])
    return (rotation_angle(pose.rotation, scene['pose'].rotation),
            float(np.linalg.norm(pose.center - scene['pose'].center)))


class TestRansac:
    """RANSAC测试类"""

    def setup_method(self):
        """测试前的设置"""
        self.clean = make_scene(num_points=40)
        self.noisy = make_scene(num_points=80, outlier_ratio=0.3, noise_sigma=0.5, seed=7)

    def _kernel(self, scene):
        return ResectionKernelK(scene['pt2d'], scene['pt3d'], scene['intrinsics'].K)

    def test_noise_free_exact_recovery(self):
        """测试无噪声时精确恢复且全部为内点"""
        kernel = self._kernel(self.clean)
        result = ransac(kernel, threshold=1.0, seed=0)

        assert result.success
        assert result.status == EstimationStatus.SUCCESS
        assert result.num_inliers == 40
        np.testing.assert_array_equal(result.inliers, np.arange(40))

        intrinsics = self.clean['intrinsics']
        expected = intrinsics.K @ self.clean['pose'].as_matrix()
        np.testing.assert_allclose(result.model, expected, rtol=1e-6, atol=1e-6)

    def test_outliers_excluded(self):
        """测试30%外点全部被排除"""
        kernel = self._kernel(self.noisy)
        result = ransac(kernel, threshold=4.0, seed=1)

        assert result.success
        outliers = np.flatnonzero(self.noisy['outlier_mask'])
        assert len(np.intersect1d(result.inliers, outliers)) == 0
        assert result.num_inliers >= int(0.8 * np.sum(~self.noisy['outlier_mask']))

    def test_reproducible_with_seed(self):
        """测试相同种子结果一致"""
        kernel = self._kernel(self.noisy)
        first = ransac(kernel, threshold=4.0, seed=123)
        second = ransac(kernel, threshold=4.0, seed=123)

        np.testing.assert_array_equal(first.inliers, second.inliers)
        np.testing.assert_array_equal(first.model, second.model)
        assert first.num_iterations == second.num_iterations

    def test_degenerate_input(self):
        """测试样本数少于最小样本数"""
        scene = make_scene(num_points=2)
        result = ransac(self._kernel(scene), threshold=4.0, seed=0)

        assert not result.success
        assert result.status == EstimationStatus.DEGENERATE_INPUT
        assert result.model is None
        assert result.num_inliers == 0
        assert result.num_iterations == 0

    @pytest.mark.parametrize('estimate', [ransac, lo_ransac])
    def test_fewer_than_least_squares_samples(self, estimate):
        """测试样本数够最小样本但不够最小二乘样本"""
        scene = make_scene(num_points=4)
        kernel = self._kernel(scene)
        assert kernel.min_samples <= 4 < kernel.min_ls_samples

        result = estimate(kernel, threshold=4.0, seed=0)
        assert not result.success
        assert result.status == EstimationStatus.DEGENERATE_INPUT
        assert result.num_iterations == 0

    def test_no_model_is_degenerate(self):
        """测试所有样本都无法拟合出模型"""
        kernel = StubKernel(10, models=[])
        result = ransac(kernel, threshold=1.0, max_iterations=20, seed=0)

        assert result.status == EstimationStatus.DEGENERATE_INPUT
        assert result.num_iterations == 20

    def test_no_solution(self):
        """测试有模型但没有内点"""
        kernel = StubKernel(10, residual=10.0)
        result = ransac(kernel, threshold=1.0, max_iterations=50, seed=0)

        assert not result.success
        assert result.status == EstimationStatus.NO_SOLUTION
        assert kernel.unnormalize_calls == 0

    def test_unnormalize_called_once(self):
        """测试最终模型只反归一化一次"""
        kernel = StubKernel(10, residual=0.1)
        result = ransac(kernel, threshold=1.0, max_iterations=50, seed=0)

        assert result.success
        assert kernel.unnormalize_calls == 1

    def test_should_stop(self):
        """测试协作取消标志"""
        calls = []

        def should_stop():
            calls.append(1)
            return len(calls) > 5

        kernel = StubKernel(10, models=[])
        result = ransac(kernel, threshold=1.0, max_iterations=1000, seed=0, should_stop=should_stop)
        assert result.num_iterations == 5

    def test_stopped_before_first_sample(self):
        """测试首次采样前取消时报告无解而不是输入退化"""
        kernel = self._kernel(make_scene(num_points=20))
        result = ransac(kernel, threshold=4.0, seed=0, should_stop=lambda: True)

        assert not result.success
        assert result.status == EstimationStatus.NO_SOLUTION
        assert result.num_iterations == 0

    def test_invalid_arguments(self):
        """测试非法参数"""
        kernel = StubKernel(10)
        with pytest.raises(ValueError):
            ransac(kernel, threshold=0.0)
        with pytest.raises(ValueError):
            ransac(kernel, threshold=float('inf'))
        with pytest.raises(ValueError):
            ransac(kernel, threshold=1.0, max_iterations=0)


class TestLoRansac:
    """LO-RANSAC测试类"""

    def setup_method(self):
        """测试前的设置"""
        self.scene = make_scene(num_points=80, outlier_ratio=0.3, noise_sigma=0.5, seed=7)
        self.kernel = ResectionKernelK(self.scene['pt2d'], self.scene['pt3d'],
                                       self.scene['intrinsics'].K)
        self.true_inliers = np.flatnonzero(~self.scene['outlier_mask'])

    def test_outliers_excluded(self):
        """测试局部优化后外点仍被排除"""
        result = lo_ransac(self.kernel, threshold=4.0, seed=5)

        assert result.success
        outliers = np.flatnonzero(self.scene['outlier_mask'])
        assert len(np.intersect1d(result.inliers, outliers)) == 0
        assert result.num_inliers >= int(0.95 * len(self.true_inliers))

    def test_lo_not_worse_than_ransac(self):
        """测试LO-RANSAC的内点RMSE不劣于普通RANSAC"""
        plain = ransac(self.kernel, threshold=4.0, seed=5)
        local = lo_ransac(self.kernel, threshold=4.0, seed=5)

        # 结果模型已反归一化，用单位内参的核在像素坐标下评估
        pixel_kernel = ResectionKernelK(self.scene['pt2d'], self.scene['pt3d'], np.eye(3))
        plain_rmse = _rmse(pixel_kernel, plain.model, self.true_inliers)
        local_rmse = _rmse(pixel_kernel, local.model, self.true_inliers)

        assert local_rmse <= plain_rmse + 1e-6

    def test_lo_closer_to_ground_truth(self):
        """测试局部优化后的位姿比最小样本估计更接近真值"""
        plain_errors, local_errors = [], []
        for seed in range(5):
            scene = make_scene(num_points=150, outlier_ratio=0.3, noise_sigma=1.0, seed=seed)
            kernel = ResectionKernelK(scene['pt2d'], scene['pt3d'], scene['intrinsics'].K)

            plain = ransac(kernel, threshold=4.0, seed=seed)
            # 权重下限取噪声量级，IRLS接近内点上的最小二乘
            local = lo_ransac(kernel, threshold=4.0, seed=seed, weight_epsilon=1.0)
            assert plain.success and local.success

            plain_errors.append(_pose_error(plain.model, scene))
            local_errors.append(_pose_error(local.model, scene))

        plain_errors = np.array(plain_errors)
        local_errors = np.array(local_errors)
        assert np.sum(local_errors[:, 0]) < np.sum(plain_errors[:, 0])
        assert np.sum(local_errors[:, 1]) < np.sum(plain_errors[:, 1])

    def test_noise_free_exact_recovery(self):
        """测试无噪声时精确恢复"""
        scene = make_scene(num_points=30, seed=2)
        kernel = ResectionKernelK(scene['pt2d'], scene['pt3d'], scene['intrinsics'].K)
        result = lo_ransac(kernel, threshold=2.0, seed=0)

        assert result.success
        assert result.num_inliers == 30
        expected = scene['intrinsics'].K @ scene['pose'].as_matrix()
        np.testing.assert_allclose(result.model, expected, rtol=1e-6, atol=1e-6)

    def test_reproducible_with_seed(self):
        """测试相同种子结果一致"""
        first = lo_ransac(self.kernel, threshold=4.0, seed=99)
        second = lo_ransac(self.kernel, threshold=4.0, seed=99)
        np.testing.assert_array_equal(first.inliers, second.inliers)
        np.testing.assert_array_equal(first.model, second.model)


class TestRunEstimator:
    """按配置运行估计器测试类"""

    def test_estimator_from_value(self):
        """测试估计器枚举解析"""
        assert RobustEstimator.from_value('ransac') is RobustEstimator.RANSAC
        assert RobustEstimator.from_value('LORANSAC') is RobustEstimator.LORANSAC
        assert RobustEstimator.from_value(RobustEstimator.RANSAC) is RobustEstimator.RANSAC
        with pytest.raises(ValueError):
            RobustEstimator.from_value('acransac')

    def test_run_with_config(self):
        """测试配置驱动的估计"""
        scene = make_scene(num_points=30, seed=4)
        kernel = ResectionKernelK(scene['pt2d'], scene['pt3d'], scene['intrinsics'].K)
        config = {'max_iterations': 200, 'confidence': 0.999, 'seed': 3}

        result = run_estimator(kernel, 2.0, 'ransac', config)
        assert result.success
        assert result.num_iterations <= 200

        with pytest.raises(ValueError):
            run_estimator(kernel, 2.0, 'unknown', config)

    def test_result_reliability(self):
        """测试结果可靠性判断"""
        result = EstimationResult(
            success=True, status=EstimationStatus.SUCCESS, model=np.eye(3),
            inliers=np.array([0, 1, 2]), num_iterations=10
        )
        assert result.num_inliers == 3
        assert result.is_reliable(min_inliers=2)
        assert not result.is_reliable(min_inliers=5)


class TestSampling:
    """采样与迭代上界测试类"""

    def test_uniform_sample_unique(self):
        """测试采样索引互不相同且在范围内"""
        rng = np.random.default_rng(0)
        for _ in range(100):
            sample = uniform_sample(rng, 5, 12)
            assert len(sample) == 5
            assert len(np.unique(sample)) == 5
            assert sample.min() >= 0 and sample.max() < 12

    def test_uniform_sample_too_many(self):
        """测试样本数超过总数"""
        with pytest.raises(ValueError):
            uniform_sample(np.random.default_rng(0), 5, 4)

    def test_iteration_bound(self):
        """测试迭代次数上界"""
        assert iteration_bound(1.0, 3) == 0
        assert iteration_bound(0.0, 3) == float('inf')
        assert iteration_bound(0.5, 3, 0.99) == 35
