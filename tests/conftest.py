"""
pytest配置文件
定义测试夹具和全局配置
"""

import pytest
import sys
import numpy as np
from pathlib import Path

# 添加项目路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from robust_localizer.camera import Pose3, PinholeIntrinsics

IMAGE_SIZE = (640, 480)


def make_scene(num_points=60, outlier_ratio=0.0, noise_sigma=0.0, seed=0,
               intrinsics=None, pose=None):
    """
    合成2D-3D场景：非共面3D点，按位姿投影，并注入噪声和外点

    外点在真实投影上偏移20~100像素，保证远离任何阈值

    Returns:
        dict: pt3d, pt2d, outlier_mask, pose, intrinsics
    """
    rng = np.random.default_rng(seed)
    intrinsics = intrinsics or default_intrinsics()
    pose = pose or default_pose()

    pt3d = rng.uniform(-1.0, 1.0, size=(num_points, 3))
    pt2d = intrinsics.project(pose, pt3d)
    if noise_sigma > 0:
        pt2d = pt2d + rng.normal(0.0, noise_sigma, size=pt2d.shape)

    num_outliers = int(round(outlier_ratio * num_points))
    outlier_mask = np.zeros(num_points, dtype=bool)
    outlier_mask[rng.choice(num_points, num_outliers, replace=False)] = True
    angles = rng.uniform(0.0, 2.0 * np.pi, num_outliers)
    offsets = rng.uniform(20.0, 100.0, num_outliers)
    pt2d[outlier_mask] += np.stack([np.cos(angles), np.sin(angles)], axis=1) * offsets[:, None]

    return {
        'pt3d': pt3d,
        'pt2d': pt2d,
        'outlier_mask': outlier_mask,
        'pose': pose,
        'intrinsics': intrinsics
    }


def default_intrinsics():
    return PinholeIntrinsics(width=IMAGE_SIZE[0], height=IMAGE_SIZE[1],
                             fx=800.0, fy=780.0, cx=320.0, cy=240.0)


def default_pose():
    return Pose3.from_rvec_tvec(np.array([0.1, -0.2, 0.05]), np.array([0.2, -0.1, 4.0]))


@pytest.fixture
def sample_config():
    """样例配置fixture"""
    return {
        'RobustEstimation': {
            'estimator': 'loransac',
            'max_iterations': 1000,
            'confidence': 0.99,
            'seed': 42
        },
        'Localizer': {
            'default_error_max': 4.0,
            'min_inlier_factor': 2.0
        }
    }


@pytest.fixture
def camera_intrinsics():
    """针孔相机内参fixture"""
    return default_intrinsics()


@pytest.fixture
def clean_scene():
    """无噪声无外点场景"""
    return make_scene()


@pytest.fixture
def outlier_scene():
    """30%外点、0.5像素噪声场景"""
    return make_scene(num_points=80, outlier_ratio=0.3, noise_sigma=0.5, seed=7)
