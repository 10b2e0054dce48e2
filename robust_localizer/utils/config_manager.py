"""
配置管理器
统一的配置文件加载和管理
"""

import copy
import logging
import yaml
from typing import Dict, Any
from pathlib import Path

logger = logging.getLogger(__name__)

# 默认配置，YAML中缺省的键回落到这里
DEFAULT_CONFIG: Dict[str, Any] = {
    'RobustEstimation': {
        'estimator': 'loransac',
        'max_iterations': 4096,
        'confidence': 0.99,
        'num_lo_iterations': 10,
        'irls_iterations': 4,
        'weight_epsilon': 0.001,
        'seed': None,
    },
    'Localizer': {
        'default_error_max': 4.0,
        'min_inlier_factor': 2.0,
        'refine_pose': True,
        'refine_intrinsics': False,
    },
    'Refinement': {
        'method': 'lm',
        'max_nfev': 2000,
        'tolerance': 1e-10,
        'min_rmse_gain': 1e-9,
    },
    'Matcher': {
        'norm': 'L2',
        'ratio': 0.8,
        'unique_train': True,
        'max_distance': None,
    },
}


class ConfigManager:
    """配置管理器"""

    @staticmethod
    def default_config() -> Dict[str, Any]:
        """返回默认配置的深拷贝"""
        return copy.deepcopy(DEFAULT_CONFIG)

    @staticmethod
    def load_config(config_path: str) -> Dict[str, Any]:
        """
        加载YAML配置文件

        Args:
            config_path: 配置文件路径

        Returns:
            config: 配置字典
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}

        # 处理继承关系
        if 'inherit_from' in config:
            parent_path = config_path.parent / config['inherit_from']
            parent_config = ConfigManager.load_config(parent_path)
            config = ConfigManager.merge_configs(parent_config, config)
            del config['inherit_from']  # 移除继承标记

        return config

    @staticmethod
    def load_with_defaults(config_path: str) -> Dict[str, Any]:
        """加载配置并以默认配置补全缺失项"""
        return ConfigManager.merge_configs(ConfigManager.default_config(),
                                           ConfigManager.load_config(config_path))

    @staticmethod
    def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
        """递归合并配置字典"""
        merged = base_config.copy()

        for key, value in override_config.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = ConfigManager.merge_configs(merged[key], value)
            else:
                merged[key] = value

        return merged

    @staticmethod
    def validate_config(config: Dict[str, Any]) -> bool:
        """验证配置有效性"""
        required_sections = ['RobustEstimation', 'Localizer']

        for section in required_sections:
            if section not in config:
                logger.warning(f"Missing required section '{section}' in config")
                return False

        estimation = config.get('RobustEstimation', {})
        estimator = str(estimation.get('estimator', 'loransac')).lower()
        if estimator not in ('ransac', 'loransac'):
            logger.warning(f"Unsupported robust estimator '{estimator}' in config")
            return False

        if estimation.get('max_iterations', 1) <= 0:
            logger.warning("RobustEstimation.max_iterations must be positive")
            return False

        confidence = estimation.get('confidence', 0.99)
        if not 0.0 < confidence < 1.0:
            logger.warning(f"RobustEstimation.confidence out of range: {confidence}")
            return False

        return True

    @staticmethod
    def save_config(config: Dict[str, Any], save_path: str):
        """保存配置到文件"""
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, 'w', encoding='utf-8') as f:
            yaml.dump(config, f, default_flow_style=False, allow_unicode=True, indent=2)
