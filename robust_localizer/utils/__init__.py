"""
工具模块
包含配置管理、日志等实用工具
"""

from .config_manager import ConfigManager
from .logging_utils import setup_logging

__all__ = [
    'ConfigManager',
    'setup_logging'
]
