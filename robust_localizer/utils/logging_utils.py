"""
日志配置
"""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    初始化日志系统

    Args:
        log_dir: 日志文件目录，为None时只输出到终端
        level: 日志级别

    Returns:
        logger: 包级logger
    """
    handlers = [logging.StreamHandler()]
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / 'robust_localizer.log'))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers
    )

    return logging.getLogger('robust_localizer')
