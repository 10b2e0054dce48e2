"""
相机模型
"""

from .pose import Pose3
from .intrinsics import PinholeIntrinsics

__all__ = [
    'Pose3',
    'PinholeIntrinsics'
]
