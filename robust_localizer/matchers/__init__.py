"""
Matcher modules
"""

from .descriptor_matcher import BruteForceMatcher
from .matcher_base import DescriptorMatcherBase
from .matcher_utils import MatchingResult

__all__ = [
    'BruteForceMatcher',
    'DescriptorMatcherBase',
    'MatchingResult'
]
