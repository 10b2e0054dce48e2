"""
定位模块
"""

from .match_data import LocalizerMatchData, Regions, LocalizationResult
from .localizer import SfMLocalizer
from .database_localizer import SingleObservationDatabaseLocalizer

__all__ = [
    'LocalizerMatchData',
    'Regions',
    'LocalizationResult',
    'SfMLocalizer',
    'SingleObservationDatabaseLocalizer'
]
