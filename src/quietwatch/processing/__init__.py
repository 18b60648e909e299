"""
Bulletin processing for QuietWatch.
"""

from .localities import normalize_locality, is_base_match
from .parser import classify_bulletin, extract_localities, is_upcoming_warning
from .matcher import match_localities, match_monitored
from .timers import QuietWindowRegistry, TimerRecord
from .pipeline import AlertPipeline

__all__ = [
    "normalize_locality",
    "is_base_match",
    "classify_bulletin",
    "extract_localities",
    "is_upcoming_warning",
    "match_localities",
    "match_monitored",
    "QuietWindowRegistry",
    "TimerRecord",
    "AlertPipeline",
]
