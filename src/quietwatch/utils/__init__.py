"""
Utilities for QuietWatch.
"""

from .logging import setup_logging, BulletinLogger, QuietWatchFormatter

__all__ = [
    "setup_logging",
    "BulletinLogger",
    "QuietWatchFormatter",
]
