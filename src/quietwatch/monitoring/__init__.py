"""
Status reporting for QuietWatch.
"""

from .server import StatusServer

__all__ = ["StatusServer"]
