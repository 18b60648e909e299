"""
Core application components for QuietWatch.
"""

from .config import AppConfig, ChannelConfig, ConfigError, DevConfig, LoggingConfig, MonitoringConfig, NotificationsConfig, StatusServerConfig
from .models import BulletinEvent, BulletinKind, DeliveryPath, MatchResult, PendingStatus, TimerSnapshot

__all__ = [
    "AppConfig",
    "ChannelConfig",
    "ConfigError",
    "DevConfig",
    "LoggingConfig",
    "MonitoringConfig",
    "NotificationsConfig",
    "StatusServerConfig",
    "BulletinEvent",
    "BulletinKind",
    "DeliveryPath",
    "MatchResult",
    "PendingStatus",
    "TimerSnapshot",
]
