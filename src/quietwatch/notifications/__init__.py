"""
Outbound notifications for QuietWatch.
"""

from .dispatcher import NotificationDispatcher
from .templates import MessageTemplates
from .telegram import TelegramBotSender, TelegramBotError

__all__ = [
    "NotificationDispatcher",
    "MessageTemplates",
    "TelegramBotSender",
    "TelegramBotError",
]
