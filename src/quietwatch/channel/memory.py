"""
In-process channel transport.

Backs the ``inject`` CLI command and the test-suite: bulletins are pushed by
hand, pull responses are scripted and sent messages are recorded.
"""

import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, List, Optional, Set, Tuple

from .transport import (
    ChannelMessage,
    DifferenceKind,
    DifferenceResponse,
    MessageHandler,
    TransportError,
    build_message_link,
)

logger = logging.getLogger(__name__)


class MemoryChannelTransport:
    """Scripted ChannelTransport kept entirely in memory."""

    def __init__(self, username: Optional[str] = "memory", cursor: int = 1):
        self.username = username
        self.cursor = cursor
        self.handlers: List[MessageHandler] = []
        self.history: List[ChannelMessage] = []
        self.sent: List[Tuple[str, str]] = []
        self.pull_calls: List[Tuple[int, bool]] = []
        self.failing_destinations: Set[str] = set()
        self._responses: Deque[Any] = deque()

    def subscribe(self, on_message: MessageHandler) -> None:
        self.handlers.append(on_message)

    def push(self, message: ChannelMessage) -> None:
        """Deliver a message through every subscribed push handler."""
        for handler in self.handlers:
            handler(message)

    def queue_response(self, response: Any) -> None:
        """Script the next pull response (an exception instance is raised instead)."""
        self._responses.append(response)

    async def pull_difference(self, cursor: int, force: bool = False) -> Any:
        self.pull_calls.append((cursor, force))
        if self._responses:
            response = self._responses.popleft()
            if isinstance(response, BaseException):
                raise response
            return response

        if force:
            return DifferenceResponse(kind=DifferenceKind.TOO_LONG, cursor=self.cursor)
        return DifferenceResponse(kind=DifferenceKind.EMPTY, cursor=max(cursor, self.cursor))

    async def fetch_recent(self, window: timedelta) -> List[ChannelMessage]:
        cutoff = datetime.now(timezone.utc) - window
        return [message for message in self.history if message.date >= cutoff]

    async def send(self, text: str, destination: str) -> None:
        if destination in self.failing_destinations:
            raise TransportError(f"Destination {destination} rejected the message")
        self.sent.append((destination, text))
        logger.debug(f"Recorded message for {destination}")

    def build_message_link(self, message_id: int) -> Optional[str]:
        return build_message_link(self.username, None, message_id)
