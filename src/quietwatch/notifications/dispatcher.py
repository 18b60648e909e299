"""
Best-effort notification fan-out for QuietWatch.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List

logger = logging.getLogger(__name__)

SendFunc = Callable[[str, str], Awaitable[None]]


class NotificationDispatcher:
    """Sends one text to every destination, isolating failures per destination."""

    def __init__(self, send: SendFunc, destinations: Iterable[str], timeout_seconds: float = 30):
        """
        Initialize the dispatcher.

        Args:
            send: Coroutine sending (text, destination); raises on failure
            destinations: Destination ids
            timeout_seconds: Upper bound for a single send
        """
        self.send = send
        self.destinations: List[str] = list(destinations)
        self.timeout_seconds = timeout_seconds
        self._stats = {"sent": 0, "failed": 0}

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def dispatch(self, text: str, label: str = "NOTIFY") -> Dict[str, bool]:
        """
        Send ``text`` to all destinations concurrently.

        Returns:
            Mapping of destination id to whether the send succeeded
        """
        if not self.destinations:
            logger.warning(f"[{label}] No destinations configured, message dropped")
            return {}

        results = await asyncio.gather(
            *(self._send_one(text, destination, label) for destination in self.destinations)
        )
        return dict(zip(self.destinations, results))

    async def _send_one(self, text: str, destination: str, label: str) -> bool:
        logger.info(f"[{label}] Sending to {destination}")
        try:
            await asyncio.wait_for(self.send(text, destination), timeout=self.timeout_seconds)
        except Exception as e:
            self._stats["failed"] += 1
            logger.error(f"[{label}] Failed sending to {destination}: {e}")
            return False

        self._stats["sent"] += 1
        logger.info(f"[{label}] Sent to {destination}: {text}")
        return True
