"""
Telegram Bot API sender for QuietWatch.
"""

import logging
from typing import Optional
import httpx

from ..channel.transport import to_peer

logger = logging.getLogger(__name__)


class TelegramBotError(Exception):
    """Telegram Bot API error."""

    pass


class TelegramBotSender:
    """Sends notification text through the Telegram Bot API."""

    def __init__(self, token: str, base_url: str = "https://api.telegram.org", timeout: float = 30):
        """
        Initialize the sender.

        Args:
            token: Bot token issued by @BotFather
            base_url: Bot API base URL
            timeout: Request timeout in seconds
        """
        if not token:
            raise TelegramBotError("A bot token is required")
        self.client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/bot{token}",
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def send(self, text: str, destination: str) -> None:
        """
        Send a text message to a chat.

        Raises:
            TelegramBotError: On transport failure or a non-ok API reply
        """
        payload = {
            "chat_id": to_peer(destination),
            "text": text,
            "disable_web_page_preview": True,
        }
        try:
            response = await self.client.post("/sendMessage", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise TelegramBotError(f"HTTP error: {e.response.status_code} - {e.response.text}") from e
        except httpx.RequestError as e:
            raise TelegramBotError(f"Request failed: {e}") from e

        if not data.get("ok"):
            raise TelegramBotError(f"Bot API rejected message: {data.get('description', 'unknown error')}")

        message_id: Optional[int] = (data.get("result") or {}).get("message_id")
        logger.debug(f"Bot API accepted message {message_id} for {destination}")
