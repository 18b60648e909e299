"""
Channel transport interface and helpers for QuietWatch.

The transport owns authentication, sessions and wire mechanics. QuietWatch
only needs the small surface described by ``ChannelTransport``.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Union, runtime_checkable
from dateutil import parser


class TransportError(Exception):
    """Channel transport error."""

    pass


@dataclass(frozen=True)
class ChannelMessage:
    """A message as delivered by the transport."""

    id: int
    text: str
    date: datetime


class DifferenceKind(str, Enum):
    """Shape of a differential pull response."""

    EMPTY = "empty"
    TOO_LONG = "too_long"
    NORMAL = "normal"


@dataclass
class DifferenceResponse:
    """Decoded differential pull response."""

    kind: DifferenceKind
    cursor: Any = 0
    timeout: Any = None
    messages: List[Any] = field(default_factory=list)


MessageHandler = Callable[[ChannelMessage], Any]


@runtime_checkable
class ChannelTransport(Protocol):
    """What QuietWatch needs from the channel transport."""

    def subscribe(self, on_message: MessageHandler) -> None:
        """Register the push-delivery callback for the source channel."""
        ...

    async def pull_difference(self, cursor: int, force: bool = False) -> Union[DifferenceResponse, Any]:
        """Return updates since ``cursor`` as a DifferenceResponse or a raw wire object."""
        ...

    async def fetch_recent(self, window: timedelta) -> List[ChannelMessage]:
        """Return source messages from the last ``window``."""
        ...

    async def send(self, text: str, destination: str) -> None:
        """Send text to a destination. Raises on failure."""
        ...


_TME_LINK = re.compile(r"^https?://t\.me/([^/?#]+)", re.IGNORECASE)
_NUMERIC_PEER = re.compile(r"^-?\d+$")


def normalize_source_channel(value: Optional[str]) -> str:
    """Turn a t.me link into @username; anything else is returned trimmed."""
    trimmed = str(value or "").strip()
    match = _TME_LINK.match(trimmed)
    if match:
        return f"@{match.group(1)}"
    return trimmed


def to_peer(value: str) -> Union[int, str]:
    """Numeric ids become ints, usernames stay strings."""
    if _NUMERIC_PEER.match(value):
        return int(value)
    return value


def normalize_message_date(raw: Any) -> datetime:
    """
    Coerce a transport timestamp into an aware UTC datetime.

    Accepts datetimes, unix seconds, unix milliseconds and ISO 8601 strings.
    """
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)

    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        seconds = raw / 1000 if raw > 1_000_000_000_000 else raw
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    if isinstance(raw, str):
        parsed = parser.isoparse(raw)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    raise ValueError(f"Unsupported message date: {raw!r}")


def format_preview(text: Optional[str], max_length: int = 140) -> str:
    """Single-line preview of a message for logs."""
    return re.sub(r"\s+", " ", str(text or ""))[:max_length]


def build_message_link(username: Optional[str], channel_id: Any, message_id: Optional[int]) -> Optional[str]:
    """
    Build a permalink to a channel message.

    Public channels link by username; private ones by the bare channel id
    without the -100 prefix.
    """
    if not message_id:
        return None

    if username:
        return f"https://t.me/{username}/{message_id}"

    if channel_id:
        bare_id = re.sub(r"^-100", "", str(channel_id))
        return f"https://t.me/c/{bare_id}/{message_id}"

    return None
