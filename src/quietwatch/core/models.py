"""
Core data models for QuietWatch.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
from pydantic import BaseModel, Field


class DeliveryPath(str, Enum):
    """How a bulletin reached the pipeline."""

    PUSH = "push"
    PULL = "pull"
    HISTORY = "history"


class BulletinKind(str, Enum):
    """Coarse bulletin classification."""

    UPCOMING_WARNING = "upcoming_warning"
    STAND_DOWN = "stand_down"
    ALERT = "alert"


class BulletinEvent(BaseModel):
    """One inbound channel message."""

    id: int = Field(..., description="Channel message identifier")
    text: str = Field(..., description="Raw bulletin text")
    observed_at: datetime = Field(..., description="Message timestamp from the channel")
    delivery_path: DeliveryPath = Field(DeliveryPath.PUSH, description="Delivery path")


@dataclass
class MatchResult:
    """Result of matching one bulletin against the watch-list."""

    kind: BulletinKind
    alerted_localities: List[str] = field(default_factory=list)
    matches: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def matched(self) -> bool:
        return bool(self.matches)


@dataclass(frozen=True)
class TimerSnapshot:
    """Immutable view of a timer handed to the expiry callback."""

    locality: str
    alert_at: datetime
    expires_at: datetime
    sub_areas: Tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def link(self) -> Optional[str]:
        return self.metadata.get("link")


@dataclass(frozen=True)
class PendingStatus:
    """Status line for one pending timer."""

    locality: str
    remaining: timedelta
    alert_at: datetime
    expires_at: datetime
    sub_areas: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locality": self.locality,
            "remaining_seconds": round(self.remaining.total_seconds(), 3),
            "alert_at": self.alert_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "sub_areas": list(self.sub_areas),
        }
