"""
Quiet-window timer registry for QuietWatch.

One debounce timer per monitored locality. A timer fires once the locality
has gone a full quiet window without a newer alert. Timers are keyed on the
real-world alert timestamp, so an older bulletin that arrives late never
extends a window that a newer bulletin already armed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..core.models import PendingStatus, TimerSnapshot

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[str, TimerSnapshot], Awaitable[None]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TimerRecord:
    """Live timer for one locality. Owned by the registry."""

    alert_at: datetime
    started_at: datetime
    expires_at: datetime
    sub_areas: Tuple[str, ...]
    metadata: Dict[str, Any] = field(default_factory=dict)
    handle: Optional[asyncio.TimerHandle] = None

    def snapshot(self, locality: str) -> TimerSnapshot:
        return TimerSnapshot(
            locality=locality,
            alert_at=self.alert_at,
            expires_at=self.expires_at,
            sub_areas=self.sub_areas,
            metadata=dict(self.metadata),
        )


class QuietWindowRegistry:
    """Keyed registry of quiet-window timers."""

    def __init__(
        self,
        quiet_window: timedelta,
        on_expire: ExpiryCallback,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the registry.

        Args:
            quiet_window: How long a locality must stay alert-free
            on_expire: Coroutine called with (locality, snapshot) when a timer fires
            clock: Source of the current time (timezone-aware UTC)
        """
        self.quiet_window = quiet_window
        self.on_expire = on_expire
        self.clock = clock or utc_now
        self._timers: Dict[str, TimerRecord] = {}
        self._callback_tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._timers)

    def __contains__(self, locality: str) -> bool:
        return locality in self._timers

    def get(self, locality: str) -> Optional[TimerRecord]:
        return self._timers.get(locality)

    @staticmethod
    def _coerce_timestamp(value: Optional[datetime], fallback: datetime) -> datetime:
        if value is None:
            return fallback
        if not isinstance(value, datetime):
            raise ValueError(f"Invalid alert timestamp: {value!r}")
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def upsert(
        self,
        locality: str,
        sub_areas: Iterable[str] = (),
        event_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Arm or re-arm the timer for a locality.

        Args:
            locality: Monitored locality key
            sub_areas: Alerted localities that matched it
            event_at: Real-world alert timestamp (defaults to now)
            metadata: Context handed to the expiry callback

        Returns:
            True if the timer was armed, False if the alert was older than
            the one already tracked
        """
        loop = asyncio.get_running_loop()
        now = self.clock()
        alert_at = self._coerce_timestamp(event_at, now)
        sub_areas = tuple(sub_areas)

        existing = self._timers.get(locality)
        if existing and existing.alert_at > alert_at:
            logger.info(
                f"[SKIP_OLD] {locality} alert_at={alert_at.isoformat()} "
                f"older than tracked={existing.alert_at.isoformat()}"
            )
            return False

        if existing and existing.handle:
            existing.handle.cancel()

        expires_at = alert_at + self.quiet_window
        delay = max(0.0, (expires_at - now).total_seconds())

        record = TimerRecord(
            alert_at=alert_at,
            started_at=now,
            expires_at=expires_at,
            sub_areas=sub_areas,
            metadata=dict(metadata or {}),
        )
        record.handle = loop.call_later(delay, self._fire, locality, record)
        self._timers[locality] = record

        mode = "RESET" if existing else "START"
        logger.info(
            f"[{mode}] {locality} alert_at={alert_at.isoformat()} "
            f"expires_at={expires_at.isoformat()} in={delay:.0f}s "
            f"from alerts: {', '.join(sub_areas)}",
            extra={'event_type': 'timer_armed', 'locality': locality, 'delay_seconds': delay},
        )
        return True

    def clear(self, locality: str, reason: str = "") -> bool:
        """Cancel and forget the timer for a locality. Returns whether one existed."""
        record = self._timers.pop(locality, None)
        if record is None:
            return False

        if record.handle:
            record.handle.cancel()
        logger.info(f"[CLEAR] {locality}" + (f" ({reason})" if reason else ""))
        return True

    def clear_all(self) -> int:
        """Cancel every pending timer. Returns how many were cancelled."""
        count = len(self._timers)
        for record in self._timers.values():
            if record.handle:
                record.handle.cancel()
        self._timers.clear()
        if count:
            logger.info(f"Cleared {count} pending timer(s)")
        return count

    def pending_statuses(self, now: Optional[datetime] = None) -> List[PendingStatus]:
        """Pending timers ordered by remaining time, soonest first."""
        now = now or self.clock()
        statuses = [
            PendingStatus(
                locality=locality,
                remaining=max(timedelta(0), record.expires_at - now),
                alert_at=record.alert_at,
                expires_at=record.expires_at,
                sub_areas=record.sub_areas,
            )
            for locality, record in self._timers.items()
        ]
        return sorted(statuses, key=lambda status: status.remaining)

    def _fire(self, locality: str, record: TimerRecord) -> None:
        # A superseded record can only get here if its handle fired before cancel().
        if self._timers.get(locality) is not record:
            return

        del self._timers[locality]
        logger.info(
            f"[EXPIRE_TRIGGER] {locality} now={self.clock().isoformat()} "
            f"scheduled_expires_at={record.expires_at.isoformat()}"
        )

        task = asyncio.get_running_loop().create_task(
            self._run_callback(record.snapshot(locality))
        )
        self._callback_tasks.add(task)
        task.add_done_callback(self._callback_tasks.discard)

    async def _run_callback(self, snapshot: TimerSnapshot) -> None:
        try:
            await self.on_expire(snapshot.locality, snapshot)
            logger.info(f"[EXPIRE] {snapshot.locality} -> stand-down notification sent")
        except Exception as e:
            logger.error(f"[EXPIRE] {snapshot.locality} -> notification failed: {e}", exc_info=True)

    async def wait_idle(self) -> None:
        """Wait for expiry callbacks that are already running."""
        if self._callback_tasks:
            await asyncio.gather(*list(self._callback_tasks), return_exceptions=True)
