"""
Alert pipeline for QuietWatch.

Consumes the reconciled bulletin stream: drops re-deliveries, classifies and
matches each bulletin, arms quiet-window timers for alerts and turns official
stand-down bulletins into immediate notifications.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..core.models import BulletinEvent, BulletinKind, MatchResult, PendingStatus, TimerSnapshot
from ..channel.transport import format_preview
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.templates import MessageTemplates
from ..utils.logging import BulletinLogger
from .localities import normalize_locality
from .matcher import match_monitored
from .parser import is_upcoming_warning
from .timers import Clock, QuietWindowRegistry

logger = logging.getLogger(__name__)

LinkBuilder = Callable[[int], Optional[str]]


class AlertPipeline:
    """Turns bulletins into timer activity and notifications."""

    def __init__(
        self,
        monitored: Iterable[str],
        quiet_window: timedelta,
        dispatcher: NotificationDispatcher,
        templates: Optional[MessageTemplates] = None,
        link_builder: Optional[LinkBuilder] = None,
        clock: Optional[Clock] = None,
        bulletin_logger: Optional[BulletinLogger] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            monitored: Watch-list of locality names
            quiet_window: Quiet window before a stand-down is sent
            dispatcher: Outbound notification fan-out
            templates: Message templates
            link_builder: Builds a permalink for a source message id
            clock: Source of the current time
            bulletin_logger: Structured bulletin event logger
        """
        self.monitored: List[str] = [normalize_locality(name) for name in monitored]
        self.quiet_window = quiet_window
        self.dispatcher = dispatcher
        self.templates = templates or MessageTemplates()
        self.link_builder = link_builder
        self.bulletins = bulletin_logger or BulletinLogger(logging.getLogger('quietwatch.bulletins'))
        self.registry = QuietWindowRegistry(quiet_window, self._on_expire, clock)
        self._seen_ids: Set[int] = set()
        self._notify_tasks: Set[asyncio.Task] = set()
        self._stats = {
            "received": 0,
            "duplicates": 0,
            "ignored_upcoming": 0,
            "unmatched": 0,
            "alerts": 0,
            "stand_downs": 0,
            "notifications": 0,
        }

    @property
    def quiet_window_minutes(self) -> int:
        return max(1, round(self.quiet_window.total_seconds() / 60))

    def get_processing_stats(self) -> Dict[str, int]:
        return dict(self._stats, seen_ids=len(self._seen_ids), pending_timers=len(self.registry))

    def pending_statuses(self, now: Optional[datetime] = None) -> List[PendingStatus]:
        return self.registry.pending_statuses(now)

    def _link_for(self, message_id: int) -> Optional[str]:
        if not self.link_builder:
            return None
        try:
            return self.link_builder(message_id)
        except Exception as e:
            logger.warning(f"Could not build link for message #{message_id}: {e}")
            return None

    async def process(self, event: BulletinEvent) -> Optional[MatchResult]:
        """
        Process one delivered bulletin.

        Returns:
            The match result, or None for a re-delivered bulletin
        """
        source = event.delivery_path.value
        if event.id in self._seen_ids:
            self._stats["duplicates"] += 1
            self.bulletins.log_duplicate(event.id, source)
            return None
        self._seen_ids.add(event.id)
        self._stats["received"] += 1

        self.bulletins.log_received(event.id, source, event.observed_at, format_preview(event.text))

        if is_upcoming_warning(event.text):
            self._stats["ignored_upcoming"] += 1
            logger.info(f"[FILTER] #{event.id} skipped (upcoming-warning bulletin)")
            return MatchResult(kind=BulletinKind.UPCOMING_WARNING)

        result = match_monitored(event.text, self.monitored)
        self.bulletins.log_parsed(event.id, result.kind.value, result.alerted_localities)

        if not result.matched:
            self._stats["unmatched"] += 1
            logger.info(f"[MATCH] #{event.id} no monitored localities matched")
            return result

        self.bulletins.log_matched(event.id, result.matches)
        link = self._link_for(event.id)

        if result.kind is BulletinKind.STAND_DOWN:
            self._stats["stand_downs"] += 1
            for locality in result.matches:
                self.registry.clear(locality, "official stand-down update")
                text = self.templates.render_override(locality, link)
                self._notify("notify_immediate", locality, text)
            return result

        self._stats["alerts"] += 1
        for locality, sub_areas in result.matches.items():
            self.registry.upsert(
                locality,
                sub_areas,
                event.observed_at,
                {"message_id": event.id, "link": link},
            )
        return result

    def _notify(self, kind: str, locality: str, text: str) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(kind, locality, text))
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_tasks.discard)

    async def _deliver(self, kind: str, locality: str, text: str) -> Dict[str, bool]:
        results = await self.dispatcher.dispatch(text, kind.upper())
        self._stats["notifications"] += 1
        self.bulletins.log_notification(kind, locality, results.keys(), sum(results.values()))
        return results

    async def _on_expire(self, locality: str, snapshot: TimerSnapshot) -> None:
        text = self.templates.render_stand_down(locality, self.quiet_window_minutes, snapshot.link)
        await self._deliver("notify", locality, text)

    async def wait_idle(self) -> None:
        """Wait for in-flight notifications and expiry callbacks."""
        await self.registry.wait_idle()
        if self._notify_tasks:
            await asyncio.gather(*list(self._notify_tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel pending timers and let in-flight sends finish."""
        self.registry.clear_all()
        await self.wait_idle()
