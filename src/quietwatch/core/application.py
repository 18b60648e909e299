"""
Core application logic for QuietWatch.
"""

import asyncio
import importlib
import inspect
import logging
import signal
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Set
import structlog

from .config import AppConfig, ConfigError
from ..channel.memory import MemoryChannelTransport
from ..channel.reconciler import UpdateReconciler
from ..channel.transport import ChannelMessage, ChannelTransport, normalize_source_channel
from ..monitoring.server import StatusServer
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.telegram import TelegramBotSender
from ..notifications.templates import MessageTemplates
from ..processing.pipeline import AlertPipeline
from ..utils.logging import setup_logging

logger = logging.getLogger(__name__)


async def load_transport(config: AppConfig) -> ChannelTransport:
    """
    Build the channel transport named by ``channel.transport_factory``.

    The factory is a ``module:callable`` path. It is called with the
    normalized source channel plus ``channel.transport_options`` and may
    return the transport or an awaitable resolving to it.
    """
    factory_path = config.channel.transport_factory
    if not factory_path or ":" not in factory_path:
        raise ConfigError(f"channel.transport_factory must look like 'module:callable', got {factory_path!r}")

    module_name, _, attr = factory_path.partition(":")
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot load transport factory {factory_path}: {e}") from e

    transport = factory(
        source=normalize_source_channel(config.channel.source),
        **config.channel.transport_options,
    )
    if inspect.isawaitable(transport):
        transport = await transport
    return transport


def build_injected_transport(config: AppConfig) -> MemoryChannelTransport:
    """In-memory transport whose history holds the configured dev bulletins."""
    transport = MemoryChannelTransport(username=normalize_source_channel(config.channel.source).lstrip("@") or None)
    now = datetime.now(timezone.utc)
    for index, item in enumerate(config.dev.inject_bulletins, start=1):
        transport.history.append(ChannelMessage(
            id=int(item.get("id", index)),
            text=str(item.get("text", "")),
            date=now - timedelta(minutes=float(item.get("minutes_ago", 0))),
        ))
    return transport


class QuietWatchApplication:
    """Main application class for QuietWatch."""

    def __init__(self, config: AppConfig, transport: Optional[ChannelTransport] = None):
        """
        Initialize the application.

        Args:
            config: Application configuration
            transport: Pre-built channel transport (loaded from config when omitted)
        """
        self.config = config
        self.transport = transport
        self.bot_sender: Optional[TelegramBotSender] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.pipeline: Optional[AlertPipeline] = None
        self.reconciler: Optional[UpdateReconciler] = None
        self.status_server: Optional[StatusServer] = None
        self.running = False
        self._tasks: Set[asyncio.Task] = set()
        self._shutdown_event = asyncio.Event()
        self._start_time = datetime.now(timezone.utc)
        self._status_log = structlog.get_logger("quietwatch.status")

    async def initialize(self) -> None:
        """Initialize the application components."""
        _, bulletin_logger = setup_logging(self.config.logging)
        logger.info("Initializing QuietWatch application")

        if self.transport is None:
            if self.config.dev.inject_enabled:
                self.transport = build_injected_transport(self.config)
                logger.info(f"Using in-memory channel with {len(self.config.dev.inject_bulletins)} injected bulletin(s)")
            else:
                self.transport = await load_transport(self.config)

        notifications = self.config.notifications
        send = self.transport.send
        if notifications.bot_token:
            self.bot_sender = TelegramBotSender(
                notifications.bot_token,
                base_url=notifications.bot_api_url,
                timeout=notifications.timeout_seconds,
            )
            send = self.bot_sender.send
            logger.info("Sending notifications through the Telegram Bot API")

        self.dispatcher = NotificationDispatcher(
            send,
            notifications.destinations,
            timeout_seconds=notifications.timeout_seconds,
        )

        self.pipeline = AlertPipeline(
            monitored=self.config.monitoring.localities,
            quiet_window=self.config.monitoring.quiet_window,
            dispatcher=self.dispatcher,
            templates=MessageTemplates(notifications.stand_down_template, notifications.override_template),
            link_builder=getattr(self.transport, "build_message_link", None),
            bulletin_logger=bulletin_logger,
        )

        self.reconciler = UpdateReconciler(
            self.transport,
            self.pipeline.process,
            diff_interval=self.config.channel.diff_interval,
            pull_timeout=self.config.channel.pull_timeout,
        )

        if self.config.status_server.enabled:
            self.status_server = StatusServer(
                self.get_status,
                host=self.config.status_server.host,
                port=self.config.status_server.port,
            )

    async def start(self) -> None:
        """Start delivery, replay and the periodic status log."""
        monitoring = self.config.monitoring
        replay_window = monitoring.replay_window if monitoring.replay_on_start or self.config.dev.inject_enabled else None
        if replay_window is None:
            logger.info("[HISTORY] Replay disabled")

        await self.reconciler.start(replay_window=replay_window)

        if self.status_server:
            try:
                await self.status_server.start()
            except OSError as e:
                logger.error(f"Failed to start status server: {e}")
                self.status_server = None

        task = asyncio.get_running_loop().create_task(self._status_loop(), name="quietwatch-status")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self.running = True
        logger.info(f"Listening for bulletins from \"{normalize_source_channel(self.config.channel.source) or 'memory'}\"")
        logger.info(f"Monitored localities: {', '.join(self.pipeline.monitored)}")
        logger.info(f"Quiet window: {monitoring.quiet_window_minutes} minute(s)")
        logger.info(f"Destinations: {', '.join(self.dispatcher.destinations)}")

    async def shutdown(self) -> None:
        """Shutdown the application gracefully."""
        logger.info("Shutting down QuietWatch application")

        self.running = False
        self._shutdown_event.set()

        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

        if self.reconciler:
            await self.reconciler.stop()

        if self.pipeline:
            await self.pipeline.close()

        if self.status_server:
            await self.status_server.stop()

        if self.bot_sender:
            await self.bot_sender.close()

        logger.info("Application shutdown complete")

    async def run(self) -> None:
        """Run until a shutdown signal arrives."""
        await self.initialize()
        self._setup_signal_handlers()

        try:
            await self.start()
            await self._shutdown_event.wait()
        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise
        finally:
            await self.shutdown()

    def request_shutdown(self) -> None:
        """Ask a running ``run()`` to stop."""
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown")
            self.request_shutdown()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def _status_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.monitoring.status_interval)
            self.log_pending()

    def log_pending(self) -> None:
        """Emit one status line per pending timer."""
        pending = self.pipeline.pending_statuses() if self.pipeline else []
        if not pending:
            return

        summary = " | ".join(
            f"{item.locality}: {int(item.remaining.total_seconds())}s left (until {item.expires_at.isoformat()})"
            for item in pending
        )
        logger.info(f"[STATUS] Pending notifications ({len(pending)}) -> {summary}")
        self._status_log.debug("pending_timers", timers=[item.to_dict() for item in pending])

    def get_status(self) -> Dict[str, Any]:
        """
        Get current application status.

        Returns:
            Status dictionary
        """
        status: Dict[str, Any] = {
            'running': self.running,
            'uptime_seconds': (datetime.now(timezone.utc) - self._start_time).total_seconds(),
            'monitored_localities': self.pipeline.monitored if self.pipeline else [],
            'quiet_window_minutes': self.config.monitoring.quiet_window_minutes,
            'pending': [item.to_dict() for item in self.pipeline.pending_statuses()] if self.pipeline else [],
        }

        if self.pipeline:
            status['processing_stats'] = self.pipeline.get_processing_stats()
        if self.reconciler:
            status['reconciler'] = self.reconciler.stats
        if self.dispatcher:
            status['dispatch'] = self.dispatcher.stats

        return status
