"""
Logging utilities for QuietWatch.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List
import structlog
from structlog.stdlib import LoggerFactory

from ..core.config import LoggingConfig

_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
})

# Fields BulletinLogger and the timer registry attach to their records
BULLETIN_FIELDS = ('event_type', 'message_id', 'delivery_path', 'bulletin_kind', 'locality')

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Per-request chatter from the HTTP clients and the status server
_NOISY_LOGGERS = ('httpx', 'httpcore', 'aiohttp.access')


class QuietWatchFormatter(logging.Formatter):
    """
    JSON formatter for QuietWatch records.

    Bulletin fields are lifted to the top level of each entry so a single
    message id or locality can be followed through the log. Any other
    ``extra=`` fields are kept under ``data``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        data = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if key in BULLETIN_FIELDS:
                log_entry[key] = value
            else:
                data[key] = value

        if data:
            log_entry['data'] = data

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class BulletinLogger:
    """Specialized logger for bulletin lifecycle events."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_received(self, message_id: int, source: str, observed_at: datetime, preview: str) -> None:
        self.logger.info(
            f"[RECEIVED] #{message_id} from {source} at {observed_at.isoformat()} :: {preview}",
            extra={
                'event_type': 'bulletin_received',
                'message_id': message_id,
                'delivery_path': source,
            }
        )

    def log_duplicate(self, message_id: int, source: str) -> None:
        self.logger.info(
            f"[RECEIVED] #{message_id} from {source} skipped (already processed)",
            extra={'event_type': 'bulletin_duplicate', 'message_id': message_id, 'delivery_path': source}
        )

    def log_parsed(self, message_id: int, kind: str, localities: List[str]) -> None:
        self.logger.info(
            f"[PARSE] #{message_id} classified as {kind}, extracted {len(localities)} locality(ies): "
            f"{', '.join(localities) if localities else 'none'}",
            extra={'event_type': 'bulletin_parsed', 'message_id': message_id, 'bulletin_kind': kind}
        )

    def log_matched(self, message_id: int, matches: dict) -> None:
        summary = " | ".join(
            f"{monitored} <= [{', '.join(variants)}]" for monitored, variants in matches.items()
        )
        self.logger.info(
            f"[MATCH] #{message_id} monitored match(es): {summary or 'none'}",
            extra={'event_type': 'bulletin_matched', 'message_id': message_id, 'matched': list(matches)}
        )

    def log_notification(self, kind: str, locality: str, destinations: Iterable[str], delivered: int) -> None:
        destinations = list(destinations)
        self.logger.info(
            f"[{kind.upper()}] {locality} delivered to {delivered}/{len(destinations)} destination(s)",
            extra={
                'event_type': 'notification',
                'notification_kind': kind,
                'locality': locality,
                'delivered': delivered,
            }
        )


def _build_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.format == 'json':
        return QuietWatchFormatter()
    return logging.Formatter(TEXT_FORMAT)


def _build_handlers(config: LoggingConfig) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if config.file:
        file_path = Path(config.file)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            file_path,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding='utf-8',
        ))

    formatter = _build_formatter(config)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config: LoggingConfig) -> tuple[logging.Logger, BulletinLogger]:
    """
    Setup logging for QuietWatch.

    Records from the ``quietwatch`` logger tree go to stdout and, when
    configured, a rotating file. Structured status events go through
    structlog onto the same handlers.

    Returns:
        Tuple of (main_logger, bulletin_logger)
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = logging.getLogger('quietwatch')
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False
    for handler in _build_handlers(config):
        logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(
        f"Logging initialized: level={config.level} format={config.format} "
        f"file={config.file or '-'}"
    )
    return logger, BulletinLogger(logging.getLogger('quietwatch.bulletins'))
