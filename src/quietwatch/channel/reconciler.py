"""
Update reconciler for QuietWatch.

Channel updates arrive on two independent paths: passive push delivery and a
periodic differential pull that catches anything push delivery missed. Both
feed one queue drained by a single consumer task, so the downstream pipeline
sees one serialized stream. Delivery is at-least-once; the consumer dedups by
message id.
"""

import asyncio
import logging
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Set

from ..core.models import BulletinEvent, DeliveryPath
from .transport import (
    ChannelMessage,
    ChannelTransport,
    DifferenceKind,
    DifferenceResponse,
    format_preview,
    normalize_message_date,
)

logger = logging.getLogger(__name__)

DEFAULT_DIFF_INTERVAL = 5
INITIAL_CURSOR = 1

BulletinConsumer = Callable[[BulletinEvent], Awaitable[None]]


class ReconcilerState(str, Enum):
    """Sync state of the pull path."""

    UNINITIALIZED = "uninitialized"
    SYNCED = "synced"
    RESYNCING = "resyncing"


def coerce_int(value: Any) -> int:
    """
    Coerce a transport numeric field to a plain int.

    Handles ints, boxed big integers (anything implementing ``__int__`` or
    ``__index__``) and string-backed numeric wrappers. Values that are not
    numeric, booleans and infinities coerce to 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(str(value).strip())
    except (TypeError, ValueError, OverflowError):
        return 0


def _field(raw: Any, *names: str) -> Any:
    for name in names:
        if isinstance(raw, Mapping):
            if name in raw:
                return raw[name]
        elif hasattr(raw, name):
            return getattr(raw, name)
    return None


def _response_kind(raw: Any) -> DifferenceKind:
    class_name = _field(raw, "className", "class_name", "_")
    if not isinstance(class_name, str):
        class_name = type(raw).__name__

    if "TooLong" in class_name:
        return DifferenceKind.TOO_LONG
    if "Empty" in class_name:
        return DifferenceKind.EMPTY
    return DifferenceKind.NORMAL


def extract_difference_state(raw: Any) -> DifferenceResponse:
    """
    Decode a differential pull response.

    Accepts an already decoded ``DifferenceResponse`` or a raw
    ``ChannelDifference*`` wire object (mapping or attribute access). A
    TooLong response never yields messages: its message list holds recent
    messages, not new ones.
    """
    if raw is None:
        return DifferenceResponse(kind=DifferenceKind.EMPTY, cursor=0, timeout=DEFAULT_DIFF_INTERVAL)

    if isinstance(raw, DifferenceResponse):
        kind = raw.kind
        cursor = coerce_int(raw.cursor)
        timeout = coerce_int(raw.timeout) or DEFAULT_DIFF_INTERVAL
        messages = list(raw.messages) if kind is DifferenceKind.NORMAL else []
        return DifferenceResponse(kind=kind, cursor=cursor, timeout=timeout, messages=messages)

    kind = _response_kind(raw)
    timeout = coerce_int(_field(raw, "timeout")) or DEFAULT_DIFF_INTERVAL

    if kind is DifferenceKind.TOO_LONG:
        dialog = _field(raw, "dialog")
        cursor = coerce_int(_field(dialog, "pts")) if dialog is not None else 0
        return DifferenceResponse(kind=kind, cursor=cursor, timeout=timeout)

    cursor = coerce_int(_field(raw, "pts"))
    if kind is DifferenceKind.EMPTY:
        return DifferenceResponse(kind=kind, cursor=cursor, timeout=timeout)

    messages = _field(raw, "newMessages", "new_messages") or []
    return DifferenceResponse(kind=kind, cursor=cursor, timeout=timeout, messages=list(messages))


def message_from_raw(raw: Any) -> Optional[ChannelMessage]:
    """Convert a transport message to a ChannelMessage; None if it carries no text."""
    if isinstance(raw, ChannelMessage):
        return raw if raw.text else None

    text = _field(raw, "message", "text")
    if not text or not isinstance(text, str):
        return None

    return ChannelMessage(
        id=coerce_int(_field(raw, "id")),
        text=text,
        date=normalize_message_date(_field(raw, "date")),
    )


def _convert_messages(raws: Iterable[Any], label: str) -> List[ChannelMessage]:
    """Convert a batch of transport messages, skipping any that are malformed."""
    messages = []
    for raw in raws:
        try:
            message = message_from_raw(raw)
        except Exception as e:
            message_id = _field(raw, "id")
            logger.warning(f"[{label}] Skipping malformed message #{message_id}: {e}")
            continue
        if message:
            messages.append(message)
    return messages


class UpdateReconciler:
    """Merges push and pull delivery into one ordered stream for a consumer."""

    def __init__(
        self,
        transport: ChannelTransport,
        consumer: BulletinConsumer,
        diff_interval: float = DEFAULT_DIFF_INTERVAL,
        pull_timeout: float = 30.0,
    ):
        """
        Initialize the reconciler.

        Args:
            transport: Channel transport
            consumer: Coroutine receiving every delivered bulletin
            diff_interval: Seconds between differential pulls
            pull_timeout: Upper bound for a single pull call in seconds
        """
        self.transport = transport
        self.consumer = consumer
        self.diff_interval = diff_interval
        self.pull_timeout = pull_timeout
        self.state = ReconcilerState.UNINITIALIZED
        self._cursor = 0
        self._pull_in_flight = False
        self._queue: "asyncio.Queue[BulletinEvent]" = asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()
        self._running = False
        self._stats = {"push": 0, "pull": 0, "history": 0, "pull_failures": 0, "skipped_ticks": 0}

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def stats(self) -> dict:
        return dict(self._stats, cursor=self._cursor, state=self.state.value)

    def _advance_cursor(self, cursor: int) -> None:
        if cursor and cursor > self._cursor:
            self._cursor = cursor

    def _spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start(self, replay_window: Optional[timedelta] = None) -> None:
        """
        Sync the cursor, optionally replay history, then start both delivery paths.

        Args:
            replay_window: Replay source messages from this far back before going live
        """
        self._running = True
        self._spawn(self._consume(), "quietwatch-consumer")

        await self.sync()

        if replay_window:
            await self.replay(replay_window)

        self.transport.subscribe(self.handle_push)
        self._spawn(self._pull_loop(), "quietwatch-pull-loop")
        logger.info(f"[DIFF] Started diff loop every {self.diff_interval}s, cursor={self._cursor}")

    async def stop(self) -> None:
        """Stop both loops. Queued bulletins that were not consumed are dropped."""
        self._running = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Update reconciler stopped")

    async def drain(self) -> None:
        """Wait until every queued bulletin has been consumed."""
        await self._queue.join()

    async def sync(self) -> bool:
        """
        Obtain a fresh base cursor with a forced pull.

        The forced response stands for "too long a gap to diff" and its
        messages are never delivered.
        """
        try:
            raw = await asyncio.wait_for(
                self.transport.pull_difference(INITIAL_CURSOR, force=True),
                timeout=self.pull_timeout,
            )
        except Exception as e:
            logger.warning(f"[DIFF] Initial differential pull failed: {e}")
            return False

        state = extract_difference_state(raw)
        self._advance_cursor(state.cursor)
        self.state = ReconcilerState.SYNCED
        logger.info(
            f"[DIFF] Initial pull -> {state.kind.value}, cursor={self._cursor}, "
            f"server timeout={state.timeout}s"
        )
        return True

    async def replay(self, window: timedelta) -> int:
        """Queue source messages from the last ``window``, oldest first."""
        logger.info(f"[HISTORY] Loading past bulletins from the last {window}")
        try:
            recent = await asyncio.wait_for(self.transport.fetch_recent(window), timeout=self.pull_timeout)
        except Exception as e:
            logger.error(f"[HISTORY] Failed to load past bulletins: {e}")
            return 0

        messages = _convert_messages(recent, "HISTORY")
        messages.sort(key=lambda msg: msg.date)
        for message in messages:
            self._enqueue(message, DeliveryPath.HISTORY)

        logger.info(f"[HISTORY] Queued {len(messages)} past bulletin(s)")
        return len(messages)

    def handle_push(self, raw: Any) -> None:
        """Push-delivery callback. A bad message never affects later ones."""
        try:
            message = message_from_raw(raw)
            if message is None:
                return
            logger.info(
                f"[LIVE] Message #{message.id} date={message.date.isoformat()} chars={len(message.text)}"
            )
            self._enqueue(message, DeliveryPath.PUSH)
        except Exception as e:
            logger.error(f"[LIVE] Handler failed for pushed message: {e}", exc_info=True)

    def _enqueue(self, message: ChannelMessage, path: DeliveryPath) -> None:
        self._stats[path.value] += 1
        self._queue.put_nowait(
            BulletinEvent(id=message.id, text=message.text, observed_at=message.date, delivery_path=path)
        )

    async def run_pull_cycle(self) -> bool:
        """
        Pull the delta since the current cursor and queue any new messages.

        Returns:
            False if the cycle was skipped because another one is in flight
        """
        if self._pull_in_flight:
            self._stats["skipped_ticks"] += 1
            return False

        self._pull_in_flight = True
        try:
            if self.state is ReconcilerState.UNINITIALIZED:
                await self.sync()
                return True

            raw = await asyncio.wait_for(
                self.transport.pull_difference(self._cursor),
                timeout=self.pull_timeout,
            )
            self._apply_difference(extract_difference_state(raw))
        except Exception as e:
            self._stats["pull_failures"] += 1
            logger.error(f"[DIFF] Differential pull failed: {e}")
        finally:
            self._pull_in_flight = False
        return True

    def _apply_difference(self, state: DifferenceResponse) -> None:
        if state.kind is DifferenceKind.TOO_LONG:
            self.state = ReconcilerState.RESYNCING
            self._advance_cursor(state.cursor)
            self.state = ReconcilerState.SYNCED
            logger.info(f"[DIFF] Received TooLong, re-synced cursor={self._cursor}")
            return

        messages = _convert_messages(state.messages, "DIFF") if state.kind is DifferenceKind.NORMAL else []
        self._advance_cursor(state.cursor)
        if not messages:
            return

        messages.sort(key=lambda msg: msg.id)
        logger.info(f"[DIFF] {len(messages)} new message(s), cursor now={self._cursor}")
        for message in messages:
            logger.info(
                f"[DIFF] Message #{message.id} date={message.date.isoformat()} "
                f"chars={len(message.text)} preview=\"{format_preview(message.text)}\""
            )
            self._enqueue(message, DeliveryPath.PULL)

    async def _pull_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.diff_interval)
            if self._pull_in_flight:
                self._stats["skipped_ticks"] += 1
                logger.debug("[DIFF] Previous pull still in flight, skipping tick")
                continue
            self._spawn(self.run_pull_cycle(), "quietwatch-pull-cycle")

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.consumer(event)
            except Exception as e:
                logger.error(f"Consumer failed for bulletin #{event.id}: {e}", exc_info=True)
            finally:
                self._queue.task_done()
