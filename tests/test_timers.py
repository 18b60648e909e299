"""Tests for the quiet-window timer registry."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from quietwatch.processing.timers import QuietWindowRegistry


def make_registry(window: timedelta, clock=None):
    expired = []

    async def on_expire(locality, snapshot):
        expired.append(locality)

    return QuietWindowRegistry(window, on_expire, clock), expired


def now() -> datetime:
    return datetime.now(timezone.utc)


async def test_timer_expires_once():
    registry, expired = make_registry(timedelta(milliseconds=30))

    registry.upsert("עומר")
    await asyncio.sleep(0.1)

    assert expired == ["עומר"]
    assert "עומר" not in registry


async def test_upsert_resets_window():
    registry, expired = make_registry(timedelta(milliseconds=100))

    registry.upsert("באר שבע")
    await asyncio.sleep(0.06)
    registry.upsert("באר שבע")
    await asyncio.sleep(0.06)

    assert expired == []

    await asyncio.sleep(0.1)
    assert expired == ["באר שבע"]


async def test_newer_alert_prevents_early_notification():
    registry, expired = make_registry(timedelta(milliseconds=300))

    registry.upsert("עומר", ["עומר"], now() - timedelta(milliseconds=290))
    await asyncio.sleep(0.005)
    registry.upsert("עומר", ["עומר"], now())

    await asyncio.sleep(0.05)
    assert expired == []

    await asyncio.sleep(0.3)
    assert expired == ["עומר"]


async def test_clear_all_cancels_pending_timers():
    registry, expired = make_registry(timedelta(milliseconds=40))

    registry.upsert("עומר")
    registry.upsert("באר שבע")
    assert registry.clear_all() == 2
    await asyncio.sleep(0.08)

    assert expired == []
    assert len(registry) == 0


async def test_timer_keyed_on_alert_timestamp():
    registry, _ = make_registry(timedelta(milliseconds=120))
    alert_at = now() - timedelta(seconds=1)

    registry.upsert("עומר", ["עומר"], alert_at)

    record = registry.get("עומר")
    assert record.alert_at == alert_at
    assert record.expires_at == alert_at + timedelta(milliseconds=120)
    assert record.expires_at <= now()
    registry.clear_all()


async def test_older_out_of_order_alert_is_ignored():
    registry, expired = make_registry(timedelta(milliseconds=100))
    newer = now()

    assert registry.upsert("באר שבע", ["באר שבע - דרום"], newer)
    await asyncio.sleep(0.01)
    assert not registry.upsert("באר שבע", ["באר שבע - מערב"], newer - timedelta(minutes=1))

    assert registry.get("באר שבע").sub_areas == ("באר שבע - דרום",)
    await asyncio.sleep(0.15)
    assert expired == ["באר שבע"]


async def test_equal_timestamp_rearms():
    registry, _ = make_registry(timedelta(minutes=10))
    alert_at = now()

    registry.upsert("עומר", ["עומר"], alert_at)
    assert registry.upsert("עומר", ["עומר"], alert_at, {"message_id": 2})
    assert registry.get("עומר").metadata == {"message_id": 2}
    registry.clear_all()


async def test_old_alert_expires_immediately():
    registry, expired = make_registry(timedelta(milliseconds=120))

    registry.upsert("עומר", ["עומר"], now() - timedelta(seconds=1))
    await asyncio.sleep(0.04)

    assert expired == ["עומר"]


async def test_naive_timestamp_is_treated_as_utc():
    registry, _ = make_registry(timedelta(minutes=10))
    naive = datetime(2026, 1, 1, 12, 0)

    registry.upsert("עומר", event_at=naive)

    assert registry.get("עומר").alert_at == naive.replace(tzinfo=timezone.utc)
    registry.clear_all()


async def test_invalid_timestamp_is_rejected():
    registry, _ = make_registry(timedelta(minutes=10))

    with pytest.raises(ValueError):
        registry.upsert("עומר", event_at="yesterday")
    assert "עומר" not in registry


async def test_pending_statuses_report_remaining_time():
    base = now()
    registry, _ = make_registry(timedelta(seconds=1), clock=lambda: base)

    registry.upsert("עומר", ["עומר"], base)
    statuses = registry.pending_statuses(base + timedelta(milliseconds=400))

    assert len(statuses) == 1
    assert statuses[0].locality == "עומר"
    assert statuses[0].remaining == timedelta(milliseconds=600)
    registry.clear_all()


async def test_pending_statuses_sorted_and_never_negative():
    base = now()
    registry, _ = make_registry(timedelta(minutes=10), clock=lambda: base)

    registry.upsert("עומר", event_at=base)
    registry.upsert("להב", event_at=base - timedelta(minutes=5))
    statuses = registry.pending_statuses(base + timedelta(minutes=7))

    assert [status.locality for status in statuses] == ["להב", "עומר"]
    assert statuses[0].remaining == timedelta(0)
    registry.clear_all()


def test_pending_statuses_empty_without_timers():
    registry, _ = make_registry(timedelta(seconds=1))
    assert registry.pending_statuses() == []


async def test_clear_removes_only_requested_locality():
    registry, _ = make_registry(timedelta(seconds=1))

    registry.upsert("עומר", ["עומר"], now())
    registry.upsert("באר שבע", ["באר שבע - דרום"], now())

    assert registry.clear("עומר", "test")
    assert not registry.clear("עומר")

    pending = registry.pending_statuses()
    assert [status.locality for status in pending] == ["באר שבע"]
    registry.clear_all()


async def test_failing_callback_is_contained():
    calls = []

    async def on_expire(locality, snapshot):
        calls.append(locality)
        raise RuntimeError("send failed")

    registry = QuietWindowRegistry(timedelta(milliseconds=10), on_expire)
    registry.upsert("עומר")
    registry.upsert("להב")
    await asyncio.sleep(0.05)
    await registry.wait_idle()

    assert sorted(calls) == ["להב", "עומר"]


async def test_snapshot_carries_metadata():
    snapshots = []

    async def on_expire(locality, snapshot):
        snapshots.append(snapshot)

    registry = QuietWindowRegistry(timedelta(milliseconds=10), on_expire)
    registry.upsert("עומר", ["עומר"], metadata={"message_id": 7, "link": "https://t.me/x/7"})
    await asyncio.sleep(0.05)

    assert snapshots[0].locality == "עומר"
    assert snapshots[0].sub_areas == ("עומר",)
    assert snapshots[0].link == "https://t.me/x/7"
