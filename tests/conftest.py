"""Shared fixtures for QuietWatch tests."""

import pytest

from quietwatch.channel.memory import MemoryChannelTransport
from quietwatch.notifications.dispatcher import NotificationDispatcher


@pytest.fixture
def transport():
    return MemoryChannelTransport()


@pytest.fixture
def dispatcher(transport):
    return NotificationDispatcher(transport.send, ["chat-1"], timeout_seconds=1)
