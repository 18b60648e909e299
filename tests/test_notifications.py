"""Tests for notification templates, fan-out and the Bot API sender."""

import asyncio
import json

import httpx
import pytest

from quietwatch.notifications.dispatcher import NotificationDispatcher
from quietwatch.notifications.telegram import TelegramBotError, TelegramBotSender
from quietwatch.notifications.templates import MessageTemplates


class TestTemplates:
    def test_stand_down_without_link(self):
        text = MessageTemplates().render_stand_down("עומר", 10)
        assert text == "אין התרעות חדשות עבור עומר ב-10 הדקות האחרונות. אפשר לצאת מהמרחב המוגן."

    def test_stand_down_with_link(self):
        text = MessageTemplates().render_stand_down("עומר", 10, "https://t.me/PikudHaOref_all/1")
        assert text.endswith("\n\nהתרעה אחרונה: https://t.me/PikudHaOref_all/1")

    def test_override(self):
        text = MessageTemplates().render_override("באר שבע", "https://t.me/PikudHaOref_all/2")
        assert text == (
            "עדכון פיקוד העורף: באזור באר שבע ניתן לצאת מהמרחב המוגן, אך יש להישאר בקרבתו."
            "\n\nעדכון רשמי: https://t.me/PikudHaOref_all/2"
        )

    def test_custom_templates(self):
        templates = MessageTemplates("{{ locality }} quiet for {{ minutes }}m", "{{ locality }} cleared")
        assert templates.render_stand_down("עומר", 5) == "עומר quiet for 5m"
        assert templates.render_override("עומר") == "עומר cleared"


class TestDispatcher:
    async def test_delivers_to_every_destination(self, transport):
        dispatcher = NotificationDispatcher(transport.send, ["a", "b"])

        results = await dispatcher.dispatch("hello")

        assert results == {"a": True, "b": True}
        assert sorted(transport.sent) == [("a", "hello"), ("b", "hello")]

    async def test_failure_is_isolated_per_destination(self, transport):
        transport.failing_destinations.add("a")
        dispatcher = NotificationDispatcher(transport.send, ["a", "b"])

        results = await dispatcher.dispatch("hello")

        assert results == {"a": False, "b": True}
        assert transport.sent == [("b", "hello")]
        assert dispatcher.stats == {"sent": 1, "failed": 1}

    async def test_slow_destination_times_out(self):
        sent = []

        async def send(text, destination):
            if destination == "slow":
                await asyncio.sleep(5)
            sent.append(destination)

        dispatcher = NotificationDispatcher(send, ["slow", "fast"], timeout_seconds=0.05)

        assert await dispatcher.dispatch("hello") == {"slow": False, "fast": True}
        assert sent == ["fast"]

    async def test_no_destinations(self, transport):
        dispatcher = NotificationDispatcher(transport.send, [])
        assert await dispatcher.dispatch("hello") == {}


def bot_sender(handler) -> TelegramBotSender:
    sender = TelegramBotSender("123:abc")
    sender.client = httpx.AsyncClient(
        base_url="https://api.telegram.org/bot123:abc",
        transport=httpx.MockTransport(handler),
    )
    return sender


class TestTelegramBotSender:
    async def test_send_message(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        async with bot_sender(handler) as sender:
            await sender.send("שלום", "-1001441886157")

        assert requests[0].url.path == "/bot123:abc/sendMessage"
        payload = json.loads(requests[0].content)
        assert payload["chat_id"] == -1001441886157
        assert payload["text"] == "שלום"

    async def test_api_rejection_raises(self):
        def handler(request):
            return httpx.Response(200, json={"ok": False, "description": "chat not found"})

        async with bot_sender(handler) as sender:
            with pytest.raises(TelegramBotError, match="chat not found"):
                await sender.send("hello", "@missing")

    async def test_http_error_raises(self):
        def handler(request):
            return httpx.Response(403, json={"ok": False, "description": "Forbidden"})

        async with bot_sender(handler) as sender:
            with pytest.raises(TelegramBotError, match="403"):
                await sender.send("hello", "777000")

    def test_token_required(self):
        with pytest.raises(TelegramBotError):
            TelegramBotSender("")
