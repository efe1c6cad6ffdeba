"""Tests for notification formatting and reply polling."""

import pytest

from conftest import CHAT_ID, FakeTelegramClient, make_update
from telegram_notification_mcp.errors import TelegramAPIError
from telegram_notification_mcp.notifications import (
    INITIAL_SCAN_LIMIT,
    NON_TEXT_REPLY,
    POLL_LIMIT,
    USER_NOT_AVAILABLE,
    NotificationService,
    ReplyWatcher,
    collect_replies,
    find_reply,
    format_notification,
    reply_text,
)
from telegram_notification_mcp.telegram_client import TelegramMessage
from telegram_notification_mcp.validation import ValidationError


class TestFormatNotification:
    """Tests for format_notification."""

    def test_high_urgency(self):
        assert format_notification("Deploy?", "shop", "high") == (
            "🚨 URGENT: LLM Question (shop):\n\nDeploy?"
        )

    def test_medium_urgency(self):
        assert format_notification("Deploy?", "shop", "medium") == (
            "⚠️ LLM Question (shop):\n\nDeploy?"
        )

    def test_low_urgency_has_no_prefix(self):
        assert format_notification("Deploy?", "shop", "low") == "LLM Question (shop):\n\nDeploy?"


class TestFindReply:
    """Tests for find_reply and collect_replies."""

    def test_returns_highest_newer_message(self):
        updates = [
            make_update(3, 105, "second"),
            make_update(1, 99, "before"),
            make_update(2, 103, "first"),
        ]
        reply = find_reply(updates, 100)
        assert reply.message_id == 105
        assert reply.text == "second"

    def test_ignores_older_and_equal_ids(self):
        updates = [make_update(1, 100, "the notification"), make_update(2, 42, "old")]
        assert find_reply(updates, 100) is None

    def test_skips_updates_without_message(self):
        updates = [
            {"update_id": 7, "edited_message": {"message_id": 200, "text": "edit"}},
            {"update_id": 8, "callback_query": {"id": "x"}},
        ]
        assert find_reply(updates, 100) is None

    def test_empty_updates(self):
        assert find_reply([], 1) is None

    def test_collect_replies_sorted_ascending(self):
        updates = [make_update(1, 110), make_update(2, 102), make_update(3, 107)]
        assert [m.message_id for m in collect_replies(updates, 100)] == [102, 107, 110]

    def test_chat_filter_by_numeric_id(self):
        updates = [make_update(1, 110, "elsewhere", chat_id=555), make_update(2, 105, "mine")]
        assert find_reply(updates, 100).message_id == 110
        assert find_reply(updates, 100, chat_id=str(CHAT_ID)).text == "mine"

    def test_chat_filter_by_username(self):
        update = make_update(1, 110, "from channel")
        update["message"]["chat"]["username"] = "MyChannel"
        assert find_reply([update], 100, chat_id="@mychannel").message_id == 110
        assert find_reply([update], 100, chat_id="@other_channel") is None


class TestReplyText:
    """Tests for reply_text."""

    def test_caption_used_when_no_text(self):
        update = make_update(1, 5, text=None, caption="look at this")
        assert reply_text(TelegramMessage.from_update(update)) == "look at this"

    def test_placeholder_for_non_text(self):
        update = make_update(1, 5, text=None, sticker={"file_id": "abc"})
        assert reply_text(TelegramMessage.from_update(update)) == NON_TEXT_REPLY


class TestReplyWatcher:
    """Tests for ReplyWatcher.wait_for_reply."""

    async def test_polls_until_reply_arrives(self):
        client = FakeTelegramClient(updates=[[], [make_update(1, 99)], [make_update(2, 101, "yes")]])
        watcher = ReplyWatcher(client, poll_interval=0)

        reply = await watcher.wait_for_reply(100, timeout=5)

        assert reply.text == "yes"
        assert len(client.get_updates_calls) == 3
        assert all(c == {"offset": -1, "limit": POLL_LIMIT} for c in client.get_updates_calls)

    async def test_times_out(self):
        client = FakeTelegramClient(updates=[[make_update(1, 50)]])
        watcher = ReplyWatcher(client, poll_interval=0.01)

        assert await watcher.wait_for_reply(100, timeout=0.05) is None
        assert len(client.get_updates_calls) >= 1

    async def test_initial_scan_returns_without_polling(self):
        client = FakeTelegramClient(updates=[[make_update(1, 101, "a"), make_update(2, 102, "b")]])
        watcher = ReplyWatcher(client, poll_interval=0)

        reply = await watcher.wait_for_reply(100, timeout=5, initial_scan=True)

        assert reply.text == "b"
        assert client.get_updates_calls == [{"offset": None, "limit": INITIAL_SCAN_LIMIT}]

    async def test_initial_scan_falls_back_to_polling(self):
        client = FakeTelegramClient(updates=[[], [], [make_update(3, 120, "late")]])
        watcher = ReplyWatcher(client, poll_interval=0)

        reply = await watcher.wait_for_reply(100, timeout=5, initial_scan=True)

        assert reply.message_id == 120
        assert client.get_updates_calls[0]["limit"] == INITIAL_SCAN_LIMIT
        assert client.get_updates_calls[1] == {"offset": -1, "limit": POLL_LIMIT}

    async def test_zero_timeout_only_scans(self):
        client = FakeTelegramClient()
        watcher = ReplyWatcher(client, poll_interval=0)

        assert await watcher.wait_for_reply(100, timeout=0, initial_scan=True) is None
        assert len(client.get_updates_calls) == 1


class TestNotificationService:
    """Tests for NotificationService."""

    def make_service(self, client, **kwargs):
        kwargs.setdefault("poll_interval", 0)
        return NotificationService(client, chat_id=str(CHAT_ID), **kwargs)

    async def test_send_returns_reply(self):
        client = FakeTelegramClient(updates=[[make_update(1, 101, "go ahead")]], sent_message_id=100)
        service = self.make_service(client)

        result = await service.send_notification("Deploy now?", "shop", "high")

        assert result.text == "go ahead"
        assert result.message_id == 101
        assert not result.timed_out
        assert client.sent == [
            {
                "chat_id": str(CHAT_ID),
                "text": "🚨 URGENT: LLM Question (shop):\n\nDeploy now?",
                "parse_mode": "Markdown",
            }
        ]

    async def test_send_defaults_to_medium(self):
        client = FakeTelegramClient(updates=[[make_update(1, 101, "ok")]])
        service = self.make_service(client)

        await service.send_notification("Hi", "shop")

        assert client.sent[0]["text"].startswith("⚠️ LLM Question (shop)")

    async def test_send_times_out(self):
        client = FakeTelegramClient(sent_message_id=100)
        service = self.make_service(client, response_timeout=0.05, poll_interval=0.01)

        result = await service.send_notification("Hi", "shop")

        assert result.timed_out
        assert result.text == USER_NOT_AVAILABLE

    async def test_send_does_not_scan_history(self):
        client = FakeTelegramClient(updates=[[make_update(1, 101, "ok")]])
        service = self.make_service(client)

        await service.send_notification("Hi", "shop")

        assert client.get_updates_calls[0]["offset"] == -1

    async def test_send_requires_message_and_project(self):
        service = self.make_service(FakeTelegramClient())
        with pytest.raises(ValidationError, match="Message and project are required"):
            await service.send_notification("Hi", "")
        with pytest.raises(ValidationError, match="Message and project are required"):
            await service.send_notification("", "shop")

    async def test_send_rejects_unknown_urgency(self):
        client = FakeTelegramClient()
        service = self.make_service(client)
        with pytest.raises(ValidationError, match="Invalid urgency"):
            await service.send_notification("Hi", "shop", "critical")
        assert client.sent == []

    async def test_send_rejects_oversized_message(self):
        service = self.make_service(FakeTelegramClient())
        with pytest.raises(ValidationError, match="exceeds maximum length"):
            await service.send_notification("x" * 4096, "shop")

    async def test_send_propagates_api_errors(self):
        client = FakeTelegramClient(send_error=TelegramAPIError("Bad Request: chat not found", 400))
        service = self.make_service(client)
        with pytest.raises(TelegramAPIError, match="chat not found"):
            await service.send_notification("Hi", "shop")

    async def test_send_without_message_id(self):
        client = FakeTelegramClient(sent_message_id=None)
        service = self.make_service(client)
        with pytest.raises(TelegramAPIError, match="message_id"):
            await service.send_notification("Hi", "shop")

    async def test_check_response_scans_history(self):
        client = FakeTelegramClient(updates=[[make_update(1, 55, "earlier"), make_update(2, 57, "answer")]])
        service = self.make_service(client)

        result = await service.check_response(50, timeout_seconds=5)

        assert result.text == "answer"
        assert client.get_updates_calls == [{"offset": None, "limit": INITIAL_SCAN_LIMIT}]

    async def test_check_response_accepts_numeric_string(self):
        client = FakeTelegramClient(updates=[[make_update(1, 55, "answer")]])
        service = self.make_service(client)

        result = await service.check_response("50")

        assert result.message_id == 55

    async def test_check_response_zero_timeout_uses_default(self):
        client = FakeTelegramClient()
        service = self.make_service(client, response_timeout=0.05, poll_interval=0.01)

        result = await service.check_response(50, timeout_seconds=0)

        assert result.timed_out
        assert len(client.get_updates_calls) > 1

    async def test_check_response_rejects_bad_input(self):
        service = self.make_service(FakeTelegramClient())
        for bad in (0, -1, "abc"):
            with pytest.raises(ValidationError, match="Valid message_id is required"):
                await service.check_response(bad)
        with pytest.raises(ValidationError, match="timeout_seconds"):
            await service.check_response(5, timeout_seconds=-1)
