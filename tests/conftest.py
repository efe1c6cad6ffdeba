"""Test configuration for pytest."""

import logging

import pytest

CHAT_ID = 123456789


def make_update(update_id, message_id, text="Hello, world!", chat_id=CHAT_ID, **extra):
    """Build a getUpdates entry carrying one message."""
    message = {
        "message_id": message_id,
        "chat": {"id": chat_id, "type": "private"},
        "from": {"id": 987654321, "username": "testuser"},
        "date": 1234567890,
    }
    if text is not None:
        message["text"] = text
    message.update(extra)
    return {"update_id": update_id, "message": message}


class FakeTelegramClient:
    """Stands in for TelegramClient, replaying canned getUpdates results."""

    def __init__(self, updates=None, sent_message_id=100, send_error=None, updates_error=None):
        # Each getUpdates call pops the next batch; the last batch repeats
        self.batches = list(updates or [[]])
        self.sent_message_id = sent_message_id
        self.send_error = send_error
        self.updates_error = updates_error
        self.sent = []
        self.get_updates_calls = []

    async def send_message(self, chat_id, text, parse_mode="Markdown", disable_notification=False):
        self.sent.append({"chat_id": chat_id, "text": text, "parse_mode": parse_mode})
        if self.send_error:
            raise self.send_error
        return {"message_id": self.sent_message_id, "chat": {"id": chat_id}, "text": text}

    async def get_updates(self, offset=None, limit=100, timeout=0, allowed_updates=None):
        self.get_updates_calls.append({"offset": offset, "limit": limit})
        if self.updates_error:
            raise self.updates_error
        if len(self.batches) > 1:
            return self.batches.pop(0)
        return self.batches[0]

    async def close(self):
        pass


@pytest.fixture
def mock_settings(monkeypatch):
    """Mock environment variables for settings."""
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test_bot_token")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", str(CHAT_ID))
    monkeypatch.setenv("TELEGRAM_API_BASE_URL", "https://api.telegram.org")
    return None


@pytest.fixture
def sample_message_data():
    """Sample message data for testing."""
    return make_update(1, 101)["message"]


@pytest.fixture
def captured_logs(caplog, monkeypatch):
    """Let caplog see the package logger, which does not propagate by default."""
    monkeypatch.setattr(logging.getLogger("telegram_notification_mcp"), "propagate", True)
    caplog.set_level(logging.INFO)
    return caplog
