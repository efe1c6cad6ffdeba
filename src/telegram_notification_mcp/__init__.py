"""Telegram Notification MCP Server - ask the user questions over Telegram and wait for replies."""

from .notifications import NotificationService, ReplyResult, ReplyWatcher, format_notification
from .telegram_client import TelegramClient, TelegramMessage

__version__ = "0.1.0"

__all__ = [
    "NotificationService",
    "ReplyResult",
    "ReplyWatcher",
    "TelegramClient",
    "TelegramMessage",
    "format_notification",
]
