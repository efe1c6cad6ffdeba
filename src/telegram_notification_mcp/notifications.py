"""Notification sending and reply detection.

A reply is any inbound message whose ``message_id`` is greater than the ID of
the notification it answers. Updates are fetched without acknowledging them,
so the same recent history is scanned on every poll.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .errors import TelegramAPIError
from .telegram_client import TelegramClient, TelegramMessage
from .validation import (
    DEFAULT_URGENCY,
    ValidationError,
    validate_message_id,
    validate_message_text,
    validate_urgency,
)

logger = logging.getLogger("telegram_notification_mcp.notifications")

USER_NOT_AVAILABLE = "User not available. Please stop and wait for the user to restart Cline."
NON_TEXT_REPLY = "[non-text message]"

URGENCY_PREFIXES = {
    "high": "🚨 URGENT: ",
    "medium": "⚠️ ",
    "low": "",
}

# getUpdates limits: one wide scan, then the newest updates only
INITIAL_SCAN_LIMIT = 100
POLL_LIMIT = 10
POLL_OFFSET = -1

DEFAULT_RESPONSE_TIMEOUT = 30
DEFAULT_POLL_INTERVAL = 2.0


@dataclass
class ReplyResult:
    """Outcome of waiting for a reply to a notification."""

    text: str
    message_id: int | None = None
    timed_out: bool = False


def format_notification(message: str, project: str, urgency: str = DEFAULT_URGENCY) -> str:
    """Format a notification with its urgency prefix and project name."""
    prefix = URGENCY_PREFIXES.get(urgency, "")
    return f"{prefix}LLM Question ({project}):\n\n{message}"


def _from_chat(message: TelegramMessage, chat_id: str | int) -> bool:
    chat_id = str(chat_id)
    if chat_id.startswith("@"):
        username = (message.raw.get("chat") or {}).get("username") or ""
        return username.lower() == chat_id[1:].lower()
    return str(message.chat_id) == chat_id


def collect_replies(
    updates: Iterable[dict[str, Any]],
    after_message_id: int,
    chat_id: str | int | None = None,
) -> list[TelegramMessage]:
    """Return messages newer than ``after_message_id``, oldest first.

    Updates without a message (edits, callback queries, ...) are skipped.
    When ``chat_id`` is given only messages from that chat are kept.
    """
    replies = []
    for update in updates:
        message = TelegramMessage.from_update(update)
        if message is None or message.message_id <= after_message_id:
            continue
        if chat_id is not None and not _from_chat(message, chat_id):
            continue
        replies.append(message)

    replies.sort(key=lambda m: m.message_id)
    return replies


def find_reply(
    updates: Iterable[dict[str, Any]],
    after_message_id: int,
    chat_id: str | int | None = None,
) -> TelegramMessage | None:
    """Return the newest message after ``after_message_id``, if any."""
    replies = collect_replies(updates, after_message_id, chat_id)
    return replies[-1] if replies else None


def reply_text(message: TelegramMessage) -> str:
    """Text of a reply, with a placeholder for stickers, photos and the like."""
    return message.text if message.text is not None else NON_TEXT_REPLY


class ReplyWatcher:
    """Polls getUpdates until a reply newer than a given message shows up."""

    def __init__(
        self,
        client: TelegramClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        chat_id: str | int | None = None,
    ):
        """Initialize the watcher.

        Args:
            client: Telegram client used for getUpdates
            poll_interval: Seconds to sleep between polls
            chat_id: If set, only replies from this chat count
        """
        self.client = client
        self.poll_interval = poll_interval
        self.chat_id = chat_id

    async def _initial_scan(self, message_id: int) -> TelegramMessage | None:
        updates = await self.client.get_updates(limit=INITIAL_SCAN_LIMIT)
        logger.debug(f"Initial scan found {len(updates)} updates")

        replies = collect_replies(updates, message_id, self.chat_id)
        for reply in replies:
            logger.debug(f"Candidate reply {reply.message_id}: {reply.text!r}")

        return replies[-1] if replies else None

    async def wait_for_reply(
        self,
        message_id: int,
        timeout: float = DEFAULT_RESPONSE_TIMEOUT,
        initial_scan: bool = False,
    ) -> TelegramMessage | None:
        """Wait up to ``timeout`` seconds for a reply to ``message_id``.

        Args:
            message_id: ID of the notification being answered
            timeout: Seconds to keep polling
            initial_scan: Look through the last 100 updates before polling

        Returns:
            The newest reply, or None on timeout
        """
        start = time.monotonic()

        if initial_scan:
            reply = await self._initial_scan(message_id)
            if reply is not None:
                logger.info(f"Found reply {reply.message_id} to message {message_id}")
                return reply

        polls = 0
        while time.monotonic() - start < timeout:
            updates = await self.client.get_updates(offset=POLL_OFFSET, limit=POLL_LIMIT)
            polls += 1

            reply = find_reply(updates, message_id, self.chat_id)
            if reply is not None:
                logger.info(f"Found reply {reply.message_id} to message {message_id}")
                return reply

            await asyncio.sleep(self.poll_interval)

        logger.info(f"No reply to message {message_id} after {timeout}s ({polls} polls)")
        return None


class NotificationService:
    """Sends notifications to the configured chat and waits for replies."""

    def __init__(
        self,
        client: TelegramClient,
        chat_id: str | int,
        parse_mode: Optional[str] = "Markdown",
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        reply_chat_only: bool = False,
    ):
        self.client = client
        self.chat_id = chat_id
        self.parse_mode = parse_mode
        self.response_timeout = response_timeout
        self.watcher = ReplyWatcher(
            client,
            poll_interval=poll_interval,
            chat_id=chat_id if reply_chat_only else None,
        )

    def _result(self, reply: TelegramMessage | None) -> ReplyResult:
        if reply is None:
            return ReplyResult(text=USER_NOT_AVAILABLE, timed_out=True)
        return ReplyResult(text=reply_text(reply), message_id=reply.message_id)

    async def send_notification(
        self,
        message: str,
        project: str,
        urgency: Optional[str] = None,
    ) -> ReplyResult:
        """Send a notification and wait for the user's reply.

        Args:
            message: Question or status for the user
            project: Name of the project the caller is working on
            urgency: low, medium or high; defaults to medium

        Returns:
            The reply, or the "user not available" text on timeout

        Raises:
            ValidationError: Invalid arguments
            TelegramAPIError: Telegram rejected the message
            httpx.HTTPError: Transport failure
        """
        if not message or not project or not str(message).strip() or not str(project).strip():
            raise ValidationError("Message and project are required")

        validated_urgency, urgency_error = validate_urgency(urgency)
        if urgency_error:
            raise ValidationError(urgency_error)

        text, text_error = validate_message_text(
            format_notification(message, project, validated_urgency)
        )
        if text_error:
            raise ValidationError(text_error)

        sent = await self.client.send_message(
            chat_id=self.chat_id,
            text=text,
            parse_mode=self.parse_mode,
        )
        sent_id = sent.get("message_id") if isinstance(sent, dict) else None
        if not isinstance(sent_id, int):
            raise TelegramAPIError("sendMessage response did not include a message_id")

        logger.info(f"Notification sent via Telegram. Message ID: {sent_id}")
        logger.info(f"Waiting for response to message ID: {sent_id}")

        reply = await self.watcher.wait_for_reply(sent_id, self.response_timeout)
        return self._result(reply)

    async def check_response(
        self,
        message_id: Any,
        timeout_seconds: Optional[float] = None,
    ) -> ReplyResult:
        """Look for a reply to a notification sent earlier.

        Recent history is scanned first, then the newest updates are polled
        until ``timeout_seconds`` (default: the configured response timeout).

        Raises:
            ValidationError: Invalid message ID or timeout
            TelegramAPIError: Telegram rejected getUpdates
            httpx.HTTPError: Transport failure
        """
        validated_id, id_error = validate_message_id(message_id)
        if id_error:
            raise ValidationError(id_error)

        if timeout_seconds is not None and timeout_seconds < 0:
            raise ValidationError("timeout_seconds must not be negative")
        timeout = timeout_seconds or self.response_timeout

        logger.info(f"Checking for responses to message ID: {validated_id}")
        reply = await self.watcher.wait_for_reply(validated_id, timeout, initial_scan=True)
        return self._result(reply)
