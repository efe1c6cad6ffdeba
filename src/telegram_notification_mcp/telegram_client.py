"""Telegram Bot API client with retry logic."""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .errors import TelegramAPIError, logger

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
INITIAL_RETRY_DELAY = 0.1
MAX_RETRY_DELAY = 5.0


@dataclass
class TelegramMessage:
    """Represents an inbound Telegram message taken from an update."""

    message_id: int
    chat_id: int
    from_user_id: int | None
    from_username: str | None
    text: str | None
    date: int
    raw: dict[str, Any]

    @classmethod
    def from_update(cls, update: dict[str, Any]) -> Optional["TelegramMessage"]:
        """Build a message from a getUpdates entry, or None if it carries no message."""
        msg_data = update.get("message")
        if not isinstance(msg_data, dict) or "message_id" not in msg_data:
            return None

        from_user = msg_data.get("from") or {}
        return cls(
            message_id=msg_data["message_id"],
            chat_id=(msg_data.get("chat") or {}).get("id", 0),
            from_user_id=from_user.get("id"),
            from_username=from_user.get("username"),
            text=msg_data.get("text", msg_data.get("caption")),
            date=msg_data.get("date", 0),
            raw=msg_data,
        )


def _error_from_response(response: httpx.Response) -> TelegramAPIError:
    """Turn a failed HTTP response into a TelegramAPIError."""
    description = None
    error_code = None
    try:
        body = response.json()
        if isinstance(body, dict):
            description = body.get("description")
            error_code = body.get("error_code")
    except ValueError:
        pass

    if not description:
        description = f"HTTP {response.status_code} {response.reason_phrase}".strip()

    return TelegramAPIError(description, status_code=response.status_code, error_code=error_code)


class TelegramClient:
    """Client for interacting with Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        base_url: str = "https://api.telegram.org",
        max_retries: int = MAX_RETRIES,
        retry_delay: float = INITIAL_RETRY_DELAY,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the Telegram client.

        Args:
            bot_token: The Telegram bot token from @BotFather
            base_url: The base URL for Telegram API
            max_retries: Maximum number of retry attempts
            retry_delay: Initial retry delay in seconds (exponential backoff)
            timeout: Per-request HTTP timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.bot_token = bot_token
        self.base_url = f"{base_url.rstrip('/')}/bot{bot_token}"
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    def _retry_after(self, response: httpx.Response) -> float:
        """Seconds to wait after a 429, from the header or the error body."""
        header = response.headers.get("Retry-After")
        if header:
            try:
                return float(header)
            except ValueError:
                pass
        try:
            parameters = response.json().get("parameters") or {}
            if "retry_after" in parameters:
                return float(parameters["retry_after"])
        except (ValueError, AttributeError):
            pass
        return self._retry_delay

    async def _request_with_retry(
        self,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request to the Telegram API with retry logic.

        Args:
            method: The API method to call
            params: Optional parameters for the method

        Returns:
            The ``result`` field of the API response

        Raises:
            TelegramAPIError: Telegram rejected the request
            httpx.HTTPError: Transport failure after all retries
        """
        url = f"{self.base_url}/{method}"
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.post(url, json=params or {})

                # Handle rate limiting with Retry-After header
                if response.status_code == 429 and attempt < self._max_retries:
                    retry_after = self._retry_after(response)
                    logger.warning(
                        f"Rate limited on {method}. Retrying after {retry_after}s "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                    await asyncio.sleep(retry_after)
                    continue

                response.raise_for_status()
                result = response.json()

                if not result.get("ok"):
                    raise TelegramAPIError(
                        result.get("description", "Unknown error"),
                        status_code=response.status_code,
                        error_code=result.get("error_code"),
                    )

                return result.get("result", {})

            except httpx.HTTPStatusError as e:
                last_error = _error_from_response(e.response)
                if e.response.status_code in RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                    delay = min(self._retry_delay * (2**attempt), MAX_RETRY_DELAY)
                    logger.warning(
                        f"HTTP {e.response.status_code} on {method}. Retrying after {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            except (httpx.NetworkError, httpx.TimeoutException) as e:
                last_error = e
                if attempt < self._max_retries:
                    delay = min(self._retry_delay * (2**attempt), MAX_RETRY_DELAY)
                    logger.warning(
                        f"Network error on {method}: {e!r}. Retrying after {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                break

        raise last_error or TelegramAPIError("Unknown error occurred")

    async def get_me(self) -> dict[str, Any]:
        """Get information about the bot.

        Returns:
            Bot information dictionary
        """
        return await self._request_with_retry("getMe")

    async def send_message(
        self,
        chat_id: str | int,
        text: str,
        parse_mode: str | None = "Markdown",
        disable_notification: bool = False,
    ) -> dict[str, Any]:
        """Send a text message to a chat.

        Args:
            chat_id: The chat ID to send to
            text: The message text
            parse_mode: Parse mode (Markdown, HTML, or None)
            disable_notification: Send silently

        Returns:
            The sent message information
        """
        params: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_notification": disable_notification,
        }
        if parse_mode:
            params["parse_mode"] = parse_mode

        return await self._request_with_retry("sendMessage", params)

    async def get_updates(
        self,
        offset: int | None = None,
        limit: int = 100,
        timeout: int = 0,
        allowed_updates: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Get updates (new messages) from Telegram.

        Updates are never acknowledged here, so repeated calls keep seeing
        the same recent history. ``offset=-1`` returns only the newest update.

        Args:
            offset: Identifier of the first update to return
            limit: Maximum number of updates (1-100)
            timeout: Long polling timeout in seconds, 0 for short polling
            allowed_updates: List of update types to receive

        Returns:
            List of updates
        """
        params: dict[str, Any] = {
            "limit": limit,
            "timeout": timeout,
        }
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates

        result = await self._request_with_retry("getUpdates", params)
        return result if isinstance(result, list) else []
