"""Error handling utilities for Telegram Notification MCP Server."""

import logging
import os
from enum import Enum
from typing import Any, Optional, Union

import httpx
from pythonjsonlogger import jsonlogger


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    MSG = "MSG"
    POLL = "POLL"
    AUTH = "AUTH"
    CONFIG = "CONFIG"
    GENERAL = "GEN"


class TelegramAPIError(Exception):
    """Raised when the Bot API rejects a request.

    Carries the ``description`` field Telegram puts in error bodies and the
    HTTP status code when one is known.
    """

    def __init__(
        self,
        description: str,
        status_code: Optional[int] = None,
        error_code: Optional[int] = None,
    ):
        self.description = description
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(f"Telegram API error: {description}")


def setup_logger(name: str = "telegram_notification_mcp") -> logging.Logger:
    """Set up and configure the logger with JSON file logging.

    Console output goes to stderr, which keeps stdout free for the MCP
    stdio transport.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler with JSON format for structured error logging
    log_file_path = os.environ.get("TELEGRAM_ERROR_LOG")
    if not log_file_path:
        script_dir = os.path.dirname(os.path.abspath(__file__))
        log_file_path = os.path.join(script_dir, "..", "..", "mcp_errors.log")

    try:
        file_handler = logging.FileHandler(log_file_path, mode="a")
        file_handler.setLevel(logging.ERROR)
        json_formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
        file_handler.setFormatter(json_formatter)
        logger.addHandler(file_handler)
    except OSError:
        # If we can't write to the log file, just use console
        pass

    return logger


def set_verbose(enabled: bool = True) -> None:
    """Lower the console threshold to DEBUG."""
    level = logging.DEBUG if enabled else logging.INFO
    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


# Global logger instance
logger = setup_logger()


def log_and_format_error(
    function_name: str,
    error: Exception,
    category: Optional[Union[ErrorCategory, str]] = None,
    user_message: Optional[str] = None,
    **context: Any,
) -> str:
    """Centralized error handling function.

    Logs the error with full context and returns a user-friendly message.

    Args:
        function_name: Name of the function where error occurred
        error: The exception that was raised
        category: Error category for the error code
        user_message: Optional custom user-facing message
        **context: Additional context to log (e.g., message_id=123)

    Returns:
        User-friendly error message with error code
    """
    if category is None:
        prefix_str = ErrorCategory.GENERAL.value
    elif isinstance(category, ErrorCategory):
        prefix_str = category.value
    else:
        prefix_str = str(category)

    # hash() is salted per process, codes must stay stable across runs
    error_code = f"{prefix_str}-ERR-{sum(function_name.encode()) % 1000:03d}"

    context_str = ", ".join(f"{k}={v}" for k, v in context.items())

    log_message = f"Error in {function_name}"
    if context_str:
        log_message += f" ({context_str})"
    log_message += f" - Code: {error_code}"

    logger.error(log_message, exc_info=error)

    if user_message:
        return f"{user_message} (code: {error_code})"

    return f"An error occurred (code: {error_code}). Check logs for details."


def describe_error(error: BaseException) -> str:
    """Render an exception as the detail part of a tool error payload.

    Telegram rejections already read ``Telegram API error: <description>``.
    """
    message = str(error)
    if message:
        return message

    if isinstance(error, httpx.HTTPError):
        return f"{type(error).__name__} while contacting Telegram"

    return "Unknown error occurred"


def format_telegram_error(error: Exception) -> str:
    """Format a Telegram API error into a user-friendly message.

    Args:
        error: The exception from Telegram API

    Returns:
        User-friendly error message
    """
    error_str = str(error).lower()

    if "chat not found" in error_str:
        return "Chat not found. Please verify TELEGRAM_CHAT_ID."
    elif "bot was blocked" in error_str:
        return "Bot was blocked by the user."
    elif "can't parse entities" in error_str:
        return "Telegram could not parse the message formatting. Check for unbalanced Markdown characters."
    elif "too many requests" in error_str:
        return "Rate limited by Telegram. Please try again later."
    elif "unauthorized" in error_str:
        return "Bot token is invalid or expired."
    elif "conflict" in error_str:
        return "Another process is polling this bot or a webhook is set."

    return describe_error(error)
