"""Input validation utilities for Telegram Notification MCP Server."""

import re
from typing import Any, Optional, Tuple, Union

URGENCY_LEVELS = ("low", "medium", "high")
DEFAULT_URGENCY = "medium"


class ValidationError(Exception):
    """Raised when input validation fails."""

    pass


def validate_single_id(
    value: Any, param_name: str
) -> Tuple[Union[int, str, None], Optional[str]]:
    """Validate a single chat_id value.

    Supports:
    - Integer IDs (positive or negative for groups/channels)
    - String representations of integer IDs
    - Usernames (with or without @ prefix)

    Args:
        value: The value to validate
        param_name: Name of the parameter (for error messages)

    Returns:
        Tuple of (validated_value, error_message)
        If validation succeeds, error_message is None
    """
    if isinstance(value, bool):
        return None, f"Invalid {param_name}: Type must be int or string, got bool"

    if isinstance(value, int):
        # Telegram IDs should be within int64 range
        if not (-(2**63) <= value <= 2**63 - 1):
            return None, f"Invalid {param_name}: ID out of valid range"
        return value, None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None, f"Invalid {param_name}: Empty string"

        try:
            int_value = int(value)
            if not (-(2**63) <= int_value <= 2**63 - 1):
                return None, f"Invalid {param_name}: ID out of valid range"
            return int_value, None
        except ValueError:
            pass

        # Usernames are 5-32 chars, alphanumeric + underscore
        username = value.lstrip("@")
        if re.match(r"^[a-zA-Z][a-zA-Z0-9_]{4,31}$", username):
            return f"@{username}", None

        return None, f"Invalid {param_name}: Must be an integer ID or valid username"

    return None, f"Invalid {param_name}: Type must be int or string, got {type(value).__name__}"


def validate_message_text(text: str, max_length: int = 4096) -> Tuple[str, Optional[str]]:
    """Validate message text.

    Args:
        text: Message text to validate
        max_length: Maximum allowed length (Telegram default is 4096)

    Returns:
        Tuple of (validated_text, error_message)
    """
    if not text or not text.strip():
        return "", "Message text cannot be empty"

    if len(text) > max_length:
        return "", f"Message text exceeds maximum length of {max_length} characters"

    return text, None


def validate_parse_mode(parse_mode: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Validate parse mode parameter.

    Args:
        parse_mode: Parse mode to validate

    Returns:
        Tuple of (validated_parse_mode, error_message)
    """
    valid_modes = {"Markdown", "MarkdownV2", "HTML", None, "None"}

    if parse_mode in ("None", ""):
        return None, None

    if parse_mode not in valid_modes:
        return None, f"Invalid parse_mode: {parse_mode}. Must be one of: Markdown, MarkdownV2, HTML, or None"

    return parse_mode, None


def validate_message_id(value: Any) -> Tuple[Optional[int], Optional[str]]:
    """Validate the ID of a previously sent notification.

    Accepts positive integers, integral floats and numeric strings.
    """
    error = "Valid message_id is required"

    if value is None or isinstance(value, bool):
        return None, error

    if isinstance(value, float):
        if not value.is_integer():
            return None, error
        value = int(value)

    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None, error

    if not isinstance(value, int) or value <= 0:
        return None, error

    return value, None


def validate_urgency(urgency: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Validate a notification urgency level.

    Returns:
        Tuple of (validated_urgency, error_message). A missing urgency
        resolves to "medium".
    """
    if urgency is None or urgency == "":
        return DEFAULT_URGENCY, None

    normalized = str(urgency).strip().lower()
    if normalized not in URGENCY_LEVELS:
        return None, f"Invalid urgency: {urgency}. Must be one of: low, medium, high"

    return normalized, None
