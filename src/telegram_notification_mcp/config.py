"""Configuration management for Telegram Notification MCP Server."""

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .validation import validate_parse_mode, validate_single_id


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    bot_token: str = Field(
        ...,
        description="Telegram Bot API token from @BotFather",
    )
    chat_id: str = Field(
        ...,
        description="Chat ID that receives notifications (your user ID or group ID)",
    )
    api_base_url: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL",
    )
    parse_mode: str | None = Field(
        default="Markdown",
        description="Parse mode for notification text: Markdown, MarkdownV2, HTML or None",
    )
    response_timeout: int = Field(
        default=30,
        description="Seconds to wait for a reply after sending a notification",
    )
    poll_interval: float = Field(
        default=2.0,
        description="Seconds between getUpdates polls while waiting for a reply",
    )
    request_timeout: float = Field(
        default=30.0,
        description="HTTP timeout for a single Bot API request",
    )
    max_retries: int = Field(
        default=3,
        description="Retry attempts for rate-limited, 5xx or network failures",
    )
    reply_chat_only: bool = Field(
        default=False,
        description="Only accept replies coming from chat_id",
    )

    @field_validator("chat_id", mode="before")
    @classmethod
    def _check_chat_id(cls, value):
        validated, error = validate_single_id(value, "chat_id")
        if error:
            raise ValueError(error)
        return str(validated)

    @field_validator("parse_mode", mode="before")
    @classmethod
    def _check_parse_mode(cls, value):
        validated, error = validate_parse_mode(value)
        if error:
            raise ValueError(error)
        return validated

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "TELEGRAM_"
        extra = "ignore"

    def __init__(self, **kwargs):
        # Load .env from the project root if there is none in the working directory
        if "_env_file" not in kwargs and not os.path.exists(self.__class__.Config.env_file):
            current_dir = os.path.dirname(os.path.abspath(__file__))
            # Go up: telegram_notification_mcp/ -> src/ -> project root
            project_root = os.path.abspath(os.path.join(current_dir, "../.."))
            env_path = os.path.join(project_root, ".env")
            if os.path.exists(env_path):
                kwargs["_env_file"] = env_path
        super().__init__(**kwargs)


def get_settings() -> Settings:
    """Get application settings, loading from environment."""
    return Settings()
