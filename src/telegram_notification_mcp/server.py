"""MCP Server that relays notifications to Telegram using FastMCP."""

import argparse
import asyncio
import logging
import sys
from typing import Annotated, Literal

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations
from pydantic import Field
from pydantic import ValidationError as SettingsError

from .config import Settings, get_settings
from .errors import (
    ErrorCategory,
    describe_error,
    format_telegram_error,
    log_and_format_error,
    set_verbose,
)
from .notifications import NotificationService
from .telegram_client import TelegramClient
from .validation import ValidationError

# Configure logging
logging.basicConfig(level=logging.INFO)
# httpx logs every request URL, and Bot API URLs embed the token
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger("telegram_notification_mcp.server")

MISSING_ENV_MESSAGE = (
    "Missing required environment variables. "
    "Please ensure TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID are set."
)

# Global state
_telegram_client: TelegramClient | None = None
_settings: Settings | None = None
_service: NotificationService | None = None


def get_settings_instance() -> Settings:
    """Get the settings, loading them from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings


def get_client() -> TelegramClient:
    """Get the Telegram client instance."""
    global _telegram_client
    if _telegram_client is None:
        settings = get_settings_instance()
        _telegram_client = TelegramClient(
            bot_token=settings.bot_token,
            base_url=settings.api_base_url,
            max_retries=settings.max_retries,
            timeout=settings.request_timeout,
        )
    return _telegram_client


def get_service() -> NotificationService:
    """Get the notification service bound to the configured chat."""
    global _service
    if _service is None:
        settings = get_settings_instance()
        _service = NotificationService(
            client=get_client(),
            chat_id=settings.chat_id,
            parse_mode=settings.parse_mode,
            response_timeout=settings.response_timeout,
            poll_interval=settings.poll_interval,
            reply_chat_only=settings.reply_chat_only,
        )
    return _service


# Create the MCP server with FastMCP
mcp = FastMCP("telegram-mcp")


@mcp.tool(
    annotations=ToolAnnotations(
        title="Send Notification", destructiveHint=False, openWorldHint=True
    )
)
async def send_notification(
    message: Annotated[str, Field(description="The message to send to the user")],
    project: Annotated[str, Field(description="The name of the project the LLM is working on")],
    urgency: Annotated[
        Literal["low", "medium", "high"],
        Field(description="The urgency of the notification"),
    ] = "medium",
) -> str:
    """Send a text message notification to the user.

    Waits for the user to answer (30 seconds by default) and returns the answer.
    """
    try:
        result = await get_service().send_notification(message, project, urgency)
    except ValidationError as e:
        raise ToolError(str(e)) from e
    except Exception as e:
        raise ToolError(
            log_and_format_error(
                "send_notification",
                e,
                category=ErrorCategory.MSG,
                user_message=f"Failed to send notification. {describe_error(e)}",
                project=project,
                urgency=urgency,
            )
        ) from e

    if not result.timed_out:
        logger.info(f"Got response: {result.text}")
    return result.text


@mcp.tool(
    annotations=ToolAnnotations(
        title="Check Notification Response", readOnlyHint=True, openWorldHint=True
    )
)
async def check_notification_response(
    message_id: Annotated[int, Field(description="The ID of the message to check for responses")],
    timeout_seconds: Annotated[
        float,
        Field(description="How long to wait for a response before giving up (default: 30)"),
    ] = 30,
) -> str:
    """Check if the user has responded to a notification."""
    try:
        result = await get_service().check_response(message_id, timeout_seconds)
    except ValidationError as e:
        raise ToolError(str(e)) from e
    except Exception as e:
        raise ToolError(
            log_and_format_error(
                "check_notification_response",
                e,
                category=ErrorCategory.POLL,
                user_message=f"Failed to check for responses. {describe_error(e)}",
                message_id=message_id,
                timeout_seconds=timeout_seconds,
            )
        ) from e

    return result.text


async def check_connection() -> bool:
    """Verify the bot token with getMe."""
    client = get_client()
    try:
        me = await client.get_me()
        logger.info(
            f"Connected as @{me.get('username')} (id {me.get('id')}), "
            f"notifications go to chat {get_settings_instance().chat_id}"
        )
        return True
    except Exception as e:
        log_and_format_error("check_connection", e, category=ErrorCategory.AUTH)
        logger.error(f"Connection check failed: {format_telegram_error(e)}")
        return False
    finally:
        await client.close()


def cleanup_resources():
    """Clean up resources on shutdown."""
    global _telegram_client, _service

    if _telegram_client:
        # The server's event loop is gone by now
        try:
            asyncio.run(_telegram_client.close())
        except Exception as e:
            logger.debug(f"Could not close HTTP client cleanly: {e}")
        _telegram_client = None
        _service = None


def load_settings(args: argparse.Namespace) -> Settings:
    """Load settings and apply command line overrides.

    Exits with status 1 when required variables are missing or invalid.
    """
    global _settings
    try:
        settings = get_settings()
    except SettingsError as e:
        if any(err.get("type") == "missing" for err in e.errors()):
            logger.error(MISSING_ENV_MESSAGE)
        else:
            logger.error(
                log_and_format_error(
                    "load_settings",
                    e,
                    category=ErrorCategory.CONFIG,
                    user_message=f"Invalid configuration: {e}",
                )
            )
        sys.exit(1)

    if args.timeout is not None:
        settings.response_timeout = args.timeout
    if args.poll_interval is not None:
        settings.poll_interval = args.poll_interval

    _settings = settings
    return settings


def parse_args(argv: list[str] | None = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="MCP server that sends notifications to Telegram and waits for replies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the MCP server on stdio
  telegram-notification-mcp

  # Verify the bot token and exit
  telegram-notification-mcp --check

  # Wait up to two minutes for replies
  telegram-notification-mcp --timeout 120

Environment variables:
  TELEGRAM_BOT_TOKEN          - Bot token (required)
  TELEGRAM_CHAT_ID            - Chat that receives notifications (required)
  TELEGRAM_RESPONSE_TIMEOUT   - Seconds to wait for a reply (default: 30)
  TELEGRAM_POLL_INTERVAL      - Seconds between polls (default: 2)
  TELEGRAM_REPLY_CHAT_ONLY    - Only accept replies from TELEGRAM_CHAT_ID
        """,
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="Seconds send_notification waits for a reply (overrides TELEGRAM_RESPONSE_TIMEOUT)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between getUpdates polls (overrides TELEGRAM_POLL_INTERVAL)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Verify the bot token with getMe and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    """Main entry point."""
    args = parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        set_verbose()

    settings = load_settings(args)

    if args.check:
        ok = asyncio.run(check_connection())
        sys.exit(0 if ok else 1)

    logger.info(
        f"Telegram MCP server running on stdio "
        f"(reply timeout {settings.response_timeout}s, poll interval {settings.poll_interval}s)"
    )
    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        cleanup_resources()


if __name__ == "__main__":
    main()
