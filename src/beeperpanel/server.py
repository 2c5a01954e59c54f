"""Beeper panel MCP server with Streamable HTTP support."""

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any

import uvicorn
from mcp.server.fastmcp import FastMCP

from beeperpanel.client import BeeperDesktop, BeeperError
from beeperpanel.config import Settings
from beeperpanel.icons import ChatIcon, get_chat_icon
from beeperpanel.locales import Translations, get_translations
from beeperpanel.utils import get_allowed_avatar_roots, safe_avatar_path

logger = logging.getLogger(__name__)

mcp = FastMCP(
    name="beeper",
    json_response=False,
    stateless_http=False,
)

SETTINGS: Settings | None = None

MESSAGE_SEARCH_LIMIT = 50
CHAT_FETCH_BATCH_SIZE = 5

_client: BeeperDesktop | None = None
_client_key: tuple[str, str | None] | None = None
_closing: set[asyncio.Task] = set()


def get_settings() -> Settings:
    global SETTINGS
    if SETTINGS is None:
        SETTINGS = Settings()
    return SETTINGS


def _discard_client(client: BeeperDesktop) -> None:
    """Close a replaced client, on the running loop if there is one."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(client.aclose())
        return
    task = loop.create_task(client.aclose())
    _closing.add(task)
    task.add_done_callback(_closing.discard)


def get_client() -> BeeperDesktop:
    """Return a cached client, rebuilt when the base URL or token changes."""
    global _client, _client_key
    settings = get_settings()
    key = (settings.base_url, settings.access_token)
    if _client is None or _client_key != key:
        if _client is not None:
            _discard_client(_client)
        _client = BeeperDesktop(
            settings.base_url, settings.access_token, timeout=settings.timeout
        )
        _client_key = key
    return _client


def translations() -> Translations:
    return get_translations(get_settings().locale)


def _icon_text(icon: ChatIcon) -> str:
    if icon.mask:
        return f"{icon.source} ({icon.mask})"
    return icon.source


def _format_chat(chat: dict[str, Any], tr: Translations, details: bool = False) -> str:
    icon = get_chat_icon(chat, get_allowed_avatar_roots())
    title = chat.get("title") or tr.unnamed_chat
    unread = chat.get("unreadCount") or 0

    line = f"{title} [{chat.get('network') or ''}]"
    if chat.get("isPinned"):
        line += f" ({tr.label_pinned})"
    if unread > 0:
        line += f" - {tr.unread_count(unread)}"
    lines = [line, f"  ID: {chat.get('id', '')}", f"  {tr.label_icon}: {_icon_text(icon)}"]

    if details:
        lines.extend(
            [
                f"  {tr.label_network}: {chat.get('network') or tr.na}",
                f"  {tr.label_account}: {chat.get('accountID') or tr.na}",
                f"  {tr.label_type}: {chat.get('type') or tr.na}",
                f"  {tr.label_pinned}: {tr.yes if chat.get('isPinned') else tr.no}",
                f"  {tr.label_unread}: {unread}",
                f"  {tr.label_muted}: {tr.yes if chat.get('isMuted') else tr.no}",
                f"  {tr.label_archived}: {tr.yes if chat.get('isArchived') else tr.no}",
                f"  {tr.label_last_activity}: {chat.get('lastActivity') or tr.na}",
            ]
        )
    return "\n".join(lines)


def _format_chats(chats: list[dict[str, Any]], tr: Translations, details: bool = False) -> str:
    return "\n\n".join(_format_chat(chat, tr, details) for chat in chats)


def _last_activity(chat: dict[str, Any]) -> float:
    """Timestamp of the chat's last activity, 0 when missing or unparseable."""
    value = chat.get("lastActivity")
    if not value:
        return 0.0
    try:
        moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


async def _collect_chats(query: str | None = None) -> list[dict[str, Any]]:
    client = get_client()
    return [chat async for chat in client.search_chats(query)]


@mcp.tool()
async def list_chats() -> str:
    """List all chats with their details, most recently active first.

    Returns:
        Formatted chat list including account, type, pin, unread count, mute,
        archive and last activity
    """
    tr = translations()
    chats = await _collect_chats()
    if not chats:
        return tr.no_chats
    chats.sort(key=_last_activity, reverse=True)
    return _format_chats(chats, tr, details=True)


@mcp.tool()
async def search_chats(query: str) -> str:
    """Search chats by title or participant.

    Args:
        query: Text to search for

    Returns:
        Formatted list of matching chats
    """
    tr = translations()
    if not query.strip():
        return tr.no_chats

    chats = await _collect_chats(query)
    if not chats:
        return tr.no_chats
    return _format_chats(chats, tr)


@mcp.tool()
async def unread_chats() -> str:
    """List chats with unread messages, most unread first.

    Returns:
        Total unread count followed by the unread chats
    """
    tr = translations()
    chats = [chat for chat in await _collect_chats() if (chat.get("unreadCount") or 0) > 0]
    if not chats:
        return tr.no_unread_chats

    chats.sort(key=lambda chat: chat["unreadCount"], reverse=True)
    total = sum(chat["unreadCount"] for chat in chats)
    return f"{tr.total_unread(total)}\n\n{_format_chats(chats, tr)}"


async def _fetch_chats(client: BeeperDesktop, chat_ids: list[str]) -> dict[str, dict[str, Any]]:
    chats: dict[str, dict[str, Any]] = {}

    async def fetch(chat_id: str) -> None:
        try:
            chats[chat_id] = await client.retrieve_chat(chat_id)
        except BeeperError as e:
            logger.warning("Failed to load chat %s: %s", chat_id, e)

    for i in range(0, len(chat_ids), CHAT_FETCH_BATCH_SIZE):
        batch = chat_ids[i : i + CHAT_FETCH_BATCH_SIZE]
        await asyncio.gather(*(fetch(chat_id) for chat_id in batch))
    return chats


@mcp.tool()
async def search_messages(query: str) -> str:
    """Search messages across all chats.

    Args:
        query: Text to search for

    Returns:
        Formatted list of up to 50 matching messages with their chats
    """
    tr = translations()
    if not query.strip():
        return tr.no_messages

    client = get_client()
    messages = [
        message async for message in client.search_messages(query, limit=MESSAGE_SEARCH_LIMIT)
    ]
    if not messages:
        return tr.no_messages

    chat_ids = list(dict.fromkeys(m["chatID"] for m in messages if m.get("chatID")))
    chats = await _fetch_chats(client, chat_ids)

    entries = []
    for message in messages:
        chat = chats.get(message.get("chatID"))
        icon = get_chat_icon(chat, get_allowed_avatar_roots())
        chat_title = (chat or {}).get("title") or tr.unnamed_chat
        sender = message.get("senderName") or tr.unknown_sender
        text = message.get("text") or tr.unknown_message
        entries.append(
            f"{chat_title} - {sender}: {text}\n"
            f"  {tr.label_chat_id}: {message.get('chatID') or tr.na}\n"
            f"  {tr.label_sort_key}: {message.get('sortKey') or tr.na}\n"
            f"  {tr.label_icon}: {_icon_text(icon)}\n"
            f"  {message.get('timestamp') or tr.na}"
        )
    return "\n\n".join(entries)


@mcp.tool()
async def send_message(chat_id: str, message: str) -> str:
    """Send a text message to a chat.

    Args:
        chat_id: Target chat ID
        message: Message text

    Returns:
        Success message
    """
    tr = translations()
    if not chat_id.strip() or not message.strip():
        raise ValueError(tr.missing_info)

    await get_client().send_message(chat_id, message)
    return tr.message_sent


@mcp.tool()
async def focus_app(chat_id: str = "", message_sort_key: str = "") -> str:
    """Bring Beeper Desktop to the foreground, optionally opening a chat.

    Args:
        chat_id: Chat to open (default: none)
        message_sort_key: Sort key of a message to jump to within the chat (default: none)

    Returns:
        Success message
    """
    tr = translations()
    try:
        await get_client().focus_app(chat_id or None, message_sort_key or None)
    except BeeperError as e:
        logger.error("Failed to focus Beeper Desktop: %s", e)
        raise RuntimeError(tr.focus_error) from e
    return tr.focus_success


@mcp.tool()
async def chat_icon(chat_json: str) -> str:
    """Resolve the display icon for a chat record.

    Args:
        chat_json: Chat record as returned by the Beeper Desktop API, JSON encoded

    Returns:
        JSON object with source, kind and mask
    """
    try:
        chat = json.loads(chat_json)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid chat JSON: {e}")
    if not isinstance(chat, dict):
        raise ValueError("Chat JSON must be an object")

    icon = get_chat_icon(chat, get_allowed_avatar_roots())
    return json.dumps({"source": icon.source, "kind": icon.kind, "mask": icon.mask})


@mcp.tool()
async def avatar_path(url: str) -> str:
    """Validate a file:// avatar URL against the Beeper media directories.

    Args:
        url: Untrusted avatar URL

    Returns:
        The validated local path, or an empty string when rejected
    """
    return safe_avatar_path(url, get_allowed_avatar_roots()) or ""


def main() -> None:
    """Main entry point for the Beeper panel MCP server."""
    parser = argparse.ArgumentParser(
        description="Beeper Desktop panel MCP Server with Streamable HTTP support"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: 8123)",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="Beeper Desktop API base URL (default: http://localhost:23373)",
    )
    parser.add_argument(
        "--locale",
        type=str,
        default=None,
        help="Display locale, e.g. en or cs (default: en)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    global SETTINGS
    overrides = {
        key: value
        for key, value in (
            ("port", args.port),
            ("base_url", args.base_url),
            ("locale", args.locale),
        )
        if value is not None
    }
    SETTINGS = Settings(**overrides)

    if not SETTINGS.access_token:
        logger.warning("BEEPER_ACCESS_TOKEN is not set; API requests will be unauthenticated")

    logger.info("Starting Beeper panel MCP Server")
    logger.info("Beeper Desktop API: %s", SETTINGS.base_url)
    logger.info("Allowed avatar roots: %s", ", ".join(get_allowed_avatar_roots()))
    logger.info("Listening on: http://localhost:%d/mcp", SETTINGS.port)

    uvicorn.run(mcp.streamable_http_app(), host="localhost", port=SETTINGS.port)


if __name__ == "__main__":
    main()
