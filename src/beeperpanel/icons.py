"""Icon selection for chats: contact avatars with network-brand fallbacks."""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from beeperpanel.utils import safe_avatar_path

NETWORK_ICONS: dict[str, str] = {
    "slack": "slack.svg",
    "whatsapp": "whatsapp.svg",
    "telegram": "telegram.svg",
    "discord": "discord.svg",
    "instagram": "instagram.svg",
    "facebook": "facebook.svg",
    "facebookmessenger": "messenger.svg",
    "messenger": "messenger.svg",
    "signal": "signal.svg",
    "imessage": "imessage.svg",
    "twitter": "twitter.svg",
    "email": "email.svg",
    "googlemessages": "google-messages.svg",
}

MESSAGE_GLYPH = "message"

_STRIP = re.compile(r"[/\s-]")


@dataclass(frozen=True)
class ChatIcon:
    """Display icon for a chat row."""

    source: str
    kind: str
    mask: str | None = None


def normalize_network(network: str) -> str:
    """Lowercase ``network`` and drop slashes, whitespace and dashes."""
    return _STRIP.sub("", network.lower())


def get_network_icon(network: str | None) -> ChatIcon:
    """Return the brand icon for ``network``, or the generic message glyph.

    Args:
        network: Network name, e.g. "Slack", "facebook-messenger", "Google Messages"

    Returns:
        ChatIcon pointing at an icon asset, or the message glyph if unmapped
    """
    filename = NETWORK_ICONS.get(normalize_network(network or ""))
    if filename:
        return ChatIcon(source=filename, kind="network")
    return ChatIcon(source=MESSAGE_GLYPH, kind="glyph")


def _counterpart_image(chat: Mapping[str, Any]) -> str | None:
    participants = chat.get("participants") or {}
    for participant in participants.get("items") or []:
        if not participant.get("isSelf"):
            return participant.get("imgURL")
    return None


def get_chat_icon(chat: Mapping[str, Any] | None, roots: Iterable[str]) -> ChatIcon:
    """Choose the icon for a chat record.

    One-to-one chats whose counterpart has a valid local avatar get that
    avatar as a circle. Everything else gets the network icon.
    """
    if not chat:
        return get_network_icon(None)

    if chat.get("type") == "single":
        image_url = _counterpart_image(chat)
        if image_url:
            path = safe_avatar_path(image_url, roots)
            if path is not None:
                return ChatIcon(source=path, kind="avatar", mask="circle")

    return get_network_icon(chat.get("network"))
