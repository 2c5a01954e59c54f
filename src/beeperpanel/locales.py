"""Display strings for the panel, in English and Czech."""

import re
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class Translations:
    unnamed_chat: str
    unread_count: Callable[[int], str]
    total_unread: Callable[[int], str]
    yes: str
    no: str
    na: str
    label_network: str
    label_account: str
    label_type: str
    label_pinned: str
    label_chat_id: str
    label_sort_key: str
    label_unread: str
    label_muted: str
    label_archived: str
    label_last_activity: str
    label_icon: str
    no_chats: str
    no_unread_chats: str
    no_messages: str
    unknown_sender: str
    unknown_message: str
    missing_info: str
    message_sent: str
    focus_success: str
    focus_error: str


def _en_count(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def _cs_count(count: int, one: str, few: str, many: str) -> str:
    if count == 1:
        return f"{count} {one}"
    if 2 <= count <= 4:
        return f"{count} {few}"
    return f"{count} {many}"


EN = Translations(
    unnamed_chat="Unnamed chat",
    unread_count=lambda n: _en_count(n, "unread message", "unread messages"),
    total_unread=lambda n: f"Total unread: {n}",
    yes="Yes",
    no="No",
    na="N/A",
    label_network="Network",
    label_account="Account",
    label_type="Type",
    label_pinned="Pinned",
    label_chat_id="Chat ID",
    label_sort_key="Sort key",
    label_unread="Unread",
    label_muted="Muted",
    label_archived="Archived",
    label_last_activity="Last activity",
    label_icon="Icon",
    no_chats="No chats found",
    no_unread_chats="No unread chats",
    no_messages="No messages found",
    unknown_sender="Unknown",
    unknown_message="(no text)",
    missing_info="Please select a chat and enter a message",
    message_sent="Message sent",
    focus_success="Beeper Desktop opened",
    focus_error="Failed to open Beeper Desktop",
)

CS = Translations(
    unnamed_chat="Nepojmenovaný chat",
    unread_count=lambda n: _cs_count(
        n, "nepřečtená zpráva", "nepřečtené zprávy", "nepřečtených zpráv"
    ),
    total_unread=lambda n: f"Celkem nepřečtených: {n}",
    yes="Ano",
    no="Ne",
    na="N/A",
    label_network="Síť",
    label_account="Účet",
    label_type="Typ",
    label_pinned="Připnuto",
    label_chat_id="ID chatu",
    label_sort_key="Klíč řazení",
    label_unread="Nepřečtené",
    label_muted="Ztlumeno",
    label_archived="Archivováno",
    label_last_activity="Poslední aktivita",
    label_icon="Ikona",
    no_chats="Žádné chaty nenalezeny",
    no_unread_chats="Žádné nepřečtené chaty",
    no_messages="Žádné zprávy nenalezeny",
    unknown_sender="Neznámý",
    unknown_message="(bez textu)",
    missing_info="Vyberte chat a zadejte zprávu",
    message_sent="Zpráva odeslána",
    focus_success="Beeper Desktop otevřen",
    focus_error="Beeper Desktop se nepodařilo otevřít",
)

TRANSLATIONS: dict[str, Translations] = {"en": EN, "cs": CS}


def language_code(locale: str | None) -> str:
    """Return the supported language code for ``locale``, defaulting to English.

    "cs-CZ" and "cs_CZ" both map to "cs"; anything unknown maps to "en".
    """
    if not locale:
        return "en"
    code = re.split(r"[-_]", locale, maxsplit=1)[0].lower()
    return code if code in TRANSLATIONS else "en"


def get_translations(locale: str | None = None) -> Translations:
    return TRANSLATIONS[language_code(locale)]
