"""Helpers for working with chat and user identifiers.

Telegram hands out identifiers in several shapes (peer objects, bare ints,
marked ids like -100<channel_id>, usernames). Everything entering the core
goes through normalize_chat_id so only one string form is ever compared.
"""

from __future__ import annotations

import re
from typing import Union

CHANNEL_PREFIX = "-100"

_USERNAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]{3,}$")
_LINK_RE = re.compile(r"^(?:https?://)?(?:t\.me|telegram\.me)/([A-Za-z][A-Za-z0-9_]{3,})/?$")

ChatRef = Union[int, str, object]


def _from_peer(peer: object) -> str:
    channel_id = getattr(peer, "channel_id", None)
    if channel_id is not None:
        return f"{CHANNEL_PREFIX}{channel_id}"
    chat_id = getattr(peer, "chat_id", None)
    if chat_id is not None:
        return f"-{chat_id}"
    user_id = getattr(peer, "user_id", None)
    if user_id is not None:
        return str(user_id)
    raise ValueError(f"Unsupported peer type: {type(peer).__name__}")


def normalize_chat_id(value: ChatRef) -> str:
    """Return the canonical string form of a chat/user reference.

    - ints and numeric strings become their decimal form ("-100123", "42")
    - "@Name", "Name" and t.me links become "@name"
    - Telethon-style peers become marked ids (channel -> -100<id>,
      basic group -> -<id>, user -> <id>)
    """

    if isinstance(value, bool):
        raise ValueError(f"Invalid chat id: {value!r}")
    if isinstance(value, int):
        return str(value)
    if not isinstance(value, str):
        return _from_peer(value)

    raw = value.strip()
    if not raw:
        raise ValueError("Chat id must not be empty")
    if raw.lower() == "me":
        return "me"

    try:
        return str(int(raw))
    except ValueError:
        pass

    link = _LINK_RE.match(raw)
    if link:
        return f"@{link.group(1).lower()}"

    username = raw[1:] if raw.startswith("@") else raw
    if _USERNAME_RE.match(username):
        return f"@{username.lower()}"

    raise ValueError(f"Invalid chat id: {value!r}")


def is_username(chat_id: str) -> bool:
    return chat_id.startswith("@")


def chat_id_variants(chat_id: str) -> set[str]:
    """Return equivalent marked/unmarked forms of a numeric chat id.

    A supergroup may be configured as -100<id> or as the bare channel id; a
    basic group as -<id> or <id>. Usernames have no variants.
    """

    if is_username(chat_id):
        return {chat_id}
    try:
        raw_chat_id = int(chat_id)
    except ValueError:
        return {chat_id}

    variants: set[str] = {str(raw_chat_id)}
    if raw_chat_id < 0:
        raw_text = str(raw_chat_id)
        if raw_text.startswith(CHANNEL_PREFIX):
            channel_part = raw_text[len(CHANNEL_PREFIX):]
            if channel_part.isdigit():
                variants.add(channel_part)
        else:
            variants.add(str(abs(raw_chat_id)))
        return variants

    # Positive ids may be either a basic group or a channel without the mark.
    variants.add(str(-raw_chat_id))
    variants.add(f"{CHANNEL_PREFIX}{raw_chat_id}")
    return variants
