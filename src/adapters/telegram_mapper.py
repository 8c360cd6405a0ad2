"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline. Every id that
leaves this module has been through core.chat_ids.normalize_chat_id.
"""

from __future__ import annotations

from typing import Any, Optional

from telethon.tl.custom import Message
from telethon.tl.types import Channel, Chat, PeerUser, User

from core.chat_ids import normalize_chat_id
from core.formatting import UNKNOWN_CHAT
from core.models import ChannelInfo, InboundMessage, SenderInfo

UNKNOWN_USER = "Unknown User"


def chat_id_from_message(message: Message) -> str:
    """Return the normalized chat id (-100<id> channels, -<id> groups)."""

    peer_id = getattr(message, "peer_id", None)
    if peer_id is not None:
        return normalize_chat_id(peer_id)
    # Fallback: Telethon's marked chat_id is already in the canonical form.
    return normalize_chat_id(message.chat_id)


def sender_id_from_message(message: Message) -> Optional[str]:
    """Return the sending user's id, or None for anonymous/channel posts."""

    from_id = getattr(message, "from_id", None)
    if isinstance(from_id, PeerUser):
        return normalize_chat_id(from_id)
    if from_id is None and isinstance(getattr(message, "peer_id", None), PeerUser):
        # Private chats carry the other side in peer_id only.
        return normalize_chat_id(message.peer_id)
    return None


def build_inbound(message: Message) -> InboundMessage:
    """Build a core InboundMessage from a Telethon Message."""

    date = getattr(message, "date", None)
    return InboundMessage(
        id=message.id,
        channel_id=chat_id_from_message(message),
        sender_id=sender_id_from_message(message),
        text=getattr(message, "raw_text", None) or "",
        timestamp=date.timestamp() if date is not None else 0.0,
        is_private=isinstance(getattr(message, "peer_id", None), PeerUser),
    )


def entity_title(entity: Any) -> str:
    title = getattr(entity, "title", None)
    if title:
        return str(title)
    first = getattr(entity, "first_name", None)
    if first:
        return str(first)
    return UNKNOWN_CHAT


def entity_kind(entity: Any) -> str:
    if isinstance(entity, Channel):
        return "group" if getattr(entity, "megagroup", False) else "channel"
    if isinstance(entity, Chat):
        return "group"
    if isinstance(entity, User):
        return "user"
    return "chat"


def user_display_name(entity: Any) -> str:
    first = getattr(entity, "first_name", None)
    last = getattr(entity, "last_name", None)
    if first and last:
        return f"{first} {last}"
    if first:
        return str(first)
    username = getattr(entity, "username", None)
    if username:
        return f"@{username}"
    return UNKNOWN_USER


def user_handle(entity: Any) -> Optional[str]:
    username = getattr(entity, "username", None)
    if username:
        return f"@{username}"
    return None


def channel_info(entity: Any, chat_id: str) -> ChannelInfo:
    return ChannelInfo(id=chat_id, title=entity_title(entity), kind=entity_kind(entity))


def sender_info(entity: Any) -> SenderInfo:
    return SenderInfo(display_name=user_display_name(entity), handle=user_handle(entity))
