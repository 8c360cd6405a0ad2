"""Telethon implementation of the core MessageSourcePort.

The adapter converts Telethon errors into the core error taxonomy so the
pipeline never has to know about RPC error classes.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional, Union

from telethon import TelegramClient, events, utils
from telethon.errors import RPCError

from adapters.telegram_mapper import build_inbound, channel_info, sender_info
from core.chat_ids import normalize_chat_id
from core.errors import ChannelUnavailable, DeliveryError, LookupFailure
from core.models import ChannelInfo, InboundMessage, MessageRef, SenderInfo
from core.ports import MessageHandler

LOGGER = logging.getLogger(__name__)

# Errors Telethon raises for unknown/unreachable entities and failed requests.
_TELETHON_ERRORS = (RPCError, ValueError, TypeError, ConnectionError)


def to_entity_ref(chat_id: str) -> Union[int, str]:
    """Turn a normalized id into something client.get_entity accepts."""

    if chat_id.startswith("@") or chat_id == "me":
        return chat_id
    return int(chat_id)


class _Subscription:
    def __init__(self, client: TelegramClient, callback, event) -> None:
        self._client = client
        self._callback = callback
        self._event = event

    def remove(self) -> None:
        self._client.remove_event_handler(self._callback, self._event)


class TelethonMessageSource:
    """MessageSourcePort backed by one shared TelegramClient."""

    def __init__(self, client: TelegramClient) -> None:
        self._client = client
        self._authorized = False

    def mark_authorized(self) -> None:
        self._authorized = True

    def is_ready(self) -> bool:
        return self._authorized and self._client.is_connected()

    def subscribe(self, on_message: MessageHandler) -> _Subscription:
        event = events.NewMessage(incoming=True)

        async def _handler(update) -> None:
            try:
                message = build_inbound(update.message)
            except ValueError:
                LOGGER.debug("Skipping message with unsupported peer")
                return
            await on_message(message)

        self._client.add_event_handler(_handler, event)
        return _Subscription(self._client, _handler, event)

    async def fetch_recent(self, channel_id: str, limit: int) -> List[InboundMessage]:
        try:
            entity = await self._client.get_entity(to_entity_ref(channel_id))
            messages = await self._client.get_messages(entity, limit=limit)
        except _TELETHON_ERRORS as exc:
            raise ChannelUnavailable(channel_id, str(exc)) from exc

        result: List[InboundMessage] = []
        for message in messages:
            try:
                result.append(build_inbound(message))
            except ValueError:
                continue
        return result

    async def resolve_channel(self, channel_id: str) -> ChannelInfo:
        try:
            entity = await self._client.get_entity(to_entity_ref(channel_id))
        except _TELETHON_ERRORS as exc:
            raise ChannelUnavailable(channel_id, str(exc)) from exc
        return channel_info(entity, normalize_chat_id(utils.get_peer_id(entity)))

    async def resolve_sender(self, sender_id: str) -> SenderInfo:
        try:
            entity = await self._client.get_entity(to_entity_ref(sender_id))
        except _TELETHON_ERRORS as exc:
            raise LookupFailure(f"User {sender_id} not found: {exc}") from exc
        return sender_info(entity)

    async def send(self, target_id: str, text: str, parse_mode: Optional[str] = None) -> MessageRef:
        try:
            sent = await self._client.send_message(to_entity_ref(target_id), text, parse_mode=parse_mode)
        except _TELETHON_ERRORS as exc:
            raise DeliveryError(target_id, str(exc) or type(exc).__name__) from exc
        return MessageRef(chat_id=target_id, message_id=sent.id)

    async def iter_group_chats(self) -> AsyncIterator[ChannelInfo]:
        """Yield groups and channels from the dialog list (private chats skipped)."""

        async for dialog in self._client.iter_dialogs():
            if dialog.is_user:
                continue
            yield channel_info(dialog.entity, normalize_chat_id(dialog.id))
