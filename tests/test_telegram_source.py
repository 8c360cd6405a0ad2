from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from telethon.tl.types import PeerChannel, PeerUser

from adapters.telegram_source import TelethonMessageSource, to_entity_ref
from core.errors import ChannelUnavailable, DeliveryError, LookupFailure


class DummyMessage:
    def __init__(self, message_id: int, text: str) -> None:
        self.id = message_id
        self.raw_text = text
        self.peer_id = PeerChannel(channel_id=123)
        self.from_id = PeerUser(user_id=42)
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)


class DummySent:
    id = 99


class DummyClient:
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.sent: list[tuple] = []
        self.missing: set = set()
        self.history = [DummyMessage(2, "newer"), DummyMessage(1, "older")]

    def is_connected(self) -> bool:
        return self.connected

    async def get_entity(self, ref):
        if ref in self.missing:
            raise ValueError(f"Cannot find any entity corresponding to {ref!r}")
        return ref

    async def get_messages(self, entity, limit: int):
        return self.history[:limit]

    async def send_message(self, entity, text, parse_mode=None):
        if entity in self.missing:
            raise ValueError("Could not find the input entity")
        self.sent.append((entity, text, parse_mode))
        return DummySent()


def test_to_entity_ref() -> None:
    assert to_entity_ref("-100123") == -100123
    assert to_entity_ref("@grp") == "@grp"
    assert to_entity_ref("me") == "me"


def test_ready_requires_authorization_and_connection() -> None:
    source = TelethonMessageSource(DummyClient())
    assert not source.is_ready()
    source.mark_authorized()
    assert source.is_ready()
    assert not TelethonMessageSource(DummyClient(connected=False)).is_ready()


def test_fetch_recent_maps_messages() -> None:
    source = TelethonMessageSource(DummyClient())
    messages = asyncio.run(source.fetch_recent("-100123", 1))
    assert [(m.id, m.channel_id, m.text) for m in messages] == [(2, "-100123", "newer")]


def test_fetch_recent_unknown_chat() -> None:
    client = DummyClient()
    client.missing.add(-1005)
    with pytest.raises(ChannelUnavailable):
        asyncio.run(TelethonMessageSource(client).fetch_recent("-1005", 10))


def test_send_wraps_errors() -> None:
    client = DummyClient()
    source = TelethonMessageSource(client)

    ref = asyncio.run(source.send("42", "hello", parse_mode="md"))
    assert ref.message_id == 99
    assert client.sent == [(42, "hello", "md")]

    client.missing.add(43)
    with pytest.raises(DeliveryError) as excinfo:
        asyncio.run(source.send("43", "hello"))
    assert excinfo.value.target_id == "43"


def test_resolve_sender_failure() -> None:
    client = DummyClient()
    client.missing.add(7)
    with pytest.raises(LookupFailure):
        asyncio.run(TelethonMessageSource(client).resolve_sender("7"))
