"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the messaging platform so that the
core can be reused with a different client library or a fake in tests.
All identifiers crossing this boundary are already normalized strings.
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Protocol

from core.models import ChannelInfo, InboundMessage, MessageRef, SenderInfo

MessageHandler = Callable[[InboundMessage], Awaitable[None]]


class SubscriptionHandle(Protocol):
    def remove(self) -> None:
        ...


class SenderPort(Protocol):
    """Outbound messaging used by the forwarder and the scheduler."""

    async def send(self, target_id: str, text: str, parse_mode: Optional[str] = None) -> MessageRef:
        """Send a text message; raises DeliveryError on failure."""
        ...


class MessageSourcePort(SenderPort, Protocol):
    """Everything the monitor needs from the messaging platform."""

    def subscribe(self, on_message: MessageHandler) -> SubscriptionHandle:
        ...

    async def fetch_recent(self, channel_id: str, limit: int) -> List[InboundMessage]:
        """Return up to ``limit`` most recent messages; raises ChannelUnavailable."""
        ...

    async def resolve_channel(self, channel_id: str) -> ChannelInfo:
        """Raises ChannelUnavailable when the chat is not accessible."""
        ...

    async def resolve_sender(self, sender_id: str) -> SenderInfo:
        """Raises LookupFailure when the user cannot be resolved."""
        ...

    def is_ready(self) -> bool:
        ...
