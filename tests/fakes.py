"""In-memory stand-ins for the Telegram adapter and the clock."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.errors import ChannelUnavailable, DeliveryError, LookupFailure
from core.models import ChannelInfo, InboundMessage, MessageRef, SenderInfo

START_TIME = 1_704_110_400.0  # 2024-01-01 12:00:00 UTC


async def settle(rounds: int = 20) -> None:
    """Let background tasks run until they block again."""

    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass(frozen=True)
class SentMessage:
    target_id: str
    text: str
    parse_mode: Optional[str]


class FakeSubscription:
    def __init__(self, source: "FakeSource") -> None:
        self._source = source

    def remove(self) -> None:
        self._source.handler = None


class FakeSource:
    """MessageSourcePort with scripted chats, users and delivery failures."""

    def __init__(
        self,
        channels: Optional[Dict[str, ChannelInfo]] = None,
        senders: Optional[Dict[str, SenderInfo]] = None,
        ready: bool = True,
        ready_after: Optional[int] = None,
    ) -> None:
        self.channels = dict(channels or {})
        self.senders = dict(senders or {})
        self.messages: Dict[str, List[InboundMessage]] = {}
        self.broken_channels: set[str] = set()
        # target id -> number of failures left (-1 fails forever)
        self.fail_targets: Dict[str, int] = {}
        self.sent: List[SentMessage] = []
        self.attempts: List[str] = []
        self.handler = None
        self.send_gate: Optional[asyncio.Event] = None
        self.sending: Optional[asyncio.Event] = None
        self._ready = ready
        self._ready_after = ready_after
        self._ready_checks = 0
        self._ids = itertools.count(1)

    def is_ready(self) -> bool:
        self._ready_checks += 1
        if self._ready_after is not None:
            return self._ready_checks > self._ready_after
        return self._ready

    def subscribe(self, on_message) -> FakeSubscription:
        self.handler = on_message
        return FakeSubscription(self)

    async def emit(self, message: InboundMessage) -> None:
        if self.handler is not None:
            await self.handler(message)

    def add_message(
        self,
        channel_id: str,
        message_id: int,
        text: str,
        timestamp: float = START_TIME,
        sender_id: Optional[str] = "42",
    ) -> InboundMessage:
        message = InboundMessage(
            id=message_id,
            channel_id=channel_id,
            sender_id=sender_id,
            text=text,
            timestamp=timestamp,
        )
        self.messages.setdefault(channel_id, []).append(message)
        return message

    async def fetch_recent(self, channel_id: str, limit: int) -> List[InboundMessage]:
        if channel_id in self.broken_channels:
            raise ChannelUnavailable(channel_id, "connection reset")
        history = sorted(self.messages.get(channel_id, []), key=lambda m: m.id)
        # Newest first, like the Telegram history API.
        return list(reversed(history[-limit:]))

    async def resolve_channel(self, channel_id: str) -> ChannelInfo:
        info = self.channels.get(channel_id)
        if info is None:
            raise ChannelUnavailable(channel_id, "chat not found")
        return info

    async def resolve_sender(self, sender_id: str) -> SenderInfo:
        info = self.senders.get(sender_id)
        if info is None:
            raise LookupFailure(f"User {sender_id} not found")
        return info

    async def send(self, target_id: str, text: str, parse_mode: Optional[str] = None) -> MessageRef:
        self.attempts.append(target_id)
        if self.send_gate is not None:
            if self.sending is not None:
                self.sending.set()
            await self.send_gate.wait()
        remaining = self.fail_targets.get(target_id, 0)
        if remaining:
            if remaining > 0:
                self.fail_targets[target_id] = remaining - 1
            raise DeliveryError(target_id, "USER_PRIVACY_RESTRICTED")
        self.sent.append(SentMessage(target_id, text, parse_mode))
        return MessageRef(chat_id=target_id, message_id=next(self._ids))

    def sent_to(self, target_id: str) -> List[str]:
        return [message.text for message in self.sent if message.target_id == target_id]


class _ManualTimer:
    def __init__(self, when: float, seq: int, callback, args: tuple) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Clock that only moves when a test calls advance().

    Due timers run inline, in deadline order. Sleepers wake once their
    deadline has passed.
    """

    def __init__(self, start: float = START_TIME) -> None:
        self._now = start
        self._timers: List[_ManualTimer] = []
        self._sleepers: List[tuple[float, asyncio.Future]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_seconds: float, callback, *args: Any) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, delay_seconds), next(self._seq), callback, args)
        self._timers.append(timer)
        return timer

    def armed(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self._now + seconds, future))
        await future

    def close(self) -> None:
        for timer in self._timers:
            timer.cancel()

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [timer for timer in self._timers if not timer.cancelled and timer.when <= target]
            if not due:
                break
            timer = min(due, key=lambda item: (item.when, item.seq))
            self._timers.remove(timer)
            self._now = max(self._now, timer.when)
            await timer.callback(*timer.args)
        self._now = target

        waiting = []
        for deadline, future in self._sleepers:
            if future.done():
                continue
            if deadline <= self._now:
                future.set_result(None)
            else:
                waiting.append((deadline, future))
        self._sleepers = waiting
        await asyncio.sleep(0)


class InstantClock:
    """Clock whose sleep returns at once while advancing time."""

    def __init__(self, start: float = START_TIME) -> None:
        self._now = start
        self.slept: List[float] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay_seconds: float, callback, *args: Any):
        raise AssertionError("InstantClock does not arm timers")

    async def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self._now += seconds
        await asyncio.sleep(0)

    def close(self) -> None:
        pass
