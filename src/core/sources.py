"""Acquisition strategies feeding the shared message pipeline.

Both strategies hand InboundMessage objects to the same handler (the
MessageProcessor), so business logic lives in exactly one place:

- PushSource subscribes to live events and trusts the adapter to deliver
  each event at most once.
- PollSource fetches the most recent messages on an interval and relies on
  the DedupTracker to skip what it has already seen.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from core.chat_ids import chat_id_variants
from core.clock import Clock
from core.dedup import DedupTracker
from core.models import ChannelInfo, InboundMessage
from core.ports import MessageHandler, MessageSourcePort, SubscriptionHandle

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30.0
MESSAGES_PER_CHECK = 10
CHANNEL_DELAY_SECONDS = 0.3
SEED_DELAY_SECONDS = 0.5


@dataclass(frozen=True)
class MonitoredChannel:
    """A configured target chat that passed the startup availability check."""

    configured_id: str
    info: ChannelInfo


class MessageSource(Protocol):
    name: str

    async def start(self, channels: Sequence[MonitoredChannel], handler: MessageHandler) -> None:
        ...

    async def stop(self) -> None:
        ...

    def is_running(self) -> bool:
        ...


class PushSource:
    """Live event subscription restricted to the monitored group chats."""

    name = "push"

    def __init__(self, adapter: MessageSourcePort) -> None:
        self._adapter = adapter
        self._accepted: set[str] = set()
        self._handler: Optional[MessageHandler] = None
        self._subscription: Optional[SubscriptionHandle] = None
        self._running = False

    async def start(self, channels: Sequence[MonitoredChannel], handler: MessageHandler) -> None:
        if self._running:
            LOGGER.warning("Event monitoring is already running")
            return
        accepted: set[str] = set()
        for channel in channels:
            accepted |= chat_id_variants(channel.configured_id)
            accepted |= chat_id_variants(channel.info.id)
        self._accepted = accepted
        self._handler = handler
        self._running = True
        self._subscription = self._adapter.subscribe(self._on_message)
        LOGGER.info("Listening for new message events in %s chats", len(channels))

    def accepts(self, message: InboundMessage) -> bool:
        # Direct messages are never monitored, even from a listed user id.
        if message.is_private:
            return False
        return message.channel_id in self._accepted

    async def _on_message(self, message: InboundMessage) -> None:
        if not self._running or self._handler is None:
            return
        if not self.accepts(message):
            return
        LOGGER.info("New message event from target chat %s", message.channel_id)
        try:
            await self._handler(message)
        except Exception:
            LOGGER.exception("Error while processing message %s in %s", message.id, message.channel_id)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._subscription is not None:
            self._subscription.remove()
            self._subscription = None
        LOGGER.info("Event monitoring stopped")

    def is_running(self) -> bool:
        return self._running


class PollSource:
    """Periodic polling of each monitored chat with per-chat dedup."""

    name = "poll"

    def __init__(
        self,
        adapter: MessageSourcePort,
        dedup: DedupTracker,
        clock: Clock,
        *,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        messages_per_check: int = MESSAGES_PER_CHECK,
        channel_delay_seconds: float = CHANNEL_DELAY_SECONDS,
        seed_delay_seconds: float = SEED_DELAY_SECONDS,
    ) -> None:
        self._adapter = adapter
        self._dedup = dedup
        self._clock = clock
        self._interval = interval_seconds
        self._limit = messages_per_check
        self._channel_delay = channel_delay_seconds
        self._seed_delay = seed_delay_seconds
        self._channels: List[MonitoredChannel] = []
        self._handler: Optional[MessageHandler] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._running = False
        self._busy = False

    async def start(self, channels: Sequence[MonitoredChannel], handler: MessageHandler) -> None:
        if self._running:
            LOGGER.warning("Polling is already running")
            return
        self._channels = list(channels)
        self._handler = handler
        self._running = True
        await self.seed()
        self._loop_task = asyncio.create_task(self._run())
        LOGGER.info(
            "Polling started - checking %s chats every %s seconds",
            len(self._channels),
            self._interval,
        )

    async def seed(self) -> None:
        """Record the ids of the most recent messages so history is skipped."""

        for channel in self._channels:
            key = channel.configured_id
            if self._dedup.is_seeded(key):
                continue
            try:
                messages = await self._adapter.fetch_recent(key, self._limit)
            except Exception as exc:
                LOGGER.error("Failed to initialize target chat %s: %s", key, exc)
                continue
            self._dedup.seed(key, (message.id for message in messages))
            await self._clock.sleep(self._seed_delay)

    async def _run(self) -> None:
        while self._running:
            await self.poll_once()
            if not self._running:
                break
            await self._clock.sleep(self._interval)

    async def poll_once(self) -> int:
        """Run one cycle over all chats; returns how many new messages were seen."""

        if self._handler is None:
            return 0
        self._busy = True
        total = 0
        try:
            for channel in self._channels:
                if not self._running:
                    break
                try:
                    total += await self._poll_channel(channel)
                except Exception:
                    # One broken chat must not stop the rest of the cycle.
                    LOGGER.exception("Failed to poll target chat %s", channel.configured_id)
                await self._clock.sleep(self._channel_delay)
        finally:
            self._busy = False

        if total:
            LOGGER.info("Polling complete: processed %s new messages", total)
        else:
            LOGGER.debug("Polling complete: no new messages")
        return total

    async def _poll_channel(self, channel: MonitoredChannel) -> int:
        key = channel.configured_id
        messages = await self._adapter.fetch_recent(key, self._limit)
        if not self._dedup.is_seeded(key):
            # Startup seeding failed for this chat; this fetch is its history.
            self._dedup.seed(key, (message.id for message in messages))
            LOGGER.info("Late-seeded target chat %s (%s)", channel.info.title, key)
            return 0

        fresh = [message for message in messages if self._dedup.is_new(key, message.id)]
        if not fresh:
            LOGGER.debug("No new messages in %s (%s)", channel.info.title, key)
            return 0

        LOGGER.info("Found %s new messages in %s (%s)", len(fresh), channel.info.title, key)
        # Forward in causal order regardless of how the API returned them.
        fresh.sort(key=lambda message: (message.timestamp, message.id))
        for message in fresh:
            try:
                await self._handler(message)
            except Exception:
                # A message that keeps failing is dropped after one try so it
                # cannot starve the newer messages behind it.
                LOGGER.exception("Failed to process message %s in %s", message.id, key)
            self._dedup.mark_seen(key, message.id)
        return len(fresh)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        task = self._loop_task
        self._loop_task = None
        if task is not None and not task.done():
            if not self._busy:
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        LOGGER.info("Polling stopped")

    def is_running(self) -> bool:
        return self._running
