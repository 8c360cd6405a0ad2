"""Monitoring orchestrator.

Startup sequencing:
1) Wait for the source adapter to report ready (bounded)
2) Check every configured chat once; unreachable chats are skipped for the run
3) Start the configured acquisition strategy (push or poll)
4) Optionally announce the start in the output chat

The orchestrator is also the query surface for the CLI and the console:
policy, monitored chats, pending delayed tasks, cancellation, manual checks.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from core.clock import Clock, SchedulerClock
from core.config import AcquisitionConfig, MonitoringPolicy, NotificationConfig
from core.dedup import DedupTracker
from core.errors import AdapterNotReady, ChannelUnavailable, DeliveryError
from core.formatting import format_startup_notice
from core.models import DelayedTask
from core.ports import MessageSourcePort
from core.processor import ManualCheckResult, MessageProcessor
from core.scheduler import DelayedTaskScheduler
from core.sources import MessageSource, MonitoredChannel, PollSource, PushSource

LOGGER = logging.getLogger(__name__)

READY_CHECK_INTERVAL_SECONDS = 1.0


class MonitoringOrchestrator:
    """Wires the adapter, an acquisition strategy, the processor and the scheduler."""

    def __init__(
        self,
        policy: MonitoringPolicy,
        adapter: MessageSourcePort,
        source: MessageSource,
        processor: MessageProcessor,
        scheduler: DelayedTaskScheduler,
        clock: Clock,
        *,
        ready_timeout_seconds: int = 60,
        notifications: Optional[NotificationConfig] = None,
    ) -> None:
        self._policy = policy
        self._adapter = adapter
        self._source = source
        self._processor = processor
        self._scheduler = scheduler
        self._clock = clock
        self._ready_timeout = ready_timeout_seconds
        self._notifications = notifications or NotificationConfig()
        self._channels: List[MonitoredChannel] = []
        self._active = False

    @property
    def policy(self) -> MonitoringPolicy:
        return self._policy

    @property
    def mode(self) -> str:
        return self._source.name

    def is_active(self) -> bool:
        return self._active

    def monitored_channels(self) -> List[MonitoredChannel]:
        return list(self._channels)

    def _log_policy(self) -> None:
        policy = self._policy
        LOGGER.info("Monitoring configuration (%s mode):", self.mode)
        LOGGER.info("Target chats: %s", ", ".join(policy.target_chats))
        LOGGER.info("Keywords: %s", ", ".join(policy.keywords))
        if policy.exclude_keywords:
            LOGGER.info("Exclude keywords: %s", ", ".join(policy.exclude_keywords))
        if policy.min_message_length:
            LOGGER.info("Min message length: %s", policy.min_message_length)
        LOGGER.info("Forward to: %s", policy.target_chat_id)
        LOGGER.info("Delayed messages: %s", "ENABLED" if policy.delayed_messages_enabled else "DISABLED")
        if policy.delayed_messages_enabled:
            LOGGER.info("Default delay: %s minutes", policy.default_delay_minutes)
            LOGGER.info("Log chat: %s", policy.log_chat_id or "Not set")

    async def start(self) -> bool:
        """Start monitoring. Returns False (after logging) when it cannot start."""

        if self._active:
            LOGGER.warning("Monitoring is already running")
            return True

        self._log_policy()
        try:
            await self.wait_until_ready()
        except AdapterNotReady as exc:
            LOGGER.error("%s", exc)
            return False

        channels = await self.validate_channels()
        if not channels:
            LOGGER.error("No accessible target chats found, monitoring not started")
            return False
        self._channels = channels

        await self._source.start(channels, self._processor.handle)
        self._active = True
        LOGGER.info("Monitoring %s/%s chats via %s", len(channels), len(self._policy.target_chats), self.mode)

        if self._notifications.startup_message:
            await self._send_startup_notice()
        return True

    async def wait_until_ready(self) -> None:
        """Poll adapter readiness once per second up to the configured bound."""

        if self._adapter.is_ready():
            return
        LOGGER.info("Waiting for Telegram client to be ready...")
        waited = 0.0
        while not self._adapter.is_ready() and waited < self._ready_timeout:
            await self._clock.sleep(READY_CHECK_INTERVAL_SECONDS)
            waited += READY_CHECK_INTERVAL_SECONDS
        if not self._adapter.is_ready():
            raise AdapterNotReady(f"Telegram client failed to initialize within {self._ready_timeout} seconds")
        LOGGER.info("Telegram client is ready")

    async def validate_channels(self) -> List[MonitoredChannel]:
        """Resolve each target chat once; unreachable ones are skipped for the run."""

        valid: List[MonitoredChannel] = []
        for chat_id in self._policy.target_chats:
            try:
                info = await self._adapter.resolve_channel(chat_id)
            except ChannelUnavailable as exc:
                LOGGER.error("%s", exc)
                continue
            LOGGER.info("Chat accessible: %s (%s)", info.title, chat_id)
            self._processor.remember_channel(chat_id, info)
            valid.append(MonitoredChannel(configured_id=chat_id, info=info))
        return valid

    async def _send_startup_notice(self) -> None:
        text = format_startup_notice(
            self._policy,
            datetime.now(timezone.utc),
            self.mode,
            self._notifications.timezone,
        )
        try:
            await self._adapter.send(self._policy.target_chat_id, text)
        except DeliveryError as exc:
            LOGGER.error("Failed to send startup notification: %s", exc)
            return
        LOGGER.info("Startup notification sent to %s", self._policy.target_chat_id)

    async def stop(self) -> None:
        """Halt future cycles/events; an in-flight batch is allowed to finish."""

        if not self._active:
            return
        await self._source.stop()
        self._active = False
        LOGGER.info("Monitoring stopped")

    async def shutdown(self) -> None:
        """Stop monitoring and disarm delayed-task timers (process exit)."""

        await self.stop()
        self._scheduler.shutdown()
        self._clock.close()

    def list_pending_tasks(self) -> List[DelayedTask]:
        return self._scheduler.list_pending()

    def get_task(self, task_id: str) -> Optional[DelayedTask]:
        return self._scheduler.get(task_id)

    def cancel_task(self, task_id: str) -> bool:
        return self._scheduler.cancel(task_id)

    async def check_message(self, text: str, send: bool = False) -> ManualCheckResult:
        return await self._processor.check(text, send=send)


def build_orchestrator(
    policy: MonitoringPolicy,
    adapter: MessageSourcePort,
    acquisition: Optional[AcquisitionConfig] = None,
    notifications: Optional[NotificationConfig] = None,
    clock: Optional[Clock] = None,
) -> MonitoringOrchestrator:
    """Build the full pipeline for the configured acquisition mode."""

    acquisition = acquisition or AcquisitionConfig()
    notifications = notifications or NotificationConfig()
    clock = clock or SchedulerClock()

    scheduler = DelayedTaskScheduler(adapter, clock, tz_name=notifications.timezone)
    processor = MessageProcessor(policy, adapter, scheduler, tz_name=notifications.timezone)
    source: MessageSource
    if acquisition.mode == "poll":
        source = PollSource(
            adapter,
            DedupTracker(),
            clock,
            interval_seconds=acquisition.poll_interval_seconds,
            messages_per_check=acquisition.messages_per_check,
            channel_delay_seconds=acquisition.channel_delay_seconds,
            seed_delay_seconds=acquisition.seed_delay_seconds,
        )
    else:
        source = PushSource(adapter)

    return MonitoringOrchestrator(
        policy,
        adapter,
        source,
        processor,
        scheduler,
        clock,
        ready_timeout_seconds=acquisition.ready_timeout_seconds,
        notifications=notifications,
    )
