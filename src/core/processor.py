"""Core message processing pipeline.

This module is integration-agnostic. It relies on the MessageSourcePort for
lookups and sends and on the scheduler for follow-ups, so both acquisition
strategies share exactly one code path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from core.config import MonitoringPolicy
from core.errors import ChannelUnavailable, DeliveryError, LookupFailure
from core.formatting import DEFAULT_TIMEZONE, UNKNOWN_CHAT, format_forward_message
from core.keyword_filter import evaluate, log_verdict
from core.models import ChannelInfo, FilterVerdict, InboundMessage, OriginSnapshot, SenderInfo
from core.ports import MessageSourcePort
from core.scheduler import DelayedTaskScheduler

LOGGER = logging.getLogger(__name__)

UNKNOWN_SENDER = "Unknown User"
MANUAL_CHANNEL_TITLE = "Manual check"
MANUAL_CHANNEL_ID = "manual"


@dataclass(frozen=True)
class ProcessOutcome:
    verdict: FilterVerdict
    forwarded: bool = False
    task_id: Optional[str] = None


@dataclass(frozen=True)
class ManualCheckResult:
    verdict: FilterVerdict
    preview: Optional[str]
    sent: bool = False


class MessageProcessor:
    """Filters one message, forwards matches, and schedules follow-ups.

    ``source`` may be None for offline manual checks that never send.
    """

    def __init__(
        self,
        policy: MonitoringPolicy,
        source: Optional[MessageSourcePort],
        scheduler: Optional[DelayedTaskScheduler] = None,
        tz_name: str = DEFAULT_TIMEZONE,
    ) -> None:
        self._policy = policy
        self._source = source
        self._scheduler = scheduler
        self._tz_name = tz_name
        self._channel_titles: Dict[str, str] = {}

    def remember_channel(self, channel_id: str, info: ChannelInfo) -> None:
        """Cache a title resolved during startup validation."""

        self._channel_titles[channel_id] = info.title
        self._channel_titles[info.id] = info.title

    async def _channel_title(self, channel_id: str) -> str:
        title = self._channel_titles.get(channel_id)
        if title:
            return title
        try:
            info = await self._source.resolve_channel(channel_id)
        except (ChannelUnavailable, LookupFailure) as exc:
            LOGGER.warning("Failed to get chat info for %s: %s", channel_id, exc)
            return UNKNOWN_CHAT
        self._channel_titles[channel_id] = info.title
        return info.title

    async def _sender_info(self, sender_id: str) -> Optional[SenderInfo]:
        try:
            return await self._source.resolve_sender(sender_id)
        except LookupFailure as exc:
            LOGGER.warning("Failed to get user info for %s: %s", sender_id, exc)
            return None

    async def handle(self, message: InboundMessage) -> Optional[ProcessOutcome]:
        """Process one inbound message through Filter -> Forward -> Scheduler.

        Returns None for messages without text, which never reach the filter.
        """

        # Media-only messages without captions are ignored.
        if not message.text.strip():
            return None

        channel_title = await self._channel_title(message.channel_id)
        verdict = evaluate(message.text, self._policy)
        log_verdict(channel_title, message.text, verdict)
        if not verdict.should_forward:
            return ProcessOutcome(verdict)

        # Sender lookups only happen for matches to keep API traffic low.
        sender: Optional[SenderInfo] = None
        if message.sender_id is not None:
            sender = await self._sender_info(message.sender_id)
        sender_name = sender.display_name if sender else (UNKNOWN_SENDER if message.sender_id else None)
        sender_handle = sender.handle if sender else None

        message_time = datetime.fromtimestamp(message.timestamp, tz=timezone.utc)
        body = format_forward_message(
            message.text,
            channel_title,
            message.channel_id,
            sender_name,
            sender_handle,
            verdict.matched_keywords,
            message_time,
            self._tz_name,
        )
        try:
            await self._source.send(self._policy.target_chat_id, body)
        except DeliveryError as exc:
            LOGGER.error("Failed to forward message from %s: %s", channel_title, exc)
            return ProcessOutcome(verdict)
        LOGGER.info("Message forwarded from %s (user: %s)", channel_title, sender_handle or sender_name)

        task_id = None
        # Follow-ups need a sender we could actually identify.
        if self._policy.delayed_messages_enabled and message.sender_id and sender is not None:
            origin = OriginSnapshot(
                text=message.text,
                channel_title=channel_title,
                sender_name=sender.display_name,
                sender_handle=sender.handle,
                message_time=message_time,
            )
            task_id = await self._schedule_reply(message, origin)
        return ProcessOutcome(verdict, forwarded=True, task_id=task_id)

    async def _schedule_reply(self, message: InboundMessage, origin: OriginSnapshot) -> Optional[str]:
        if self._scheduler is None:
            return None
        try:
            task_id = await self._scheduler.schedule(
                message.sender_id,
                message.channel_id,
                self._policy.delayed_message,
                self._policy.default_delay_minutes,
                origin,
                self._policy.log_chat_id,
            )
        except Exception:
            LOGGER.exception("Failed to schedule delayed message for %s", origin.sender_name)
            return None
        LOGGER.info("Scheduled delayed message for %s: %s", origin.sender_name, task_id)
        return task_id

    async def check(self, text: str, send: bool = False) -> ManualCheckResult:
        """Run ad-hoc text through the filter and formatter.

        Bypasses acquisition and never schedules a follow-up. With ``send``
        the rendered block is delivered to the output chat.
        """

        if send and self._source is None:
            raise ValueError("check(send=True) needs a message source to deliver through")

        verdict = evaluate(text, self._policy)
        log_verdict(MANUAL_CHANNEL_TITLE, text, verdict)
        if not verdict.should_forward:
            return ManualCheckResult(verdict, None)

        preview = format_forward_message(
            text,
            MANUAL_CHANNEL_TITLE,
            MANUAL_CHANNEL_ID,
            None,
            None,
            verdict.matched_keywords,
            datetime.now(timezone.utc),
            self._tz_name,
        )
        if not send:
            return ManualCheckResult(verdict, preview)
        try:
            await self._source.send(self._policy.target_chat_id, preview)
        except DeliveryError as exc:
            LOGGER.error("Manual forward failed: %s", exc)
            return ManualCheckResult(verdict, preview, sent=False)
        return ManualCheckResult(verdict, preview, sent=True)
