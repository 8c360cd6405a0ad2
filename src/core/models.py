"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any Telethon-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class InboundMessage:
    """A message as delivered by the source adapter, with normalized ids."""

    id: int
    channel_id: str
    sender_id: Optional[str]
    text: str
    timestamp: float
    # Direct messages are never monitored; the adapter marks them.
    is_private: bool = False


@dataclass(frozen=True)
class ChannelInfo:
    id: str
    title: str
    kind: str


@dataclass(frozen=True)
class SenderInfo:
    display_name: str
    handle: Optional[str] = None


@dataclass(frozen=True)
class MessageRef:
    chat_id: str
    message_id: int


@dataclass(frozen=True)
class FilterVerdict:
    """Outcome of the keyword filter with a human-readable reason."""

    should_forward: bool
    matched_keywords: Tuple[str, ...]
    reason: str


class TaskStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class OriginSnapshot:
    """Metadata of the triggering message, captured when a task is created.

    The sender's profile may change later, so nothing here is re-fetched.
    """

    text: str
    channel_title: str
    sender_name: str
    sender_handle: Optional[str]
    message_time: datetime


@dataclass
class DelayedTask:
    """A scheduled private follow-up. Mutated only by the scheduler."""

    id: str
    recipient_id: str
    origin_channel_id: str
    payload: str
    scheduled_time: datetime
    origin: OriginSnapshot
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    max_attempts: int = 3
    log_chat_id: Optional[str] = None
    last_error: Optional[str] = field(default=None)

    def snapshot(self) -> "DelayedTask":
        """Return a detached copy safe to hand out to callers."""

        return replace(self)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.SENT, TaskStatus.FAILED)
