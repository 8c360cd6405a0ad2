"""Core configuration dataclasses.

We keep config parsing outside the core (see settings.py), but these
dataclasses define the shape the core expects and enforce the policy
invariants so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.chat_ids import normalize_chat_id
from core.errors import ConfigurationError

DEFAULT_DELAYED_MESSAGE = "Hi! Please write me in private messages."
DEFAULT_DELAY_MINUTES = 60


def _ordered_unique(values: Iterable[str]) -> Tuple[str, ...]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return tuple(result)


def normalize_keywords(values: Iterable[str]) -> Tuple[str, ...]:
    """Trim, lower-case, drop empties and duplicates while keeping order."""

    return _ordered_unique(k.strip().lower() for k in values if k and k.strip())


@dataclass(frozen=True)
class MonitoringPolicy:
    """Immutable keyword policy for one run of the monitor."""

    target_chats: Tuple[str, ...]
    keywords: Tuple[str, ...]
    target_chat_id: str
    exclude_keywords: Tuple[str, ...] = ()
    min_message_length: Optional[int] = None
    delayed_messages_enabled: bool = False
    default_delay_minutes: int = DEFAULT_DELAY_MINUTES
    delayed_message: str = DEFAULT_DELAYED_MESSAGE
    log_chat_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.target_chats:
            raise ConfigurationError("target_chats must contain at least one chat")
        if not self.keywords:
            raise ConfigurationError("keywords must contain at least one keyword")
        if not self.target_chat_id:
            raise ConfigurationError("target_chat_id is required")
        if self.min_message_length is not None and self.min_message_length < 0:
            raise ConfigurationError("min_message_length must not be negative")
        if self.delayed_messages_enabled:
            if self.default_delay_minutes <= 0:
                raise ConfigurationError("delay minutes must be positive when delayed messages are enabled")
            if not self.delayed_message.strip():
                raise ConfigurationError("delayed message text must not be empty")


def build_policy(
    *,
    target_chats: Iterable[object],
    keywords: Iterable[str],
    target_chat_id: object,
    exclude_keywords: Optional[Iterable[str]] = None,
    min_message_length: Optional[int] = None,
    delayed_messages_enabled: bool = False,
    default_delay_minutes: int = DEFAULT_DELAY_MINUTES,
    delayed_message: Optional[str] = None,
    log_chat_id: Optional[object] = None,
) -> MonitoringPolicy:
    """Normalize raw values into a validated MonitoringPolicy.

    Chat identifiers go through the shared normalizer so the core never sees
    more than one representation. A non-positive minimum length means "off".
    """

    try:
        chats = _ordered_unique(normalize_chat_id(chat) for chat in target_chats if str(chat).strip())
        output_chat = normalize_chat_id(target_chat_id) if target_chat_id not in (None, "") else ""
        log_chat = normalize_chat_id(log_chat_id) if log_chat_id not in (None, "") else None
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    min_length = min_message_length if min_message_length and min_message_length > 0 else None

    return MonitoringPolicy(
        target_chats=chats,
        keywords=normalize_keywords(keywords),
        target_chat_id=output_chat,
        exclude_keywords=normalize_keywords(exclude_keywords or []),
        min_message_length=min_length,
        delayed_messages_enabled=bool(delayed_messages_enabled),
        default_delay_minutes=int(default_delay_minutes),
        delayed_message=delayed_message if delayed_message is not None else DEFAULT_DELAYED_MESSAGE,
        log_chat_id=log_chat,
    )


@dataclass(frozen=True)
class AcquisitionConfig:
    """How messages are acquired: live events or periodic polling."""

    mode: str = "push"
    poll_interval_seconds: float = 30.0
    messages_per_check: int = 10
    channel_delay_seconds: float = 0.3
    seed_delay_seconds: float = 0.5
    ready_timeout_seconds: int = 60

    def __post_init__(self) -> None:
        if self.mode not in ("push", "poll"):
            raise ConfigurationError(f"Unsupported acquisition mode: {self.mode}")
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("poll_interval_seconds must be positive")
        if self.messages_per_check <= 0:
            raise ConfigurationError("messages_per_check must be positive")


@dataclass(frozen=True)
class NotificationConfig:
    """Notification rendering settings consumed by the formatter."""

    timezone: str = "Europe/Moscow"
    startup_message: bool = True

    def __post_init__(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"Unknown timezone: {self.timezone}") from exc
