"""Shared message formatting helpers.

Keeping every outbound text here prevents drift between the forwarder, the
delayed-task notices and the console preview. Nothing in this module touches
the network or any state.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, Optional
from zoneinfo import ZoneInfo

from core.models import DelayedTask

if TYPE_CHECKING:
    from core.config import MonitoringPolicy

DEFAULT_TIMEZONE = "Europe/Moscow"
UNKNOWN_CHAT = "Unknown Chat"
UNKNOWN_USER = "Unknown"
DIVIDER = "──────────────"


def format_timestamp(value: datetime, tz_name: str = DEFAULT_TIMEZONE, seconds: bool = True) -> str:
    """Render a timestamp as DD.MM.YYYY, HH:MM[:SS] in a fixed timezone.

    Naive datetimes are treated as UTC.
    """

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    pattern = "%d.%m.%Y, %H:%M:%S" if seconds else "%d.%m.%Y, %H:%M"
    return value.astimezone(ZoneInfo(tz_name)).strftime(pattern)


_ZWSP = "\u200b"
# Telethon's markdown has no escape character, so delimiters are broken up.
_MD_NEUTRALIZE = (
    ("**", "*" + _ZWSP + "*"),
    ("__", "_" + _ZWSP + "_"),
    ("~~", "~" + _ZWSP + "~"),
    ("||", "|" + _ZWSP + "|"),
    ("`", "\u02cb"),
    ("](", "]" + _ZWSP + "("),
)


def escape_md(value: str) -> str:
    """Keep user text literal inside a markdown notice."""

    for sequence, replacement in _MD_NEUTRALIZE:
        value = value.replace(sequence, replacement)
    return value


def format_forward_message(
    original_text: str,
    channel_title: Optional[str],
    channel_id: str,
    sender_name: Optional[str],
    sender_handle: Optional[str],
    matched_keywords: Iterable[str],
    message_time: datetime,
    tz_name: str = DEFAULT_TIMEZONE,
) -> str:
    """Create the plain-text body forwarded to the output chat."""

    lines = [
        "KEYWORD MATCH DETECTED",
        "",
        "Original message:",
        original_text,
        "",
        "Message info:",
        f"Chat: {channel_title or UNKNOWN_CHAT}",
        f"Chat ID: {channel_id}",
        f"User: {sender_name or UNKNOWN_USER}",
    ]
    if sender_handle:
        lines.append(f"Username: {sender_handle}")
    lines.append(f"Time: {format_timestamp(message_time, tz_name)}")
    lines.append(f"Keywords: {', '.join(matched_keywords)}")
    return "\n".join(lines)


def _recipient_label(task: DelayedTask) -> str:
    label = task.origin.sender_name
    if task.origin.sender_handle:
        label = f"{label} ({task.origin.sender_handle})"
    return escape_md(label)


def format_scheduled_notice(task: DelayedTask, delay_minutes: int, tz_name: str = DEFAULT_TIMEZONE) -> str:
    """Markdown notice emitted to the log chat when a task is scheduled."""

    origin = task.origin
    lines = [
        "**DELAYED MESSAGE SCHEDULED**",
        DIVIDER,
        "**Original message:**",
        f'"{escape_md(origin.text)}"',
        "",
        f"**From:** {_recipient_label(task)}",
        f"**Chat:** {escape_md(origin.channel_title)}",
        f"**Original time:** {format_timestamp(origin.message_time, tz_name)}",
        "",
        "**Delayed message:**",
        f'"{escape_md(task.payload)}"',
        "",
        f"**Will be sent:** {format_timestamp(task.scheduled_time, tz_name, seconds=False)} (in {delay_minutes} min)",
        f"**Task ID:** `{task.id}`",
    ]
    return "\n".join(lines)


def format_sent_notice(task: DelayedTask, sent_at: datetime, tz_name: str = DEFAULT_TIMEZONE) -> str:
    lines = [
        "**DELAYED MESSAGE SENT**",
        DIVIDER,
        f'**Message:** "{escape_md(task.payload)}"',
        f"**Recipient:** {_recipient_label(task)}",
        f"**Sent at:** {format_timestamp(sent_at, tz_name, seconds=False)}",
        f"**Task ID:** `{task.id}`",
    ]
    return "\n".join(lines)


def format_failed_notice(task: DelayedTask, error: str) -> str:
    lines = [
        "**DELAYED MESSAGE NOT DELIVERED**",
        DIVIDER,
        f'**Message:** "{escape_md(task.payload)}"',
        f"**Recipient:** {_recipient_label(task)}",
        f"**Attempts:** {task.attempts}/{task.max_attempts}",
        f"**Error:** {escape_md(error)}",
        f"**Task ID:** `{task.id}`",
    ]
    return "\n".join(lines)


def format_startup_notice(
    policy: "MonitoringPolicy",
    started_at: datetime,
    mode: str,
    tz_name: str = DEFAULT_TIMEZONE,
) -> str:
    lines = [
        "Vacuumer started",
        "",
        f"Started at: {format_timestamp(started_at, tz_name)}",
        f"Mode: {mode}",
        f"Monitoring {len(policy.target_chats)} chats",
        f"Keywords: {', '.join(policy.keywords)}",
    ]
    if policy.delayed_messages_enabled:
        lines.append(f"Delayed replies: on ({policy.default_delay_minutes} min)")
    return "\n".join(lines)
