"""Keyword filter (core domain).

Matching is plain case-insensitive substring containment on the trimmed
text. No tokenization and no word boundaries: "offer" matches "offers".
"""

from __future__ import annotations

import logging
from typing import List

from core.config import MonitoringPolicy
from core.models import FilterVerdict

LOGGER = logging.getLogger(__name__)

PREVIEW_CHARS = 50


def evaluate(text: str, policy: MonitoringPolicy) -> FilterVerdict:
    """Return the forward decision for one message text.

    Order of checks:
    - empty text never forwards
    - too-short text never forwards when a minimum length is configured
    - any exclude keyword vetoes the message, even if keywords match
    - otherwise any keyword hit is sufficient
    """

    normalized = (text or "").strip().lower()
    if not normalized:
        return FilterVerdict(False, (), "empty message")

    min_length = policy.min_message_length
    if min_length and len(normalized) < min_length:
        return FilterVerdict(False, (), f"message too short ({len(normalized)} < {min_length})")

    excluded = [k for k in policy.exclude_keywords if k in normalized]
    if excluded:
        return FilterVerdict(False, (), f"contains exclude keywords: {', '.join(excluded)}")

    matched: List[str] = [k for k in policy.keywords if k in normalized]
    if matched:
        return FilterVerdict(True, tuple(matched), f"matched keywords: {', '.join(matched)}")

    return FilterVerdict(False, (), "no keywords matched")


def _preview(text: str) -> str:
    if len(text) > PREVIEW_CHARS:
        return text[:PREVIEW_CHARS] + "..."
    return text


def log_verdict(channel_title: str, text: str, verdict: FilterVerdict) -> None:
    """Log a filter outcome: matches at INFO, skips at DEBUG."""

    if verdict.should_forward:
        LOGGER.info(
            "[%s] MATCH: %r -> keywords: %s",
            channel_title,
            _preview(text),
            ", ".join(verdict.matched_keywords),
        )
    else:
        LOGGER.debug("[%s] SKIP: %r -> %s", channel_title, _preview(text), verdict.reason)
