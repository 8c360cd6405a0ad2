"""Per-channel message id tracking for the polling strategy (core domain)."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, Set

LOGGER = logging.getLogger(__name__)


class DedupTracker:
    """Remembers which message ids were already processed, per channel.

    Telegram message ids are monotonically increasing per chat but not
    globally, so sets are keyed by channel. Sets only grow for the lifetime of
    a run; there is no eviction.
    """

    def __init__(self) -> None:
        self._seen: Dict[str, Set[int]] = {}
        self._lock = threading.Lock()

    def seed(self, channel_id: str, initial_ids: Iterable[int]) -> None:
        """Pre-populate a channel so history is never (re)forwarded."""

        with self._lock:
            seen = self._seen.setdefault(channel_id, set())
            seen.update(initial_ids)
            size = len(seen)
        LOGGER.info("Seeded %s message ids for %s", size, channel_id)

    def is_seeded(self, channel_id: str) -> bool:
        with self._lock:
            return channel_id in self._seen

    def is_new(self, channel_id: str, message_id: int) -> bool:
        with self._lock:
            return message_id not in self._seen.get(channel_id, ())

    def mark_seen(self, channel_id: str, message_id: int) -> None:
        with self._lock:
            self._seen.setdefault(channel_id, set()).add(message_id)

    def size(self, channel_id: str) -> int:
        with self._lock:
            return len(self._seen.get(channel_id, ()))
