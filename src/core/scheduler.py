"""Delayed task scheduler (core domain).

Each task follows a small state machine:

    pending --send ok-------------------------> sent    (terminal)
    pending --send failed, attempts < max-----> pending (retry armed)
    pending --send failed, attempts == max----> failed  (terminal)

Tasks leave the live table only when they reach a terminal state or are
cancelled, so a task waiting for a retry is still visible to queries.
"""

from __future__ import annotations

import logging
import secrets
import string
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.clock import Clock, TimerHandle
from core.errors import DeliveryError
from core.formatting import (
    DEFAULT_TIMEZONE,
    format_failed_notice,
    format_scheduled_notice,
    format_sent_notice,
)
from core.models import DelayedTask, OriginSnapshot, TaskStatus
from core.ports import SenderPort

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MINUTES = 5

_ID_ALPHABET = string.ascii_lowercase + string.digits


class DelayedTaskScheduler:
    """Owns the pending task table and every mutation of a DelayedTask."""

    def __init__(
        self,
        sender: SenderPort,
        clock: Clock,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay_minutes: float = DEFAULT_RETRY_DELAY_MINUTES,
        tz_name: str = DEFAULT_TIMEZONE,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._sender = sender
        self._clock = clock
        self._max_attempts = max_attempts
        self._retry_delay_minutes = retry_delay_minutes
        self._tz_name = tz_name
        self._tasks: Dict[str, DelayedTask] = {}
        self._timers: Dict[str, TimerHandle] = {}
        # Guards _tasks and _timers. Never held across an await.
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock.now(), tz=timezone.utc)

    def _new_task_id(self) -> str:
        while True:
            millis = int(self._clock.now() * 1000)
            suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
            task_id = f"dm_{millis}_{suffix}"
            if task_id not in self._tasks:
                return task_id

    async def schedule(
        self,
        recipient_id: str,
        origin_channel_id: str,
        payload: str,
        delay_minutes: float,
        origin: OriginSnapshot,
        log_chat_id: Optional[str] = None,
    ) -> str:
        """Create a pending task and arm its timer; return the task id.

        Returns as soon as the timer is armed (and the optional "scheduled"
        notice is sent); it never waits for the delay itself.
        """

        if delay_minutes < 0:
            raise ValueError("delay_minutes must not be negative")

        delay_seconds = delay_minutes * 60
        with self._lock:
            task_id = self._new_task_id()
            task = DelayedTask(
                id=task_id,
                recipient_id=recipient_id,
                origin_channel_id=origin_channel_id,
                payload=payload,
                scheduled_time=datetime.fromtimestamp(self._clock.now() + delay_seconds, tz=timezone.utc),
                origin=origin,
                max_attempts=self._max_attempts,
                log_chat_id=log_chat_id,
            )
            self._tasks[task_id] = task
            self._timers[task_id] = self._clock.call_later(delay_seconds, self.execute, task_id)
            snapshot = task.snapshot()

        LOGGER.info(
            "Scheduled delayed message for user %s in %s minutes. Task ID: %s",
            recipient_id,
            delay_minutes,
            task_id,
        )
        if log_chat_id:
            await self._notify(log_chat_id, format_scheduled_notice(snapshot, int(delay_minutes), self._tz_name))
        return task_id

    async def execute(self, task_id: str) -> None:
        """Run one delivery attempt. Normally invoked by the task's timer."""

        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                LOGGER.warning("Task %s not found (cancelled or finished)", task_id)
                return
            self._timers.pop(task_id, None)
            task.attempts += 1
            attempt = task.attempts

        LOGGER.info("Executing delayed message %s (attempt %s/%s)", task_id, attempt, task.max_attempts)
        try:
            await self._sender.send(task.recipient_id, task.payload, parse_mode="md")
        except DeliveryError as exc:
            await self._on_failure(task, exc.detail)
            return
        except Exception as exc:
            LOGGER.exception("Unexpected error while sending delayed message %s", task_id)
            await self._on_failure(task, str(exc) or type(exc).__name__)
            return

        with self._lock:
            if self._tasks.get(task_id) is not task:
                LOGGER.info("Delayed message %s was cancelled during delivery", task_id)
                return
            task.status = TaskStatus.SENT
            task.last_error = None
            del self._tasks[task_id]
            snapshot = task.snapshot()

        LOGGER.info("Delayed message %s sent successfully", task_id)
        if snapshot.log_chat_id:
            await self._notify(snapshot.log_chat_id, format_sent_notice(snapshot, self._now(), self._tz_name))

    async def _on_failure(self, task: DelayedTask, detail: str) -> None:
        LOGGER.error("Failed to send delayed message %s: %s", task.id, detail)
        with self._lock:
            if self._tasks.get(task.id) is not task:
                LOGGER.info("Delayed message %s was cancelled during delivery", task.id)
                return
            task.last_error = detail
            if task.attempts < task.max_attempts:
                retry_seconds = self._retry_delay_minutes * 60
                task.scheduled_time = datetime.fromtimestamp(self._clock.now() + retry_seconds, tz=timezone.utc)
                self._timers[task.id] = self._clock.call_later(retry_seconds, self.execute, task.id)
                LOGGER.info(
                    "Scheduled retry for delayed message %s in %s minutes",
                    task.id,
                    self._retry_delay_minutes,
                )
                return
            task.status = TaskStatus.FAILED
            del self._tasks[task.id]
            snapshot = task.snapshot()

        LOGGER.error("Delayed message %s failed after %s attempts", snapshot.id, snapshot.max_attempts)
        if snapshot.log_chat_id:
            await self._notify(snapshot.log_chat_id, format_failed_notice(snapshot, detail))

    def cancel(self, task_id: str) -> bool:
        """Disarm and drop a task. Returns False when no such task exists."""

        with self._lock:
            task = self._tasks.pop(task_id, None)
            timer = self._timers.pop(task_id, None)
        if timer is not None:
            timer.cancel()
        if task is None:
            return False
        LOGGER.info("Cancelled delayed message %s", task_id)
        return True

    def list_pending(self) -> List[DelayedTask]:
        with self._lock:
            tasks = [task.snapshot() for task in self._tasks.values()]
        return sorted(tasks, key=lambda task: task.scheduled_time)

    def get(self, task_id: str) -> Optional[DelayedTask]:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.snapshot() if task is not None else None

    def shutdown(self) -> int:
        """Disarm every timer on process shutdown; returns how many were live."""

        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            count = len(self._tasks)
        for timer in timers:
            timer.cancel()
        if count:
            LOGGER.warning("Shutting down with %s pending delayed messages", count)
        return count

    async def _notify(self, chat_id: str, text: str) -> None:
        # Lifecycle notices are best effort and never change task state.
        try:
            await self._sender.send(chat_id, text, parse_mode="md")
        except Exception:
            LOGGER.exception("Failed to send log message to %s", chat_id)
