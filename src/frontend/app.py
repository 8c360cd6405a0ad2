"""Textual console for a running monitor.

The watcher runs inside the console's event loop, so the task table always
shows the live scheduler state. Keys: c cancels the selected task, r
refreshes, q quits (stopping the monitor first).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from rich.text import Text
from telethon import TelegramClient
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import DataTable, Footer, Input, Static

from adapters.telegram_source import TelethonMessageSource
from client import build_client
from core.formatting import format_timestamp
from core.monitor import MonitoringOrchestrator, build_orchestrator
from core.processor import ManualCheckResult, MessageProcessor
from settings import AppSettings

from .constants import CLIP_CHARS, REFRESH_SECONDS, TELEGRAM_BLUE

LOGGER = logging.getLogger(__name__)


def _clip(value: str, limit: int = CLIP_CHARS) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


class MonitorConsoleApp(App):
    """Policy view, pending task table and manual check input."""

    CSS = """
    Screen {
        background: #0f1a21;
        color: #e8eef5;
    }

    #header {
        height: 4;
        padding: 0 2;
        border-bottom: solid #2a3a46;
    }

    #header-left, #header-right {
        width: 1fr;
    }

    #header-right {
        text-align: right;
    }

    .subtle {
        color: #c6d2dd;
    }

    .panel-title {
        text-style: bold;
        padding: 1 0 0 0;
    }

    #body {
        height: 1fr;
        padding: 0 2;
    }

    #policy-panel {
        width: 40;
        padding-right: 2;
    }

    #tasks-panel {
        width: 1fr;
    }

    #tasks-table {
        height: 1fr;
    }

    #check-panel {
        height: auto;
        max-height: 16;
        padding: 0 2 1 2;
        border-top: solid #2a3a46;
    }

    .status-running {
        color: #5fd787;
    }

    .status-error {
        color: #ff5f5f;
    }
    """

    BINDINGS = [
        ("c", "cancel_task", "Cancel task"),
        ("r", "refresh", "Refresh"),
        ("q", "request_quit", "Quit"),
    ]

    def __init__(
        self,
        app_settings: AppSettings,
        client_factory: Callable[[], TelegramClient] = build_client,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._settings = app_settings
        self._client_factory = client_factory
        self._client: Optional[TelegramClient] = None
        self._orchestrator: Optional[MonitoringOrchestrator] = None

    def compose(self) -> ComposeResult:
        with Container(id="header"):
            with Horizontal():
                with Vertical(id="header-left"):
                    yield Static(self._title_text(), id="title")
                    yield Static(f"mode: {self._settings.acquisition.mode}", classes="subtle")
                with Vertical(id="header-right"):
                    yield Static("status: starting", id="header-status")
        with Horizontal(id="body"):
            with Vertical(id="policy-panel"):
                yield Static("Policy", classes="panel-title")
                yield Static(self._policy_text(), id="policy", classes="subtle")
                yield Static("Chats", classes="panel-title")
                yield Static("validating...", id="chats", classes="subtle")
            with Vertical(id="tasks-panel"):
                yield Static("Pending delayed messages", classes="panel-title")
                yield DataTable(id="tasks-table", cursor_type="row")
        with Vertical(id="check-panel"):
            yield Static("Check a message", classes="panel-title")
            yield Input(placeholder="Type message text and press Enter", id="check-input")
            yield Static("", id="check-output")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#tasks-table", DataTable)
        table.add_column("task", key="id", width=30)
        table.add_column("recipient", key="recipient", width=22)
        table.add_column("chat", key="chat", width=22)
        table.add_column("attempts", key="attempts", width=8)
        table.add_column("next send", key="scheduled", width=18)
        table.zebra_stripes = True
        self.set_interval(REFRESH_SECONDS, self._refresh_tasks)
        self.run_worker(self._start_monitoring(), name="monitor", exclusive=True, exit_on_error=False)

    async def _start_monitoring(self) -> None:
        try:
            client = self._client_factory()
            self._client = client
            await client.connect()
            if not await client.is_user_authorized():
                self._set_status("not authorized - run `vacuumer login` first", error=True)
                return

            adapter = TelethonMessageSource(client)
            adapter.mark_authorized()
            orchestrator = build_orchestrator(
                self._settings.policy,
                adapter,
                self._settings.acquisition,
                self._settings.notifications,
            )
            self._orchestrator = orchestrator
            if not await orchestrator.start():
                self._set_status("not started (see log)", error=True)
                self.query_one("#chats", Static).update("none accessible")
                return
        except Exception as exc:
            LOGGER.exception("Console failed to start monitoring")
            self._set_status(f"error: {exc}", error=True)
            return

        self._set_status("running")
        lines = [f"{channel.info.title} ({channel.configured_id})" for channel in orchestrator.monitored_channels()]
        self.query_one("#chats", Static).update("\n".join(lines))

    def _set_status(self, message: str, error: bool = False) -> None:
        status = self.query_one("#header-status", Static)
        status.remove_class("status-running", "status-error")
        status.add_class("status-error" if error else "status-running")
        status.update(f"status: {message}")

    def _refresh_tasks(self) -> None:
        if self._orchestrator is None:
            return
        table = self.query_one("#tasks-table", DataTable)
        cursor_row = table.cursor_row
        tz_name = self._settings.notifications.timezone
        table.clear()
        for task in self._orchestrator.list_pending_tasks():
            recipient = task.origin.sender_handle or task.origin.sender_name
            table.add_row(
                task.id,
                _clip(recipient),
                _clip(task.origin.channel_title),
                f"{task.attempts}/{task.max_attempts}",
                format_timestamp(task.scheduled_time, tz_name, seconds=False),
                key=task.id,
            )
        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))

    def action_refresh(self) -> None:
        self._refresh_tasks()

    def action_cancel_task(self) -> None:
        if self._orchestrator is None:
            return
        table = self.query_one("#tasks-table", DataTable)
        if not table.row_count:
            self.notify("No pending tasks")
            return
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        task_id = str(row_key.value)
        if self._orchestrator.cancel_task(task_id):
            self.notify(f"Cancelled {task_id}")
        else:
            self.notify(f"{task_id} already finished", severity="warning")
        self._refresh_tasks()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value.strip()
        if not text:
            return
        if self._orchestrator is not None:
            result = await self._orchestrator.check_message(text)
        else:
            tz_name = self._settings.notifications.timezone
            result = await MessageProcessor(self._settings.policy, None, tz_name=tz_name).check(text)
        self.query_one("#check-output", Static).update(self._check_text(result))
        event.input.value = ""

    async def action_request_quit(self) -> None:
        if self._orchestrator is not None:
            await self._orchestrator.shutdown()
        if self._client is not None and self._client.is_connected():
            await self._client.disconnect()
        self.exit()

    def _policy_text(self) -> str:
        policy = self._settings.policy
        lines = [
            f"keywords: {', '.join(policy.keywords)}",
            f"exclude: {', '.join(policy.exclude_keywords) or '-'}",
            f"min length: {policy.min_message_length or '-'}",
            f"forward to: {policy.target_chat_id}",
            f"delayed replies: {'on' if policy.delayed_messages_enabled else 'off'}",
        ]
        if policy.delayed_messages_enabled:
            lines.append(f"delay: {policy.default_delay_minutes} min")
            lines.append(f"log chat: {policy.log_chat_id or '-'}")
        return "\n".join(lines)

    @staticmethod
    def _check_text(result: ManualCheckResult) -> Text:
        verdict = result.verdict
        if verdict.should_forward:
            text = Text("MATCH ", style="bold green")
        else:
            text = Text("SKIP ", style="bold red")
        text.append(verdict.reason)
        if result.preview:
            text.append("\n\n" + result.preview, style="#c6d2dd")
        return text

    @staticmethod
    def _title_text() -> Text:
        return Text.assemble(
            ("VACUUMER", TELEGRAM_BLUE),
            (" > Monitor Console", "bold"),
        )
