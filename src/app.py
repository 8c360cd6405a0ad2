"""Application entry point for the vacuumer watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings as settings_module
from adapters.telegram_source import TelethonMessageSource
from client import build_client
from core.errors import ConfigurationError
from core.monitor import build_orchestrator
from core.processor import ManualCheckResult, MessageProcessor
from get_session import authorize, login
from settings import AppSettings, load_settings

NAME = "VACUUMER"
FONT = "tarty-1"

EXIT_CONFIG_ERROR = 2

def _print_banner() -> None:
    tprint(NAME, FONT, space=1)

class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message

DEFAULT_REDACT_PATTERNS = ["API_HASH", "SESSION_STRING", "2FA"]
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = (config or {}).get("redact", {})
    if not redact_cfg.get("enabled", True):
        return []
    names = redact_cfg.get("patterns", DEFAULT_REDACT_PATTERNS)
    found = {os.getenv(name) for name in names} - {None, ""}
    # Longest first so a secret that contains another is masked whole.
    return sorted(found, key=len, reverse=True)

def _log_file_handler(file_cfg: dict) -> RotatingFileHandler:
    path = file_cfg.get("path", "logs/vacuumer.log")
    if not os.path.isabs(path):
        path = os.path.join(settings_module.PROJECT_ROOT, path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )

def _configure_logging(config: Optional[dict], console: bool = True) -> None:
    """Set up console and rotating-file logging from the "logging" section."""

    config = config or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)

    handlers: list[logging.Handler] = []
    if console and config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        handlers.append(_log_file_handler(file_cfg))
    if not handlers:
        return

    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # Telethon is chatty at INFO (reconnects, update gaps).
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))

def _load_settings_or_exit() -> AppSettings:
    try:
        return load_settings()
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.INFO)
        logging.getLogger(__name__).error("Invalid monitoring configuration: %s", exc)
        raise SystemExit(EXIT_CONFIG_ERROR) from exc

def _run(app_settings: AppSettings) -> int:
    logger = logging.getLogger(__name__)
    logger.info("Starting vacuumer")

    try:
        client = build_client()
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIG_ERROR

    adapter = TelethonMessageSource(client)
    orchestrator = build_orchestrator(
        app_settings.policy,
        adapter,
        app_settings.acquisition,
        app_settings.notifications,
    )

    async def _main() -> int:
        await client.connect()
        await authorize(client)
        adapter.mark_authorized()

        if not await orchestrator.start():
            logger.error("Monitoring did not start")
            await client.disconnect()
            return 1

        logger.info("Client connected. Monitoring via %s...", orchestrator.mode)
        try:
            await client.run_until_disconnected()
        finally:
            await orchestrator.shutdown()
        return 0

    try:
        return client.loop.run_until_complete(_main())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        client.loop.run_until_complete(orchestrator.shutdown())
        client.loop.run_until_complete(client.disconnect())
        return 0

def _print_check_result(result: ManualCheckResult) -> None:
    verdict = result.verdict
    print(f"forward: {'yes' if verdict.should_forward else 'no'}")
    print(f"reason:  {verdict.reason}")
    if verdict.matched_keywords:
        print(f"matched: {', '.join(verdict.matched_keywords)}")
    if result.preview:
        print("")
        print(result.preview)
    if result.sent:
        print("")
        print("sent to output chat")

def _check(app_settings: AppSettings, text: str, send: bool) -> int:
    tz_name = app_settings.notifications.timezone
    if not send:
        processor = MessageProcessor(app_settings.policy, None, tz_name=tz_name)
        _print_check_result(asyncio.run(processor.check(text)))
        return 0

    client = build_client()
    adapter = TelethonMessageSource(client)
    processor = MessageProcessor(app_settings.policy, adapter, tz_name=tz_name)

    async def _send_check() -> ManualCheckResult:
        await client.connect()
        try:
            await authorize(client)
            return await processor.check(text, send=True)
        finally:
            await client.disconnect()

    result = client.loop.run_until_complete(_send_check())
    _print_check_result(result)
    return 0 if result.sent or not result.verdict.should_forward else 1

def _chats() -> int:
    client = build_client()
    adapter = TelethonMessageSource(client)

    async def _list() -> None:
        await client.connect()
        try:
            await authorize(client)
            index = 0
            async for info in adapter.iter_group_chats():
                index += 1
                print(f"{index}. {info.kind} | {info.title} | {info.id}")
            if not index:
                print("No groups or channels found.")
        finally:
            await client.disconnect()

    client.loop.run_until_complete(_list())
    return 0

def _login() -> int:
    client = build_client()
    session_string = client.loop.run_until_complete(login(client))
    print("")
    print("Login successful. For headless deployments add this line to .env:")
    print(f"SESSION_STRING={session_string}")
    return 0

def _console(app_settings: AppSettings) -> int:
    from frontend.app import MonitorConsoleApp

    MonitorConsoleApp(app_settings).run()
    return 0

def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="vacuumer")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the watcher")
    subparsers.add_parser("console", help="Start the watcher with the task console")
    check_parser = subparsers.add_parser("check", help="Run text through the keyword filter")
    check_parser.add_argument("text", help="Message text to check")
    check_parser.add_argument("--send", action="store_true", help="Forward a match to the output chat")
    subparsers.add_parser("chats", help="List groups and channels with their ids")
    subparsers.add_parser("login", help="Log in and print a SESSION_STRING")

    args = parser.parse_args(argv)

    _print_banner()
    if args.command == "login":
        _configure_logging({})
        sys.exit(_login())
    if args.command == "chats":
        _configure_logging({})
        sys.exit(_chats())

    app_settings = _load_settings_or_exit()
    if args.command == "console":
        # Log lines on stderr would garble the terminal UI.
        _configure_logging(app_settings.logging, console=False)
        sys.exit(_console(app_settings))

    _configure_logging(app_settings.logging)
    if args.command == "check":
        sys.exit(_check(app_settings, args.text, args.send))
    sys.exit(_run(app_settings))

if __name__ == "__main__":
    main()
