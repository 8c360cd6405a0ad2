"""Configuration loading for vacuumer.

All user-editable settings (chats, keywords, delayed replies, acquisition,
logging) live in a single JSON file for quick edits without touching Python.
Secrets stay in .env. The plain environment variables
(TARGET_CHATS, KEYWORDS, ...) override the file, so a container can be
configured without a config.json at all.

Nothing is loaded at import time: load_settings() builds one immutable
AppSettings value at startup that is passed down explicitly.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from core.config import (
    DEFAULT_DELAY_MINUTES,
    AcquisitionConfig,
    MonitoringPolicy,
    NotificationConfig,
    build_policy,
)
from core.errors import ConfigurationError

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Default location of the JSON config; VACUUMER_CONFIG points elsewhere.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class AppSettings:
    policy: MonitoringPolicy
    acquisition: AcquisitionConfig
    notifications: NotificationConfig
    logging: dict = field(default_factory=dict)
    config_path: Optional[str] = None


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _parse_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


def _as_list(value: Any, name: str) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return _split_csv(value)
    if isinstance(value, list):
        return value
    raise ConfigurationError(f"{name} must be a list or a comma separated string")


def _load_json_config(path: str) -> dict:
    """Load config.json; a missing file yields an empty config."""

    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    except OSError as exc:
        raise ConfigurationError(f"{path}: {exc.strerror or exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: config root must be an object")
    return data


def _apply_env_overrides(config: dict, environ: Mapping[str, str]) -> dict:
    """Overlay TARGET_CHATS, KEYWORDS and the other environment variables."""

    monitoring = dict(config.get("monitoring", {}))
    delayed = dict(config.get("delayed_messages", {}))
    acquisition = dict(config.get("acquisition", {}))

    if environ.get("TARGET_CHATS"):
        monitoring["target_chats"] = _split_csv(environ["TARGET_CHATS"])
    if environ.get("KEYWORDS"):
        monitoring["keywords"] = _split_csv(environ["KEYWORDS"])
    if environ.get("TARGET_CHAT_ID"):
        monitoring["target_chat_id"] = environ["TARGET_CHAT_ID"].strip()
    if environ.get("EXCLUDE_KEYWORDS"):
        monitoring["exclude_keywords"] = _split_csv(environ["EXCLUDE_KEYWORDS"])
    if environ.get("MIN_MESSAGE_LENGTH"):
        monitoring["min_message_length"] = environ["MIN_MESSAGE_LENGTH"]

    if environ.get("DELAYED_MESSAGES_ENABLED"):
        delayed["enabled"] = environ["DELAYED_MESSAGES_ENABLED"]
    if environ.get("DELAYED_MESSAGE_DELAY"):
        delayed["delay_minutes"] = environ["DELAYED_MESSAGE_DELAY"]
    if environ.get("DELAYED_MESSAGE_TEXT"):
        delayed["text"] = environ["DELAYED_MESSAGE_TEXT"]
    if environ.get("LOG_CHAT_ID"):
        delayed["log_chat_id"] = environ["LOG_CHAT_ID"].strip()

    if environ.get("MONITOR_MODE"):
        acquisition["mode"] = environ["MONITOR_MODE"].strip().lower()

    merged = dict(config)
    merged["monitoring"] = monitoring
    merged["delayed_messages"] = delayed
    merged["acquisition"] = acquisition
    return merged


def build_settings(config: Mapping[str, Any], config_path: Optional[str] = None) -> AppSettings:
    """Validate a raw config mapping into AppSettings."""

    monitoring = config.get("monitoring", {}) or {}
    delayed = config.get("delayed_messages", {}) or {}
    acquisition = config.get("acquisition", {}) or {}
    notifications = config.get("notifications", {}) or {}

    missing = [key for key in ("target_chats", "keywords", "target_chat_id") if not monitoring.get(key)]
    if missing:
        raise ConfigurationError(
            "Missing required monitoring configuration: "
            + ", ".join(missing)
            + ". Set them in config.json or via TARGET_CHATS, KEYWORDS and TARGET_CHAT_ID."
        )

    min_length = monitoring.get("min_message_length")
    policy = build_policy(
        target_chats=_as_list(monitoring["target_chats"], "target_chats"),
        keywords=_as_list(monitoring["keywords"], "keywords"),
        target_chat_id=monitoring["target_chat_id"],
        exclude_keywords=_as_list(monitoring.get("exclude_keywords"), "exclude_keywords"),
        min_message_length=_parse_int(min_length, "min_message_length") if min_length not in (None, "") else None,
        delayed_messages_enabled=_parse_bool(delayed.get("enabled", False), "delayed_messages.enabled"),
        default_delay_minutes=_parse_int(delayed.get("delay_minutes", DEFAULT_DELAY_MINUTES), "delay_minutes"),
        delayed_message=delayed.get("text"),
        log_chat_id=delayed.get("log_chat_id"),
    )

    acquisition_config = AcquisitionConfig(
        mode=str(acquisition.get("mode", "push")),
        poll_interval_seconds=_parse_float(acquisition.get("poll_interval_seconds", 30), "poll_interval_seconds"),
        messages_per_check=_parse_int(acquisition.get("messages_per_check", 10), "messages_per_check"),
        channel_delay_seconds=_parse_float(acquisition.get("channel_delay_seconds", 0.3), "channel_delay_seconds"),
        seed_delay_seconds=_parse_float(acquisition.get("seed_delay_seconds", 0.5), "seed_delay_seconds"),
        ready_timeout_seconds=_parse_int(acquisition.get("ready_timeout_seconds", 60), "ready_timeout_seconds"),
    )

    notification_config = NotificationConfig(
        timezone=str(notifications.get("timezone", "Europe/Moscow")),
        startup_message=_parse_bool(notifications.get("startup_message", True), "startup_message"),
    )

    return AppSettings(
        policy=policy,
        acquisition=acquisition_config,
        notifications=notification_config,
        logging=dict(config.get("logging", {}) or {}),
        config_path=config_path,
    )


def load_settings(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> AppSettings:
    """Load config.json plus environment overrides into AppSettings.

    Raises ConfigurationError for malformed files or an invalid policy; the
    monitor must not start in that case.
    """

    if environ is None:
        load_dotenv()
        environ = os.environ
    path = path or environ.get("VACUUMER_CONFIG") or CONFIG_PATH
    config = _apply_env_overrides(_load_json_config(path), environ)
    return build_settings(config, config_path=path)
