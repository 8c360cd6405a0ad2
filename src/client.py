"""Telegram client factory for vacuumer.

We explicitly manage the client's lifecycle (connect/authorize/
run_until_disconnected) so it is obvious when the session is created and
when it ends.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from telethon import TelegramClient
from telethon.sessions import StringSession

from core.errors import ConfigurationError

CONNECTION_RETRIES = 5


def build_client(environ: Optional[Mapping[str, str]] = None) -> TelegramClient:
    """Create a Telethon client from environment variables.

    API_ID/API_HASH come from .env via python-dotenv. When SESSION_STRING is
    set the session lives in memory (useful on servers without a writable
    disk); otherwise SESSION_NAME (default "vacuumer") names a local
    .session file.
    """

    if environ is None:
        load_dotenv()
        environ = os.environ

    api_id = environ.get("API_ID")
    api_hash = environ.get("API_HASH")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise ConfigurationError("Missing API_ID or API_HASH in environment")
    try:
        api_id_value = int(api_id)
    except ValueError as exc:
        raise ConfigurationError("API_ID must be numeric") from exc

    session_string = (environ.get("SESSION_STRING") or "").strip()
    if session_string:
        session = StringSession(session_string)
        logging.getLogger(__name__).info("Initializing Telegram client from SESSION_STRING")
    else:
        session = environ.get("SESSION_NAME", "vacuumer")
        logging.getLogger(__name__).info("Initializing Telegram client with session file %s", session)

    return TelegramClient(session, api_id_value, api_hash, connection_retries=CONNECTION_RETRIES)
