"""Interactive Telegram login.

Two methods: a QR code printed to the terminal (scanned from an already
logged-in phone) or a phone code with optional 2FA. The result is an
authorized session that can be exported as a SESSION_STRING so servers
never need an interactive login.
"""

from __future__ import annotations

import asyncio
import logging
import os
from getpass import getpass
from typing import Awaitable, Callable, Dict

import qrcode
from telethon import TelegramClient, errors
from telethon.sessions import StringSession

LOGGER = logging.getLogger(__name__)

QR_TIMEOUT_SECONDS = 120
QR_ATTEMPTS = 3
PROMPT = "vacuumer > "


def _render_qr(url: str) -> None:
    code = qrcode.QRCode(border=1)
    code.add_data(url)
    code.make(fit=True)
    code.print_ascii(invert=True)


def _password() -> str:
    return os.getenv("2FA") or getpass("2FA password: ")


async def _login_qr(client: TelegramClient) -> None:
    token = await client.qr_login()
    for attempt in range(1, QR_ATTEMPTS + 1):
        _render_qr(token.url)
        print("Telegram > Settings > Devices > Link Desktop Device, then scan the code.")
        try:
            await token.wait(timeout=QR_TIMEOUT_SECONDS)
            return
        except asyncio.TimeoutError:
            if attempt == QR_ATTEMPTS:
                raise
            LOGGER.info("QR code expired, generating a new one (%s/%s)", attempt + 1, QR_ATTEMPTS)
            await token.recreate()


async def _login_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
    await client.send_code_request(phone)
    code = input("Login code: ").strip()
    try:
        await client.sign_in(phone=phone, code=code)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_password())


LOGIN_METHODS: Dict[str, Callable[[TelegramClient], Awaitable[None]]] = {
    "qr": _login_qr,
    "phone": _login_phone,
}
_MENU = {"1": "qr", "2": "phone"}


def _choose_method() -> str:
    configured = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if configured in LOGIN_METHODS:
        return configured
    print("")
    print("How do you want to log in?")
    print("  1) QR code")
    print("  2) Phone code")
    print("  3) Exit")
    while True:
        choice = input(PROMPT).strip()
        if choice == "3":
            raise SystemExit(0)
        if choice in _MENU:
            return _MENU[choice]
        print("Please enter 1, 2 or 3.")


async def authorize(client: TelegramClient) -> None:
    """Log in interactively unless the session is already authorized."""

    if await client.is_user_authorized():
        return

    method = _choose_method()
    LOGGER.info("No authorized session found, logging in via %s", method)
    try:
        await LOGIN_METHODS[method](client)
    except errors.SessionPasswordNeededError:
        # QR logins on 2FA accounts end here.
        await client.sign_in(password=_password())

    me = await client.get_me()
    LOGGER.info("Logged in as %s (@%s)", " ".join(filter(None, [me.first_name, me.last_name])), me.username or "-")


def export_session_string(client: TelegramClient) -> str:
    """Return the current auth session as a StringSession value."""

    return StringSession.save(client.session)


async def login(client: TelegramClient) -> str:
    """Connect, authorize and return a SESSION_STRING for the .env file."""

    await client.connect()
    try:
        await authorize(client)
        return export_session_string(client)
    finally:
        await client.disconnect()
