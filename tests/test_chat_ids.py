from __future__ import annotations

import pytest
from telethon.tl.types import PeerChannel, PeerChat, PeerUser

from core.chat_ids import chat_id_variants, is_username, normalize_chat_id


def test_numeric_ids() -> None:
    assert normalize_chat_id(-1001234567890) == "-1001234567890"
    assert normalize_chat_id(" -1001234567890 ") == "-1001234567890"
    assert normalize_chat_id("42") == "42"


def test_usernames_and_links() -> None:
    assert normalize_chat_id("@MyGroup") == "@mygroup"
    assert normalize_chat_id("MyGroup") == "@mygroup"
    assert normalize_chat_id("https://t.me/MyGroup") == "@mygroup"
    assert normalize_chat_id("t.me/my_group/") == "@my_group"
    assert normalize_chat_id("me") == "me"


def test_peers_become_marked_ids() -> None:
    assert normalize_chat_id(PeerChannel(channel_id=123)) == "-100123"
    assert normalize_chat_id(PeerChat(chat_id=55)) == "-55"
    assert normalize_chat_id(PeerUser(user_id=7)) == "7"


@pytest.mark.parametrize("value", ["", "   ", "ab", "@1abc", "hello world", True, 3.5])
def test_invalid_ids(value) -> None:
    with pytest.raises(ValueError):
        normalize_chat_id(value)


def test_is_username() -> None:
    assert is_username("@grp")
    assert not is_username("-100123")


def test_chat_id_variants() -> None:
    assert chat_id_variants("-100123") == {"-100123", "123"}
    assert chat_id_variants("-55") == {"-55", "55"}
    assert chat_id_variants("123") == {"123", "-123", "-100123"}
    assert chat_id_variants("@grp") == {"@grp"}
