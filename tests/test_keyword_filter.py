from __future__ import annotations

import logging

from core.config import build_policy
from core.keyword_filter import evaluate, log_verdict


def _policy(**overrides):
    values = dict(
        target_chats=["-1001"],
        keywords=["urgent", "need help"],
        target_chat_id="-1009",
    )
    values.update(overrides)
    return build_policy(**values)


def test_match_is_case_insensitive() -> None:
    verdict = evaluate("This is URGENT", _policy())
    assert verdict.should_forward is True
    assert verdict.matched_keywords == ("urgent",)
    assert verdict.reason == "matched keywords: urgent"


def test_substring_match_without_word_boundaries() -> None:
    verdict = evaluate("Best offers today", _policy(keywords=["offer"]))
    assert verdict.should_forward is True
    assert verdict.matched_keywords == ("offer",)


def test_matched_keywords_follow_policy_order() -> None:
    verdict = evaluate("I NEED HELP, it's urgent", _policy())
    assert verdict.matched_keywords == ("urgent", "need help")


def test_exclude_keyword_vetoes_match() -> None:
    policy = _policy(keywords=["sale"], exclude_keywords=["Spam"])
    verdict = evaluate("Sale! definitely not spam", policy)
    assert verdict.should_forward is False
    assert verdict.matched_keywords == ()
    assert verdict.reason == "contains exclude keywords: spam"


def test_short_message_rejected() -> None:
    verdict = evaluate("  urgent  ", _policy(min_message_length=10))
    assert verdict.should_forward is False
    assert verdict.reason == "message too short (6 < 10)"


def test_length_measured_on_trimmed_text() -> None:
    verdict = evaluate("   urgent!!!   ", _policy(min_message_length=9))
    assert verdict.should_forward is True


def test_empty_and_whitespace_text() -> None:
    assert evaluate("", _policy()).reason == "empty message"
    assert evaluate("   \n\t", _policy()).should_forward is False


def test_no_keywords_matched() -> None:
    verdict = evaluate("hello there", _policy())
    assert verdict.should_forward is False
    assert verdict.reason == "no keywords matched"


def test_log_verdict_levels(caplog) -> None:
    policy = _policy()
    with caplog.at_level(logging.DEBUG, logger="core.keyword_filter"):
        log_verdict("Chat", "x" * 80 + " urgent", evaluate("x" * 80 + " urgent", policy))
        log_verdict("Chat", "nothing", evaluate("nothing", policy))

    match, skip = caplog.records
    assert match.levelno == logging.INFO
    assert "MATCH" in match.getMessage()
    assert "x" * 50 + "..." in match.getMessage()
    assert skip.levelno == logging.DEBUG
    assert "no keywords matched" in skip.getMessage()
