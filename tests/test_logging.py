from __future__ import annotations

import logging

from app import _RedactingFormatter, _collect_redaction_values


def test_redacting_formatter_masks_secrets() -> None:
    formatter = _RedactingFormatter(["s3cret", ""], fmt="%(message)s")
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "token=%s", ("s3cret",), None)
    assert formatter.format(record) == "token=***"


def test_collect_redaction_values(monkeypatch) -> None:
    monkeypatch.setenv("API_HASH", "abc")
    monkeypatch.setenv("SESSION_STRING", "abcdef")
    monkeypatch.delenv("2FA", raising=False)

    assert _collect_redaction_values({}) == ["abcdef", "abc"]
    assert _collect_redaction_values({"redact": {"enabled": False}}) == []
    assert _collect_redaction_values({"redact": {"patterns": ["API_HASH"]}}) == ["abc"]
