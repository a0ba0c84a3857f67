from __future__ import annotations

import logging

from randimg.core.logging import RedactFilter
from randimg.core.redact import REDACTED, redact_any, redact_text


def test_redact_text_masks_bearer_and_token_query() -> None:
    text = "auth=Bearer abc.def url=https://x.test/metrics?token=tok_1&x=1"
    out = redact_text(text)
    assert "abc.def" not in out
    assert "tok_1" not in out
    assert "Bearer " + REDACTED in out
    assert "&x=1" in out


def test_redact_any_masks_sensitive_keys() -> None:
    out = redact_any({"Authorization": "Bearer x", "nested": {"metrics_token": "t"}, "url": "https://i.test/a.jpg"})
    assert out == {"Authorization": REDACTED, "nested": {"metrics_token": REDACTED}, "url": "https://i.test/a.jpg"}


def test_redact_filter_rewrites_formatted_message() -> None:
    record = logging.LogRecord(
        name="t",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="metrics auth header=%s",
        args=("Bearer tok_secret",),
        exc_info=None,
    )
    assert RedactFilter().filter(record) is True
    assert "tok_secret" not in record.getMessage()


def test_module_loggers_redact_without_configure_logging(caplog) -> None:  # type: ignore[no-untyped-def]
    from randimg.core.config import load_settings

    with caplog.at_level(logging.WARNING, logger="randimg.core.config"):
        settings = load_settings({"DATABASE_URL": "", "DEGRADED_MODE": "https://x.test/?token=tok_leak"})

    assert settings.degraded_mode == "static"
    messages = [r.getMessage() for r in caplog.records if r.name == "randimg.core.config"]
    assert any("config_invalid_choice" in m for m in messages)
    assert all("tok_leak" not in m for m in messages)
    assert all("tok_leak" not in line for line in caplog.text.splitlines())
