from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "***"

_SENSITIVE_KEY_PARTS = (
    "token",
    "authorization",
    "password",
    "secret",
    "cookie",
)

_BEARER_RE = re.compile(r"(?i)\bBearer\s+([^\s]+)")
_TOKEN_QUERY_RE = re.compile(r"(?i)([?&](?:token|access_token|key)=)([^&\s]+)")


def is_sensitive_key(key: str) -> bool:
    key_l = key.lower()
    return any(part in key_l for part in _SENSITIVE_KEY_PARTS)


def redact_text(text: str) -> str:
    text = _BEARER_RE.sub("Bearer " + REDACTED, text)
    text = _TOKEN_QUERY_RE.sub(r"\1" + REDACTED, text)
    return text


def redact_any(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        out: dict[Any, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and is_sensitive_key(k):
                out[k] = REDACTED
            else:
                out[k] = redact_any(v)
        return out
    if isinstance(value, (list, tuple)):
        seq = [redact_any(v) for v in value]
        return type(value)(seq) if isinstance(value, tuple) else seq
    return value
