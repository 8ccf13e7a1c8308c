"""
audit/redaction.py -- Strip secrets from bodies before they are logged.

Anything stored in the audit table passes through summarize_body(). JSON
bodies are parsed and every sensitive key is replaced with REDACTED at any
depth; bodies that are not JSON get a regex pass that masks
password-looking key/value pairs. The result is capped at a fixed number
of characters.
"""

from __future__ import annotations

import json
import re
from typing import Any

REDACTED = "[REDACTED]"
TRUNCATED_SUFFIX = "...[truncated]"

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"password", "hashed_password", "password_hash", "token", "access_token", "secret_key"}
)

_KV_RE = re.compile(
    r"(?P<key>password|hashed_password|password_hash|access_token|token|secret_key)"
    r"(?P<sep>[\"']?\s*[:=]\s*[\"']?)(?P<value>[^\"'&,\s}]+)",
    re.IGNORECASE,
)


def redact(value: Any) -> Any:
    """Return a copy of value with every sensitive key's value replaced."""
    if isinstance(value, dict):
        return {k: (REDACTED if str(k).lower() in SENSITIVE_KEYS else redact(v)) for k, v in value.items()}
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def _mask_text(text: str) -> str:
    return _KV_RE.sub(lambda m: f"{m.group('key')}{m.group('sep')}{REDACTED}", text)


def summarize_body(raw: bytes | str | None, limit: int = 1000) -> str | None:
    """Redact and truncate a request or response body for the audit log.

    The returned string, marker included, is never longer than limit.
    """
    if not raw:
        return None
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        parsed = json.loads(text)
    except ValueError:
        summary = _mask_text(text)
    else:
        summary = json.dumps(redact(parsed), separators=(",", ":"))
    if len(summary) > limit:
        return summary[: max(limit - len(TRUNCATED_SUFFIX), 0)] + TRUNCATED_SUFFIX
    return summary
