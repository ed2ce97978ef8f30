"""Redaction for log context. Visitor and requester data must pass through here."""

import re
from typing import Any

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_OTP_PATTERN = re.compile(r"(?<!\d)\d{6}(?!\d)")

# Values under these keys are never logged, whatever they look like.
_SECRET_KEY_PARTS = ("otp", "code_plain", "token", "password", "secret")

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    """Mask e-mail addresses, phone numbers and six-digit codes."""
    result = _EMAIL_PATTERN.sub(_REDACTED, value)
    result = _PHONE_PATTERN.sub(_REDACTED, result)
    return _OTP_PATTERN.sub(_REDACTED, result)


def redact_value(value: Any) -> str:
    """String form of ``value`` that is safe to log."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in _SECRET_KEY_PARTS)


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a log context dict with every value redacted."""
    return {
        k: _REDACTED if _is_secret_key(k) and v is not None else redact_value(v)
        for k, v in kwargs.items()
    }
