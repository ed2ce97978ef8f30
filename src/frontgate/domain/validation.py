"""Contact field formats shared by visitor and booking forms."""

import re

_PHONE_RE = re.compile(r"^\+?[\d\s\-()]{10,}$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_phone(phone: str) -> bool:
    return bool(_PHONE_RE.match(phone or ""))


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))
