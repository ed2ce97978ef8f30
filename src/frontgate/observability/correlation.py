"""Request correlation id carried in a context variable."""

import uuid
from contextvars import ContextVar, Token

CORRELATION_ID_HEADER = "X-Correlation-ID"

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str:
    """Correlation id of the current request ("" outside a request)."""
    return _correlation_id.get()


def bind_correlation_id(cid: str) -> Token[str]:
    return _correlation_id.set(cid)


def unbind_correlation_id(token: Token[str]) -> None:
    _correlation_id.reset(token)
