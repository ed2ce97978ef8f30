"""Exception handlers translating errors into JSON responses."""

from __future__ import annotations

import psycopg2
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from frontgate.domain.errors import DomainError, TooManyRequestsError
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header", "form")]
    return ".".join(parts) or "request"


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    headers = None
    if isinstance(exc, TooManyRequestsError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    if exc.status_code < 500:
        logger.info(
            "request denied",
            extra={
                "extra_fields": safe_log_context(
                    path=request.url.path,
                    code=exc.code,
                    status=exc.status_code,
                )
            },
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": _field_name(tuple(err.get("loc", ()))), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    message = errors[0]["message"] if len(errors) == 1 else "Invalid input"
    return JSONResponse(
        status_code=400,
        content={"detail": message, "code": "invalid_input", "errors": errors},
    )


async def database_error_handler(request: Request, exc: psycopg2.OperationalError) -> JSONResponse:
    logger.error(
        "database unavailable",
        exc_info=exc,
        extra={"extra_fields": safe_log_context(path=request.url.path)},
    )
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable, please try again", "code": "unavailable"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled error",
        exc_info=exc,
        extra={"extra_fields": safe_log_context(path=request.url.path, error_type=type(exc).__name__)},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(psycopg2.OperationalError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
