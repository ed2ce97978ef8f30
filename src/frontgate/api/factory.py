"""FastAPI application factory with role-based route mounting."""

import os
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import FastAPI, Request, Response

from frontgate.observability.correlation import (
    CORRELATION_ID_HEADER,
    bind_correlation_id,
    new_correlation_id,
    unbind_correlation_id,
)

from .auth import JwksCache, OidcSettings
from .errors import register_exception_handlers
from .routers import public, worker
from .routes import (
    companies,
    conference_bookings,
    conference_rooms,
    public_conference,
    public_otp,
    public_visitors,
    subscription,
    visitors,
    webhooks_billing,
)

AppRole = Literal["public", "worker"]


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    app.state.jwks_cache.teardown()


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app = FastAPI(title="Frontgate", docs_url=None, redoc_url=None, lifespan=_lifespan)

    oidc_settings = OidcSettings.from_env()
    app.state.oidc_settings = oidc_settings
    app.state.jwks_cache = JwksCache()
    app.state.jwks_cache.init(oidc_settings.jwks_url)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or new_correlation_id()
        token = bind_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            unbind_correlation_id(token)

    register_exception_handlers(app)

    app.include_router(public.router)
    app.include_router(companies.router)
    app.include_router(subscription.router)
    app.include_router(conference_rooms.router)
    app.include_router(conference_bookings.router)
    app.include_router(visitors.router)
    app.include_router(public_otp.router)
    app.include_router(public_conference.router)
    app.include_router(public_visitors.router)
    app.include_router(webhooks_billing.router)

    if role == "worker":
        app.include_router(worker.router)

    return app
