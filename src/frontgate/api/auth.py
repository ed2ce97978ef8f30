"""OIDC JWT authentication.

Provides:
- JwksCache: signing-key cache with init / get_or_refresh / teardown
- verify_token(): validates a JWT and returns its subject claim
- get_current_user(): FastAPI dependency resolving the local user row
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import jwt
import requests
from fastapi import HTTPException, Request

_JWKS_CACHE_TTL = 600  # 10 minutes


@dataclass
class CurrentUser:
    """Authenticated user and the tenant they belong to."""

    id: str
    external_subject: str
    email: str | None
    name: str | None
    company_id: int
    role: str


@dataclass(frozen=True)
class OidcSettings:
    issuer: str | None
    audience: str | None
    jwks_url: str | None
    authorized_parties: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> "OidcSettings":
        raw = os.environ.get("OIDC_AUTHORIZED_PARTIES", "")
        return cls(
            issuer=os.environ.get("OIDC_ISSUER"),
            audience=os.environ.get("OIDC_AUDIENCE"),
            jwks_url=os.environ.get("OIDC_JWKS_URL"),
            authorized_parties=tuple(p.strip() for p in raw.split(",") if p.strip()),
        )

    @property
    def configured(self) -> bool:
        return bool(self.issuer and self.audience and self.jwks_url)


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


class JwksCache:
    """JWKS document cached for a TTL.

    One instance lives on ``app.state``. Concurrent refreshes are serialized
    by a lock, so a burst of requests after expiry fetches the document once.
    """

    def __init__(
        self,
        ttl: float = _JWKS_CACHE_TTL,
        fetcher: Callable[[str], dict[str, Any]] = _fetch_jwks,
    ) -> None:
        self.ttl = ttl
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._jwks: dict[str, Any] | None = None
        self._fetched_at = 0.0
        self._url: str | None = None

    def init(self, jwks_url: str | None) -> None:
        with self._lock:
            self._url = jwks_url
            self._jwks = None
            self._fetched_at = 0.0

    def get_or_refresh(self, force_refresh: bool = False) -> dict[str, Any]:
        """Cached JWKS, refetched when expired or forced.

        Raises:
            HTTPException: 503 when the identity provider is unreachable.
        """
        with self._lock:
            now = time.monotonic()
            fresh = self._jwks is not None and (now - self._fetched_at) < self.ttl
            if fresh and not force_refresh:
                return self._jwks
            if not self._url:
                raise HTTPException(status_code=401, detail="OIDC not configured")
            try:
                self._jwks = self._fetcher(self._url)
            except requests.RequestException:
                raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
            self._fetched_at = now
            return self._jwks

    def find_key(self, kid: str, force_refresh: bool = False) -> dict[str, Any] | None:
        for key in self.get_or_refresh(force_refresh).get("keys", []):
            if key.get("kid") == kid:
                return key
        return None

    def teardown(self) -> None:
        with self._lock:
            self._jwks = None
            self._fetched_at = 0.0


def _decode(token: str, key_data: dict[str, Any], settings: OidcSettings) -> dict[str, Any]:
    try:
        public_key = jwt.algorithms.RSAAlgorithm.from_jwk(key_data)
    except (ValueError, TypeError, jwt.InvalidKeyError):
        raise HTTPException(status_code=401, detail="Invalid token")

    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        issuer=settings.issuer,
        audience=settings.audience,
        options={"require": ["exp", "iss", "aud", "sub"]},
    )


def verify_token(token: str, cache: JwksCache, settings: OidcSettings) -> str:
    """Verify JWT and return subject claim.

    An unknown kid or a bad signature triggers one forced JWKS refresh
    (the provider may have rotated keys).

    Raises:
        HTTPException: 401 if token is invalid.
    """
    if not settings.configured:
        raise HTTPException(status_code=401, detail="OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not kid:
        raise HTTPException(status_code=401, detail="Invalid token")

    key_data = cache.find_key(kid) or cache.find_key(kid, force_refresh=True)
    if key_data is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        payload = _decode(token, key_data, settings)
    except jwt.InvalidSignatureError:
        key_data = cache.find_key(kid, force_refresh=True)
        if key_data is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        try:
            payload = _decode(token, key_data, settings)
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid token")
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if settings.authorized_parties and "azp" in payload:
        if payload["azp"] not in settings.authorized_parties:
            raise HTTPException(status_code=401, detail="Invalid token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return sub


def extract_bearer_token(request: Request) -> str:
    """Bearer token from the Authorization header (401 when absent or malformed)."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    return parts[1]


def _get_user_from_db(external_subject: str) -> CurrentUser | None:
    """Lookup user (and tenant membership) by OIDC subject."""
    from frontgate.infra.db import txn

    with txn() as cur:
        cur.execute(
            """
            SELECT id, external_subject, email, name, company_id, role
            FROM users
            WHERE external_subject = %s
            """,
            (external_subject,),
        )
        row = cur.fetchone()
        if row is None:
            return None
        return CurrentUser(
            id=str(row[0]),
            external_subject=row[1],
            email=row[2],
            name=row[3],
            company_id=row[4],
            role=row[5],
        )


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: authenticated user.

    Raises:
        HTTPException: 401 if token invalid/missing, 403 if user not found.
    """
    token = extract_bearer_token(request)
    cache: JwksCache = request.app.state.jwks_cache
    sub = verify_token(token, cache, request.app.state.oidc_settings)

    user = _get_user_from_db(sub)
    if user is None:
        raise HTTPException(status_code=403, detail="User not found")
    return user
