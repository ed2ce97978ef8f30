"""Shared test helper functions for Frontgate tests.

Regular functions (not fixtures) importable from conftest.py and test modules.
"""

from __future__ import annotations

import base64
import time
from datetime import date, datetime, time as dtime, timedelta, timezone
from unittest.mock import MagicMock

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from frontgate.api.auth import CurrentUser
from frontgate.domain.companies import Company
from frontgate.domain.subscription import (
    DEFAULT_PLAN_LIMITS,
    Plan,
    Subscription,
    SubscriptionStatus,
)

ISSUER = "https://auth.example.com"
AUDIENCE = "frontgate-api"
JWKS_URL = "https://auth.example.com/.well-known/jwks.json"


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, private_key.public_key()


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return base64.urlsafe_b64encode(n.to_bytes(byte_length, "big")).rstrip(b"=").decode()

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = ISSUER,
    aud: str = AUDIENCE,
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp
    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def make_user(company_id: int = 7, role: str = "admin") -> CurrentUser:
    return CurrentUser(
        id="b6a0c5c4-0000-4000-8000-000000000001",
        external_subject="user-123",
        email="admin@acme.test",
        name="Acme Admin",
        company_id=company_id,
        role=role,
    )


def make_subscription(
    plan: Plan = Plan.TRIAL,
    status: SubscriptionStatus = SubscriptionStatus.TRIAL,
    company_id: int = 7,
) -> Subscription:
    future = datetime.now(timezone.utc) + timedelta(days=10)
    return Subscription(
        company_id=company_id,
        plan=plan,
        status=status,
        trial_ends_at=future,
        subscription_ends_at=future,
        limits=DEFAULT_PLAN_LIMITS[plan],
    )


def make_company(company_id: int = 7, slug: str = "acme") -> Company:
    return Company(
        id=company_id,
        name="Acme",
        slug=slug,
        logo_url=None,
        plan="trial",
        subscription_status="trial",
        timezone="Asia/Kolkata",
    )


def room_row(room_id: int = 5, room_number: int = 1, name: str = "Board Room", is_active: bool = True):
    return (room_id, room_number, name, 10, is_active)


def booking_row(
    booking_id: int = 42,
    room_id: int = 5,
    booking_date: date = date(2030, 1, 10),
    start: dtime = dtime(10, 0),
    end: dtime = dtime(11, 0),
    status: str = "BOOKED",
    requester_email: str | None = None,
):
    return (booking_id, room_id, booking_date, start, end, "Asha", requester_email, "Standup", status)


def visitor_row(
    visitor_id: int = 1,
    code: str = "CMP7-20240110-00001",
    email: str | None = None,
    status: str = "IN",
    check_out: datetime | None = None,
    pass_mail_sent: bool = False,
):
    check_in = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)
    base = (
        visitor_id,
        code,
        "Ravi Kumar",
        "+91 98765 43210",
        email,
        f"https://cdn.test/companies/7/visitors/{code}.jpg",
        status,
        check_in,
        check_out,
        pass_mail_sent,
    )
    return base + (None,) * 13


def mock_txn_cursor(mock_txn) -> MagicMock:
    """Wire a patched txn() so ``with txn() as cur`` yields a MagicMock cursor."""
    cur = MagicMock()
    mock_txn.return_value.__enter__.return_value = cur
    mock_txn.return_value.__exit__.return_value = False
    return cur
