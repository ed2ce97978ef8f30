"""Public e-mail verification for self-service booking and registration.

POST /public/companies/{slug}/otp/send     {email}        → code mailed
POST /public/companies/{slug}/otp/verify   {email, otp}   → session token

The token goes back as ``Authorization: Bearer <token>`` on the single
registration or booking call it authorizes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, ConfigDict, Field

from frontgate.domain import otp as otp_domain
from frontgate.domain.companies import get_company_by_slug
from frontgate.domain.subscription import resolve_subscription
from frontgate.infra.mailer import Mailer, get_mailer
from frontgate.infra.settings import get_settings

router = APIRouter(prefix="/public/companies", tags=["public"])


class SendOtpRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = Field(..., max_length=254)


class VerifyOtpRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = Field(..., max_length=254)
    otp: str = Field(..., min_length=1, max_length=12)


@router.post("/{slug}/otp/send")
def send_otp(
    body: SendOtpRequest,
    slug: str = Path(...),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Mail a 6-digit code. 429 with Retry-After inside the resend cooldown."""
    from frontgate.infra.db import txn

    with txn() as cur:
        company = get_company_by_slug(cur, slug)
        resolve_subscription(cur, company.id)
        expires_in = otp_domain.send_otp(cur, mailer, company, body.email)

    return {"message": "Verification code sent", "expires_in_seconds": expires_in}


@router.post("/{slug}/otp/verify")
def verify_otp(
    body: VerifyOtpRequest,
    slug: str = Path(...),
) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        company = get_company_by_slug(cur, slug)

    token = otp_domain.verify_otp(company.id, body.email, body.otp)
    return {
        "verified": True,
        "session_token": token,
        "expires_in_seconds": get_settings().otp_session_minutes * 60,
    }
