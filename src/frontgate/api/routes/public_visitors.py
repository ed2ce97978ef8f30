"""Public visitor self-registration and pass view.

GET  /public/companies/{slug}/visitor-registration   → company + link, 403 when blocked
POST /public/companies/{slug}/visitors               → register (OTP session token)
GET  /public/visitors/{code}                         → pass for the QR link
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Path, Request, UploadFile

from frontgate.api.auth import extract_bearer_token
from frontgate.api.routes.visitors import visitor_form
from frontgate.domain import otp as otp_domain
from frontgate.domain import visitors as visitors_domain
from frontgate.domain.companies import get_company_by_slug, public_links
from frontgate.domain.subscription import resolve_subscription
from frontgate.infra.mailer import Mailer, get_mailer
from frontgate.infra.storage import BlobStorage, get_storage

router = APIRouter(tags=["public"])


@router.get("/public/companies/{slug}/visitor-registration")
def get_registration_info(slug: str = Path(...)) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        company = get_company_by_slug(cur, slug)
        resolve_subscription(cur, company.id)

    return {
        "company": {"id": company.id, "name": company.name, "logo_url": company.logo_url},
        "registration_url": public_links(company.slug)["visitor_registration_url"],
    }


@router.post("/public/companies/{slug}/visitors", status_code=201)
def register_visitor(
    request: Request,
    slug: str = Path(...),
    data: visitors_domain.VisitorInput = Depends(visitor_form),
    photo: UploadFile | None = File(None),
    storage: BlobStorage = Depends(get_storage),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Self check-in by a verified visitor.

    The e-mail is always the verified address. The OTP session is consumed
    in the check-in transaction, so a failed check-in leaves it usable and a
    successful one makes any retry fail with 401.
    """
    from frontgate.infra.db import txn

    token = extract_bearer_token(request)
    photo_bytes = photo.file.read() if photo is not None else b""
    photo_type = photo.content_type if photo is not None else None

    with txn() as cur:
        company = get_company_by_slug(cur, slug)
        sub = resolve_subscription(cur, company.id)
        session = otp_domain.lock_session(cur, company.id, token)
        data.email = session.email
        visitor = visitors_domain.check_in(
            cur,
            sub,
            storage,
            data,
            photo=photo_bytes,
            photo_mime_type=photo_type,
            now_local=company.local_now(),
        )
        otp_domain.consume_session(cur, session)

    visitors_domain.dispatch_pass_mail(mailer, company, visitor, photo=photo_bytes)
    return {
        "visitor_code": visitor.visitor_code,
        "name": visitor.name,
        "email": visitor.email,
        "status": visitor.status,
        "check_in": visitor.check_in.isoformat(),
        "pass_mail_sent": visitor.pass_mail_sent,
    }


@router.get("/public/visitors/{visitor_code}")
def get_public_pass(visitor_code: str = Path(...)) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        return visitors_domain.get_public_pass(cur, visitor_code)
