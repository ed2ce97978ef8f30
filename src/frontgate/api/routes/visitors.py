"""Visitor desk endpoints.

POST /visitors                        → check-in (multipart form + photo) (staff+)
GET  /visitors/dashboard              → today's counters and lists (staff+)
GET  /visitors/{code}                 → pass details (staff+)
POST /visitors/{code}/checkout        → IN → OUT (staff+)
POST /visitors/{code}/resend-pass     → re-send the pass mail, blocking (staff+)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Path, UploadFile

from frontgate.api.rbac import TenantContext, require_company_role
from frontgate.domain import visitors as visitors_domain
from frontgate.domain.companies import get_company
from frontgate.domain.errors import InvalidInputError
from frontgate.domain.subscription import read_subscription, resolve_subscription
from frontgate.infra.mailer import Mailer, get_mailer
from frontgate.infra.storage import BlobStorage, get_storage
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

router = APIRouter(prefix="/visitors", tags=["visitors"])


def visitor_form(
    name: str = Form(""),
    phone: str = Form(""),
    email: str | None = Form(None),
    from_company: str | None = Form(None),
    department: str | None = Form(None),
    designation: str | None = Form(None),
    address: str | None = Form(None),
    city: str | None = Form(None),
    state: str | None = Form(None),
    postal_code: str | None = Form(None),
    country: str | None = Form(None),
    person_to_meet: str | None = Form(None),
    purpose: str | None = Form(None),
    belongings: str | None = Form(None),
    id_type: str | None = Form(None),
    id_number: str | None = Form(None),
) -> visitors_domain.VisitorInput:
    """Multipart form fields collected into a VisitorInput."""
    values = locals()
    return visitors_domain.VisitorInput(
        name=name,
        phone=phone,
        email=email or None,
        profile={k: values[k] for k in visitors_domain.PROFILE_FIELDS},
    )


# ── POST /visitors ────────────────────────────────────────────────────────────


@router.post("", status_code=201)
def check_in_visitor(
    data: visitors_domain.VisitorInput = Depends(visitor_form),
    photo: UploadFile | None = File(None),
    ctx: TenantContext = Depends(require_company_role("staff")),
    storage: BlobStorage = Depends(get_storage),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Check a visitor in; the pass mail goes out after commit if an email was given."""
    from frontgate.infra.db import txn

    photo_bytes = photo.file.read() if photo is not None else b""
    photo_type = photo.content_type if photo is not None else None

    with txn() as cur:
        sub = resolve_subscription(cur, ctx.company_id)
        company = get_company(cur, ctx.company_id)
        visitor = visitors_domain.check_in(
            cur,
            sub,
            storage,
            data,
            photo=photo_bytes,
            photo_mime_type=photo_type,
            now_local=company.local_now(),
        )

    visitors_domain.dispatch_pass_mail(mailer, company, visitor, photo=photo_bytes)
    return visitor.to_dict()


# ── GET /visitors/dashboard ───────────────────────────────────────────────────


@router.get("/dashboard")
def visitor_dashboard(
    ctx: TenantContext = Depends(require_company_role("staff")),
) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        sub = read_subscription(cur, ctx.company_id)
        company = get_company(cur, ctx.company_id)
        return visitors_domain.visitor_dashboard(cur, sub, company.local_now().date())


# ── GET /visitors/{visitor_code} ──────────────────────────────────────────────


@router.get("/{visitor_code}")
def get_visitor(
    visitor_code: str = Path(..., description="Visitor code"),
    ctx: TenantContext = Depends(require_company_role("staff")),
) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        visitor = visitors_domain.get_visitor(cur, ctx.company_id, visitor_code)
    return visitor.to_dict()


# ── POST /visitors/{visitor_code}/checkout ────────────────────────────────────


@router.post("/{visitor_code}/checkout")
def check_out_visitor(
    visitor_code: str = Path(..., description="Visitor code"),
    ctx: TenantContext = Depends(require_company_role("staff")),
) -> dict:
    """404 when the code is unknown or the visitor already left."""
    from frontgate.infra.db import txn

    with txn() as cur:
        visitor = visitors_domain.check_out(cur, ctx.company_id, visitor_code)

    logger.info(
        "visitor checked out",
        extra={
            "extra_fields": safe_log_context(
                company_id=ctx.company_id,
                visitor_code=visitor.visitor_code,
            )
        },
    )
    return visitor.to_dict()


# ── POST /visitors/{visitor_code}/resend-pass ─────────────────────────────────


@router.post("/{visitor_code}/resend-pass")
def resend_pass(
    visitor_code: str = Path(..., description="Visitor code"),
    ctx: TenantContext = Depends(require_company_role("staff")),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Explicit re-send: mail failure is reported to the caller."""
    from frontgate.infra.db import txn

    with txn() as cur:
        visitor = visitors_domain.get_visitor(cur, ctx.company_id, visitor_code)
        company = get_company(cur, ctx.company_id)

    if not visitor.email:
        raise InvalidInputError.single("email", "Visitor has no email address")

    visitors_domain.send_pass_mail(mailer, company, visitor, on_failure="propagate")

    with txn() as cur:
        visitors_domain.mark_pass_mail_sent(cur, ctx.company_id, visitor.id)

    return {"visitor_code": visitor.visitor_code, "pass_mail_sent": True}
