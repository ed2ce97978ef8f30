"""Visitor check-in / checkout state machine.

    IN --checkout--> OUT   (terminal for the visit record)

Visitor codes read ``CMP<company_id>-<YYYYMMDD>-<NNNNN>``. NNNNN is the
1-based ordinal of the visitor among the tenant's check-ins on that
tenant-local day. Ordinals come from a per-(tenant, day) counter row bumped
with an atomic upsert in the same transaction as the visitor insert, so
concurrent check-ins serialize on the counter row and never share an ordinal.
A failed check-in rolls the counter back with everything else.

Pass mail is a post-commit side effect: ``pass_mail_sent`` flips false->true
once, and only after a successful send.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from html import escape

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from frontgate.domain.companies import Company
from frontgate.domain.errors import InvalidInputError, NotFoundError
from frontgate.domain.quota import assert_can_add, usage_report
from frontgate.domain.subscription import ResourceKind, Subscription
from frontgate.domain.validation import is_valid_email, is_valid_phone
from frontgate.infra.mailer import Attachment, Mailer, OnFailure
from frontgate.infra.storage import BlobStorage, validate_image
from frontgate.infra.time import utc_now
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

PROFILE_FIELDS = (
    "from_company",
    "department",
    "designation",
    "address",
    "city",
    "state",
    "postal_code",
    "country",
    "person_to_meet",
    "purpose",
    "belongings",
    "id_type",
    "id_number",
)

_VISITOR_COLUMNS = (
    "id, visitor_code, name, phone, email, photo_url, status, check_in, "
    "check_out, pass_mail_sent, " + ", ".join(PROFILE_FIELDS)
)


class VisitorStatus(str, Enum):
    IN = "IN"
    OUT = "OUT"


@dataclass
class VisitorInput:
    """Check-in form data."""

    name: str
    phone: str
    email: str | None = None
    profile: dict[str, str | None] = field(default_factory=dict)

    def validate(self) -> None:
        errors = []
        if not (self.name or "").strip():
            errors.append({"field": "name", "message": "Visitor name is required"})
        if not (self.phone or "").strip():
            errors.append({"field": "phone", "message": "Phone number is required"})
        elif not is_valid_phone(self.phone.strip()):
            errors.append({"field": "phone", "message": "Invalid phone number"})
        if self.email and not is_valid_email(self.email.strip()):
            errors.append({"field": "email", "message": "Invalid email address"})
        unknown = set(self.profile) - set(PROFILE_FIELDS)
        for name in sorted(unknown):
            errors.append({"field": name, "message": "Unknown field"})
        if errors:
            raise InvalidInputError(errors)


@dataclass
class Visitor:
    id: int
    visitor_code: str
    name: str
    phone: str
    email: str | None
    photo_url: str | None
    status: str
    check_in: datetime
    check_out: datetime | None
    pass_mail_sent: bool
    profile: dict[str, str | None]

    @classmethod
    def from_row(cls, row: tuple) -> "Visitor":
        return cls(*row[:10], profile=dict(zip(PROFILE_FIELDS, row[10:])))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "visitor_code": self.visitor_code,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "photo_url": self.photo_url,
            "status": self.status,
            "check_in": self.check_in.isoformat() if self.check_in else None,
            "check_out": self.check_out.isoformat() if self.check_out else None,
            "pass_mail_sent": self.pass_mail_sent,
            **self.profile,
        }


# ── Codes ─────────────────────────────────────────────────────────────────────


def format_visitor_code(company_id: int, day: date, ordinal: int) -> str:
    return f"CMP{company_id}-{day:%Y%m%d}-{ordinal:05d}"


def photo_key(company_id: int, visitor_code: str) -> str:
    return f"companies/{company_id}/visitors/{visitor_code}.jpg"


def next_daily_ordinal(cur: PgCursor, company_id: int, day: date) -> int:
    """Atomically claim the next ordinal for (tenant, day).

    The first claim of a day seeds the counter from visitors already recorded
    that day; later claims increment under the counter row lock.
    """
    cur.execute(
        """
        INSERT INTO visitor_daily_sequences (company_id, day, last_seq)
        VALUES (
            %s, %s,
            (SELECT COUNT(*) FROM visitors WHERE company_id = %s AND visit_date = %s) + 1
        )
        ON CONFLICT (company_id, day)
        DO UPDATE SET last_seq = visitor_daily_sequences.last_seq + 1
        RETURNING last_seq
        """,
        (company_id, day, company_id, day),
    )
    return int(cur.fetchone()[0])


# ── Check-in / checkout ───────────────────────────────────────────────────────


def check_in(
    cur: PgCursor,
    sub: Subscription,
    storage: BlobStorage,
    data: VisitorInput,
    *,
    photo: bytes,
    photo_mime_type: str | None,
    now_local: datetime,
) -> Visitor:
    """Register a visitor as IN inside the caller's transaction.

    Steps:
    1. Validate the form and photo
    2. Visitor quota
    3. Claim the day ordinal and derive the code
    4. Upload the photo under the code (failure aborts the check-in)
    5. Insert the visitor row with code and photo URL

    Raises:
        InvalidInputError, QuotaExceededError, StorageError
    """
    data.validate()
    validate_image("photo", photo_mime_type, photo)
    assert_can_add(cur, sub, ResourceKind.VISITORS)

    day = now_local.date()
    ordinal = next_daily_ordinal(cur, sub.company_id, day)
    code = format_visitor_code(sub.company_id, day, ordinal)

    photo_url = storage.upload(photo, photo_mime_type or "image/jpeg", photo_key(sub.company_id, code))

    profile = {name: (data.profile.get(name) or None) for name in PROFILE_FIELDS}
    cur.execute(
        f"""
        INSERT INTO visitors (
            company_id, visitor_code, name, phone, email, photo_url,
            status, check_in, visit_date, pass_mail_sent,
            {", ".join(PROFILE_FIELDS)}
        )
        VALUES (
            %s, %s, %s, %s, %s, %s, %s, %s, %s, FALSE,
            {", ".join(["%s"] * len(PROFILE_FIELDS))}
        )
        RETURNING {_VISITOR_COLUMNS}
        """,
        (
            sub.company_id,
            code,
            data.name.strip(),
            data.phone.strip(),
            (data.email or "").strip() or None,
            photo_url,
            VisitorStatus.IN.value,
            now_local,
            day,
            *profile.values(),
        ),
    )
    visitor = Visitor.from_row(cur.fetchone())

    logger.info(
        "visitor checked in",
        extra={
            "extra_fields": safe_log_context(
                company_id=sub.company_id,
                visitor_id=visitor.id,
                visitor_code=code,
                has_email=visitor.email is not None,
            )
        },
    )
    return visitor


def check_out(cur: PgCursor, company_id: int, visitor_code: str) -> Visitor:
    """IN -> OUT via one conditional update.

    Only one of several concurrent calls can match ``status = 'IN'``; the
    others see zero rows and get NotFound, leaving check_out untouched.

    Raises:
        NotFoundError: Unknown code or already checked out.
    """
    cur.execute(
        f"""
        UPDATE visitors
        SET status = %s, check_out = %s
        WHERE visitor_code = %s AND company_id = %s AND status = %s
        RETURNING {_VISITOR_COLUMNS}
        """,
        (VisitorStatus.OUT.value, utc_now(), visitor_code, company_id, VisitorStatus.IN.value),
    )
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("visitor", "Visitor not found or already checked out")
    return Visitor.from_row(row)


def get_visitor(cur: PgCursor, company_id: int, visitor_code: str) -> Visitor:
    cur.execute(
        f"SELECT {_VISITOR_COLUMNS} FROM visitors WHERE visitor_code = %s AND company_id = %s",
        (visitor_code, company_id),
    )
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("visitor")
    return Visitor.from_row(row)


def get_public_pass(cur: PgCursor, visitor_code: str) -> dict:
    """Pass view for the QR link: no contact details or identity documents."""
    cur.execute(
        """
        SELECT v.visitor_code, v.name, v.photo_url, v.status, v.check_in, v.check_out,
               v.person_to_meet, v.purpose, c.name, c.logo_url
        FROM visitors v
        JOIN companies c ON c.id = v.company_id
        WHERE v.visitor_code = %s
        """,
        (visitor_code,),
    )
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("visitor")
    return {
        "visitor_code": row[0],
        "name": row[1],
        "photo_url": row[2],
        "status": row[3],
        "check_in": row[4].isoformat() if row[4] else None,
        "check_out": row[5].isoformat() if row[5] else None,
        "person_to_meet": row[6],
        "purpose": row[7],
        "company": {"name": row[8], "logo_url": row[9]},
    }


def visitor_dashboard(cur: PgCursor, sub: Subscription, today: date) -> dict:
    """Today's counters, active/checked-out lists and plan usage."""
    cur.execute(
        """
        SELECT
            COUNT(*) FILTER (WHERE visit_date = %s),
            COUNT(*) FILTER (WHERE status = 'IN'),
            COUNT(*) FILTER (WHERE status = 'OUT' AND visit_date = %s)
        FROM visitors
        WHERE company_id = %s
        """,
        (today, today, sub.company_id),
    )
    counts = cur.fetchone()

    cur.execute(
        f"""
        SELECT {_VISITOR_COLUMNS}
        FROM visitors
        WHERE company_id = %s AND (status = 'IN' OR visit_date = %s)
        ORDER BY check_in DESC
        """,
        (sub.company_id, today),
    )
    visitors = [Visitor.from_row(r) for r in cur.fetchall()]

    return {
        "stats": {"today": counts[0], "inside": counts[1], "checked_out_today": counts[2]},
        "active": [v.to_dict() for v in visitors if v.status == VisitorStatus.IN.value],
        "checked_out": [v.to_dict() for v in visitors if v.status == VisitorStatus.OUT.value],
        "plan": {
            "plan": sub.plan.value,
            "trial_ends_at": sub.trial_ends_at.isoformat() if sub.trial_ends_at else None,
            **usage_report(cur, sub)[ResourceKind.VISITORS.value],
        },
    }


# ── Pass mail ─────────────────────────────────────────────────────────────────


def _pass_html(company: Company, visitor: Visitor) -> str:
    checked_in = visitor.check_in.strftime("%d %b %Y, %I:%M %p") if visitor.check_in else ""
    photo = (
        f'<p><img src="{escape(visitor.photo_url)}" alt="Visitor photo" width="160"></p>'
        if visitor.photo_url
        else ""
    )
    return (
        f"<h2>{escape(company.name)} - Visitor Pass</h2>"
        f"{photo}"
        f"<p><b>Name:</b> {escape(visitor.name)}<br>"
        f"<b>Visitor ID:</b> {escape(visitor.visitor_code)}<br>"
        f"<b>Check-in:</b> {checked_in}</p>"
        "<p>Please show this pass at the reception.</p>"
    )


def send_pass_mail(
    mailer: Mailer,
    company: Company,
    visitor: Visitor,
    *,
    on_failure: OnFailure,
    photo: bytes | None = None,
) -> bool:
    """Send the pass to the visitor's own address."""
    if not visitor.email:
        raise InvalidInputError.single("email", "Visitor has no email address")
    attachments = [Attachment(f"{visitor.visitor_code}.jpg", photo, "image/jpeg")] if photo else []
    return mailer.send(
        visitor.email,
        f"Your visitor pass for {company.name}",
        _pass_html(company, visitor),
        attachments,
        on_failure=on_failure,
    )


def mark_pass_mail_sent(cur: PgCursor, company_id: int, visitor_id: int) -> bool:
    """Flip pass_mail_sent once; False if it was already set."""
    cur.execute(
        """
        UPDATE visitors
        SET pass_mail_sent = TRUE
        WHERE id = %s AND company_id = %s AND pass_mail_sent = FALSE
        """,
        (visitor_id, company_id),
    )
    return cur.rowcount == 1


def dispatch_pass_mail(
    mailer: Mailer,
    company: Company,
    visitor: Visitor,
    *,
    photo: bytes | None = None,
) -> bool:
    """Best-effort pass mail after the check-in has committed.

    Failure is logged by the mailer and otherwise ignored; the visitor stays
    checked in with pass_mail_sent = false.
    """
    from frontgate.infra.db import txn

    if not visitor.email or visitor.pass_mail_sent:
        return False
    if not send_pass_mail(mailer, company, visitor, on_failure="log", photo=photo):
        return False

    try:
        with txn() as cur:
            mark_pass_mail_sent(cur, company.id, visitor.id)
    except psycopg2.Error:
        logger.error(
            "could not record pass mail delivery",
            exc_info=True,
            extra={"extra_fields": safe_log_context(company_id=company.id, visitor_id=visitor.id)},
        )
        return True
    visitor.pass_mail_sent = True
    return True
