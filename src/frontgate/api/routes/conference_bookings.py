"""Conference bookings for the company dashboard.

GET   /conference/bookings?room_id=&date=    → list (staff+)
POST  /conference/bookings                   → create (staff+)
PATCH /conference/bookings/{id}              → reschedule (staff+)
POST  /conference/bookings/{id}/cancel       → cancel (staff+)
GET   /conference/dashboard                  → counters (staff+)

Times are 12-hour strings ("9:30 AM"). Requester notifications are sent
after commit and never fail the request.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from frontgate.api.rbac import TenantContext, require_company_role
from frontgate.domain import bookings as bookings_domain
from frontgate.domain.companies import get_company
from frontgate.domain.rooms import get_room
from frontgate.domain.subscription import resolve_subscription
from frontgate.infra.mailer import Mailer, get_mailer

router = APIRouter(prefix="/conference", tags=["conference"])


# ── Schemas ───────────────────────────────────────────────────────────────────


class CreateBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    room_id: int
    booking_date: date
    start_time: str
    end_time: str
    booked_by: str = Field(..., min_length=1, max_length=120)
    purpose: str | None = Field(default=None, max_length=500)
    requester_email: str | None = Field(default=None, max_length=254)


class RescheduleBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    booking_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None


# ── GET /conference/bookings ──────────────────────────────────────────────────


@router.get("/bookings")
def list_bookings(
    room_id: int | None = Query(None),
    booking_date: date | None = Query(None, alias="date"),
    ctx: TenantContext = Depends(require_company_role("staff")),
) -> list[dict]:
    from frontgate.infra.db import txn

    with txn() as cur:
        bookings = bookings_domain.list_bookings(
            cur, ctx.company_id, room_id=room_id, booking_date=booking_date
        )
    return [b.to_dict() for b in bookings]


# ── POST /conference/bookings ─────────────────────────────────────────────────


@router.post("/bookings", status_code=201)
def create_booking(
    body: CreateBookingRequest,
    ctx: TenantContext = Depends(require_company_role("staff")),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Book a room.

    409 with the conflicting window when the slot overlaps a BOOKED booking.
    """
    from frontgate.infra.db import txn

    with txn() as cur:
        sub = resolve_subscription(cur, ctx.company_id)
        company = get_company(cur, ctx.company_id)
        booking = bookings_domain.create_booking(
            cur,
            sub,
            room_id=body.room_id,
            booking_date=body.booking_date,
            start_time=body.start_time,
            end_time=body.end_time,
            booked_by=body.booked_by,
            purpose=body.purpose,
            requester_email=body.requester_email,
            now_local=company.local_now(),
        )
        room = get_room(cur, ctx.company_id, booking.room_id)

    bookings_domain.notify_booking(mailer, booking, room.name, "created")
    return booking.to_dict()


# ── PATCH /conference/bookings/{booking_id} ───────────────────────────────────


@router.patch("/bookings/{booking_id}")
def reschedule_booking(
    booking_id: int = Path(..., description="Booking ID"),
    body: RescheduleBookingRequest = ...,
    ctx: TenantContext = Depends(require_company_role("staff")),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Move a booking; the new window must be in the future and free."""
    from frontgate.domain.errors import InvalidInputError
    from frontgate.infra.db import txn

    if body.booking_date is None and body.start_time is None and body.end_time is None:
        raise InvalidInputError.single("booking", "No fields to update")

    with txn() as cur:
        resolve_subscription(cur, ctx.company_id)
        company = get_company(cur, ctx.company_id)
        booking = bookings_domain.reschedule_booking(
            cur,
            ctx.company_id,
            booking_id,
            booking_date=body.booking_date,
            start_time=body.start_time,
            end_time=body.end_time,
            now_local=company.local_now(),
        )
        room = get_room(cur, ctx.company_id, booking.room_id)

    bookings_domain.notify_booking(mailer, booking, room.name, "rescheduled")
    return booking.to_dict()


# ── POST /conference/bookings/{booking_id}/cancel ─────────────────────────────


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking(
    booking_id: int = Path(..., description="Booking ID"),
    ctx: TenantContext = Depends(require_company_role("staff")),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Cancel a BOOKED booking; 404 if it is missing or not BOOKED."""
    from frontgate.infra.db import txn

    with txn() as cur:
        booking = bookings_domain.cancel_booking(cur, ctx.company_id, booking_id)
        room = get_room(cur, ctx.company_id, booking.room_id)

    bookings_domain.notify_booking(mailer, booking, room.name, "cancelled")
    return booking.to_dict()


# ── GET /conference/dashboard ─────────────────────────────────────────────────


@router.get("/dashboard")
def dashboard(
    ctx: TenantContext = Depends(require_company_role("staff")),
) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        company = get_company(cur, ctx.company_id)
        return bookings_domain.booking_dashboard(cur, ctx.company_id, company.local_now().date())
