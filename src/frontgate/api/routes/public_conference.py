"""Public booking page.

GET  /public/companies/{slug}                              → company card
GET  /public/companies/{slug}/rooms                        → active rooms
GET  /public/companies/{slug}/bookings?room_id=&date=      → BOOKED slots
POST /public/companies/{slug}/bookings                     → book (OTP session token)
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Path, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from frontgate.api.auth import extract_bearer_token
from frontgate.domain import bookings as bookings_domain
from frontgate.domain import otp as otp_domain
from frontgate.domain.companies import get_company_by_slug
from frontgate.domain.rooms import get_room, list_rooms
from frontgate.domain.subscription import resolve_subscription
from frontgate.infra.mailer import Mailer, get_mailer

router = APIRouter(prefix="/public/companies", tags=["public"])


class PublicBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    room_id: int
    booking_date: date
    start_time: str
    end_time: str
    booked_by: str = Field(..., min_length=1, max_length=120)
    purpose: str | None = Field(default=None, max_length=500)


@router.get("/{slug}")
def get_public_company(slug: str = Path(...)) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        company = get_company_by_slug(cur, slug)
    return {"id": company.id, "name": company.name, "slug": company.slug, "logo_url": company.logo_url}


@router.get("/{slug}/rooms")
def get_public_rooms(slug: str = Path(...)) -> list[dict]:
    from frontgate.infra.db import txn

    with txn() as cur:
        company = get_company_by_slug(cur, slug)
        rooms = list_rooms(cur, company.id, active_only=True)
    return [{"id": r.id, "room_number": r.room_number, "name": r.name, "capacity": r.capacity} for r in rooms]


@router.get("/{slug}/bookings")
def get_public_bookings(
    slug: str = Path(...),
    room_id: int = Query(...),
    booking_date: date = Query(..., alias="date"),
) -> list[dict]:
    from frontgate.infra.db import txn

    with txn() as cur:
        company = get_company_by_slug(cur, slug)
        bookings = bookings_domain.list_bookings(
            cur, company.id, room_id=room_id, booking_date=booking_date, booked_only=True
        )
    return [b.to_dict(public=True) for b in bookings]


@router.post("/{slug}/bookings", status_code=201)
def create_public_booking(
    request: Request,
    body: PublicBookingRequest,
    slug: str = Path(...),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Book as a verified guest; the verified e-mail is the requester and the
    session token is consumed in the same transaction."""
    from frontgate.infra.db import txn

    token = extract_bearer_token(request)

    with txn() as cur:
        company = get_company_by_slug(cur, slug)
        sub = resolve_subscription(cur, company.id)
        session = otp_domain.lock_session(cur, company.id, token)
        booking = bookings_domain.create_booking(
            cur,
            sub,
            room_id=body.room_id,
            booking_date=body.booking_date,
            start_time=body.start_time,
            end_time=body.end_time,
            booked_by=body.booked_by,
            purpose=body.purpose,
            requester_email=session.email,
            now_local=company.local_now(),
        )
        otp_domain.consume_session(cur, session)
        room = get_room(cur, company.id, booking.room_id)

    bookings_domain.notify_booking(mailer, booking, room.name, "created")
    return booking.to_dict(public=True)
