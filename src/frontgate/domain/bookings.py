"""Conference room booking with overlap detection.

Overlap formula:  existing.start < new.end AND existing.end > new.start
Strict inequality lets a booking start exactly when another ends.

Only BOOKED rows conflict. Every write path runs in one transaction that
first locks the room row (SELECT ... FOR UPDATE), so concurrent requests for
the same room serialize and the second one re-reads the committed state
before its overlap check. The no_room_booking_overlap exclusion constraint
is the second layer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from html import escape
from typing import Literal

from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from frontgate.domain.errors import (
    InvalidInputError,
    NotFoundError,
    PastScheduleError,
    RoomLockedError,
    SlotConflictError,
)
from frontgate.domain.quota import assert_can_add
from frontgate.domain.rooms import Room, get_room
from frontgate.domain.subscription import ResourceKind, Subscription
from frontgate.domain.validation import is_valid_email
from frontgate.infra.db import advisory_xact_lock
from frontgate.infra.mailer import Mailer
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

_TIME_12H = re.compile(r"^(1[0-2]|[1-9]):([0-5]\d)\s?(AM|PM)$", re.IGNORECASE)

_BOOKING_COLUMNS = (
    "id, room_id, booking_date, start_time, end_time, booked_by, "
    "requester_email, purpose, status"
)


class BookingStatus(str, Enum):
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"
    RESCHEDULED = "RESCHEDULED"


@dataclass
class Booking:
    id: int
    room_id: int
    booking_date: date
    start_time: time
    end_time: time
    booked_by: str
    requester_email: str | None
    purpose: str | None
    status: str

    @classmethod
    def from_row(cls, row: tuple) -> "Booking":
        return cls(*row)

    def to_dict(self, *, public: bool = False) -> dict:
        data = {
            "id": self.id,
            "room_id": self.room_id,
            "booking_date": self.booking_date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "booked_by": self.booked_by,
            "purpose": self.purpose,
            "status": self.status,
        }
        if not public:
            data["requester_email"] = self.requester_email
        return data


# ── Time parsing ──────────────────────────────────────────────────────────────


def parse_12h_time(value: str, field: str = "start_time") -> time:
    """Parse strict ``H:MM AM/PM`` (hour 1-12, minute 00-59) into a 24h time.

    Raises:
        InvalidInputError: On any other format.
    """
    match = _TIME_12H.match((value or "").strip())
    if match is None:
        raise InvalidInputError.single(field, "Time must be in H:MM AM/PM format")
    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if meridiem == "AM":
        hour = 0 if hour == 12 else hour
    else:
        hour = 12 if hour == 12 else hour + 12
    return time(hour, minute)


def parse_window(start_time: str, end_time: str) -> tuple[time, time]:
    """Parse both ends of a booking window; end must be after start."""
    errors = []
    start = end = None
    try:
        start = parse_12h_time(start_time, "start_time")
    except InvalidInputError as exc:
        errors.extend(exc.errors)
    try:
        end = parse_12h_time(end_time, "end_time")
    except InvalidInputError as exc:
        errors.extend(exc.errors)
    if errors:
        raise InvalidInputError(errors)
    if end <= start:
        raise InvalidInputError.single("end_time", "End time must be after start time")
    return start, end


def assert_not_past(booking_date: date, start: time, now_local: datetime) -> None:
    """Reject windows that begin at or before the tenant's current time."""
    today = now_local.date()
    if booking_date < today:
        raise PastScheduleError("Cannot book a date in the past")
    if booking_date == today and start <= now_local.time().replace(tzinfo=None):
        raise PastScheduleError("Start time must be later than the current time")


# ── Conflict detection ────────────────────────────────────────────────────────


def check_slot_conflict(
    cur: PgCursor,
    *,
    company_id: int,
    room_id: int,
    booking_date: date,
    start: time,
    end: time,
    exclude_booking_id: int | None = None,
) -> tuple[int, time, time] | None:
    """Find the earliest BOOKED booking overlapping ``[start, end)``.

    Returns:
        (booking_id, start_time, end_time) of the conflict, or None.
    """
    conditions = [
        "company_id = %s",
        "room_id = %s",
        "booking_date = %s",
        "status = %s",
        "start_time < %s",  # existing start < new end
        "end_time > %s",    # existing end > new start
    ]
    params: list = [company_id, room_id, booking_date, BookingStatus.BOOKED.value, end, start]

    if exclude_booking_id is not None:
        conditions.append("id <> %s")
        params.append(exclude_booking_id)

    cur.execute(
        f"""
        SELECT id, start_time, end_time
        FROM conference_bookings
        WHERE {" AND ".join(conditions)}
        ORDER BY start_time
        LIMIT 1
        """,
        params,
    )
    row = cur.fetchone()
    if row is None:
        return None

    logger.info(
        "booking slot conflict",
        extra={
            "extra_fields": safe_log_context(
                company_id=company_id,
                room_id=room_id,
                booking_date=booking_date.isoformat(),
                requested_start=start.strftime("%H:%M"),
                requested_end=end.strftime("%H:%M"),
                conflicting_booking_id=row[0],
            )
        },
    )
    return row[0], row[1], row[2]


def assert_no_slot_conflict(
    cur: PgCursor,
    *,
    company_id: int,
    room_id: int,
    booking_date: date,
    start: time,
    end: time,
    exclude_booking_id: int | None = None,
) -> None:
    """Raise SlotConflictError describing the conflicting window, if any."""
    conflict = check_slot_conflict(
        cur,
        company_id=company_id,
        room_id=room_id,
        booking_date=booking_date,
        start=start,
        end=end,
        exclude_booking_id=exclude_booking_id,
    )
    if conflict is not None:
        raise SlotConflictError(room_id, conflict[0], conflict[1], conflict[2])


def _lock_bookable_room(cur: PgCursor, company_id: int, room_id: int) -> Room:
    room = get_room(cur, company_id, room_id, lock=True)
    if not room.is_active:
        raise RoomLockedError(room_id, "This room is locked. Upgrade your plan to book it.")
    return room


# ── Operations ────────────────────────────────────────────────────────────────


def create_booking(
    cur: PgCursor,
    sub: Subscription,
    *,
    room_id: int,
    booking_date: date,
    start_time: str,
    end_time: str,
    booked_by: str,
    now_local: datetime,
    purpose: str | None = None,
    requester_email: str | None = None,
) -> Booking:
    """Create a BOOKED booking inside the caller's transaction.

    Steps (each gated on the previous):
    1. Parse the window and reject the past
    2. Lock the room row, verifying tenant ownership and activation
    3. Booking quota, serialized per tenant when the plan is limited
    4. Overlap check against BOOKED rows
    5. Insert

    Raises:
        InvalidInputError, PastScheduleError, NotFoundError, RoomLockedError,
        QuotaExceededError, SlotConflictError
    """
    if not (booked_by or "").strip():
        raise InvalidInputError.single("booked_by", "Booked by is required")
    if requester_email and not is_valid_email(requester_email.strip()):
        raise InvalidInputError.single("requester_email", "Invalid email address")
    start, end = parse_window(start_time, end_time)
    assert_not_past(booking_date, start, now_local)

    _lock_bookable_room(cur, sub.company_id, room_id)

    if sub.booking_limit is not None:
        advisory_xact_lock(cur, f"quota:bookings:{sub.company_id}")
        assert_can_add(cur, sub, ResourceKind.BOOKINGS)

    assert_no_slot_conflict(
        cur,
        company_id=sub.company_id,
        room_id=room_id,
        booking_date=booking_date,
        start=start,
        end=end,
    )

    try:
        cur.execute(
            f"""
            INSERT INTO conference_bookings
                (company_id, room_id, booking_date, start_time, end_time,
                 booked_by, requester_email, purpose, status)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_BOOKING_COLUMNS}
            """,
            (
                sub.company_id,
                room_id,
                booking_date,
                start,
                end,
                booked_by.strip(),
                requester_email,
                purpose,
                BookingStatus.BOOKED.value,
            ),
        )
    except pg_errors.ExclusionViolation:
        raise SlotConflictError(room_id)

    booking = Booking.from_row(cur.fetchone())
    logger.info(
        "booking created",
        extra={
            "extra_fields": safe_log_context(
                company_id=sub.company_id,
                room_id=room_id,
                booking_id=booking.id,
                booking_date=booking_date.isoformat(),
            )
        },
    )
    return booking


def reschedule_booking(
    cur: PgCursor,
    company_id: int,
    booking_id: int,
    *,
    now_local: datetime,
    booking_date: date | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
) -> Booking:
    """Move a BOOKED booking to a new window, re-checking overlap against
    every other booking of the room. Status stays BOOKED.

    Raises:
        NotFoundError: Booking missing or not BOOKED.
        InvalidInputError, PastScheduleError, RoomLockedError, SlotConflictError
    """
    cur.execute(
        f"""
        SELECT {_BOOKING_COLUMNS}
        FROM conference_bookings
        WHERE id = %s AND company_id = %s AND status = %s
        FOR UPDATE
        """,
        (booking_id, company_id, BookingStatus.BOOKED.value),
    )
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("booking")
    current = Booking.from_row(row)

    new_date = booking_date or current.booking_date
    if start_time and end_time:
        start, end = parse_window(start_time, end_time)
    else:
        start = parse_12h_time(start_time, "start_time") if start_time else current.start_time
        end = parse_12h_time(end_time, "end_time") if end_time else current.end_time
        if end <= start:
            raise InvalidInputError.single("end_time", "End time must be after start time")
    assert_not_past(new_date, start, now_local)

    _lock_bookable_room(cur, company_id, current.room_id)
    assert_no_slot_conflict(
        cur,
        company_id=company_id,
        room_id=current.room_id,
        booking_date=new_date,
        start=start,
        end=end,
        exclude_booking_id=booking_id,
    )

    try:
        cur.execute(
            f"""
            UPDATE conference_bookings
            SET booking_date = %s, start_time = %s, end_time = %s, updated_at = now()
            WHERE id = %s AND company_id = %s
            RETURNING {_BOOKING_COLUMNS}
            """,
            (new_date, start, end, booking_id, company_id),
        )
    except pg_errors.ExclusionViolation:
        raise SlotConflictError(current.room_id)

    return Booking.from_row(cur.fetchone())


def cancel_booking(cur: PgCursor, company_id: int, booking_id: int) -> Booking:
    """Flip a BOOKED booking to CANCELLED, freeing its slot.

    Raises:
        NotFoundError: Booking missing or not currently BOOKED.
    """
    cur.execute(
        f"""
        UPDATE conference_bookings
        SET status = %s, updated_at = now()
        WHERE id = %s AND company_id = %s AND status = %s
        RETURNING {_BOOKING_COLUMNS}
        """,
        (BookingStatus.CANCELLED.value, booking_id, company_id, BookingStatus.BOOKED.value),
    )
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("booking")
    return Booking.from_row(row)


def list_bookings(
    cur: PgCursor,
    company_id: int,
    *,
    room_id: int | None = None,
    booking_date: date | None = None,
    booked_only: bool = False,
) -> list[Booking]:
    conditions = ["company_id = %s"]
    params: list = [company_id]
    if room_id is not None:
        conditions.append("room_id = %s")
        params.append(room_id)
    if booking_date is not None:
        conditions.append("booking_date = %s")
        params.append(booking_date)
    if booked_only:
        conditions.append("status = %s")
        params.append(BookingStatus.BOOKED.value)

    cur.execute(
        f"""
        SELECT {_BOOKING_COLUMNS}
        FROM conference_bookings
        WHERE {" AND ".join(conditions)}
        ORDER BY booking_date, start_time, id
        """,
        params,
    )
    return [Booking.from_row(r) for r in cur.fetchall()]


def booking_dashboard(cur: PgCursor, company_id: int, today: date) -> dict:
    cur.execute(
        """
        SELECT
            (SELECT COUNT(*) FROM conference_rooms WHERE company_id = %s),
            (SELECT COUNT(*) FROM conference_bookings WHERE company_id = %s),
            (SELECT COUNT(*) FROM conference_bookings
              WHERE company_id = %s AND booking_date = %s AND status = 'BOOKED'),
            (SELECT COUNT(*) FROM conference_bookings
              WHERE company_id = %s AND status = 'CANCELLED')
        """,
        (company_id, company_id, company_id, today, company_id),
    )
    row = cur.fetchone()
    return {
        "rooms": row[0],
        "total_bookings": row[1],
        "today_bookings": row[2],
        "cancelled": row[3],
    }


# ── Notifications ─────────────────────────────────────────────────────────────

BookingEvent = Literal["created", "rescheduled", "cancelled"]

_SUBJECTS = {
    "created": "Conference room booked",
    "rescheduled": "Conference room booking rescheduled",
    "cancelled": "Conference room booking cancelled",
}


def notify_booking(mailer: Mailer, booking: Booking, room_name: str, event: BookingEvent) -> bool:
    """Best-effort notice to the requester; call only after commit."""
    if not booking.requester_email:
        return False

    body = (
        f"<p>Hello {escape(booking.booked_by)},</p>"
        f"<p>Your booking for <b>{escape(room_name)}</b> on {booking.booking_date:%d %b %Y} "
        f"from {booking.start_time:%I:%M %p} to {booking.end_time:%I:%M %p} "
        f"has been {event}.</p>"
    )
    return mailer.send(booking.requester_email, _SUBJECTS[event], body, on_failure="log")
