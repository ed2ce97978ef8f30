"""Conference room management.

Rooms are created inactive; activation is decided only by the synchronizer.
Locked rooms stay listed and deletable but reject edits. A room can be
deleted only while it has no bookings at all.
"""

from __future__ import annotations

from dataclasses import dataclass

from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from frontgate.domain.errors import (
    DuplicateRoomNumberError,
    InvalidInputError,
    NotFoundError,
    RoomHasBookingsError,
    RoomLockedError,
)
from frontgate.domain.quota import assert_can_add
from frontgate.domain.room_sync import sync_room_activation
from frontgate.domain.subscription import ResourceKind, Subscription
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

_ROOM_COLUMNS = "id, room_number, name, capacity, is_active"


@dataclass
class Room:
    id: int
    room_number: int
    name: str
    capacity: int | None
    is_active: bool

    @classmethod
    def from_row(cls, row: tuple) -> "Room":
        return cls(id=row[0], room_number=row[1], name=row[2], capacity=row[3], is_active=row[4])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "room_number": self.room_number,
            "name": self.name,
            "capacity": self.capacity,
            "is_active": self.is_active,
            "locked": not self.is_active,
        }


def list_rooms(cur: PgCursor, company_id: int, *, active_only: bool = False) -> list[Room]:
    query = f"SELECT {_ROOM_COLUMNS} FROM conference_rooms WHERE company_id = %s"
    if active_only:
        query += " AND is_active = TRUE"
    query += " ORDER BY room_number ASC, id ASC"
    cur.execute(query, (company_id,))
    return [Room.from_row(r) for r in cur.fetchall()]


def get_room(cur: PgCursor, company_id: int, room_id: int, *, lock: bool = False) -> Room:
    """Fetch a room owned by the tenant.

    Raises:
        NotFoundError: Room missing or owned by another tenant.
    """
    query = f"SELECT {_ROOM_COLUMNS} FROM conference_rooms WHERE id = %s AND company_id = %s"
    if lock:
        query += " FOR UPDATE"
    cur.execute(query, (room_id, company_id))
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("room")
    return Room.from_row(row)


def _validate(room_number: int | None, name: str | None, capacity: int | None) -> None:
    errors = []
    if room_number is not None and room_number <= 0:
        errors.append({"field": "room_number", "message": "Room number must be a positive integer"})
    if name is not None and not name.strip():
        errors.append({"field": "name", "message": "Room name is required"})
    if capacity is not None and capacity <= 0:
        errors.append({"field": "capacity", "message": "Capacity must be a positive integer"})
    if errors:
        raise InvalidInputError(errors)


def create_room(
    cur: PgCursor,
    sub: Subscription,
    *,
    room_number: int,
    name: str,
    capacity: int | None = None,
) -> Room:
    """Insert a room (inactive) under the room quota, then resync activation."""
    _validate(room_number, name, capacity)
    assert_can_add(cur, sub, ResourceKind.ROOMS)

    try:
        cur.execute(
            f"""
            INSERT INTO conference_rooms (company_id, room_number, name, capacity, is_active)
            VALUES (%s, %s, %s, %s, FALSE)
            RETURNING {_ROOM_COLUMNS}
            """,
            (sub.company_id, room_number, name.strip(), capacity),
        )
    except pg_errors.UniqueViolation:
        raise DuplicateRoomNumberError(room_number)
    room = Room.from_row(cur.fetchone())

    sync_room_activation(cur, sub.company_id, sub.plan)
    return get_room(cur, sub.company_id, room.id)


def update_room(
    cur: PgCursor,
    company_id: int,
    room_id: int,
    *,
    name: str | None = None,
    capacity: int | None = None,
) -> Room:
    """Rename or resize an active room.

    Raises:
        NotFoundError: Room missing.
        RoomLockedError: Room is locked by the plan.
    """
    _validate(None, name, capacity)
    room = get_room(cur, company_id, room_id, lock=True)

    if not room.is_active:
        logger.info(
            "edit rejected on locked room",
            extra={"extra_fields": safe_log_context(company_id=company_id, room_id=room_id)},
        )
        raise RoomLockedError(room_id, "This room is locked. Upgrade your plan to rename it.")

    new_name = name.strip() if name is not None else room.name
    new_capacity = capacity if capacity is not None else room.capacity
    if new_name == room.name and new_capacity == room.capacity:
        return room

    cur.execute(
        f"""
        UPDATE conference_rooms
        SET name = %s, capacity = %s, updated_at = now()
        WHERE id = %s AND company_id = %s
        RETURNING {_ROOM_COLUMNS}
        """,
        (new_name, new_capacity, room_id, company_id),
    )
    return Room.from_row(cur.fetchone())


def delete_room(cur: PgCursor, sub: Subscription, room_id: int) -> None:
    """Delete a room that has never been booked, then resync activation.

    Raises:
        NotFoundError: Room missing.
        RoomHasBookingsError: Room has at least one booking, of any status.
    """
    get_room(cur, sub.company_id, room_id, lock=True)

    cur.execute(
        "SELECT EXISTS (SELECT 1 FROM conference_bookings WHERE room_id = %s)",
        (room_id,),
    )
    if cur.fetchone()[0]:
        raise RoomHasBookingsError(room_id)

    cur.execute(
        "DELETE FROM conference_rooms WHERE id = %s AND company_id = %s",
        (room_id, sub.company_id),
    )
    sync_room_activation(cur, sub.company_id, sub.plan)
