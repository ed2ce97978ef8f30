"""Conference rooms for the company dashboard.

GET    /conference/rooms               → list, ?active=true for usable only (staff+)
POST   /conference/rooms               → create under the room quota (admin)
PATCH  /conference/rooms/{id}          → rename / capacity, active rooms only (admin)
DELETE /conference/rooms/{id}          → delete a never-booked room (admin, 204)
POST   /conference/rooms/sync          → re-run room activation (admin)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from frontgate.api.rbac import TenantContext, require_company_role
from frontgate.domain import rooms as rooms_domain
from frontgate.domain.room_sync import sync_room_activation
from frontgate.domain.subscription import resolve_subscription
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

router = APIRouter(prefix="/conference/rooms", tags=["conference"])


# ── Schemas ───────────────────────────────────────────────────────────────────


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    room_number: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=120)
    capacity: int | None = Field(default=None, gt=0)


class UpdateRoomRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=120)
    capacity: int | None = Field(default=None, gt=0)


# ── GET /conference/rooms ─────────────────────────────────────────────────────


@router.get("")
def list_rooms(
    active: bool = Query(False, description="Only rooms usable under the current plan"),
    ctx: TenantContext = Depends(require_company_role("staff")),
) -> list[dict]:
    """All rooms, locked ones included unless ``active=true``."""
    from frontgate.infra.db import txn

    with txn() as cur:
        rooms = rooms_domain.list_rooms(cur, ctx.company_id, active_only=active)
    return [r.to_dict() for r in rooms]


# ── POST /conference/rooms ────────────────────────────────────────────────────


@router.post("", status_code=201)
def create_room(
    body: CreateRoomRequest,
    ctx: TenantContext = Depends(require_company_role("admin")),
) -> dict:
    """Create a room; it becomes active only if the plan has a free slot."""
    from frontgate.infra.db import txn

    with txn() as cur:
        sub = resolve_subscription(cur, ctx.company_id)
        room = rooms_domain.create_room(
            cur,
            sub,
            room_number=body.room_number,
            name=body.name,
            capacity=body.capacity,
        )

    logger.info(
        "room created",
        extra={
            "extra_fields": safe_log_context(
                company_id=ctx.company_id,
                room_id=room.id,
                is_active=room.is_active,
            )
        },
    )
    return room.to_dict()


# ── POST /conference/rooms/sync ───────────────────────────────────────────────


@router.post("/sync")
def sync_rooms(
    ctx: TenantContext = Depends(require_company_role("admin")),
) -> dict:
    """Recompute which rooms are active under the current plan."""
    from frontgate.domain.subscription import read_subscription
    from frontgate.infra.db import txn

    with txn() as cur:
        sub = read_subscription(cur, ctx.company_id)
        active = sync_room_activation(cur, ctx.company_id, sub.plan)
        rooms = rooms_domain.list_rooms(cur, ctx.company_id)

    return {
        "plan": sub.plan.value,
        "room_limit": sub.room_limit,
        "active_rooms": active,
        "rooms": [r.to_dict() for r in rooms],
    }


# ── PATCH /conference/rooms/{room_id} ─────────────────────────────────────────


@router.patch("/{room_id}")
def update_room(
    room_id: int = Path(..., description="Room ID"),
    body: UpdateRoomRequest = ...,
    ctx: TenantContext = Depends(require_company_role("admin")),
) -> dict:
    """Rename or resize a room. Locked rooms answer 403."""
    from frontgate.infra.db import txn

    with txn() as cur:
        room = rooms_domain.update_room(
            cur,
            ctx.company_id,
            room_id,
            name=body.name,
            capacity=body.capacity,
        )
    return room.to_dict()


# ── DELETE /conference/rooms/{room_id} ────────────────────────────────────────


@router.delete("/{room_id}", status_code=204)
def delete_room(
    room_id: int = Path(..., description="Room ID"),
    ctx: TenantContext = Depends(require_company_role("admin")),
) -> None:
    """Delete a room with no bookings; a locked room may take the freed slot."""
    from frontgate.domain.subscription import read_subscription
    from frontgate.infra.db import txn

    with txn() as cur:
        sub = read_subscription(cur, ctx.company_id)
        rooms_domain.delete_room(cur, sub, room_id)

    logger.info(
        "room deleted",
        extra={"extra_fields": safe_log_context(company_id=ctx.company_id, room_id=room_id)},
    )
