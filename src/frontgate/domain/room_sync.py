"""Room activation synchronizer.

Full, idempotent resync of which rooms count as usable under the plan:

1. deactivate every room of the tenant
2. unlimited plan: reactivate all
3. otherwise: activate the first N rooms by (room_number ASC, id ASC)

Runs under a per-tenant advisory lock so two syncs never interleave their
deactivate/activate phases.
"""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor

from frontgate.domain.subscription import Plan, get_plan_limits
from frontgate.infra.db import advisory_xact_lock
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)


def sync_lock_name(company_id: int) -> str:
    return f"room-sync:{company_id}"


def sync_room_activation(cur: PgCursor, company_id: int, plan: Plan) -> int:
    """Recompute ``is_active`` for all rooms of the tenant.

    Must run inside a transaction; the lock is released on commit.

    Returns:
        Number of active rooms after the sync.
    """
    room_limit = get_plan_limits()[plan].rooms

    advisory_xact_lock(cur, sync_lock_name(company_id))

    cur.execute(
        "UPDATE conference_rooms SET is_active = FALSE WHERE company_id = %s",
        (company_id,),
    )

    if room_limit is None:
        cur.execute(
            "UPDATE conference_rooms SET is_active = TRUE WHERE company_id = %s",
            (company_id,),
        )
        active = cur.rowcount
    elif room_limit > 0:
        cur.execute(
            """
            UPDATE conference_rooms
            SET is_active = TRUE
            WHERE id IN (
                SELECT id
                FROM conference_rooms
                WHERE company_id = %s
                ORDER BY room_number ASC, id ASC
                LIMIT %s
            )
            """,
            (company_id, room_limit),
        )
        active = cur.rowcount
    else:
        active = 0

    logger.info(
        "room activation synced",
        extra={
            "extra_fields": safe_log_context(
                company_id=company_id,
                plan=plan.value,
                room_limit=room_limit,
                active_rooms=active,
            )
        },
    )
    return active
