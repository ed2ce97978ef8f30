"""Plan quota enforcement.

Counts are lifetime counts per tenant (every row ever created, whatever its
status), compared against the plan limit: admit iff ``count < limit``.
An unlimited plan (limit ``None``) admits without querying.
"""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor

from frontgate.domain.errors import QuotaExceededError
from frontgate.domain.subscription import ResourceKind, Subscription
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

_TABLES = {
    ResourceKind.ROOMS: "conference_rooms",
    ResourceKind.BOOKINGS: "conference_bookings",
    ResourceKind.VISITORS: "visitors",
}


def count_usage(cur: PgCursor, company_id: int, kind: ResourceKind) -> int:
    """Lifetime number of ``kind`` rows owned by the tenant."""
    cur.execute(
        f"SELECT COUNT(*) FROM {_TABLES[kind]} WHERE company_id = %s",  # noqa: S608 – table from fixed map
        (company_id,),
    )
    row = cur.fetchone()
    return int(row[0]) if row else 0


def can_add(cur: PgCursor, company_id: int, kind: ResourceKind, limit: int | None) -> bool:
    """Whether one more ``kind`` fits under ``limit``."""
    if limit is None:
        return True
    return count_usage(cur, company_id, kind) < limit


def assert_can_add(cur: PgCursor, sub: Subscription, kind: ResourceKind) -> None:
    """Raise QuotaExceededError naming the plan and limit when the tenant is full."""
    limit = sub.limits.limit_for(kind)
    if can_add(cur, sub.company_id, kind, limit):
        return

    logger.info(
        "quota exceeded",
        extra={
            "extra_fields": safe_log_context(
                company_id=sub.company_id,
                plan=sub.plan.value,
                resource=kind.value,
                limit=limit,
            )
        },
    )
    raise QuotaExceededError(sub.plan.value, kind.value, limit)


def usage_report(cur: PgCursor, sub: Subscription) -> dict[str, dict]:
    """Limit, used and remaining per resource (``remaining`` is None when unlimited)."""
    report: dict[str, dict] = {}
    for kind in ResourceKind:
        limit = sub.limits.limit_for(kind)
        used = count_usage(cur, sub.company_id, kind)
        report[kind.value] = {
            "limit": limit,
            "used": used,
            "remaining": None if limit is None else max(0, limit - used),
        }
    return report
