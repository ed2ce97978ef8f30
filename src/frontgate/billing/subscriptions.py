"""Apply billing-provider subscription state to the tenant row.

The provider owns the subscription state machine; this module only copies
plan, status and period end onto ``companies`` and re-runs room activation
so a downgrade locks excess rooms in the same transaction.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from frontgate.billing.webhook import BillingEvent
from frontgate.domain.room_sync import sync_room_activation
from frontgate.domain.subscription import Plan, SubscriptionStatus, normalize_plan
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

PROVIDER_STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIAL,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PENDING,
    "unpaid": SubscriptionStatus.PENDING,
    "incomplete": SubscriptionStatus.PENDING,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
}


def _timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _plan_hint(obj: dict[str, Any]) -> str | None:
    metadata = obj.get("metadata") or {}
    if metadata.get("plan"):
        return metadata["plan"]
    items = (obj.get("items") or {}).get("data") or []
    for item in items:
        lookup_key = (item.get("price") or {}).get("lookup_key")
        if lookup_key:
            return lookup_key
    return None


def record_event(cur: PgCursor, source: str, event_id: str) -> bool:
    """Insert the receipt; False when the event was already processed."""
    cur.execute(
        """
        INSERT INTO processed_events (source, event_id)
        VALUES (%s, %s)
        ON CONFLICT (source, event_id) DO NOTHING
        RETURNING event_id
        """,
        (source, event_id),
    )
    return cur.fetchone() is not None


def apply_subscription_event(cur: PgCursor, event: BillingEvent) -> int | None:
    """Update the tenant behind a customer.subscription.* event.

    Returns:
        The company id updated, or None when the customer is unknown.
    """
    obj = event.data_object
    customer_id = obj.get("customer")
    cur.execute(
        "SELECT id, plan FROM companies WHERE billing_customer_id = %s FOR UPDATE",
        (customer_id,),
    )
    row = cur.fetchone()
    if row is None:
        logger.warning(
            "billing event for unknown customer",
            extra={"extra_fields": safe_log_context(event_type=event.event_type)},
        )
        return None
    company_id, current_plan = row

    if event.event_type == "customer.subscription.deleted":
        status = SubscriptionStatus.CANCELLED
    else:
        status = PROVIDER_STATUS_MAP.get(obj.get("status"), SubscriptionStatus.PENDING)

    hint = _plan_hint(obj)
    plan = normalize_plan(hint) if hint else normalize_plan(current_plan)
    period_end = _timestamp(obj.get("current_period_end"))

    # A trialing paid plan is gated on trial_ends_at like the trial plan.
    assignments = ["plan = %s", "subscription_status = %s"]
    params: list[Any] = [plan.value, status.value]
    if plan == Plan.TRIAL or status == SubscriptionStatus.TRIAL:
        assignments.append("trial_ends_at = %s")
        params.append(_timestamp(obj.get("trial_end")) or period_end)
    if plan != Plan.TRIAL:
        assignments.append("subscription_ends_at = %s")
        params.append(period_end)
    cur.execute(
        f"""
        UPDATE companies
        SET {", ".join(assignments)}, updated_at = now()
        WHERE id = %s
        """,
        (*params, company_id),
    )

    sync_room_activation(cur, company_id, plan)

    logger.info(
        "subscription updated from billing",
        extra={
            "extra_fields": safe_log_context(
                company_id=company_id,
                plan=plan.value,
                status=status.value,
                event_type=event.event_type,
            )
        },
    )
    return company_id
