"""Subscription and plan resolution.

resolve_subscription() reads the tenant row, normalizes plan/status and
applies the operational gate:

    status in {active, trial}
    trial  -> trial_ends_at in the future
    active -> plan end date in the future (trial_ends_at for the trial plan,
              subscription_ends_at otherwise)

The gate never writes: an elapsed window is reported as an error for this
request only; persisting ``expired`` belongs to the billing side.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping

from psycopg2.extensions import cursor as PgCursor

from frontgate.domain.errors import (
    NotFoundError,
    SubscriptionExpiredError,
    SubscriptionInactiveError,
    TrialExpiredError,
)
from frontgate.infra.time import utc_now


class Plan(str, Enum):
    TRIAL = "trial"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ResourceKind(str, Enum):
    ROOMS = "rooms"
    BOOKINGS = "bookings"
    VISITORS = "visitors"


OPERATIONAL_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL)


@dataclass(frozen=True)
class PlanLimits:
    """Per-plan quota. ``None`` means unlimited."""

    rooms: int | None
    bookings: int | None
    visitors: int | None

    def limit_for(self, kind: ResourceKind) -> int | None:
        return getattr(self, kind.value)

    @property
    def is_unlimited(self) -> bool:
        return self.rooms is None and self.bookings is None and self.visitors is None


DEFAULT_PLAN_LIMITS: Mapping[Plan, PlanLimits] = MappingProxyType(
    {
        Plan.TRIAL: PlanLimits(rooms=2, bookings=100, visitors=100),
        Plan.BUSINESS: PlanLimits(rooms=6, bookings=1000, visitors=None),
        Plan.ENTERPRISE: PlanLimits(rooms=None, bookings=None, visitors=None),
    }
)


def _check_limit_value(plan: str, field: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"PLAN_LIMITS_JSON: {plan}.{field} must be a non-negative integer or null")
    return value


def load_plan_limits(override_json: str | None = None) -> Mapping[Plan, PlanLimits]:
    """Build the quota table, applying an optional per-plan JSON override.

    Example override: ``{"trial": {"rooms": 3}, "business": {"visitors": 5000}}``.

    Raises:
        ValueError: Unknown plan or field, or a malformed value.
    """
    table = dict(DEFAULT_PLAN_LIMITS)
    if not override_json:
        return MappingProxyType(table)

    overrides = json.loads(override_json)
    if not isinstance(overrides, dict):
        raise ValueError("PLAN_LIMITS_JSON must be a JSON object")

    for plan_name, fields in overrides.items():
        try:
            plan = Plan(plan_name)
        except ValueError:
            raise ValueError(f"PLAN_LIMITS_JSON: unknown plan {plan_name!r}")
        if not isinstance(fields, dict):
            raise ValueError(f"PLAN_LIMITS_JSON: {plan_name} must map to an object")

        current = table[plan]
        values = {k.value: current.limit_for(k) for k in ResourceKind}
        for field, value in fields.items():
            if field not in values:
                raise ValueError(f"PLAN_LIMITS_JSON: unknown field {plan_name}.{field}")
            values[field] = _check_limit_value(plan_name, field, value)
        table[plan] = PlanLimits(**values)

    return MappingProxyType(table)


@lru_cache(maxsize=1)
def get_plan_limits() -> Mapping[Plan, PlanLimits]:
    """Quota table for this process, loaded once at startup."""
    from frontgate.infra.settings import get_settings

    return load_plan_limits(get_settings().plan_limits_json)


def normalize_plan(raw: str | None) -> Plan:
    try:
        return Plan((raw or "").strip().lower())
    except ValueError:
        return Plan.TRIAL


def normalize_status(raw: str | None) -> SubscriptionStatus:
    try:
        return SubscriptionStatus((raw or "").strip().lower())
    except ValueError:
        return SubscriptionStatus.PENDING


@dataclass(frozen=True)
class Subscription:
    """Resolved plan state for one tenant."""

    company_id: int
    plan: Plan
    status: SubscriptionStatus
    trial_ends_at: datetime | None
    subscription_ends_at: datetime | None
    limits: PlanLimits

    @property
    def room_limit(self) -> int | None:
        return self.limits.rooms

    @property
    def booking_limit(self) -> int | None:
        return self.limits.bookings

    @property
    def visitor_limit(self) -> int | None:
        return self.limits.visitors

    @property
    def is_unlimited(self) -> bool:
        return self.limits.is_unlimited

    @property
    def ends_at(self) -> datetime | None:
        """End of the window that currently applies to this plan."""
        if self.plan == Plan.TRIAL:
            return self.trial_ends_at
        return self.subscription_ends_at


def read_subscription(cur: PgCursor, company_id: int) -> Subscription:
    """Load and normalize the tenant's plan state without gating.

    Raises:
        NotFoundError: Tenant does not exist.
    """
    cur.execute(
        """
        SELECT plan, subscription_status, trial_ends_at, subscription_ends_at
        FROM companies
        WHERE id = %s
        """,
        (company_id,),
    )
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("company")

    plan = normalize_plan(row[0])
    return Subscription(
        company_id=company_id,
        plan=plan,
        status=normalize_status(row[1]),
        trial_ends_at=row[2],
        subscription_ends_at=row[3],
        limits=get_plan_limits()[plan],
    )


def assert_operational(sub: Subscription, now: datetime | None = None) -> None:
    """Raise the gate error that applies to ``sub``, if any."""
    now = now or utc_now()

    if sub.status not in OPERATIONAL_STATUSES:
        raise SubscriptionInactiveError(sub.status.value)

    if sub.status == SubscriptionStatus.TRIAL:
        if sub.trial_ends_at is None or sub.trial_ends_at <= now:
            raise TrialExpiredError()
        return

    ends_at = sub.ends_at
    if ends_at is None or ends_at <= now:
        raise SubscriptionExpiredError()


def resolve_subscription(
    cur: PgCursor,
    company_id: int,
    *,
    now: datetime | None = None,
) -> Subscription:
    """Read the tenant's subscription and enforce the operational gate.

    Raises:
        NotFoundError: Tenant does not exist.
        SubscriptionInactiveError: Status is not active/trial.
        TrialExpiredError: Trial window missing or elapsed.
        SubscriptionExpiredError: Paid window missing or elapsed.
    """
    sub = read_subscription(cur, company_id)
    assert_operational(sub, now)
    return sub
