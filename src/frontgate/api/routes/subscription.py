"""Subscription status and usage.

GET /subscription → plan, status, window and per-resource usage (staff+).

Not gated on status, so an expired tenant can still see why it is blocked.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from frontgate.api.rbac import TenantContext, require_company_role
from frontgate.domain.errors import DomainError
from frontgate.domain.quota import usage_report
from frontgate.domain.subscription import assert_operational, read_subscription

router = APIRouter(tags=["subscription"])


@router.get("/subscription")
def get_subscription(
    ctx: TenantContext = Depends(require_company_role("staff")),
) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        sub = read_subscription(cur, ctx.company_id)
        usage = usage_report(cur, sub)

    try:
        assert_operational(sub)
        blocked = None
    except DomainError as exc:
        blocked = {"code": exc.code, "detail": exc.message}

    return {
        "plan": sub.plan.value,
        "status": sub.status.value,
        "trial_ends_at": sub.trial_ends_at.isoformat() if sub.trial_ends_at else None,
        "subscription_ends_at": (
            sub.subscription_ends_at.isoformat() if sub.subscription_ends_at else None
        ),
        "operational": blocked is None,
        "blocked": blocked,
        "usage": usage,
    }
