"""Tenant-scoped authorization.

Provides:
- Role hierarchy: staff < admin
- TenantContext: the single identity object handed to every operation
- require_company_role(): FastAPI dependency factory
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException

from frontgate.api.auth import CurrentUser, get_current_user

# Lower index = less privilege
ROLE_HIERARCHY = ["staff", "admin"]


@dataclass(frozen=True)
class TenantContext:
    """Verified caller: who they are, which tenant, which role."""

    user: CurrentUser
    company_id: int
    role: str


def _role_level(role: str) -> int:
    try:
        return ROLE_HIERARCHY.index(role)
    except ValueError:
        return -1


def require_company_role(min_role: str) -> Callable[..., TenantContext]:
    """Create a dependency requiring at least ``min_role`` in the caller's tenant.

    Usage:
        @router.post("/rooms")
        def endpoint(ctx: TenantContext = Depends(require_company_role("admin"))):
            ...
    """
    min_level = _role_level(min_role)
    if min_level < 0:
        raise ValueError(f"Invalid role: {min_role}")

    def dependency(user: CurrentUser = Depends(get_current_user)) -> TenantContext:
        if user.company_id is None:
            raise HTTPException(status_code=403, detail="No company access")
        if _role_level(user.role) < min_level:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return TenantContext(user=user, company_id=user.company_id, role=user.role)

    return dependency
