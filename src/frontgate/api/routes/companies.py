"""Tenant profile endpoints.

GET /companies/me        → profile, slug assigned on first use (staff+)
PUT /companies/me/logo   → upload a new logo (admin)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from frontgate.api.rbac import TenantContext, require_company_role
from frontgate.domain.companies import ensure_slug, get_company, public_links, update_logo
from frontgate.infra.storage import BlobStorage, get_storage

router = APIRouter(prefix="/companies", tags=["companies"])


@router.get("/me")
def get_my_company(
    ctx: TenantContext = Depends(require_company_role("staff")),
) -> dict:
    from frontgate.infra.db import txn

    with txn() as cur:
        slug = ensure_slug(cur, ctx.company_id)
        company = get_company(cur, ctx.company_id)

    return {
        "id": company.id,
        "name": company.name,
        "slug": slug,
        "logo_url": company.logo_url,
        "plan": company.plan,
        "subscription_status": company.subscription_status,
        "timezone": company.timezone,
        **public_links(slug),
    }


@router.put("/me/logo")
def upload_logo(
    logo: UploadFile = File(...),
    ctx: TenantContext = Depends(require_company_role("admin")),
    storage: BlobStorage = Depends(get_storage),
) -> dict:
    from frontgate.infra.db import txn

    data = logo.file.read()
    with txn() as cur:
        url = update_logo(
            cur,
            storage,
            ctx.company_id,
            data=data,
            filename=logo.filename,
            mime_type=logo.content_type,
        )
    return {"logo_url": url}
