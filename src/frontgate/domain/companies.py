"""Tenant profile: lookup, public slug and logo."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from frontgate.domain.errors import NotFoundError
from frontgate.infra.db import for_update
from frontgate.infra.settings import get_settings
from frontgate.infra.storage import BlobStorage, validate_image
from frontgate.infra.time import tenant_now, tenant_zone
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

_COMPANY_COLUMNS = "id, name, slug, logo_url, plan, subscription_status, timezone"
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass
class Company:
    id: int
    name: str
    slug: str | None
    logo_url: str | None
    plan: str | None
    subscription_status: str | None
    timezone: str | None

    @classmethod
    def from_row(cls, row: tuple) -> "Company":
        return cls(*row)

    def local_now(self, now: datetime | None = None) -> datetime:
        """Wall-clock time at the tenant's site."""
        zone = tenant_zone(self.timezone, get_settings().default_timezone)
        return tenant_now(zone, now)


def get_company(cur: PgCursor, company_id: int) -> Company:
    cur.execute(f"SELECT {_COMPANY_COLUMNS} FROM companies WHERE id = %s", (company_id,))
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("company")
    return Company.from_row(row)


def normalize_slug(slug: str) -> str:
    return (slug or "").strip().lower()


def get_company_by_slug(cur: PgCursor, slug: str) -> Company:
    cur.execute(
        f"SELECT {_COMPANY_COLUMNS} FROM companies WHERE slug = %s",
        (normalize_slug(slug),),
    )
    row = cur.fetchone()
    if row is None:
        raise NotFoundError("company")
    return Company.from_row(row)


def slugify(name: str) -> str:
    """Lowercase, non-alphanumeric runs collapsed to '-', trimmed."""
    slug = _NON_ALNUM.sub("-", (name or "").lower()).strip("-")
    return slug or "company"


def ensure_slug(cur: PgCursor, company_id: int) -> str:
    """Return the tenant's slug, assigning one on first use.

    The tenant row is locked so concurrent first requests agree on one slug.
    Collisions get a numeric suffix: acme, acme-1, acme-2, ...
    """
    row = for_update(cur, "SELECT name, slug FROM companies WHERE id = %s", (company_id,))
    if row is None:
        raise NotFoundError("company")
    name, slug = row
    if slug:
        return slug

    base = slugify(name)
    candidate = base
    suffix = 0
    while True:
        cur.execute(
            "SELECT 1 FROM companies WHERE slug = %s AND id <> %s",
            (candidate, company_id),
        )
        if cur.fetchone() is None:
            break
        suffix += 1
        candidate = f"{base}-{suffix}"

    cur.execute("UPDATE companies SET slug = %s WHERE id = %s", (candidate, company_id))
    logger.info(
        "company slug assigned",
        extra={"extra_fields": safe_log_context(company_id=company_id, slug=candidate)},
    )
    return candidate


def public_links(slug: str) -> dict[str, str]:
    base = get_settings().public_app_url
    return {
        "visitor_registration_url": f"{base}/visitor/{slug}",
        "booking_url": f"{base}/book/{slug}",
    }


def logo_key(slug: str, filename: str | None) -> str:
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    return f"companies/{slug}/logo.{ext or 'png'}"


def update_logo(
    cur: PgCursor,
    storage: BlobStorage,
    company_id: int,
    *,
    data: bytes,
    filename: str | None,
    mime_type: str | None,
) -> str:
    """Upload a new logo and store its URL. Upload failure fails the call."""
    validate_image("logo", mime_type, data)
    slug = ensure_slug(cur, company_id)
    url = storage.upload(data, mime_type or "image/png", logo_key(slug, filename))
    cur.execute("UPDATE companies SET logo_url = %s WHERE id = %s", (url, company_id))
    return url
