"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def tenant_zone(name: str | None, default: str = "Asia/Kolkata") -> ZoneInfo:
    """Resolve a tenant timezone name, falling back to ``default``."""
    try:
        return ZoneInfo(name or default)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(default)


def tenant_now(zone: ZoneInfo, now: datetime | None = None) -> datetime:
    """Current wall-clock time in the tenant's zone."""
    return (now or utc_now()).astimezone(zone)
