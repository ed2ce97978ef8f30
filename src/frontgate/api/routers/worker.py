"""Internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/internal/health")
def internal_health() -> dict:
    """Database reachability check for the internal role."""
    from frontgate.infra.db import txn

    with txn() as cur:
        cur.execute("SELECT 1")
        cur.fetchone()
    return {"status": "ok", "subsystem": "internal"}
