"""Shared pytest fixtures for Frontgate tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Fresh settings and plan table per test.

    Both are cached per process; without clearing, env changes made by one
    test would leak into the next.
    """
    from frontgate.domain.subscription import get_plan_limits
    from frontgate.infra.settings import get_settings

    monkeypatch.setenv("OTP_HASH_SECRET", "test-otp-secret")
    monkeypatch.delenv("PLAN_LIMITS_JSON", raising=False)
    get_settings.cache_clear()
    get_plan_limits.cache_clear()
    yield
    get_settings.cache_clear()
    get_plan_limits.cache_clear()
