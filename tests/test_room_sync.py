"""Unit tests for the room activation synchronizer."""

from unittest.mock import MagicMock

import pytest

from frontgate.domain.room_sync import sync_lock_name, sync_room_activation
from frontgate.domain.subscription import Plan, get_plan_limits
from frontgate.infra.db import lock_key
from frontgate.infra.settings import get_settings


@pytest.fixture
def cur():
    c = MagicMock()
    c.rowcount = 2
    return c


def _sqls(cur):
    return [c[0][0] for c in cur.execute.call_args_list]


class TestSyncRoomActivation:
    def test_limited_plan_activates_first_n(self, cur):
        active = sync_room_activation(cur, 7, Plan.TRIAL)

        assert active == 2
        sqls = _sqls(cur)
        assert "pg_advisory_xact_lock" in sqls[0]
        assert cur.execute.call_args_list[0][0][1] == (lock_key(sync_lock_name(7)),)
        assert "is_active = FALSE" in sqls[1]
        assert "ORDER BY room_number ASC, id ASC" in sqls[2]
        assert cur.execute.call_args_list[2][0][1] == (7, 2)

    def test_business_limit(self, cur):
        sync_room_activation(cur, 7, Plan.BUSINESS)
        assert cur.execute.call_args_list[2][0][1] == (7, 6)

    def test_unlimited_reactivates_all(self, cur):
        cur.rowcount = 12

        assert sync_room_activation(cur, 7, Plan.ENTERPRISE) == 12

        last_sql = _sqls(cur)[-1]
        assert "is_active = TRUE" in last_sql
        assert "LIMIT" not in last_sql

    def test_zero_limit_leaves_all_locked(self, cur, monkeypatch):
        monkeypatch.setenv("PLAN_LIMITS_JSON", '{"trial": {"rooms": 0}}')
        get_settings.cache_clear()
        get_plan_limits.cache_clear()

        assert sync_room_activation(cur, 7, Plan.TRIAL) == 0
        assert len(_sqls(cur)) == 2

    def test_idempotent_statements(self, cur):
        sync_room_activation(cur, 7, Plan.TRIAL)
        first = cur.execute.call_args_list[:]
        cur.reset_mock()
        sync_room_activation(cur, 7, Plan.TRIAL)
        assert cur.execute.call_args_list == first
