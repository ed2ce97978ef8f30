"""Unit tests for room CRUD under plan locks."""

from unittest.mock import MagicMock

import pytest
from psycopg2 import errors as pg_errors

from frontgate.domain.errors import (
    DuplicateRoomNumberError,
    InvalidInputError,
    NotFoundError,
    QuotaExceededError,
    RoomHasBookingsError,
    RoomLockedError,
)
from frontgate.domain.rooms import Room, create_room, delete_room, list_rooms, update_room

from helpers import make_subscription, room_row


@pytest.fixture
def cur():
    c = MagicMock()
    c.rowcount = 1
    return c


def _sqls(cur):
    return [c[0][0] for c in cur.execute.call_args_list]


class TestListRooms:
    def test_locked_flag(self, cur):
        cur.fetchall.return_value = [room_row(), room_row(6, 2, "Huddle", is_active=False)]

        rooms = list_rooms(cur, 7)

        assert [r.to_dict()["locked"] for r in rooms] == [False, True]
        assert "ORDER BY room_number ASC, id ASC" in cur.execute.call_args[0][0]

    def test_active_only(self, cur):
        cur.fetchall.return_value = []
        list_rooms(cur, 7, active_only=True)
        assert "is_active = TRUE" in cur.execute.call_args[0][0]


class TestCreateRoom:
    def test_inserts_inactive_then_syncs(self, cur):
        cur.fetchone.side_effect = [(0,), room_row(is_active=False), room_row()]

        room = create_room(cur, make_subscription(), room_number=1, name=" Board Room ")

        assert room.is_active is True
        sqls = _sqls(cur)
        assert "FALSE" in sqls[1] and "INSERT INTO conference_rooms" in sqls[1]
        assert cur.execute.call_args_list[1][0][1][2] == "Board Room"
        assert any("pg_advisory_xact_lock" in s for s in sqls)

    def test_quota(self, cur):
        cur.fetchone.side_effect = [(2,)]

        with pytest.raises(QuotaExceededError) as exc_info:
            create_room(cur, make_subscription(), room_number=3, name="Third")

        assert "trial plan allows up to 2 rooms" in exc_info.value.message

    def test_duplicate_number(self, cur):
        cur.fetchone.side_effect = [(0,)]
        cur.execute.side_effect = [None, pg_errors.UniqueViolation()]

        with pytest.raises(DuplicateRoomNumberError):
            create_room(cur, make_subscription(), room_number=1, name="Board Room")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"room_number": 0, "name": "A"},
            {"room_number": 1, "name": "  "},
            {"room_number": 1, "name": "A", "capacity": 0},
        ],
    )
    def test_invalid(self, cur, kwargs):
        with pytest.raises(InvalidInputError):
            create_room(cur, make_subscription(), **kwargs)
        cur.execute.assert_not_called()


class TestUpdateRoom:
    def test_rename_active(self, cur):
        cur.fetchone.side_effect = [room_row(), room_row(name="Ocean")]

        room = update_room(cur, 7, 5, name="Ocean")

        assert room.name == "Ocean"
        assert cur.execute.call_args[0][1] == ("Ocean", 10, 5, 7)

    def test_locked_room_rejected(self, cur):
        cur.fetchone.return_value = room_row(is_active=False)

        with pytest.raises(RoomLockedError) as exc_info:
            update_room(cur, 7, 5, name="Ocean")

        assert "Upgrade your plan" in exc_info.value.message
        assert cur.execute.call_count == 1

    def test_unchanged_is_noop(self, cur):
        cur.fetchone.return_value = room_row()

        room = update_room(cur, 7, 5, name="Board Room")

        assert isinstance(room, Room)
        assert cur.execute.call_count == 1


class TestDeleteRoom:
    def test_delete_unbooked_room_resyncs(self, cur):
        cur.fetchone.side_effect = [room_row(), (False,)]

        delete_room(cur, make_subscription(), 5)

        sqls = _sqls(cur)
        assert any(s.startswith("DELETE FROM conference_rooms") for s in sqls)
        assert "pg_advisory_xact_lock" in sqls[3]

    def test_locked_room_deletable(self, cur):
        cur.fetchone.side_effect = [room_row(is_active=False), (False,)]
        delete_room(cur, make_subscription(), 5)

    def test_room_with_bookings(self, cur):
        cur.fetchone.side_effect = [room_row(), (True,)]

        with pytest.raises(RoomHasBookingsError):
            delete_room(cur, make_subscription(), 5)

        assert not any(s.startswith("DELETE") for s in _sqls(cur))

    def test_missing(self, cur):
        cur.fetchone.return_value = None
        with pytest.raises(NotFoundError):
            delete_room(cur, make_subscription(), 5)
