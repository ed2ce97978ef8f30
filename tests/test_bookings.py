"""Unit tests for conference booking (overlap, quota, lifecycle).

These tests mock the database cursor so they run without Postgres.
"""

from datetime import date, datetime, time
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest
from psycopg2 import errors as pg_errors

from frontgate.domain.bookings import (
    Booking,
    BookingStatus,
    assert_not_past,
    cancel_booking,
    check_slot_conflict,
    create_booking,
    notify_booking,
    parse_12h_time,
    parse_window,
    reschedule_booking,
)
from frontgate.domain.errors import (
    InvalidInputError,
    NotFoundError,
    PastScheduleError,
    QuotaExceededError,
    RoomLockedError,
    SlotConflictError,
)
from frontgate.domain.subscription import Plan, SubscriptionStatus

from helpers import booking_row, make_subscription, room_row

IST = ZoneInfo("Asia/Kolkata")
NOW_LOCAL = datetime(2030, 1, 9, 15, 0, tzinfo=IST)
DAY = date(2030, 1, 10)


@pytest.fixture
def cur():
    """Mocked psycopg2 cursor."""
    return MagicMock()


def _sql_calls(cur):
    return [c[0][0] for c in cur.execute.call_args_list]


def _create(cur, sub=None, **overrides):
    kwargs = dict(
        room_id=5,
        booking_date=DAY,
        start_time="10:00 AM",
        end_time="11:00 AM",
        booked_by="Asha",
        now_local=NOW_LOCAL,
    )
    kwargs.update(overrides)
    return create_booking(cur, sub or make_subscription(), **kwargs)


# ── Time parsing ──────────────────────────────────────────────────────────────


class TestParse12hTime:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("9:30 AM", time(9, 30)),
            ("12:00 AM", time(0, 0)),
            ("12:15 PM", time(12, 15)),
            ("1:05 pm", time(13, 5)),
            ("11:59PM", time(23, 59)),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_12h_time(raw) == expected

    @pytest.mark.parametrize("raw", ["13:00 PM", "0:30 AM", "9:60 AM", "09:30", "9.30 AM", "", None])
    def test_invalid(self, raw):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_12h_time(raw)
        assert exc_info.value.errors[0]["field"] == "start_time"

    def test_end_must_follow_start(self):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_window("11:00 AM", "11:00 AM")
        assert exc_info.value.errors[0]["field"] == "end_time"

    def test_reports_both_bad_fields(self):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_window("noon", "later")
        assert [e["field"] for e in exc_info.value.errors] == ["start_time", "end_time"]


class TestAssertNotPast:
    def test_earlier_date_rejected(self):
        with pytest.raises(PastScheduleError):
            assert_not_past(date(2030, 1, 8), time(16, 0), NOW_LOCAL)

    def test_today_start_not_after_now_rejected(self):
        with pytest.raises(PastScheduleError):
            assert_not_past(date(2030, 1, 9), time(15, 0), NOW_LOCAL)

    def test_today_later_start_allowed(self):
        assert_not_past(date(2030, 1, 9), time(15, 1), NOW_LOCAL)

    def test_future_date_allowed_any_time(self):
        assert_not_past(DAY, time(0, 0), NOW_LOCAL)


# ── Conflict detection ────────────────────────────────────────────────────────


class TestCheckSlotConflict:
    def test_no_overlap_returns_none(self, cur):
        cur.fetchone.return_value = None

        result = check_slot_conflict(
            cur, company_id=7, room_id=5, booking_date=DAY, start=time(10), end=time(11)
        )

        assert result is None
        cur.execute.assert_called_once()

    def test_query_uses_strict_overlap_on_booked_only(self, cur):
        cur.fetchone.return_value = None

        check_slot_conflict(cur, company_id=7, room_id=5, booking_date=DAY, start=time(10), end=time(11))

        sql, params = cur.execute.call_args[0]
        assert "start_time < %s" in sql
        assert "end_time > %s" in sql
        # existing.start < new.end, existing.end > new.start
        assert params == [7, 5, DAY, "BOOKED", time(11), time(10)]

    def test_exclude_self_on_reschedule(self, cur):
        cur.fetchone.return_value = None

        check_slot_conflict(
            cur, company_id=7, room_id=5, booking_date=DAY, start=time(10), end=time(11),
            exclude_booking_id=42,
        )

        sql, params = cur.execute.call_args[0]
        assert "id <> %s" in sql
        assert params[-1] == 42

    def test_conflict_returns_details(self, cur):
        cur.fetchone.return_value = (9, time(10, 30), time(11, 30))

        result = check_slot_conflict(
            cur, company_id=7, room_id=5, booking_date=DAY, start=time(10), end=time(11)
        )

        assert result == (9, time(10, 30), time(11, 30))


# ── Create ────────────────────────────────────────────────────────────────────


class TestCreateBooking:
    def test_happy_path(self, cur):
        cur.fetchone.side_effect = [room_row(), (5,), None, booking_row()]

        booking = _create(cur)

        assert isinstance(booking, Booking)
        assert booking.status == BookingStatus.BOOKED.value
        sqls = _sql_calls(cur)
        assert "FOR UPDATE" in sqls[0]
        assert "pg_advisory_xact_lock" in sqls[1]
        assert "INSERT INTO conference_bookings" in sqls[-1]
        insert_params = cur.execute.call_args_list[-1][0][1]
        assert insert_params[3:5] == (time(10), time(11))

    def test_unlimited_plan_skips_quota(self, cur):
        sub = make_subscription(Plan.ENTERPRISE, SubscriptionStatus.ACTIVE)
        cur.fetchone.side_effect = [room_row(), None, booking_row()]

        _create(cur, sub)

        assert not any("COUNT(*)" in sql for sql in _sql_calls(cur))

    def test_overlap_rejected(self, cur):
        cur.fetchone.side_effect = [room_row(), (5,), (9, time(10, 30), time(11, 30))]

        with pytest.raises(SlotConflictError) as exc_info:
            _create(cur)

        body = exc_info.value.to_body()
        assert body["conflicting_booking_id"] == 9
        assert body["existing_start"] == "10:30"
        assert "10:30 AM" in body["detail"]
        assert not any("INSERT" in sql for sql in _sql_calls(cur))

    def test_exclusion_violation_maps_to_conflict(self, cur):
        cur.fetchone.side_effect = [room_row(), (5,), None]
        cur.execute.side_effect = [None, None, None, None, pg_errors.ExclusionViolation()]

        with pytest.raises(SlotConflictError):
            _create(cur)

    def test_quota_reached(self, cur):
        cur.fetchone.side_effect = [room_row(), (100,)]

        with pytest.raises(QuotaExceededError):
            _create(cur)

    def test_locked_room_rejected(self, cur):
        cur.fetchone.side_effect = [room_row(is_active=False)]

        with pytest.raises(RoomLockedError):
            _create(cur)

    def test_room_of_other_tenant_not_found(self, cur):
        cur.fetchone.return_value = None

        with pytest.raises(NotFoundError):
            _create(cur)

        params = cur.execute.call_args[0][1]
        assert params == (5, 7)

    def test_past_window_rejected_before_any_query(self, cur):
        with pytest.raises(PastScheduleError):
            _create(cur, booking_date=date(2030, 1, 9), start_time="2:00 PM", end_time="4:00 PM")
        cur.execute.assert_not_called()

    def test_blank_booked_by(self, cur):
        with pytest.raises(InvalidInputError):
            _create(cur, booked_by="  ")

    def test_bad_requester_email(self, cur):
        with pytest.raises(InvalidInputError):
            _create(cur, requester_email="not-an-email")


# ── Reschedule / cancel ───────────────────────────────────────────────────────


class TestRescheduleBooking:
    def test_moves_window_excluding_self(self, cur):
        moved = booking_row(start=time(14), end=time(15))
        cur.fetchone.side_effect = [booking_row(), room_row(), None, moved]

        booking = reschedule_booking(
            cur, 7, 42, now_local=NOW_LOCAL, start_time="2:00 PM", end_time="3:00 PM"
        )

        assert booking.start_time == time(14)
        assert booking.status == "BOOKED"
        conflict_params = cur.execute.call_args_list[2][0][1]
        assert conflict_params[-1] == 42

    def test_keeps_current_times_when_only_date_changes(self, cur):
        cur.fetchone.side_effect = [booking_row(), room_row(), None, booking_row()]

        reschedule_booking(cur, 7, 42, now_local=NOW_LOCAL, booking_date=date(2030, 1, 11))

        update_params = cur.execute.call_args_list[-1][0][1]
        assert update_params[:3] == (date(2030, 1, 11), time(10), time(11))

    def test_date_only_keeps_single_digit_hours(self, cur):
        current = booking_row(start=time(9), end=time(10))
        cur.fetchone.side_effect = [current, room_row(), None, current]

        reschedule_booking(cur, 7, 42, now_local=NOW_LOCAL, booking_date=date(2030, 1, 11))

        update_params = cur.execute.call_args_list[-1][0][1]
        assert update_params[:3] == (date(2030, 1, 11), time(9), time(10))

    def test_end_only_keeps_current_start(self, cur):
        current = booking_row(start=time(14), end=time(15))
        moved = booking_row(start=time(14), end=time(16))
        cur.fetchone.side_effect = [current, room_row(), None, moved]

        reschedule_booking(cur, 7, 42, now_local=NOW_LOCAL, end_time="4:00 PM")

        update_params = cur.execute.call_args_list[-1][0][1]
        assert update_params[1:3] == (time(14), time(16))

    def test_start_only_must_precede_current_end(self, cur):
        cur.fetchone.side_effect = [booking_row(start=time(14), end=time(15))]
        with pytest.raises(InvalidInputError):
            reschedule_booking(cur, 7, 42, now_local=NOW_LOCAL, start_time="3:30 PM")

    def test_not_booked_is_not_found(self, cur):
        cur.fetchone.return_value = None
        with pytest.raises(NotFoundError):
            reschedule_booking(cur, 7, 42, now_local=NOW_LOCAL, start_time="2:00 PM")

    def test_conflict_with_other_booking(self, cur):
        cur.fetchone.side_effect = [booking_row(), room_row(), (43, time(14), time(15))]
        with pytest.raises(SlotConflictError):
            reschedule_booking(
                cur, 7, 42, now_local=NOW_LOCAL, start_time="2:00 PM", end_time="3:00 PM"
            )


class TestCancelBooking:
    def test_cancel_booked(self, cur):
        cur.fetchone.return_value = booking_row(status="CANCELLED")

        booking = cancel_booking(cur, 7, 42)

        assert booking.status == "CANCELLED"
        params = cur.execute.call_args[0][1]
        assert params == ("CANCELLED", 42, 7, "BOOKED")

    def test_cancel_twice_not_found(self, cur):
        cur.fetchone.return_value = None
        with pytest.raises(NotFoundError):
            cancel_booking(cur, 7, 42)


class TestNotifyBooking:
    def test_skips_without_requester_email(self):
        mailer = MagicMock()
        assert notify_booking(mailer, Booking.from_row(booking_row()), "Board Room", "created") is False
        mailer.send.assert_not_called()

    def test_sends_best_effort(self):
        mailer = MagicMock()
        mailer.send.return_value = True
        booking = Booking.from_row(booking_row(requester_email="asha@acme.test"))

        assert notify_booking(mailer, booking, "Board <Room>", "cancelled") is True

        to, subject, body = mailer.send.call_args[0]
        assert to == "asha@acme.test"
        assert "cancelled" in subject
        assert "Board &lt;Room&gt;" in body
        assert mailer.send.call_args[1]["on_failure"] == "log"

    def test_public_dict_hides_requester_email(self):
        booking = Booking.from_row(booking_row(requester_email="asha@acme.test"))
        assert "requester_email" not in booking.to_dict(public=True)
        assert booking.to_dict()["requester_email"] == "asha@acme.test"
