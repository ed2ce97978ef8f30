"""Unit tests for OTP send/verify and session tokens."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from frontgate.domain.errors import (
    InvalidInputError,
    MailDeliveryError,
    NotFoundError,
    OtpExpiredError,
    OtpMismatchError,
    SessionExpiredError,
    TooManyRequestsError,
)
from frontgate.domain.otp import (
    MAX_VERIFY_ATTEMPTS,
    OtpSession,
    consume_session,
    generate_code,
    lock_session,
    normalize_email,
    send_otp,
    verify_otp,
)
from frontgate.infra.hashing import hash_otp, hash_token

from helpers import make_company, mock_txn_cursor

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
EMAIL = "guest@example.com"


@pytest.fixture
def cur():
    return MagicMock()


@pytest.fixture
def mailer():
    return MagicMock()


class TestHelpers:
    def test_code_is_six_digits(self):
        for _ in range(20):
            code = generate_code()
            assert len(code) == 6 and code.isdigit()

    def test_email_normalized(self):
        assert normalize_email("  Guest@Example.COM ") == EMAIL

    @pytest.mark.parametrize("raw", ["", "   ", "guest", "guest@example"])
    def test_bad_email(self, raw):
        with pytest.raises(InvalidInputError):
            normalize_email(raw)


class TestSendOtp:
    def test_issues_and_mails_code(self, cur, mailer):
        cur.fetchone.return_value = None

        ttl = send_otp(cur, mailer, make_company(), "Guest@Example.com", now=NOW)

        assert ttl == 600
        sqls = [c[0][0] for c in cur.execute.call_args_list]
        assert "pg_advisory_xact_lock" in sqls[0]
        assert "DELETE FROM otp_sessions" in sqls[2]
        assert "INSERT INTO otp_sessions" in sqls[3]

        insert_params = cur.execute.call_args_list[3][0][1]
        assert insert_params[1] == EMAIL
        assert insert_params[3] == NOW + timedelta(minutes=10)

        to, subject, body = mailer.send.call_args[0]
        assert to == EMAIL
        assert "Acme" in subject
        code = body.split("<h2>")[1].split("</h2>")[0]
        # stored only as a hash bound to tenant and e-mail
        assert insert_params[2] == hash_otp(7, EMAIL, code)
        assert mailer.send.call_args[1]["on_failure"] == "propagate"

    def test_resend_within_cooldown(self, cur, mailer):
        cur.fetchone.return_value = (NOW - timedelta(seconds=10),)

        with pytest.raises(TooManyRequestsError) as exc_info:
            send_otp(cur, mailer, make_company(), EMAIL, now=NOW)

        assert exc_info.value.retry_after_seconds == 50
        mailer.send.assert_not_called()

    def test_resend_after_cooldown(self, cur, mailer):
        cur.fetchone.return_value = (NOW - timedelta(seconds=61),)

        send_otp(cur, mailer, make_company(), EMAIL, now=NOW)

        mailer.send.assert_called_once()

    def test_mail_failure_propagates(self, cur, mailer):
        cur.fetchone.return_value = None
        mailer.send.side_effect = MailDeliveryError("Could not deliver e-mail, please try again")

        with pytest.raises(MailDeliveryError):
            send_otp(cur, mailer, make_company(), EMAIL, now=NOW)


class TestVerifyOtp:
    def _pending(self, mock_txn, *, code="123456", attempts=0, expires_at=None):
        cur = mock_txn_cursor(mock_txn)
        cur.fetchone.return_value = (
            11,
            hash_otp(7, EMAIL, code),
            expires_at or NOW + timedelta(minutes=5),
            attempts,
        )
        return cur

    @patch("frontgate.infra.db.txn")
    def test_correct_code_mints_token(self, mock_txn):
        cur = self._pending(mock_txn)

        token = verify_otp(7, EMAIL, "123456", now=NOW)

        assert token
        sql, params = cur.execute.call_args[0]
        assert "verified = TRUE" in sql
        assert params == (hash_token(token), NOW, 11)

    @patch("frontgate.infra.db.txn")
    def test_wrong_code_counts_attempt(self, mock_txn):
        cur = self._pending(mock_txn)

        with pytest.raises(OtpMismatchError):
            verify_otp(7, EMAIL, "000000", now=NOW)

        assert "attempts = attempts + 1" in cur.execute.call_args[0][0]

    @patch("frontgate.infra.db.txn")
    def test_last_attempt_discards_code(self, mock_txn):
        cur = self._pending(mock_txn, attempts=MAX_VERIFY_ATTEMPTS - 1)

        with pytest.raises(OtpMismatchError):
            verify_otp(7, EMAIL, "000000", now=NOW)

        assert cur.execute.call_args[0][0].startswith("DELETE FROM otp_sessions")

    @patch("frontgate.infra.db.txn")
    def test_expired_code(self, mock_txn):
        self._pending(mock_txn, expires_at=NOW)

        with pytest.raises(OtpExpiredError):
            verify_otp(7, EMAIL, "123456", now=NOW)

    @patch("frontgate.infra.db.txn")
    def test_no_pending_code(self, mock_txn):
        cur = mock_txn_cursor(mock_txn)
        cur.fetchone.return_value = None

        with pytest.raises(NotFoundError):
            verify_otp(7, EMAIL, "123456", now=NOW)


class TestSessionToken:
    def test_missing_token(self, cur):
        with pytest.raises(SessionExpiredError):
            lock_session(cur, 7, "", now=NOW)
        cur.execute.assert_not_called()

    def test_unknown_or_consumed_token(self, cur):
        cur.fetchone.return_value = None
        with pytest.raises(SessionExpiredError):
            lock_session(cur, 7, "tok", now=NOW)

    def test_locks_live_session(self, cur):
        cur.fetchone.return_value = (11, EMAIL)

        session = lock_session(cur, 7, "tok", now=NOW)

        assert session == OtpSession(id=11, company_id=7, email=EMAIL)
        sql, params = cur.execute.call_args[0]
        assert "FOR UPDATE" in sql
        assert params == (7, hash_token("tok"), NOW - timedelta(minutes=30))

    def test_consume_nulls_token(self, cur):
        consume_session(cur, OtpSession(id=11, company_id=7, email=EMAIL), now=NOW)

        sql, params = cur.execute.call_args[0]
        assert "session_token_hash = NULL" in sql
        assert params == (NOW, 11)
