"""One-time-code e-mail verification for public self-service flows.

Lifecycle of an otp_sessions row:

    issued --verify ok--> verified (session token minted)
    verified --registration--> consumed (token nulled)
    issued/verified --time--> expired

- A new send deletes earlier unverified rows for the same (tenant, email)
- Codes and tokens are stored only as hashes
- Sending is blocking: if the mail cannot go out the send fails and the
  new row is rolled back
- A token authorizes one registration within OTP_SESSION_MINUTES of
  verification; the registration transaction nulls it
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from html import escape

from psycopg2.extensions import cursor as PgCursor

from frontgate.domain.companies import Company
from frontgate.domain.errors import (
    InvalidInputError,
    NotFoundError,
    OtpExpiredError,
    OtpMismatchError,
    SessionExpiredError,
    TooManyRequestsError,
)
from frontgate.domain.validation import is_valid_email
from frontgate.infra.db import advisory_xact_lock
from frontgate.infra.hashing import hash_otp, hash_token, otp_matches
from frontgate.infra.mailer import Mailer
from frontgate.infra.settings import Settings, get_settings
from frontgate.infra.time import utc_now
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)

MAX_VERIFY_ATTEMPTS = 5


@dataclass
class OtpSession:
    """A verified session locked for the current registration."""

    id: int
    company_id: int
    email: str


def normalize_email(email: str) -> str:
    value = (email or "").strip().lower()
    if not value:
        raise InvalidInputError.single("email", "Email is required")
    if not is_valid_email(value):
        raise InvalidInputError.single("email", "Invalid email address")
    return value


def generate_code() -> str:
    return f"{secrets.randbelow(10**6):06d}"


def send_otp(
    cur: PgCursor,
    mailer: Mailer,
    company: Company,
    email: str,
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> int:
    """Issue a fresh code for (tenant, email) and mail it.

    Returns:
        Seconds until the code expires.

    Raises:
        InvalidInputError: Malformed e-mail.
        TooManyRequestsError: Previous send is younger than the cooldown.
        MailDeliveryError: The code could not be delivered.
    """
    settings = settings or get_settings()
    now = now or utc_now()
    email = normalize_email(email)

    advisory_xact_lock(cur, f"otp:{company.id}:{email}")

    cur.execute(
        """
        SELECT created_at
        FROM otp_sessions
        WHERE company_id = %s AND email = %s
        ORDER BY created_at DESC
        LIMIT 1
        """,
        (company.id, email),
    )
    row = cur.fetchone()
    if row is not None:
        elapsed = (now - row[0]).total_seconds()
        if elapsed < settings.otp_resend_cooldown_seconds:
            wait = int(settings.otp_resend_cooldown_seconds - elapsed) or 1
            logger.info(
                "otp resend throttled",
                extra={"extra_fields": safe_log_context(company_id=company.id, wait_seconds=wait)},
            )
            raise TooManyRequestsError(wait)

    cur.execute(
        "DELETE FROM otp_sessions WHERE company_id = %s AND email = %s AND verified = FALSE",
        (company.id, email),
    )

    code = generate_code()
    ttl = timedelta(minutes=settings.otp_ttl_minutes)
    cur.execute(
        """
        INSERT INTO otp_sessions (company_id, email, code_hash, expires_at, created_at)
        VALUES (%s, %s, %s, %s, %s)
        """,
        (company.id, email, hash_otp(company.id, email, code), now + ttl, now),
    )

    mailer.send(
        email,
        f"Your verification code for {company.name}",
        (
            f"<p>Your verification code for <b>{escape(company.name)}</b> is:</p>"
            f"<h2>{code}</h2>"
            f"<p>This code expires in {settings.otp_ttl_minutes} minutes.</p>"
        ),
        on_failure="propagate",
    )

    logger.info("otp sent", extra={"extra_fields": safe_log_context(company_id=company.id)})
    return int(ttl.total_seconds())


def verify_otp(
    company_id: int,
    email: str,
    code: str,
    *,
    now: datetime | None = None,
) -> str:
    """Check ``code`` against the latest unverified row and mint a session token.

    Owns its transaction so a failed attempt is counted even though the call
    raises. After MAX_VERIFY_ATTEMPTS failures the row is discarded.

    Returns:
        Opaque session token (shown once, stored only as a hash).

    Raises:
        NotFoundError: No pending code for (tenant, email).
        OtpExpiredError: The code's expiry has passed.
        OtpMismatchError: Wrong code.
    """
    from frontgate.infra.db import txn

    now = now or utc_now()
    email = normalize_email(email)
    code = (code or "").strip()
    failure: Exception | None = None
    token = None

    with txn() as cur:
        cur.execute(
            """
            SELECT id, code_hash, expires_at, attempts
            FROM otp_sessions
            WHERE company_id = %s AND email = %s AND verified = FALSE
            ORDER BY created_at DESC
            LIMIT 1
            FOR UPDATE
            """,
            (company_id, email),
        )
        row = cur.fetchone()
        if row is None:
            raise NotFoundError("verification code", "No pending verification code. Please request a new one.")
        session_id, code_hash, expires_at, attempts = row

        if expires_at <= now:
            raise OtpExpiredError()

        if not otp_matches(code_hash, company_id, email, code):
            if attempts + 1 >= MAX_VERIFY_ATTEMPTS:
                cur.execute("DELETE FROM otp_sessions WHERE id = %s", (session_id,))
            else:
                cur.execute(
                    "UPDATE otp_sessions SET attempts = attempts + 1 WHERE id = %s",
                    (session_id,),
                )
            failure = OtpMismatchError()
        else:
            token = secrets.token_urlsafe(32)
            cur.execute(
                """
                UPDATE otp_sessions
                SET verified = TRUE, session_token_hash = %s, token_verified_at = %s
                WHERE id = %s
                """,
                (hash_token(token), now, session_id),
            )

    if failure is not None:
        logger.info(
            "otp mismatch",
            extra={"extra_fields": safe_log_context(company_id=company_id, attempts=attempts + 1)},
        )
        raise failure

    logger.info("otp verified", extra={"extra_fields": safe_log_context(company_id=company_id)})
    return token


def lock_session(
    cur: PgCursor,
    company_id: int,
    token: str,
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> OtpSession:
    """Lock the verified session behind ``token`` for the current transaction.

    A concurrent registration holding the same token blocks here and, once
    the first commits, no longer matches (the token hash is gone).

    Raises:
        SessionExpiredError: Unknown, consumed or out-of-window token.
    """
    settings = settings or get_settings()
    now = now or utc_now()
    if not token:
        raise SessionExpiredError()

    cur.execute(
        """
        SELECT id, email
        FROM otp_sessions
        WHERE company_id = %s
          AND session_token_hash = %s
          AND verified = TRUE
          AND token_verified_at > %s
        FOR UPDATE
        """,
        (company_id, hash_token(token), now - timedelta(minutes=settings.otp_session_minutes)),
    )
    row = cur.fetchone()
    if row is None:
        raise SessionExpiredError()
    return OtpSession(id=row[0], company_id=company_id, email=row[1])


def consume_session(cur: PgCursor, session: OtpSession, *, now: datetime | None = None) -> None:
    """Null the token so it can never authorize another registration."""
    cur.execute(
        """
        UPDATE otp_sessions
        SET session_token_hash = NULL, consumed_at = %s
        WHERE id = %s
        """,
        (now or utc_now(), session.id),
    )
