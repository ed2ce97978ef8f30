"""Process configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of runtime configuration."""

    otp_ttl_minutes: int
    otp_resend_cooldown_seconds: int
    otp_session_minutes: int
    default_timezone: str
    plan_limits_json: str | None

    s3_bucket: str | None
    aws_region: str | None
    s3_endpoint_url: str | None
    s3_public_base_url: str | None

    smtp_host: str | None
    smtp_port: int
    smtp_user: str | None
    smtp_password: str | None
    smtp_timeout_seconds: int
    mail_from: str

    billing_webhook_secret: str | None
    public_app_url: str


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        otp_ttl_minutes=_int_env("OTP_TTL_MINUTES", 10),
        otp_resend_cooldown_seconds=_int_env("OTP_RESEND_COOLDOWN_SECONDS", 60),
        otp_session_minutes=_int_env("OTP_SESSION_MINUTES", 30),
        default_timezone=os.environ.get("DEFAULT_TENANT_TIMEZONE", "Asia/Kolkata"),
        plan_limits_json=os.environ.get("PLAN_LIMITS_JSON") or None,
        s3_bucket=os.environ.get("S3_BUCKET") or None,
        aws_region=os.environ.get("AWS_REGION") or None,
        s3_endpoint_url=os.environ.get("S3_ENDPOINT_URL") or None,
        s3_public_base_url=os.environ.get("S3_PUBLIC_BASE_URL") or None,
        smtp_host=os.environ.get("SMTP_HOST") or None,
        smtp_port=_int_env("SMTP_PORT", 587),
        smtp_user=os.environ.get("SMTP_USER") or None,
        smtp_password=os.environ.get("SMTP_PASSWORD") or None,
        smtp_timeout_seconds=_int_env("SMTP_TIMEOUT_SECONDS", 15),
        mail_from=os.environ.get("MAIL_FROM", "no-reply@frontgate.local"),
        billing_webhook_secret=os.environ.get("BILLING_WEBHOOK_SECRET") or None,
        public_app_url=os.environ.get("PUBLIC_APP_URL", "http://localhost:3000").rstrip("/"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings loaded once per process. Tests call get_settings.cache_clear()."""
    return load_settings()
