"""Hashing utilities for one-time codes and session tokens.

- HMAC-SHA256 keyed by OTP_HASH_SECRET; plaintext codes are never stored
- Hash is bound to the tenant and e-mail so a row cannot be replayed elsewhere
- Session tokens are high-entropy, so a plain SHA-256 digest is stored
"""

import hashlib
import hmac
import os


def _get_otp_hash_secret() -> bytes:
    """Get HMAC secret for OTP hashing.

    Raises:
        RuntimeError: If OTP_HASH_SECRET is not configured.
    """
    secret = os.environ.get("OTP_HASH_SECRET")
    if not secret:
        raise RuntimeError(
            "OTP_HASH_SECRET not configured. "
            "Generate with: openssl rand -hex 32"
        )
    return secret.encode()


def hash_otp(company_id: int, email: str, code: str) -> str:
    """Hex HMAC-SHA256 of a one-time code."""
    secret = _get_otp_hash_secret()
    message = f"{company_id}|{email.strip().lower()}|{code}".encode()
    return hmac.new(secret, message, hashlib.sha256).hexdigest()


def otp_matches(stored_hash: str, company_id: int, email: str, code: str) -> bool:
    """Constant-time comparison of a submitted code against the stored hash."""
    return hmac.compare_digest(stored_hash, hash_otp(company_id, email, code))


def hash_token(token: str) -> str:
    """Hex SHA-256 of a session token."""
    return hashlib.sha256(token.encode()).hexdigest()
