"""
auth/tokens.py -- JWT signing, password hashing, and refresh-token digests.

Security design decisions:
  JWT: python-jose with HS256. Every token carries sub (identity id), email,
       type ("access" or "refresh"), a random jti, iat and exp. Access and
       refresh tokens are signed with different secrets, so a token signed for
       one purpose never verifies for the other even before the type claim is
       checked. Verification returns None on any failure -- the service layer
       turns that into its own error.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization so response time does not reveal whether
       an email is registered.

  Refresh-token digests: HMAC-SHA256(refresh secret, token). Refresh tokens are
       high-entropy JWTs well past bcrypt's 72-byte input limit, and bcrypt
       would silently compare only their (shared) header prefix. The HMAC is
       deterministic, which lets the store swap digests with a single
       compare-and-swap UPDATE.

These helpers take secrets as arguments instead of reading settings at import
time, so the token service owns which secret signs what.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from datetime import datetime, timedelta

import bcrypt
from jose import JWTError, jwt

DEFAULT_ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_REQUIRED_CLAIMS = ("sub", "email", "type", "jti", "exp")

# bcrypt only looks at the first 72 bytes of its input.
PASSWORD_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt)
# ---------------------------------------------------------------------------


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > PASSWORD_MAX_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords over PASSWORD_MAX_BYTES are refused with ValueError instead of
    being handed to bcrypt, which depending on version either raises or
    silently truncates them.
    """
    if password_too_long(plain):
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if password_too_long(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


# Computed once at module load so the first signin attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("refreshgate_timing_dummy")


def verify_password_timing_safe(plain: str, hashed: str | None) -> bool:
    """Verify a password, running bcrypt even when there is no stored hash.

    Pass hashed=None when the email lookup found nothing. bcrypt then runs
    against _DUMMY_HASH at the same cost as a real check and the result is
    always False.
    """
    if hashed is None:
        verify_password(plain, _DUMMY_HASH)
        return False
    return verify_password(plain, hashed)


# ---------------------------------------------------------------------------
# Refresh-token digests (HMAC-SHA256)
# ---------------------------------------------------------------------------


def hash_refresh_token(token: str, secret: str) -> str:
    """Return HMAC-SHA256(secret, token) as a hex string."""
    return hmac.new(secret.encode("utf-8"), token.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_refresh_token(token: str, digest: str, secret: str) -> bool:
    """Constant-time comparison of a presented refresh token against a stored digest."""
    return hmac.compare_digest(hash_refresh_token(token, secret), digest)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def generate_jti() -> str:
    """Random token id. Keeps two tokens minted in the same second distinct."""
    return uuid.uuid4().hex


def encode_token(
    subject: int,
    email: str,
    token_type: str,
    secret: str,
    ttl_seconds: int,
    now: datetime,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """Encode a signed JWT for an identity.

    Args:
        subject:     Identity id. Stored as a string because JWT sub must be one.
        email:       Identity email, embedded for the client's convenience.
        token_type:  ACCESS_TOKEN_TYPE or REFRESH_TOKEN_TYPE.
        secret:      Signing secret for this token type.
        ttl_seconds: Lifetime from now.
        now:         Issue time (timezone-aware UTC).
    """
    expire = now + timedelta(seconds=ttl_seconds)
    payload = {
        "sub": str(subject),
        "email": email,
        "type": token_type,
        "jti": generate_jti(),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(
    token: str,
    secret: str,
    expected_type: str,
    algorithm: str = DEFAULT_ALGORITHM,
) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Checks signature, exp, presence of all claims this service mints, the
    type claim, and that sub parses as an identity id.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        return None
    if any(claim not in payload for claim in _REQUIRED_CLAIMS):
        return None
    if payload["type"] != expected_type:
        return None
    try:
        payload["sub"] = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    return payload
