"""
auth/errors.py -- Error taxonomy for the authentication core.

Every error the core raises on purpose derives from AuthError and carries the
code/message/status_code the HTTP layer renders. The exception handler in
api/main.py maps them onto the standard error envelope; nothing else in api/
needs to know about individual error classes.

The refresh flow can fail at three different stages (signature, session
lookup, digest match). Those stages are recorded as a RefreshFailure on the
raised InvalidRefreshTokenError for logging, but the response is identical for
all of them so a caller cannot learn which check rejected the token.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum


class RefreshFailure(str, Enum):
    """Internal reason a refresh token was rejected. Never sent to clients."""

    BAD_SIGNATURE = "bad_signature"  # malformed, forged, wrong type or expired claim
    NO_ACTIVE_SESSION = "no_active_session"  # unknown subject, no digest, or stored expiry passed
    DIGEST_MISMATCH = "digest_mismatch"  # rotated away, or lost a concurrent rotation


class AuthError(Exception):
    """Base class for expected, client-facing authentication failures."""

    code = "auth_error"
    message = "Authentication failed."
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class CredentialsTakenError(AuthError):
    """Signup collided with an existing identity."""

    code = "credentials_taken"
    message = "Credentials taken."
    status_code = 403


class InvalidCredentialsError(AuthError):
    """Signin failed. Raised for unknown email and wrong password alike."""

    code = "invalid_credentials"
    message = "Credentials incorrect."
    status_code = 403


class InvalidRefreshTokenError(AuthError):
    """Refresh rejected. The reason attribute is for diagnostics only."""

    code = "invalid_refresh_token"
    message = "Invalid refresh token."
    status_code = 401

    def __init__(self, reason: RefreshFailure) -> None:
        super().__init__()
        self.reason = reason


class InvalidAccessTokenError(AuthError):
    """Bearer access token missing, invalid, expired, or for an unknown identity."""

    code = "unauthorized"
    message = "Authentication required."
    status_code = 401
