"""
auth/service.py -- Credential manager and token service.

CredentialManager handles signup and signin: it hashes and verifies passwords
and creates identity records. On success it hands the identity to
TokenService, which mints the access/refresh pair, stores the refresh digest,
and returns the pair.

Refresh flow (TokenService.refresh), terminal on the first failure:
  1. Verify the token's signature, type and embedded exp with the refresh secret.
  2. Load the identity by the token's subject, requiring a stored digest and a
     stored expiry strictly in the future.
  3. Compare the presented token with the stored digest.
  4. Rotate: issue a new pair, swapping the stored digest only if it is still
     the one matched in step 3.

Every failure raises InvalidRefreshTokenError. The stage that failed is kept
on the exception as a RefreshFailure and logged, never returned.

Layer rule: no imports from api/. core/ is imported for Settings only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    CredentialsTakenError,
    InvalidAccessTokenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    RefreshFailure,
)
from auth.models import Identity, TokenPair
from auth.store import IdentityStore
from auth.tokens import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    decode_token,
    encode_token,
    hash_password,
    hash_refresh_token,
    verify_password_timing_safe,
    verify_refresh_token,
)
from core.config import Settings

logger = logging.getLogger("refreshgate.auth")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Mints token pairs and runs the refresh-rotation protocol."""

    def __init__(self, store: IdentityStore, settings: Settings, clock: Clock = _utcnow) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def _mint(self, identity: Identity, now: datetime) -> TokenPair:
        s = self._settings
        access_token = encode_token(
            identity.id,
            identity.email,
            ACCESS_TOKEN_TYPE,
            s.access_token_secret,
            s.access_token_ttl_seconds,
            now,
            algorithm=s.jwt_algorithm,
        )
        refresh_token = encode_token(
            identity.id,
            identity.email,
            REFRESH_TOKEN_TYPE,
            s.refresh_token_secret,
            s.refresh_token_ttl_seconds,
            now,
            algorithm=s.jwt_algorithm,
        )
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def issue_and_persist(self, identity: Identity, expected_hash: str | None = None) -> TokenPair:
        """Mint a new pair for identity and store the refresh digest, replacing any previous one.

        expected_hash turns the store write into a compare-and-swap against the
        digest the caller matched. If another rotation got there first the
        swap fails and InvalidRefreshTokenError is raised; the freshly minted
        pair is discarded unseen.
        """
        now = self._clock()
        pair = self._mint(identity, now)
        digest = hash_refresh_token(pair.refresh_token, self._settings.refresh_token_secret)
        expires_at = now + timedelta(seconds=self._settings.refresh_token_ttl_seconds)
        updated = self._store.update_identity_refresh_state(identity.id, digest, expires_at, expected_hash=expected_hash)
        if not updated:
            if expected_hash is not None:
                raise InvalidRefreshTokenError(RefreshFailure.DIGEST_MISMATCH)
            # Unconditional write found no row: the identity vanished mid-request.
            raise LookupError(f"identity {identity.id} not found while storing refresh state")
        return pair

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, presented_refresh_token: str) -> TokenPair:
        """Exchange a live refresh token for a new pair, invalidating the presented one."""
        try:
            return self._refresh(presented_refresh_token)
        except InvalidRefreshTokenError as exc:
            logger.info("Refresh rejected (reason=%s)", exc.reason.value)
            raise

    def _refresh(self, presented_refresh_token: str) -> TokenPair:
        s = self._settings
        payload = decode_token(
            presented_refresh_token,
            s.refresh_token_secret,
            REFRESH_TOKEN_TYPE,
            algorithm=s.jwt_algorithm,
        )
        if payload is None:
            raise InvalidRefreshTokenError(RefreshFailure.BAD_SIGNATURE)

        identity = self._store.find_identity_by_id_with_valid_refresh(payload["sub"], self._clock())
        if identity is None:
            raise InvalidRefreshTokenError(RefreshFailure.NO_ACTIVE_SESSION)

        if not verify_refresh_token(presented_refresh_token, identity.refresh_token_hash, s.refresh_token_secret):
            raise InvalidRefreshTokenError(RefreshFailure.DIGEST_MISMATCH)

        pair = self.issue_and_persist(identity, expected_hash=identity.refresh_token_hash)
        logger.info("Refresh token rotated for identity %s", identity.id)
        return pair

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> Identity:
        """Resolve a bearer access token to its identity, or raise InvalidAccessTokenError."""
        payload = decode_token(
            token,
            self._settings.access_token_secret,
            ACCESS_TOKEN_TYPE,
            algorithm=self._settings.jwt_algorithm,
        )
        if payload is None:
            raise InvalidAccessTokenError()
        identity = self._store.find_identity_by_id(payload["sub"])
        if identity is None:
            raise InvalidAccessTokenError()
        return identity


class CredentialManager:
    """Signup and signin on top of IdentityStore, delegating token issue to TokenService."""

    def __init__(self, store: IdentityStore, tokens: TokenService) -> None:
        self._store = store
        self._tokens = tokens

    def create_identity(self, email: str, password: str) -> TokenPair:
        """Register a new identity and issue its first token pair.

        Raises CredentialsTakenError if the email is already registered. Any
        other store error propagates unchanged.
        """
        if not email:
            raise ValueError("email must not be empty")
        if not password:
            raise ValueError("password must not be empty")

        password_hash = hash_password(password)
        try:
            identity = self._store.insert_identity(email, password_hash)
        except IntegrityError as exc:
            logger.info("Signup rejected: credentials taken")
            raise CredentialsTakenError() from exc

        logger.info("Identity %s created", identity.id)
        return self._tokens.issue_and_persist(identity)

    def authenticate(self, email: str, password: str) -> TokenPair:
        """Verify email/password and issue a fresh pair, rotating out any previous refresh token.

        Unknown email and wrong password raise the same InvalidCredentialsError,
        and both paths run bcrypt once so timing does not tell them apart.
        """
        identity = self._store.find_identity_by_email(email)
        stored_hash = identity.password_hash if identity is not None else None
        if not verify_password_timing_safe(password, stored_hash):
            logger.info("Signin rejected: invalid credentials")
            raise InvalidCredentialsError()

        logger.info("Identity %s signed in", identity.id)
        return self._tokens.issue_and_persist(identity)
