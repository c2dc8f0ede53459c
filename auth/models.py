"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these classes own the domain shape only.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Identity:
    """A registered principal.

    email is unique and case-sensitive as stored. password_hash is a bcrypt
    digest; the plaintext password is never held on this object.

    refresh_token_hash / refresh_token_expires_at describe the single live
    refresh token for this identity. Both are None until the first token pair
    is issued. Every issue overwrites them, which is what invalidates the
    previous refresh token.
    """

    email: str
    password_hash: str
    id: int | None = None
    created_at: datetime | None = None
    refresh_token_hash: str | None = None
    refresh_token_expires_at: datetime | None = None


@dataclass(frozen=True)
class TokenPair:
    """An access/refresh token pair as returned to the client.

    Never persisted. Only a digest of refresh_token reaches the store.
    """

    access_token: str
    refresh_token: str
