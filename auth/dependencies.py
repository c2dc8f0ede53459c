"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The services live on app.state (wired by the lifespan in api/main.py). These
helpers pull them off the request so route handlers can declare them as
dependencies instead of reaching into app.state themselves.

get_current_identity() authenticates the Authorization: Bearer <access token>
header. Only access tokens are accepted; a refresh token is signed with the
other secret and fails verification.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import InvalidAccessTokenError
from auth.models import Identity
from auth.service import CredentialManager, TokenService


def get_credential_manager(request: Request) -> CredentialManager:
    return request.app.state.credentials


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_current_identity(request: Request) -> Identity:
    """Require a valid bearer access token. Raises InvalidAccessTokenError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise InvalidAccessTokenError()
    token = auth_header[7:].strip()
    if not token:
        raise InvalidAccessTokenError()
    return get_token_service(request).verify_access_token(token)
