"""
api/routes/v1/auth.py -- Signup, signin, refresh and identity REST endpoints.

Routes:
  POST /api/v1/auth/signup    -- create identity; returns token pair (201)
  POST /api/v1/auth/signin    -- password signin; returns token pair (200)
  POST /api/v1/auth/refresh   -- rotate refresh token; returns token pair (200)
  GET  /api/v1/auth/me        -- current identity (requires Bearer access token)

Errors are raised by the auth core as AuthError subclasses and rendered by the
exception handler in api/main.py:
  credentials_taken / invalid_credentials -> 403
  invalid_refresh_token / unauthorized    -> 401

Security:
  Cache-Control: no-store on every response that carries tokens.
  Signin returns the same error for unknown email and wrong password.
  Refresh returns the same error whichever check rejected the token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import CredentialsRequest, MeResponse, RefreshRequest, TokenResponse
from auth.dependencies import get_credential_manager, get_current_identity, get_token_service
from auth.models import Identity, TokenPair
from auth.service import CredentialManager, TokenService

router = APIRouter()


def _token_response(request: Request, pair: TokenPair, status_code: int) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=TokenResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=request.app.state.settings.access_token_ttl_seconds,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/signup", response_model=TokenResponse, status_code=201)
def signup(
    request: Request,
    body: CredentialsRequest,
    credentials: CredentialManager = Depends(get_credential_manager),
) -> JSONResponse:
    """Register a new identity and return its first token pair."""
    pair = credentials.create_identity(body.email, body.password)
    return _token_response(request, pair, 201)


@router.post("/auth/signin", response_model=TokenResponse)
def signin(
    request: Request,
    body: CredentialsRequest,
    credentials: CredentialManager = Depends(get_credential_manager),
) -> JSONResponse:
    """Authenticate with email and password; any previous refresh token stops working."""
    pair = credentials.authenticate(body.email, body.password)
    return _token_response(request, pair, 200)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(
    request: Request,
    body: RefreshRequest,
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is rotated out."""
    pair = tokens.refresh(body.refresh_token)
    return _token_response(request, pair, 200)


@router.get("/auth/me", response_model=MeResponse)
def me(identity: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return the identity behind the bearer access token."""
    return MeResponse(
        id=identity.id,
        email=identity.email,
        created_at=identity.created_at.isoformat() if identity.created_at else "",
    )
