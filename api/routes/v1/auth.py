"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; returns profile + both tokens
  POST /api/v1/auth/login      -- email-or-username + password; returns profile + both tokens
  POST /api/v1/auth/refresh    -- refresh token -> new access token
  GET  /api/v1/auth/me         -- current user profile (requires access token)
  POST /api/v1/auth/logout     -- acknowledges; the client discards its tokens

Handlers that hash or verify passwords are plain `def`, so FastAPI runs them
in its threadpool and bcrypt never blocks the event loop.

Errors are raised as AuthError subclasses and rendered by the handler in
api/main.py. Token-bearing responses carry Cache-Control: no-store.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    UserResponse,
)
from auth.dependencies import authenticate
from auth.models import AccessClaims, AuthResult, RegistrationCandidate
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register:  public
# - POST /api/v1/auth/login:     public
# - POST /api/v1/auth/refresh:   public -- the refresh token is the credential
# - GET  /api/v1/auth/me:        requires access token (authenticate)
# - POST /api/v1/auth/logout:    requires access token (authenticate)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _no_store(status_code: int, body: dict) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=body)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _auth_body(service: AuthService, result: AuthResult) -> dict:
    return AuthResponse(
        user=UserResponse.from_public(result.user),
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=service.codec.access_expires_in,
    ).model_dump()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Register a new user and sign them in.

    role_id defaults to the viewer role when omitted.
    """
    service = _service(request)
    result = service.register(
        RegistrationCandidate(
            username=body.username,
            email=body.email,
            password=body.password,
            role_id=body.role_id,
            municipality_id=body.municipality_id,
            first_name=body.first_name,
            last_name=body.last_name,
            phone=body.phone,
        )
    )
    return _no_store(201, _auth_body(service, result))


@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with an email or username and a password.

    Unknown login and wrong password produce the same INVALID_CREDENTIALS
    response.
    """
    service = _service(request)
    result = service.login(body.login, body.password)
    return _no_store(200, _auth_body(service, result))


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Issue a new access token. The refresh token is not rotated."""
    service = _service(request)
    access_token = service.refresh(body.refresh_token)
    return _no_store(
        200,
        RefreshResponse(access_token=access_token, expires_in=service.codec.access_expires_in).model_dump(),
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, identity: AccessClaims = Depends(authenticate)) -> MeResponse:
    """Return the current profile, read fresh from the directory."""
    user = _service(request).current_user(identity)
    return MeResponse(user=UserResponse.from_public(user))


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(identity: AccessClaims = Depends(authenticate)) -> MessageResponse:
    """Acknowledge logout. Tokens are stateless; the client discards them."""
    return MessageResponse(message="Logout successful.")
