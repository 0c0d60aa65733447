"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Two gates, applied in this order on a protected route:

  authenticate   Authorization: Bearer <access token> -> AccessClaims,
                 attached to request.state.identity.
  RoleGate       request.state.identity.role_name must be one of the roles
                 the route was registered with.

Usage:
    @router.get("/municipalities", dependencies=[Depends(authenticate), Depends(require_roles("admin", "manager"))])
    def list_municipalities(request: Request): ...

RoleGate reads the identity authenticate attached; it does not authenticate on
its own. If it finds no identity, the route was wired with the gates out of
order and the request fails with NotAuthenticatedError.

Per-request progression:
    Unauthenticated -> TokenExtracted -> TokenVerified(identity) -> RoleChecked(allow | deny)
Any failure along the way raises an AuthError and the handler never runs.

Layer rule: no imports from api/ or core/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from collections.abc import Iterable

from fastapi import Request

from auth.errors import ForbiddenError, NoTokenError, NotAuthenticatedError
from auth.models import AccessClaims
from auth.tokens import ACCESS, TokenCodec, access_claims, require_kind

_BEARER = "bearer"


def _extract_bearer(request: Request) -> str:
    """Return the credential from 'Authorization: Bearer <token>' or raise NoTokenError."""
    header = request.headers.get("Authorization", "")
    scheme, _, credential = header.partition(" ")
    credential = credential.strip()
    if scheme.lower() != _BEARER or not credential:
        raise NoTokenError()
    return credential


def authenticate(request: Request) -> AccessClaims:
    """Authentication gate. Verifies the bearer access token and attaches its claims.

    Raises:
        NoTokenError          header missing or not a Bearer credential
        TokenExpiredError     token past its expiry
        TokenMalformedError   bad signature, bad structure or missing claims
        WrongTokenKindError   a valid token that is not an access token
    """
    codec: TokenCodec = request.app.state.token_codec
    token = _extract_bearer(request)
    payload = codec.verify_access(token)
    require_kind(payload, ACCESS)
    identity = access_claims(payload)
    request.state.identity = identity
    return identity


def _role_names(allowed_roles: str | Iterable[str]) -> tuple[str, ...]:
    """A single role name is one role, not a sequence of characters."""
    if isinstance(allowed_roles, str):
        return (allowed_roles,)
    return tuple(allowed_roles)


def check_roles(identity: AccessClaims | None, allowed_roles: str | Iterable[str]) -> AccessClaims:
    """Authorization contract: return identity if its role is allowed, else raise.

    The Forbidden error carries the required roles and the caller's role so a
    denial can be diagnosed, and nothing else about the identity.
    """
    if identity is None:
        raise NotAuthenticatedError()
    allowed = list(_role_names(allowed_roles))
    if identity.role_name not in allowed:
        raise ForbiddenError(required_roles=allowed, user_role=identity.role_name)
    return identity


class RoleGate:
    """Authorization gate bound to a fixed role set when the route is declared.

    Usage:
        managers_only = RoleGate(["admin", "manager"])
        admins_only = RoleGate("admin")

        @router.post("/routers", dependencies=[Depends(authenticate), Depends(managers_only)])
        def create_router(...): ...
    """

    def __init__(self, allowed_roles: str | Iterable[str]) -> None:
        self.allowed_roles = _role_names(allowed_roles)

    def __call__(self, request: Request) -> AccessClaims:
        return check_roles(getattr(request.state, "identity", None), self.allowed_roles)


def require_roles(*roles: str) -> RoleGate:
    """Shorthand for RoleGate(roles)."""
    return RoleGate(roles)
