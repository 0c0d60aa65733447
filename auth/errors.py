"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure the service and the two gates can produce is one of these
classes. Each carries its outward code, HTTP status and a client-safe message
as class attributes, so the single AuthError handler in api/main.py can render
all of them without a lookup table.

Messages never say which of username, email or password was wrong, and
internal errors never say what broke.

Layer rule: stdlib only.
"""

from __future__ import annotations

from typing import Any


class AuthError(Exception):
    code = "AUTH_FAILED"
    status_code = 401
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def extra(self) -> dict[str, Any]:
        """Additional structured fields rendered next to code/message."""
        return {}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class DuplicateUserError(AuthError):
    code = "DUPLICATE_USER"
    status_code = 409
    message = "A user with that email or username already exists."


class DuplicateEmailError(DuplicateUserError):
    message = "Email already registered."


class DuplicateUsernameError(DuplicateUserError):
    message = "Username already taken."


class UnknownRoleError(AuthError):
    code = "INVALID_ROLE"
    status_code = 400
    message = "Unknown role."


# ---------------------------------------------------------------------------
# Login / refresh
# ---------------------------------------------------------------------------


class InvalidCredentialsError(AuthError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials."


class AccountInactiveError(AuthError):
    code = "ACCOUNT_INACTIVE"
    message = "Account is inactive."


class UserNotFoundError(AuthError):
    code = "USER_NOT_FOUND"
    message = "User not found."


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class NoTokenError(AuthError):
    code = "NO_TOKEN"
    message = "Authentication required."


class TokenExpiredError(AuthError):
    code = "TOKEN_EXPIRED"
    message = "Token expired."


class TokenMalformedError(AuthError):
    code = "INVALID_TOKEN"
    message = "Invalid token."


class WrongTokenKindError(AuthError):
    code = "INVALID_TOKEN_TYPE"
    message = "Invalid token type."


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class NotAuthenticatedError(AuthError):
    code = "NOT_AUTHENTICATED"
    message = "Authentication required."


class ForbiddenError(AuthError):
    code = "FORBIDDEN"
    status_code = 403
    message = "Access denied. Insufficient permissions."

    def __init__(self, required_roles: list[str], user_role: str | None) -> None:
        super().__init__()
        self.required_roles = list(required_roles)
        self.user_role = user_role

    def extra(self) -> dict[str, Any]:
        return {"required_roles": self.required_roles, "user_role": self.user_role}


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


class InternalError(AuthError):
    code = "INTERNAL_ERROR"
    status_code = 500
    message = "An unexpected error occurred."


class MalformedHashError(InternalError):
    """A stored password hash could not be parsed by bcrypt."""


class DirectoryUnavailableError(InternalError):
    """The user store raised a database error (connection, timeout, schema)."""
