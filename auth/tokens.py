"""
auth/tokens.py -- Access and refresh token codec.

Security design decisions:
  JWT: python-jose with HS256. Two token kinds, each signed with its own
       secret and carrying its own lifetime:

         access   minutes-scale, full identity claims, type="access"
         refresh  days-scale, user id only, type="refresh"

       A refresh token carries no profile claims. It is only ever exchanged
       for a new access token after a fresh directory lookup, so embedding the
       role would only add staleness.

  Kind check: verify_access()/verify_refresh() validate signature and expiry.
       Callers then apply require_kind(). With separate secrets a token of the
       wrong kind already fails the signature check; require_kind() rejects it
       even if the two secrets were ever configured alike.

  State: none. A token is immutable once issued and stops working only when
       it expires. There is no revocation list.

Layer rule: no imports from api/. Import from core/ is allowed for
from_settings() only.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import TokenExpiredError, TokenMalformedError, WrongTokenKindError
from auth.models import AccessClaims, RefreshClaims, User

if TYPE_CHECKING:
    from core.config import Settings

ACCESS = "access"
REFRESH = "refresh"

_ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Builds and parses the two signed token kinds.

    Usage:
        codec = TokenCodec.from_settings(get_settings())
        token = codec.issue_access(user)
        payload = codec.verify_access(token)
        require_kind(payload, ACCESS)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expires: timedelta = timedelta(minutes=15),
        refresh_expires: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_expires = access_expires
        self.refresh_expires = refresh_expires
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_expires=timedelta(minutes=settings.jwt_access_expire_minutes),
            refresh_expires=timedelta(days=settings.jwt_refresh_expire_days),
        )

    @property
    def access_expires_in(self) -> int:
        """Access token lifetime in seconds (the OAuth-style expires_in value)."""
        return int(self.access_expires.total_seconds())

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access(self, user: User) -> str:
        payload = {
            "sub": str(user.id),
            "user_id": user.id,
            "username": user.username,
            "email": user.email,
            "role_id": user.role_id,
            "role_name": user.role_name,
            "municipality_id": user.municipality_id,
            "type": ACCESS,
        }
        return self._encode(payload, self._access_secret, self.access_expires)

    def issue_refresh(self, user: User) -> str:
        payload = {
            "sub": str(user.id),
            "user_id": user.id,
            "type": REFRESH,
        }
        return self._encode(payload, self._refresh_secret, self.refresh_expires)

    def _encode(self, payload: dict[str, Any], secret: str, lifetime: timedelta) -> str:
        now = self._clock()
        payload["iat"] = now
        payload["exp"] = now + lifetime
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access(self, token: str) -> dict[str, Any]:
        """Validate signature and expiry with the access secret; return the payload."""
        return self._decode(token, self._access_secret)

    def verify_refresh(self, token: str) -> dict[str, Any]:
        """Validate signature and expiry with the refresh secret; return the payload."""
        return self._decode(token, self._refresh_secret)

    @staticmethod
    def _decode(token: str, secret: str) -> dict[str, Any]:
        try:
            return jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except JWTError as exc:
            raise TokenMalformedError() from exc


def require_kind(payload: dict[str, Any], expected: str) -> None:
    """Raise WrongTokenKindError unless the payload's type claim is expected."""
    if payload.get("type") != expected:
        raise WrongTokenKindError()


def access_claims(payload: dict[str, Any]) -> AccessClaims:
    """Typed view of a verified access payload."""
    try:
        return AccessClaims(
            user_id=int(payload["user_id"]),
            username=payload["username"],
            email=payload["email"],
            role_id=payload["role_id"],
            role_name=payload.get("role_name"),
            municipality_id=payload.get("municipality_id"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenMalformedError() from exc


def refresh_claims(payload: dict[str, Any]) -> RefreshClaims:
    """Typed view of a verified refresh payload."""
    try:
        return RefreshClaims(user_id=int(payload["user_id"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenMalformedError() from exc
