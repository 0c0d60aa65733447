"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
service do the work; these only own the shape.

Two shapes deserve a note:
  PublicUser has no password_hash field at all. Sanitizing is a copy into a
  type that cannot hold the hash, so no response path can leak it.

  AccessClaims is the identity context attached to a request by the
  authentication gate. It is built from token claims only and never from a
  User row, so the hash is not present even transiently.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Role:
    """A role resolved from the roles table at read time."""

    id: int
    name: str
    permissions: tuple[str, ...] = ()


@dataclass
class User:
    """A stored identity joined with its role.

    password_hash is None on the find_by_id read path, which is only used after
    authentication has already happened.
    """

    username: str
    email: str
    role_id: int
    id: int | None = None
    password_hash: str | None = None
    role: Role | None = None
    municipality_id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    profile_image_url: str | None = None
    is_active: bool = True
    email_verified: bool = False
    last_login: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    deleted_at: str | None = None

    @property
    def role_name(self) -> str | None:
        return self.role.name if self.role is not None else None

    @property
    def permissions(self) -> tuple[str, ...]:
        return self.role.permissions if self.role is not None else ()


@dataclass
class NewUser:
    """Minimal write shape for UserStore.create(). The password is already hashed."""

    username: str
    email: str
    password_hash: str
    role_id: int
    municipality_id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None


@dataclass
class RegistrationCandidate:
    """Registration input after request validation. role_id None means the default role."""

    username: str
    email: str
    password: str = field(repr=False)
    role_id: int | None = None
    municipality_id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None


@dataclass
class PublicUser:
    """Outward-facing identity. Deliberately has no password field."""

    id: int
    username: str
    email: str
    role_id: int
    role_name: str | None
    permissions: list[str]
    municipality_id: int | None
    first_name: str | None
    last_name: str | None
    phone: str | None
    profile_image_url: str | None
    is_active: bool
    email_verified: bool
    last_login: str | None
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_user(cls, user: User) -> PublicUser:
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role_id=user.role_id,
            role_name=user.role_name,
            permissions=list(user.permissions),
            municipality_id=user.municipality_id,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            profile_image_url=user.profile_image_url,
            is_active=user.is_active,
            email_verified=user.email_verified,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


@dataclass(frozen=True)
class AccessClaims:
    """Identity context carried by an access token."""

    user_id: int
    username: str
    email: str
    role_id: int
    role_name: str | None
    municipality_id: int | None = None


@dataclass(frozen=True)
class RefreshClaims:
    """A refresh token names the user and nothing else."""

    user_id: int


@dataclass
class AuthResult:
    """Returned by register() and login()."""

    user: PublicUser
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
