"""
auth/service.py -- Registration, login and token refresh.

AuthService orchestrates the three collaborators it is constructed with:

  UserStore       identity directory (lookups, create, last-login stamp)
  PasswordHasher  bcrypt hash / verify
  TokenCodec      access + refresh token issue / verify

It never swallows an error. Each failure leaves as exactly one AuthError
subclass; anything else is a programming or infrastructure fault and goes to
the catch-all 500 handler.

Login rules worth stating:
  - The login field is tried as an email first, then as a username.
  - "No such user" and "wrong password" are the same InvalidCredentialsError,
    and both cost one bcrypt comparison.
  - An inactive account is rejected before the password is checked.
  - last_login is stamped before tokens are issued; a store failure there
    fails the login.

Refresh re-reads the user by id every time. Role, municipality and active
state in the new access token come from the directory, never from the
refresh token.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.errors import (
    AccountInactiveError,
    DuplicateEmailError,
    DuplicateUsernameError,
    InvalidCredentialsError,
    UnknownRoleError,
    UserNotFoundError,
)
from auth.hashing import PasswordHasher
from auth.models import AccessClaims, AuthResult, NewUser, PublicUser, RegistrationCandidate, User
from auth.store import UserStore
from auth.tokens import REFRESH, TokenCodec, refresh_claims, require_kind

logger = logging.getLogger("communityauth.auth")

DEFAULT_ROLE_ID = 5


class AuthService:
    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        codec: TokenCodec,
        default_role_id: int = DEFAULT_ROLE_ID,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.default_role_id = default_role_id

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    def register(self, candidate: RegistrationCandidate) -> AuthResult:
        """Create an account and sign the new user in.

        Uniqueness is checked before anything is hashed or written. The
        created row is re-read because create() does not return the joined
        role.
        """
        if self.store.email_exists(candidate.email):
            logger.info("Registration rejected: email already registered")
            raise DuplicateEmailError()
        if self.store.username_exists(candidate.username):
            logger.info("Registration rejected: username already taken")
            raise DuplicateUsernameError()

        role_id = candidate.role_id if candidate.role_id is not None else self.default_role_id
        if self.store.get_role(role_id) is None:
            raise UnknownRoleError()

        created = self.store.create(
            NewUser(
                username=candidate.username,
                email=candidate.email,
                password_hash=self.hasher.hash(candidate.password),
                role_id=role_id,
                municipality_id=candidate.municipality_id,
                first_name=candidate.first_name,
                last_name=candidate.last_name,
                phone=candidate.phone,
            )
        )

        user = self.store.find_by_id(created.id)
        if user is None:
            # Deleted between insert and re-read.
            raise UserNotFoundError()

        logger.info("Registered user id=%s role=%s", user.id, user.role_name)
        return self._sign_in(user)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, login: str, password: str) -> AuthResult:
        """Authenticate with an email or username plus password."""
        user = self.store.find_by_email(login)
        if user is None:
            user = self.store.find_by_username(login)

        if user is None:
            self.hasher.verify_dummy(password)
            logger.info("Login failed: unknown login")
            raise InvalidCredentialsError()

        if not user.is_active:
            logger.info("Login refused for inactive user id=%s", user.id)
            raise AccountInactiveError()

        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed: bad password for user id=%s", user.id)
            raise InvalidCredentialsError()

        self.store.update_last_login(user.id)
        logger.info("Login succeeded for user id=%s", user.id)
        return self._sign_in(user)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> str:
        """Exchange a refresh token for a new access token.

        The refresh token itself is returned to nobody and never reissued; it
        keeps working until its own expiry.
        """
        payload = self.codec.verify_refresh(refresh_token)
        require_kind(payload, REFRESH)
        claims = refresh_claims(payload)

        user = self.store.find_by_id(claims.user_id)
        if user is None:
            logger.info("Refresh refused: user id=%s no longer exists", claims.user_id)
            raise UserNotFoundError()
        if not user.is_active:
            logger.info("Refresh refused: user id=%s is inactive", claims.user_id)
            raise AccountInactiveError()

        return self.codec.issue_access(user)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def current_user(self, identity: AccessClaims) -> PublicUser:
        """Fresh profile for the identity attached by the authentication gate."""
        user = self.store.find_by_id(identity.user_id)
        if user is None:
            raise UserNotFoundError()
        return self.sanitize(user)

    @staticmethod
    def sanitize(user: User) -> PublicUser:
        """Copy user into its public shape. The input User is left untouched."""
        return PublicUser.from_user(user)

    def _sign_in(self, user: User) -> AuthResult:
        return AuthResult(
            user=self.sanitize(user),
            access_token=self.codec.issue_access(user),
            refresh_token=self.codec.issue_refresh(user),
        )
