"""Unit tests for auth/service.py -- AuthService register/login/refresh.

Covers:
- register: default role, explicit role, duplicate email/username, unknown role
- login: by email and by username, uniform INVALID_CREDENTIALS, inactive
  accounts, last_login stamping
- refresh: new access token built from the directory, deleted/inactive users,
  access token presented as refresh
- sanitize: no password hash in the public shape, input left untouched
"""

from dataclasses import fields

import pytest

from auth.errors import (
    AccountInactiveError,
    DirectoryUnavailableError,
    DuplicateEmailError,
    DuplicateUsernameError,
    InvalidCredentialsError,
    TokenMalformedError,
    UnknownRoleError,
    UserNotFoundError,
    WrongTokenKindError,
)
from auth.models import AccessClaims, PublicUser, RegistrationCandidate, User
from auth.service import AuthService
from auth.tokens import ACCESS, REFRESH, TokenCodec


def _candidate(**overrides) -> RegistrationCandidate:
    values = {"username": "ana", "email": "ana@example.org", "password": "correct-horse"}
    values.update(overrides)
    return RegistrationCandidate(**values)


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


class TestRegister:
    def test_defaults_to_viewer(self, service, codec):
        result = service.register(_candidate())
        assert result.user.role_id == 5
        assert result.user.role_name == "viewer"
        assert codec.verify_access(result.access_token)["type"] == ACCESS
        assert codec.verify_refresh(result.refresh_token)["type"] == REFRESH

    def test_explicit_role_and_profile(self, service):
        result = service.register(_candidate(role_id=4, municipality_id=9, first_name="Ana", phone="555"))
        assert result.user.role_name == "accountant"
        assert result.user.municipality_id == 9
        assert result.user.first_name == "Ana"
        assert result.user.phone == "555"

    def test_password_is_hashed_at_rest(self, service, store, hasher):
        service.register(_candidate())
        stored = store.find_by_email("ana@example.org")
        assert stored.password_hash != "correct-horse"
        assert hasher.verify("correct-horse", stored.password_hash)

    def test_duplicate_email(self, service, store):
        service.register(_candidate())
        with pytest.raises(DuplicateEmailError) as exc_info:
            service.register(_candidate(username="other"))
        assert exc_info.value.code == "DUPLICATE_USER"
        assert store.find_by_username("other") is None

    def test_duplicate_username(self, service):
        service.register(_candidate())
        with pytest.raises(DuplicateUsernameError):
            service.register(_candidate(email="other@example.org"))

    def test_email_checked_before_username(self, service):
        service.register(_candidate())
        with pytest.raises(DuplicateEmailError):
            service.register(_candidate())

    def test_unknown_role(self, service, store):
        with pytest.raises(UnknownRoleError):
            service.register(_candidate(role_id=99))
        assert store.find_by_email("ana@example.org") is None

    def test_configured_default_role(self, store, hasher, codec):
        service = AuthService(store, hasher, codec, default_role_id=3)
        assert service.register(_candidate()).user.role_name == "operator"


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_by_email(self, service, make_user):
        user = make_user()
        result = service.login("ana@example.org", "correct-horse")
        assert result.user.id == user.id

    def test_by_username(self, service, make_user):
        user = make_user()
        result = service.login("ana", "correct-horse")
        assert result.user.id == user.id

    def test_access_token_carries_role(self, service, codec, make_user):
        make_user(role_id=1, municipality_id=3)
        payload = codec.verify_access(service.login("ana", "correct-horse").access_token)
        assert payload["role_name"] == "admin"
        assert payload["municipality_id"] == 3

    def test_unknown_login_and_wrong_password_look_the_same(self, service, make_user):
        make_user()
        with pytest.raises(InvalidCredentialsError) as unknown:
            service.login("nobody", "correct-horse")
        with pytest.raises(InvalidCredentialsError) as wrong:
            service.login("ana", "wrong-password")
        assert unknown.value.code == wrong.value.code == "INVALID_CREDENTIALS"
        assert unknown.value.message == wrong.value.message

    def test_unknown_login_spends_a_comparison(self, service, monkeypatch):
        calls = []
        monkeypatch.setattr(service.hasher, "verify_dummy", calls.append)
        with pytest.raises(InvalidCredentialsError):
            service.login("nobody", "whatever")
        assert calls == ["whatever"]

    def test_inactive_account_rejected_before_password_check(self, service, store, make_user):
        user = make_user()
        store.update_user(user.id, is_active=False)
        with pytest.raises(AccountInactiveError):
            service.login("ana", "wrong-password")

    def test_stamps_last_login(self, service, store, make_user):
        user = make_user()
        service.login("ana", "correct-horse")
        assert store.find_by_id(user.id).last_login is not None

    def test_last_login_failure_fails_the_login(self, service, store, make_user, monkeypatch):
        make_user()

        def unavailable(user_id):
            raise DirectoryUnavailableError()

        monkeypatch.setattr(store, "update_last_login", unavailable)
        with pytest.raises(DirectoryUnavailableError):
            service.login("ana", "correct-horse")

    def test_failed_login_does_not_stamp(self, service, store, make_user):
        user = make_user()
        with pytest.raises(InvalidCredentialsError):
            service.login("ana", "wrong-password")
        assert store.find_by_id(user.id).last_login is None

    def test_soft_deleted_user_cannot_login(self, service, store, make_user):
        user = make_user()
        store.soft_delete(user.id)
        with pytest.raises(InvalidCredentialsError):
            service.login("ana", "correct-horse")

    def test_result_has_no_hash(self, service, make_user):
        make_user()
        result = service.login("ana", "correct-horse")
        assert not hasattr(result.user, "password_hash")


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_issues_access_token_from_directory(self, service, store, codec, make_user):
        make_user()
        result = service.login("ana", "correct-horse")
        store.update_user(result.user.id, role_id=2)

        payload = codec.verify_access(service.refresh(result.refresh_token))
        assert payload["type"] == ACCESS
        assert payload["user_id"] == result.user.id
        assert payload["role_name"] == "manager"

    def test_deleted_user(self, service, store, make_user):
        make_user()
        result = service.login("ana", "correct-horse")
        store.soft_delete(result.user.id)
        with pytest.raises(UserNotFoundError):
            service.refresh(result.refresh_token)

    def test_deactivated_user(self, service, store, make_user):
        make_user()
        result = service.login("ana", "correct-horse")
        store.update_user(result.user.id, is_active=False)
        with pytest.raises(AccountInactiveError):
            service.refresh(result.refresh_token)

    def test_access_token_rejected(self, service, make_user):
        make_user()
        result = service.login("ana", "correct-horse")
        with pytest.raises(TokenMalformedError):
            service.refresh(result.access_token)

    def test_type_claim_checked_under_shared_secret(self, store, hasher, make_user):
        secret = "shared-secret-cccccccccccccccccccccccccccc"
        service = AuthService(store, hasher, TokenCodec(secret, secret))
        make_user()
        result = service.login("ana", "correct-horse")
        with pytest.raises(WrongTokenKindError):
            service.refresh(result.access_token)


# ---------------------------------------------------------------------------
# Sanitize / current user
# ---------------------------------------------------------------------------


class TestSanitize:
    def test_public_user_has_no_password_field(self):
        assert "password_hash" not in {f.name for f in fields(PublicUser)}

    def test_does_not_mutate_input(self):
        user = User(id=1, username="ana", email="ana@example.org", role_id=5, password_hash="$2b$hash")
        public = AuthService.sanitize(user)
        assert user.password_hash == "$2b$hash"
        assert public.username == "ana"
        assert not hasattr(public, "password_hash")

    def test_current_user_reads_fresh_profile(self, service, store, make_user):
        user = make_user()
        store.update_user(user.id, first_name="Ana")
        identity = AccessClaims(user_id=user.id, username="ana", email="ana@example.org", role_id=5,
                                role_name="viewer")
        assert service.current_user(identity).first_name == "Ana"

    def test_current_user_gone(self, service, make_user):
        user = make_user()
        service.store.soft_delete(user.id)
        identity = AccessClaims(user_id=user.id, username="ana", email="ana@example.org", role_id=5,
                                role_name="viewer")
        with pytest.raises(UserNotFoundError):
            service.current_user(identity)
