"""Unit tests for auth/service.py -- session and password flows.

Covers:
- register() issues a viewer plus a working credential pair
- login(): 401 for bad credentials, 403 for a deactivated account, last_login set
- refresh(): single use, rejected after logout or deactivation
- logout() idempotent; logout_all() counts revoked sessions
- change_password(): verifies the current password, revokes every session
- forgot_password()/reset_password(): silent for unknown emails, single-use,
  expiring tokens
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from auth.bootstrap import bootstrap_owner
from auth.errors import AuthenticationError, AuthorizationError, ValidationError
from auth.store import to_iso
from auth.tokens import decode_access_token, verify_password


@pytest.fixture
def alice(service):
    return service.register("Alice", "alice@example.com", "secret12", ip="10.0.0.1")


class TestRegisterAndLogin:
    def test_register_returns_viewer_and_tokens(self, alice):
        assert alice.user.role == "viewer"
        payload = decode_access_token(alice.access_token)
        assert payload["user_id"] == alice.user.id
        assert payload["role"] == "viewer"
        assert len(alice.refresh_token) == 80

    def test_login_sets_last_login(self, service, alice):
        assert alice.user.last_login is None
        result = service.login("alice@example.com", "secret12", ip="10.0.0.1")
        assert result.user.last_login is not None

    def test_login_wrong_password_is_401(self, service, alice):
        with pytest.raises(AuthenticationError):
            service.login("alice@example.com", "wrong-one", ip=None)

    def test_login_unknown_email_is_401(self, service):
        with pytest.raises(AuthenticationError):
            service.login("nobody@example.com", "secret12", ip=None)

    def test_login_deactivated_is_403(self, service, stores, alice):
        owner = bootstrap_owner(stores[0], "owner@example.com", "ownerpass123")
        service.registry.delete_user(owner.id, alice.user.id)
        with pytest.raises(AuthorizationError):
            service.login("alice@example.com", "secret12", ip=None)

    def test_failed_session_write_leaves_last_login_unset(self, service, stores, alice, monkeypatch):
        user_store, refresh_store = stores

        def fail(record):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(refresh_store, "create", fail)
        with pytest.raises(OperationalError):
            service.login("alice@example.com", "secret12", ip=None)
        assert user_store.get_by_id(alice.user.id).last_login is None

    def test_each_login_opens_a_new_session(self, service, stores, alice):
        _, refresh_store = stores
        service.login("alice@example.com", "secret12", ip=None)
        assert len(refresh_store.list_active_for_user(alice.user.id)) == 2


class TestRefresh:
    def test_refresh_rotates(self, service, alice):
        rotated = service.refresh(alice.refresh_token, ip="10.0.0.2")
        assert rotated.refresh_token != alice.refresh_token
        assert decode_access_token(rotated.access_token)["user_id"] == alice.user.id

    def test_refresh_token_is_single_use(self, service, alice):
        service.refresh(alice.refresh_token, ip=None)
        with pytest.raises(AuthenticationError):
            service.refresh(alice.refresh_token, ip=None)

    def test_successor_is_usable(self, service, alice):
        second = service.refresh(alice.refresh_token, ip=None)
        third = service.refresh(second.refresh_token, ip=None)
        assert third.refresh_token not in (alice.refresh_token, second.refresh_token)

    def test_unknown_token_is_401(self, service):
        with pytest.raises(AuthenticationError):
            service.refresh("f" * 80, ip=None)

    def test_expired_token_is_401(self, service, stores, alice):
        _, refresh_store = stores
        stale = service.issuer.build_refresh_token(alice.user.id, None)
        stale.expires_at = to_iso(datetime.now(timezone.utc) - timedelta(seconds=1))
        refresh_store.create(stale)
        with pytest.raises(AuthenticationError):
            service.refresh(stale.token, ip=None)

    def test_deactivated_user_cannot_refresh(self, service, stores, alice):
        user_store, _ = stores
        user_store.update_user(alice.user.id, is_active=False)
        with pytest.raises(AuthenticationError):
            service.refresh(alice.refresh_token, ip=None)


class TestLogout:
    def test_logout_revokes_presented_token(self, service, alice):
        service.logout(alice.refresh_token, ip=None)
        with pytest.raises(AuthenticationError):
            service.refresh(alice.refresh_token, ip=None)

    def test_logout_is_idempotent(self, service, alice):
        service.logout(alice.refresh_token, ip=None)
        service.logout(alice.refresh_token, ip=None)
        service.logout("never-issued", ip=None)
        service.logout(None, ip=None)

    def test_logout_all_revokes_every_session(self, service, alice):
        other = service.login("alice@example.com", "secret12", ip=None)
        assert service.logout_all(alice.user.id, ip=None) == 2
        for token in (alice.refresh_token, other.refresh_token):
            with pytest.raises(AuthenticationError):
                service.refresh(token, ip=None)
        assert service.logout_all(alice.user.id, ip=None) == 0


class TestChangePassword:
    def test_wrong_current_password_is_401(self, service, alice):
        with pytest.raises(AuthenticationError):
            service.change_password(alice.user.id, "not-it", "brandnew1", ip=None)

    def test_change_revokes_sessions_and_swaps_password(self, service, alice):
        revoked = service.change_password(alice.user.id, "secret12", "brandnew1", ip=None)
        assert revoked == 1
        with pytest.raises(AuthenticationError):
            service.refresh(alice.refresh_token, ip=None)
        with pytest.raises(AuthenticationError):
            service.login("alice@example.com", "secret12", ip=None)
        assert service.login("alice@example.com", "brandnew1", ip=None).user.id == alice.user.id


class TestPasswordReset:
    def test_unknown_email_sends_nothing(self, service, outbox):
        service.forgot_password("nobody@example.com")
        assert outbox == []

    def test_deactivated_account_sends_nothing(self, service, stores, outbox, alice):
        stores[0].update_user(alice.user.id, is_active=False)
        service.forgot_password("alice@example.com")
        assert outbox == []

    def test_token_stored_only_as_hash(self, service, stores, outbox, alice):
        service.forgot_password("ALICE@example.com")
        assert len(outbox) == 1
        email, raw = outbox[0]
        assert email == "alice@example.com"
        stored = stores[0].get_by_id(alice.user.id)
        assert stored.reset_token_hash is not None
        assert stored.reset_token_hash != raw

    def test_reset_sets_password_and_revokes_sessions(self, service, stores, outbox, alice):
        service.forgot_password("alice@example.com")
        _, raw = outbox[0]
        assert service.reset_password(raw, "resetpass1", ip=None) == 1
        stored = stores[0].get_by_id(alice.user.id)
        assert verify_password("resetpass1", stored.hashed_password)
        with pytest.raises(AuthenticationError):
            service.refresh(alice.refresh_token, ip=None)

    def test_reset_token_is_single_use(self, service, outbox, alice):
        service.forgot_password("alice@example.com")
        _, raw = outbox[0]
        service.reset_password(raw, "resetpass1", ip=None)
        with pytest.raises(ValidationError):
            service.reset_password(raw, "another12", ip=None)

    def test_newer_request_replaces_older_token(self, service, outbox, alice):
        service.forgot_password("alice@example.com")
        service.forgot_password("alice@example.com")
        (_, first), (_, second) = outbox
        with pytest.raises(ValidationError):
            service.reset_password(first, "resetpass1", ip=None)
        service.reset_password(second, "resetpass1", ip=None)

    def test_expired_reset_token_rejected(self, service, stores, outbox, alice):
        service.forgot_password("alice@example.com")
        _, raw = outbox[0]
        stores[0].update_user(
            alice.user.id,
            reset_token_expires_at=to_iso(datetime.now(timezone.utc) - timedelta(seconds=1)),
        )
        with pytest.raises(ValidationError):
            service.reset_password(raw, "resetpass1", ip=None)

    def test_garbage_token_rejected(self, service):
        with pytest.raises(ValidationError):
            service.reset_password("not-a-token", "resetpass1", ip=None)
