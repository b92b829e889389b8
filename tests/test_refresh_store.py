"""Unit tests for auth/refresh_store.py -- refresh credential persistence and rotation.

Covers:
- validity predicate: active, unrevoked, unexpired
- rotate(): revokes the presented token, records the successor, persists it
- rotate() of an already-rotated, revoked or expired token returns False
- rotate() rolls back if the successor cannot be written (old token still valid)
- revoke_one() is idempotent; revoke_all() hits every active token of one user only
- purge_expired() removes only records past the cutoff
- concurrent rotate() of the same token: exactly one winner
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import RefreshToken
from auth.store import to_iso


def _record(token: str, user_id: int = 1, expires_in: timedelta = timedelta(days=7)) -> RefreshToken:
    return RefreshToken(
        token=token,
        user_id=user_id,
        expires_at=to_iso(datetime.now(timezone.utc) + expires_in),
        created_by_ip="10.0.0.1",
    )


@pytest.fixture
def refresh_store(stores):
    _, refresh_store = stores
    return refresh_store


class TestValidity:
    def test_new_record_is_valid(self, refresh_store):
        refresh_store.create(_record("t0"))
        stored = refresh_store.get_by_token("t0")
        assert stored.is_valid()
        assert stored.created_by_ip == "10.0.0.1"

    def test_expired_record_is_invalid(self, refresh_store):
        refresh_store.create(_record("old", expires_in=timedelta(seconds=-1)))
        assert refresh_store.get_by_token("old").is_valid() is False

    def test_unknown_token_returns_none(self, refresh_store):
        assert refresh_store.get_by_token("missing") is None


class TestRotate:
    def test_rotation_links_and_persists_successor(self, refresh_store):
        refresh_store.create(_record("t0"))
        assert refresh_store.rotate("t0", _record("t1"), ip="10.0.0.2") is True

        old = refresh_store.get_by_token("t0")
        assert old.is_active is False
        assert old.revoked_at is not None
        assert old.revoked_by_ip == "10.0.0.2"
        assert old.replaced_by_token == "t1"
        assert refresh_store.get_by_token("t1").is_valid()

    def test_second_rotation_of_same_token_fails(self, refresh_store):
        refresh_store.create(_record("t0"))
        assert refresh_store.rotate("t0", _record("t1"), ip=None) is True
        assert refresh_store.rotate("t0", _record("t2"), ip=None) is False
        assert refresh_store.get_by_token("t2") is None

    def test_expired_token_cannot_rotate(self, refresh_store):
        refresh_store.create(_record("t0", expires_in=timedelta(seconds=-1)))
        assert refresh_store.rotate("t0", _record("t1"), ip=None) is False
        assert refresh_store.get_by_token("t1") is None

    def test_revoked_token_cannot_rotate(self, refresh_store):
        refresh_store.create(_record("t0"))
        refresh_store.revoke_one("t0", ip=None)
        assert refresh_store.rotate("t0", _record("t1"), ip=None) is False

    def test_failed_successor_insert_leaves_presented_token_valid(self, refresh_store):
        refresh_store.create(_record("t0"))
        refresh_store.create(_record("taken"))
        with pytest.raises(IntegrityError):
            refresh_store.rotate("t0", _record("taken"), ip=None)
        stored = refresh_store.get_by_token("t0")
        assert stored.is_valid()
        assert stored.replaced_by_token is None

    def test_concurrent_rotation_has_exactly_one_winner(self, refresh_store):
        refresh_store.create(_record("t0"))
        workers = 6
        barrier = threading.Barrier(workers)
        results: list[bool] = []
        lock = threading.Lock()

        def attempt(n: int) -> None:
            barrier.wait()
            won = refresh_store.rotate("t0", _record(f"succ-{n}"), ip=None)
            with lock:
                results.append(won)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == workers - 1
        successor = refresh_store.get_by_token("t0").replaced_by_token
        assert refresh_store.get_by_token(successor).is_valid()
        persisted = [n for n in range(workers) if refresh_store.get_by_token(f"succ-{n}") is not None]
        assert len(persisted) == 1


class TestRevocation:
    def test_revoke_one_is_idempotent(self, refresh_store):
        refresh_store.create(_record("t0"))
        assert refresh_store.revoke_one("t0", ip="1.1.1.1") is True
        assert refresh_store.revoke_one("t0", ip="1.1.1.1") is False
        assert refresh_store.revoke_one("never-issued", ip=None) is False
        assert refresh_store.get_by_token("t0").revoked_by_ip == "1.1.1.1"

    def test_revoke_all_only_touches_one_user(self, refresh_store):
        for token in ("a1", "a2", "a3"):
            refresh_store.create(_record(token, user_id=1))
        refresh_store.create(_record("b1", user_id=2))

        assert refresh_store.revoke_all(1, ip="9.9.9.9") == 3
        assert all(not refresh_store.get_by_token(t).is_valid() for t in ("a1", "a2", "a3"))
        assert refresh_store.get_by_token("a1").replaced_by_token is None
        assert refresh_store.get_by_token("b1").is_valid()

    def test_list_active_for_user_excludes_revoked_and_expired(self, refresh_store):
        refresh_store.create(_record("live", user_id=1))
        refresh_store.create(_record("dead", user_id=1))
        refresh_store.create(_record("stale", user_id=1, expires_in=timedelta(seconds=-1)))
        refresh_store.revoke_one("dead", ip=None)
        assert [r.token for r in refresh_store.list_active_for_user(1)] == ["live"]


class TestPurge:
    def test_purge_removes_only_records_expired_before_cutoff(self, refresh_store):
        refresh_store.create(_record("ancient", expires_in=timedelta(days=-60)))
        refresh_store.create(_record("recent", expires_in=timedelta(days=-1)))
        refresh_store.create(_record("live"))

        removed = refresh_store.purge_expired(before=datetime.now(timezone.utc) - timedelta(days=30))
        assert removed == 1
        assert refresh_store.get_by_token("ancient") is None
        assert refresh_store.get_by_token("recent") is not None
        assert refresh_store.get_by_token("live") is not None
