"""Unit tests for auth/bootstrap.py -- owner provisioning at startup."""

import logging

import pytest

from auth.bootstrap import bootstrap_owner
from auth.models import User
from auth.tokens import hash_password, verify_password


@pytest.fixture
def user_store(stores):
    user_store, _ = stores
    return user_store


def test_creates_owner_when_missing(user_store):
    owner = bootstrap_owner(user_store, "Boss@Example.com", "ownerpass123")
    assert owner.role == "owner"
    assert owner.is_active is True
    assert owner.email == "boss@example.com"
    assert verify_password("ownerpass123", owner.hashed_password)


def test_running_twice_leaves_one_owner(user_store):
    first = bootstrap_owner(user_store, "boss@example.com", "ownerpass123")
    second = bootstrap_owner(user_store, "boss@example.com", "ownerpass123")
    assert first.id == second.id
    assert len(user_store.list_users()) == 1
    assert user_store.count_active_owners() == 1


def test_promotes_and_reactivates_existing_user(user_store):
    uid = user_store.create_user(
        User(name="Bo", email="boss@example.com", role="viewer", hashed_password=hash_password("mine123"), is_active=False)
    )
    owner = bootstrap_owner(user_store, "boss@example.com", "ignored123")
    assert owner.id == uid
    assert owner.role == "owner"
    assert owner.is_active is True
    # The existing password is kept.
    assert verify_password("mine123", owner.hashed_password)


def test_no_email_configured_returns_none(user_store, caplog):
    with caplog.at_level(logging.WARNING, logger="trafficauth.bootstrap"):
        assert bootstrap_owner(user_store, "") is None
    assert user_store.list_users() == []
    assert "OWNER_EMAIL" in caplog.text


def test_generated_password_is_logged_once(user_store, caplog):
    with caplog.at_level(logging.WARNING, logger="trafficauth.bootstrap"):
        owner = bootstrap_owner(user_store, "boss@example.com")
        bootstrap_owner(user_store, "boss@example.com")
    lines = [r.getMessage() for r in caplog.records if "Generated owner password" in r.getMessage()]
    assert len(lines) == 1
    generated = lines[0].split(": ", 1)[1].split(" ", 1)[0]
    assert verify_password(generated, owner.hashed_password)
