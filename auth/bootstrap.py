"""
auth/bootstrap.py -- Guarantee an owner identity exists at startup.

Called from the FastAPI lifespan before the app starts serving, and from the
`bootstrap-owner` CLI command. Idempotent: running it any number of times with
the same email leaves exactly one record, holding role=owner and active.

This is the only code path that may assign the owner role.
"""

from __future__ import annotations

import logging
import secrets

from sqlalchemy.exc import IntegrityError

from auth.models import OWNER, User
from auth.store import UserStore, normalize_email
from auth.tokens import hash_password

logger = logging.getLogger("trafficauth.bootstrap")


def bootstrap_owner(store: UserStore, owner_email: str, default_password: str = "") -> User | None:
    """Promote or create the configured owner. Returns None when no email is configured.

    If the password is not configured, a random one is generated and written
    to the log exactly once; that log line is the out-of-band delivery.
    """
    if not owner_email:
        logger.warning("OWNER_EMAIL not set -- no owner account will be bootstrapped")
        return None

    email = normalize_email(owner_email)
    existing = store.get_by_email(email)
    if existing is None:
        password = default_password or secrets.token_urlsafe(12)
        try:
            store.create_user(
                User(
                    name="System Owner",
                    email=email,
                    role=OWNER,
                    hashed_password=hash_password(password),
                    is_active=True,
                )
            )
        except IntegrityError:
            # Another process created it between our lookup and insert.
            existing = store.get_by_email(email)
            if existing is None:
                raise
        else:
            logger.info("Owner account created: %s", email)
            if not default_password:
                logger.warning("Generated owner password: %s -- change it immediately", password)
            return store.get_by_email(email)

    if existing.role != OWNER or not existing.is_active:
        store.update_user(existing.id, role=OWNER, is_active=True)
        logger.info("User %s promoted to owner", email)
    else:
        logger.info("Owner account exists: %s", email)
    return store.get_by_id(existing.id)
