"""
Tests for the identity store lookups.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from dialogue import identity
from dialogue.models import DEFAULT_ROLE


def test_create_user_defaults_role(db):
    user = identity.create_user(db, "dave", "hashed")

    assert user.id is not None
    assert user.role == DEFAULT_ROLE
    assert user.created_at


def test_create_user_explicit_role(db):
    admin = identity.create_user(db, "root", "hashed", role="ROLE_ADMIN")

    assert admin.role == "ROLE_ADMIN"


def test_duplicate_username_rejected(db, alice):
    with pytest.raises(IntegrityError):
        identity.create_user(db, "alice", "other-hash")

    assert identity.get_user_by_username(db, "alice").id == alice.id


def test_lookups(db, alice, bob):
    assert identity.get_user_by_id(db, alice.id).username == "alice"
    assert identity.get_user_by_id(db, 999) is None
    assert identity.get_user_by_id(db, 2**70) is None
    assert identity.get_user_by_id(db, 0) is None
    assert identity.get_user_by_username(db, "bob").id == bob.id
    assert identity.get_user_by_username(db, "nobody") is None


def test_username_exists(db, alice):
    assert identity.username_exists(db, "alice")
    assert not identity.username_exists(db, "ALICE")
    assert not identity.username_exists(db, "nobody")


def test_list_other_users(db, alice, bob, carol):
    assert [u.username for u in identity.list_other_users(db, bob.id)] == ["alice", "carol"]
