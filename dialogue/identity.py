"""
Identity store: user lookups consumed by the conversation services.

User management (registration forms, password hashing, sessions) lives
outside this package; these functions only read and write the users table.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from dialogue.models import DEFAULT_ROLE, User, is_row_id
from dialogue.utils import utc_now_iso

logger = logging.getLogger(__name__)


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    logger.debug(f"Looking up user by id: {user_id}")
    if not is_row_id(user_id):
        return None
    return db.get(User, user_id)


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    logger.debug(f"Looking up user by username: {username}")
    return db.query(User).filter(User.username == username).first()


def username_exists(db: Session, username: str) -> bool:
    return db.query(User.id).filter(User.username == username).first() is not None


def create_user(db: Session, username: str, password_hash: str, role: str = DEFAULT_ROLE) -> User:
    """
    Store a new user.

    Args:
        db: Database session
        username: Unique login name
        password_hash: Already-hashed password
        role: Authorization role, ROLE_USER unless stated otherwise

    Raises:
        sqlalchemy.exc.IntegrityError: if the username is taken
    """
    user = User(username=username, password_hash=password_hash, role=role, created_at=utc_now_iso())
    db.add(user)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    logger.info(f"User created: id={user.id}, username={username}")
    return user


def list_other_users(db: Session, user_id: int) -> List[User]:
    """Every user except `user_id`, ordered by username."""
    return (
        db.query(User)
        .filter(User.id != user_id)
        .order_by(User.username.asc(), User.id.asc())
        .all()
    )
