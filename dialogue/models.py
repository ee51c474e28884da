"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from sqlalchemy import Column, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from dialogue.storage import Base
from dialogue.utils import utc_now_iso

DEFAULT_ROLE = "ROLE_USER"

# Largest primary key SQLite (and any signed 64-bit column) can hold
MAX_ROW_ID = 2**63 - 1


def is_row_id(value: int) -> bool:
    return 0 < value <= MAX_ROW_ID


def normalize_pair(user_a_id: int, user_b_id: int) -> Tuple[int, int]:
    """Order a pair of user ids so (u, v) and (v, u) map to the same key."""
    return (user_a_id, user_b_id) if user_a_id <= user_b_id else (user_b_id, user_a_id)


class User(Base):
    """
    Identity record owned by the user-management collaborator.

    Table: users
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=DEFAULT_ROLE)
    created_at = Column(String, nullable=False, default=utc_now_iso)  # Server time ISO-8601


class Conversation(Base):
    """
    A two-party conversation.

    Table: conversations
    participant_a/b keep the order of the first resolution; pair_low_id and
    pair_high_id hold the same ids sorted, and carry the uniqueness
    constraint for the unordered pair.
    """
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("pair_low_id", "pair_high_id", name="uq_conversations_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)
    participant_a_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    participant_b_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    pair_low_id = Column(Integer, nullable=False, index=True)
    pair_high_id = Column(Integer, nullable=False, index=True)
    created_at = Column(String, nullable=False, index=True)

    participant_a = relationship("User", foreign_keys=[participant_a_id], lazy="joined")
    participant_b = relationship("User", foreign_keys=[participant_b_id], lazy="joined")

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.participant_a_id, self.participant_b_id)

    def other_participant(self, user_id: int) -> User:
        """The participant facing `user_id`; in a self-conversation that is the user again."""
        return self.participant_b if self.participant_a_id == user_id else self.participant_a


class Photo(Base):
    """
    A stored image upload.

    Table: photos
    storage_key is the physical file name under the upload directory;
    original_name is display metadata only.
    """
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, index=True)
    storage_key = Column(String, nullable=False, unique=True)
    original_name = Column(String, nullable=True)
    url = Column(String, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(String, nullable=False)

    author = relationship("User", lazy="joined")


@dataclass(frozen=True)
class NoAttachment:
    """A message without a photo."""


@dataclass(frozen=True)
class Attachment:
    """A message carrying exactly one photo."""
    photo: Photo


PhotoAttachment = Union[NoAttachment, Attachment]

NO_ATTACHMENT = NoAttachment()


def attachment_of(photo: Optional[Photo]) -> PhotoAttachment:
    return Attachment(photo) if photo is not None else NO_ATTACHMENT


class Message(Base):
    """
    A message posted in a conversation.

    Table: messages
    Listing order is created_at ASC, id ASC.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    text = Column(Text, nullable=True)
    photo_id = Column(Integer, ForeignKey("photos.id"), nullable=True, unique=True)
    created_at = Column(String, nullable=False, index=True)

    sender = relationship("User", lazy="joined")
    photo = relationship("Photo", lazy="joined")

    @property
    def attachment(self) -> PhotoAttachment:
        return attachment_of(self.photo)
