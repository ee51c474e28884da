"""
Conversation store and resolver.

A conversation is keyed by the unordered pair of its participants. Writes
store the pair normalized (smaller id first) under a unique constraint, and
lookups normalize the queried pair the same way, so (u, v) and (v, u)
always land on the same row.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dialogue import identity
from dialogue.errors import ConversationNotFound, DuplicateConversation, ParticipantNotFound
from dialogue.metrics import record_conversation_resolved
from dialogue.models import Conversation, is_row_id, normalize_pair
from dialogue.utils import utc_now_iso

logger = logging.getLogger(__name__)


# =============================================================================
# Conversation Store
# =============================================================================

def find_conversation_by_pair(db: Session, user_a_id: int, user_b_id: int) -> Optional[Conversation]:
    """Symmetric lookup: matches a row stored as (a, b) or (b, a)."""
    low, high = normalize_pair(user_a_id, user_b_id)
    return (
        db.query(Conversation)
        .filter(Conversation.pair_low_id == low, Conversation.pair_high_id == high)
        .first()
    )


def insert_conversation(db: Session, user_a_id: int, user_b_id: int) -> Conversation:
    """
    Persist a new conversation between two users.

    Raises:
        DuplicateConversation: the unordered pair is already stored
    """
    low, high = normalize_pair(user_a_id, user_b_id)
    conversation = Conversation(
        participant_a_id=user_a_id,
        participant_b_id=user_b_id,
        pair_low_id=low,
        pair_high_id=high,
        created_at=utc_now_iso(),
    )
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateConversation(user_a_id, user_b_id) from e
    except Exception:
        db.rollback()
        raise
    db.refresh(conversation)
    return conversation


# =============================================================================
# Conversation Resolver
# =============================================================================

def _require_participants(db: Session, user_a_id: int, user_b_id: int) -> None:
    for user_id in (user_a_id, user_b_id):
        if identity.get_user_by_id(db, user_id) is None:
            logger.warning(f"Cannot open conversation, unknown user: {user_id}")
            raise ParticipantNotFound(user_id)


def resolve_conversation(db: Session, user_a_id: int, user_b_id: int) -> Conversation:
    """
    Return the single conversation between two users, creating it on first contact.

    The argument order only matters for the first call: it becomes the
    participant_a/participant_b order of the stored row.

    Raises:
        ParticipantNotFound: either user does not exist
    """
    for user_id in (user_a_id, user_b_id):
        if not is_row_id(user_id):
            logger.warning(f"Cannot open conversation, user id out of range: {user_id}")
            raise ParticipantNotFound(user_id)

    existing = find_conversation_by_pair(db, user_a_id, user_b_id)
    if existing is not None:
        logger.debug(f"Conversation {existing.id} found for users {user_a_id}/{user_b_id}")
        record_conversation_resolved("existing")
        return existing

    _require_participants(db, user_a_id, user_b_id)

    try:
        conversation = insert_conversation(db, user_a_id, user_b_id)
    except DuplicateConversation as dup:
        # A concurrent first contact won the insert; return its row
        winner = find_conversation_by_pair(db, user_a_id, user_b_id)
        if winner is None:
            # The constraint that fired was not the pair constraint
            logger.error(f"Conversation insert for users {user_a_id}/{user_b_id} failed without a stored pair")
            _require_participants(db, user_a_id, user_b_id)
            raise dup.__cause__ from None
        logger.info(f"Conversation insert lost a race, using existing conversation {winner.id}")
        record_conversation_resolved("race_recovered")
        return winner

    logger.info(f"Conversation created: id={conversation.id}, users={user_a_id}/{user_b_id}")
    record_conversation_resolved("created")
    return conversation


def find_conversation_by_id(db: Session, conversation_id: int) -> Conversation:
    """
    Raises:
        ConversationNotFound: no conversation has this id
    """
    if not is_row_id(conversation_id):
        raise ConversationNotFound(conversation_id)
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise ConversationNotFound(conversation_id)
    return conversation


def list_conversations_for_user(db: Session, user_id: int) -> List[Conversation]:
    """Conversations the user takes part in, most recently created first."""
    conversations = (
        db.query(Conversation)
        .filter((Conversation.participant_a_id == user_id) | (Conversation.participant_b_id == user_id))
        .order_by(Conversation.created_at.desc(), Conversation.id.desc())
        .all()
    )
    logger.debug(f"Found {len(conversations)} conversations for user {user_id}")
    return conversations
