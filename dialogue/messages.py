"""
Message store and service.

Messages are listed oldest first by their stored created_at, with the
message id breaking ties inside a single clock tick. Sending does not
check that the sender takes part in the conversation, nor that the
message carries text or a photo; both are the caller's policy.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dialogue.conversations import find_conversation_by_id
from dialogue.errors import PhotoAlreadyAttached
from dialogue.metrics import record_message_sent, record_photo_ingest
from dialogue.models import Attachment, Message, NO_ATTACHMENT, Photo, PhotoAttachment, User, attachment_of
from dialogue.photos import PhotoIngestor, Upload
from dialogue.utils import utc_now_iso

logger = logging.getLogger(__name__)


def _photo_in_use(db: Session, photo_id: int) -> bool:
    return db.query(Message.id).filter(Message.photo_id == photo_id).first() is not None


def send_message(
    db: Session,
    conversation_id: int,
    sender: User,
    text: Optional[str] = None,
    attachment: PhotoAttachment = NO_ATTACHMENT,
) -> Message:
    """
    Append a message to a conversation.

    Args:
        db: Database session
        conversation_id: Target conversation
        sender: Posting user, assumed to be a participant
        text: Optional message text
        attachment: NO_ATTACHMENT or Attachment(photo)

    Raises:
        ConversationNotFound: the conversation does not exist
        PhotoAlreadyAttached: the attached photo already belongs to another message
    """
    conversation = find_conversation_by_id(db, conversation_id)
    photo = attachment.photo if isinstance(attachment, Attachment) else None

    message = Message(
        conversation_id=conversation.id,
        sender_id=sender.id,
        text=text,
        photo_id=photo.id if photo is not None else None,
        created_at=utc_now_iso(),
    )
    db.add(message)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if photo is not None and _photo_in_use(db, photo.id):
            logger.warning(f"Photo {photo.id} is already attached, message not sent")
            raise PhotoAlreadyAttached(photo.id)
        raise
    except Exception:
        db.rollback()
        raise
    db.refresh(message)

    record_message_sent(with_photo=photo is not None)
    logger.info(
        f"Message sent: id={message.id}, conversation={conversation.id}, "
        f"sender={sender.id}, photo={photo.id if photo is not None else None}"
    )
    return message


def send_message_with_upload(
    db: Session,
    conversation_id: int,
    sender: User,
    text: Optional[str],
    upload: Optional[Upload],
    ingestor: PhotoIngestor,
) -> Message:
    """
    Send a message, attaching the uploaded photo on a best-effort basis.

    An upload without a filename counts as no upload. If ingestion fails for
    any reason the message is still sent, without a photo. Failures of the
    send itself propagate.
    """
    photo: Optional[Photo] = None

    if upload is not None and upload.filename:
        try:
            photo = ingestor.ingest(db, upload.content, upload.content_type, upload.filename, sender)
        except Exception as e:
            db.rollback()
            record_photo_ingest("degraded")
            logger.warning(
                f"Photo attachment dropped for conversation {conversation_id}: {e}",
                exc_info=True,
            )

    return send_message(db, conversation_id, sender, text, attachment_of(photo))


def list_messages(db: Session, conversation_id: int) -> List[Message]:
    """Every message of the conversation, oldest first. No pagination."""
    messages = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    logger.debug(f"Retrieved {len(messages)} messages for conversation {conversation_id}")
    return messages


def list_photos(db: Session, conversation_id: int) -> List[Photo]:
    """Photos attached to the conversation's messages, in message order."""
    photos = (
        db.query(Photo)
        .join(Message, Message.photo_id == Photo.id)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    logger.debug(f"Retrieved {len(photos)} photos for conversation {conversation_id}")
    return photos
