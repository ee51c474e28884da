import logging
import os
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Path, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from dialogue import identity
from dialogue.config import settings
from dialogue.conversations import find_conversation_by_id, list_conversations_for_user, resolve_conversation
from dialogue.errors import ConversationNotFound, ParticipantNotFound
from dialogue.logging_utils import RequestLoggingMiddleware, log_request_data, setup_logging
from dialogue.messages import list_messages, list_photos, send_message_with_upload
from dialogue.metrics import get_metrics, get_metrics_content_type
from dialogue.models import MAX_ROW_ID, Conversation, User
from dialogue.photos import PhotoIngestor, Upload
from dialogue.schemas import (
    ConversationDetailResponse,
    ConversationResponse,
    ErrorResponse,
    GalleryResponse,
    HealthResponse,
    MessageResponse,
    PhotoResponse,
    UserResponse,
)
from dialogue.storage import check_db_health, get_db, init_db


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Path ids beyond the integer primary key range are rejected with 422
RowId = Annotated[int, Path(le=MAX_ROW_ID)]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and the upload directory on startup."""
    init_db()
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    yield


app = FastAPI(
    title="Dialogue API",
    description="Two-party direct messaging with text and photo messages",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

# Stored photos are public at UPLOAD_URL_PREFIX + storage_key
app.mount(
    settings.UPLOAD_URL_PREFIX.rstrip("/"),
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


# =============================================================================
# Dependencies
# =============================================================================

def get_current_user(
    x_user: Annotated[str | None, Header(alias="X-User")] = None,
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the authenticated caller.

    Authentication happens upstream; the gateway forwards the username in X-User.
    """
    user = identity.get_user_by_username(db, x_user) if x_user else None
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication required")
    return user


def get_photo_ingestor() -> PhotoIngestor:
    return PhotoIngestor(settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)


def get_participant_conversation(conversation_id: int, db: Session, user: User) -> Conversation:
    conversation = find_conversation_by_id(db, conversation_id)
    if not conversation.has_participant(user.id):
        logger.warning(f"User {user.id} denied access to conversation {conversation_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not a participant")
    return conversation


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(ConversationNotFound)
async def conversation_not_found_handler(request: Request, exc: ConversationNotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ParticipantNotFound)
async def participant_not_found_handler(request: Request, exc: ParticipantNotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and every
    table exists, otherwise 503.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


# =============================================================================
# User Routes
# =============================================================================

@app.get("/users", response_model=list[UserResponse])
def list_users(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[UserResponse]:
    """Directory of everyone the caller can start a conversation with."""
    users = identity.list_other_users(db, current_user.id)
    return [UserResponse.model_validate(user) for user in users]


@app.get("/users/me", response_model=UserResponse)
def view_own_profile(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)


@app.get(
    "/users/{user_id}",
    response_model=UserResponse,
    responses={
        307: {"description": "The caller's own id; redirects to /users/me"},
        404: {"model": ErrorResponse, "description": "Unknown user"},
    },
)
def view_user(
    user_id: RowId,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse | RedirectResponse:
    """Profile of another user."""
    if user_id == current_user.id:
        return RedirectResponse(url="/users/me", status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    user = identity.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found with id {user_id}")
    return UserResponse.model_validate(user)


# =============================================================================
# Conversation Routes
# =============================================================================

@app.get("/conversations", response_model=list[ConversationResponse])
def list_conversations(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ConversationResponse]:
    """The caller's conversations, most recently created first."""
    conversations = list_conversations_for_user(db, current_user.id)
    return [ConversationResponse.model_validate(c) for c in conversations]


@app.post(
    "/conversations/with/{user_id}",
    response_model=ConversationResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown user"}},
)
def open_conversation(
    user_id: RowId,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    """Get the conversation with another user, creating it on first contact."""
    conversation = resolve_conversation(db, current_user.id, user_id)
    log_request_data(request, user=current_user.username, conversation_id=conversation.id)
    return ConversationResponse.model_validate(conversation)


@app.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetailResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not a participant"},
        404: {"model": ErrorResponse, "description": "Unknown conversation"},
    },
)
def view_conversation(
    conversation_id: RowId,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationDetailResponse:
    """A conversation with its full message history, oldest first."""
    conversation = get_participant_conversation(conversation_id, db, current_user)
    messages = list_messages(db, conversation.id)
    return ConversationDetailResponse(
        conversation=ConversationResponse.model_validate(conversation),
        other_user=UserResponse.model_validate(conversation.other_participant(current_user.id)),
        messages=[MessageResponse.model_validate(m) for m in messages],
    )


@app.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse, "description": "Not a participant"},
        404: {"model": ErrorResponse, "description": "Unknown conversation"},
    },
)
def post_message(
    conversation_id: RowId,
    request: Request,
    text: Annotated[str | None, Form()] = None,
    image: Annotated[UploadFile | None, File()] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ingestor: PhotoIngestor = Depends(get_photo_ingestor),
) -> MessageResponse:
    """
    Send a text and/or photo message.

    A photo that cannot be stored is dropped and the message goes out
    without it.
    """
    conversation = get_participant_conversation(conversation_id, db, current_user)
    upload = Upload(content=image.file, content_type=image.content_type, filename=image.filename) if image else None

    message = send_message_with_upload(db, conversation.id, current_user, text, upload, ingestor)

    log_request_data(
        request,
        user=current_user.username,
        conversation_id=conversation.id,
        message_id=message.id,
        photo_attached=message.photo_id is not None,
    )
    return MessageResponse.model_validate(message)


@app.get(
    "/conversations/{conversation_id}/gallery",
    response_model=GalleryResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not a participant"},
        404: {"model": ErrorResponse, "description": "Unknown conversation"},
    },
)
def conversation_gallery(
    conversation_id: RowId,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GalleryResponse:
    """Every photo shared in the conversation, in message order."""
    conversation = get_participant_conversation(conversation_id, db, current_user)
    photos = list_photos(db, conversation.id)
    return GalleryResponse(
        conversation=ConversationResponse.model_validate(conversation),
        other_user=UserResponse.model_validate(conversation.other_participant(current_user.id)),
        photos=[PhotoResponse.model_validate(p) for p in photos],
    )


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
