"""
Pydantic schemas for API responses.

Response models are built from ORM objects (from_attributes=True).
"""

from typing import Optional

from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    """Public view of a user; the password hash never leaves the service."""
    id: int = Field(..., description="User identifier")
    username: str = Field(..., description="Display name")

    model_config = {"from_attributes": True}


class PhotoResponse(BaseModel):
    id: int = Field(..., description="Photo identifier")
    url: str = Field(..., description="Public URL of the stored file")
    original_name: Optional[str] = Field(None, description="Filename sent by the uploader")
    author: UserResponse
    created_at: str = Field(..., description="Upload time (ISO-8601 UTC)")

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: int = Field(..., description="Message identifier")
    conversation_id: int
    sender: UserResponse
    text: Optional[str] = Field(None, description="Message text")
    photo: Optional[PhotoResponse] = Field(None, description="Attached photo, if any")
    created_at: str = Field(..., description="Send time (ISO-8601 UTC)")

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    id: int = Field(..., description="Conversation identifier")
    participant_a: UserResponse
    participant_b: UserResponse
    created_at: str = Field(..., description="Creation time (ISO-8601 UTC)")

    model_config = {"from_attributes": True}


class ConversationDetailResponse(BaseModel):
    """A conversation as seen by one participant, with its full history."""
    conversation: ConversationResponse
    other_user: UserResponse
    messages: list[MessageResponse] = Field(default_factory=list)


class GalleryResponse(BaseModel):
    conversation: ConversationResponse
    other_user: UserResponse
    photos: list[PhotoResponse] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
