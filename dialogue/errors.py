"""
Typed failures raised by the conversation, message and photo services.

The HTTP layer maps them to status codes in main.py. DuplicateConversation
never leaves conversations.py.
"""


class DialogueError(Exception):
    """Base class for domain errors."""


class ParticipantNotFound(DialogueError):
    def __init__(self, user_id: int):
        super().__init__(f"User not found with id {user_id}")
        self.user_id = user_id


class ConversationNotFound(DialogueError):
    def __init__(self, conversation_id: int):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class DuplicateConversation(DialogueError):
    """Another writer stored the same unordered pair first."""

    def __init__(self, user_a_id: int, user_b_id: int):
        super().__init__(f"Conversation already exists for users {user_a_id} and {user_b_id}")
        self.user_a_id = user_a_id
        self.user_b_id = user_b_id


class UploadRejected(DialogueError):
    """The upload failed validation and nothing was stored."""


class EmptyFile(UploadRejected):
    def __init__(self, original_name: str = None):
        super().__init__("The uploaded file is empty")
        self.original_name = original_name


class NotAnImage(UploadRejected):
    def __init__(self, declared_mime_type: str = None):
        super().__init__(f"The uploaded file is not an image (declared type: {declared_mime_type!r})")
        self.declared_mime_type = declared_mime_type


class IngestIOError(DialogueError):
    """Writing the photo bytes to storage failed."""


class PhotoAlreadyAttached(DialogueError):
    """The photo is already carried by another message."""

    def __init__(self, photo_id: int):
        super().__init__(f"Photo {photo_id} is already attached to a message")
        self.photo_id = photo_id
