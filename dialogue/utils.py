"""
Utility functions for the dialogue service.
"""

import logging
import uuid
from datetime import datetime, timezone

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

# Longest sanitized original name kept inside a storage key
MAX_NAME_LENGTH = 100


def utc_now_iso() -> str:
    """
    Current server time as an ISO-8601 UTC string with microseconds.

    The fixed-width format sorts lexicographically in chronological order,
    which is what the ORDER BY clauses on created_at rely on.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def generate_storage_key(original_name: str) -> str:
    """
    Build a random, globally unique storage key for an upload.

    The key is a uuid4 token, suffixed with the secure_filename form of the
    original name when anything survives it. Uniqueness comes from the token
    alone.
    """
    token = uuid.uuid4().hex
    safe_name = secure_filename(original_name or "")[:MAX_NAME_LENGTH]
    key = f"{token}_{safe_name}" if safe_name else token
    logger.debug(f"Generated storage key {key} for original name {original_name!r}")
    return key
