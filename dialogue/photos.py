"""
Photo ingestion: validate an upload, write its bytes under the upload
directory and persist the Photo row.

The physical file name is a random storage key; the client's filename is
kept only as display metadata. Ingesting the same bytes twice yields two
photos with two keys, there is no content addressing.
"""

import contextlib
import io
import logging
import os
import shutil
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from sqlalchemy.orm import Session

from dialogue.errors import EmptyFile, IngestIOError, NotAnImage
from dialogue.metrics import record_photo_ingest
from dialogue.models import Photo, User
from dialogue.utils import generate_storage_key, utc_now_iso

logger = logging.getLogger(__name__)

IMAGE_MIME_PREFIX = "image/"
CHUNK_SIZE = 64 * 1024


@dataclass
class Upload:
    """A binary upload as handed over by the transport layer, not yet validated."""
    content: Union[bytes, BinaryIO]
    content_type: Optional[str]
    filename: Optional[str]


def create_photo(
    db: Session,
    storage_key: str,
    original_name: Optional[str],
    url: str,
    author: User,
) -> Photo:
    """Persist photo metadata once its bytes are on disk."""
    photo = Photo(
        storage_key=storage_key,
        original_name=original_name,
        url=url,
        author_id=author.id,
        created_at=utc_now_iso(),
    )
    db.add(photo)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(photo)
    return photo


class PhotoIngestor:
    """
    Stores image uploads on the local filesystem.

    Synchronous: the copy blocks the calling worker for its duration. Keys
    are random per call so concurrent ingests never contend on a file.
    """

    def __init__(self, upload_dir: str, url_prefix: str = "/uploads/"):
        """
        Args:
            upload_dir: Directory holding one file per storage key (created on demand)
            url_prefix: Public path the directory is served under
        """
        self.upload_dir = upload_dir
        self.url_prefix = url_prefix if url_prefix.endswith("/") else url_prefix + "/"

    def url_for(self, storage_key: str) -> str:
        return self.url_prefix + storage_key

    def path_for(self, storage_key: str) -> str:
        return os.path.join(self.upload_dir, storage_key)

    def ingest(
        self,
        db: Session,
        content: Union[bytes, BinaryIO],
        declared_mime_type: Optional[str],
        original_name: Optional[str],
        author: User,
    ) -> Photo:
        """
        Validate and store an uploaded image.

        Args:
            db: Database session
            content: Raw bytes or a binary stream positioned at the start of the upload
            declared_mime_type: Content type sent by the client; trusted as-is
            original_name: Client filename, display metadata only
            author: Uploading user

        Returns:
            The persisted Photo

        Raises:
            EmptyFile: the upload has no bytes
            NotAnImage: the declared type does not start with "image/"
            IngestIOError: the bytes could not be written
        """
        stream = io.BytesIO(content) if isinstance(content, (bytes, bytearray)) else content

        first_chunk = stream.read(CHUNK_SIZE)
        if not first_chunk:
            record_photo_ingest("empty_file")
            logger.warning(f"Rejected empty upload: {original_name!r}")
            raise EmptyFile(original_name)

        if not (declared_mime_type or "").startswith(IMAGE_MIME_PREFIX):
            record_photo_ingest("not_an_image")
            logger.warning(f"Rejected non-image upload: {original_name!r} ({declared_mime_type})")
            raise NotAnImage(declared_mime_type)

        storage_key = generate_storage_key(original_name)
        destination = self.path_for(storage_key)

        try:
            os.makedirs(self.upload_dir, exist_ok=True)
            with open(destination, "wb") as out:
                out.write(first_chunk)
                shutil.copyfileobj(stream, out, CHUNK_SIZE)
        except OSError as e:
            # Drop a partially written file; no Photo row will point at it
            with contextlib.suppress(FileNotFoundError, NotADirectoryError):
                os.remove(destination)
            record_photo_ingest("io_error")
            logger.error(f"Failed to write photo {storage_key}: {e}")
            raise IngestIOError(f"Could not store photo {original_name!r}: {e}") from e

        photo = create_photo(
            db,
            storage_key=storage_key,
            original_name=original_name,
            url=self.url_for(storage_key),
            author=author,
        )
        record_photo_ingest("stored")
        logger.info(f"Photo stored: id={photo.id}, key={storage_key}, author={author.id}")
        return photo
