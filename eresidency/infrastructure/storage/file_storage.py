"""
Local file storage for uploaded documents and generated certificates.

Artifacts are written under a configured root and served from a public URL
prefix. Storage names are generated, never derived from client filenames
beyond a normalized extension.
"""

import asyncio
import os
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from eresidency.core.config import settings
from eresidency.core.exceptions import (
    NotFoundError,
    StorageIOError,
    UploadRejectedError,
    ValidationError,
)
from eresidency.core.logging import get_logger, log_file_operation
from eresidency.domain.models.document import StoredFile

logger = get_logger(__name__)

ALLOWED_MIME_TYPES = frozenset({
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})

_EXTENSION_PATTERN = re.compile(r"^\.[a-z0-9]{1,10}$")
_FIELD_PATTERN = re.compile(r"[^a-z0-9_]+")


@dataclass(frozen=True)
class UploadValidation:
    """Result of checking one upload against the ingestion policy."""

    accepted: bool
    reason: Optional[str] = None


def validate_upload(
    filename: Optional[str],
    mime_type: Optional[str],
    size: int,
    max_size: Optional[int] = None,
) -> UploadValidation:
    """
    Check a file against the ingestion policy.

    Args:
        filename: Declared filename
        mime_type: Declared MIME type
        size: Actual size in bytes
        max_size: Size limit, defaults to MAX_UPLOAD_SIZE_BYTES

    Returns:
        UploadValidation: accepted, or rejected with a reason
    """
    limit = settings.MAX_UPLOAD_SIZE_BYTES if max_size is None else max_size
    if not filename:
        return UploadValidation(False, "missing filename")
    if (mime_type or "").lower() not in ALLOWED_MIME_TYPES:
        return UploadValidation(False, f"unsupported file type: {mime_type}")
    if size <= 0:
        return UploadValidation(False, "empty file")
    if size > limit:
        return UploadValidation(False, f"file exceeds {limit} bytes")
    return UploadValidation(True)


def normalized_extension(filename: str) -> str:
    """Lower-cased extension of the last path component, or '' when unusable."""
    name = PurePosixPath(filename.replace("\\", "/")).name
    extension = os.path.splitext(name)[1].lower()
    return extension if _EXTENSION_PATTERN.match(extension) else ""


def build_storage_name(field_name: str, filename: str) -> str:
    """
    Collision-resistant storage name: ``<field>-<epoch ms>-<uuid4><ext>``.

    Args:
        field_name: Form field the file was uploaded under
        filename: Client filename, only its extension is kept

    Returns:
        str: Storage name without directory components
    """
    field = _FIELD_PATTERN.sub("_", (field_name or "file").lower()).strip("_") or "file"
    timestamp = int(time.time() * 1000)
    return f"{field}-{timestamp}-{uuid.uuid4().hex}{normalized_extension(filename)}"


class FileStorage:
    """Stores artifacts under one root directory."""

    def __init__(self, root: str, url_prefix: str):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def ensure_directory(self) -> None:
        """Create the storage root. Called from application startup."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create storage directory {self.root}: {e}")
        logger.info(f"Storage directory ready: {self.root}")

    def url_for(self, storage_path: str) -> str:
        return f"{self.url_prefix}/{storage_path}"

    def resolve(self, storage_path: str) -> Path:
        """
        Absolute path of an artifact.

        Raises:
            ValidationError: If the path escapes the storage root
        """
        root = self.root.resolve()
        candidate = (root / storage_path).resolve()
        if candidate.parent != root:
            raise ValidationError(f"Invalid storage path: {storage_path}")
        return candidate

    async def save_bytes(self, storage_name: str, content: bytes) -> str:
        """
        Write an artifact under a fresh name.

        Returns:
            str: Storage path relative to the root
        """
        path = self.resolve(storage_name)

        def _write():
            with open(path, "xb") as handle:
                handle.write(content)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.error(f"Failed to write {storage_name}: {e}")
            raise StorageIOError(f"Failed to store file: {storage_name}")

        log_file_operation("store", storage_name, size=len(content))
        return storage_name

    async def store_upload(
        self,
        field_name: str,
        filename: str,
        mime_type: str,
        content: bytes,
    ) -> StoredFile:
        """
        Validate and persist an uploaded file.

        Raises:
            UploadRejectedError: If the file violates the ingestion policy
            StorageIOError: If the write fails
        """
        validation = validate_upload(filename, mime_type, len(content))
        if not validation.accepted:
            raise UploadRejectedError(filename, validation.reason)

        storage_path = await self.save_bytes(build_storage_name(field_name, filename), content)
        return StoredFile(
            display_name=PurePosixPath(filename.replace("\\", "/")).name,
            url=self.url_for(storage_path),
            mime_type=mime_type.lower(),
            size=len(content),
            storage_path=storage_path,
        )

    async def read(self, storage_path: str) -> bytes:
        """
        Raises:
            NotFoundError: If the artifact does not exist
        """
        path = self.resolve(storage_path)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise NotFoundError(f"File not found: {storage_path}")
        except OSError as e:
            raise StorageIOError(f"Failed to read file {storage_path}: {e}")

    async def delete(self, storage_path: str) -> bool:
        """
        Remove an artifact. Absence is not an error.

        Returns:
            bool: True if a file was removed
        """
        path = self.resolve(storage_path)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(f"Failed to delete file {storage_path}: {e}")

        log_file_operation("delete", storage_path)
        return True


# Global storage instances
document_storage = FileStorage(settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)
certificate_storage = FileStorage(settings.CERTIFICATE_DIR, settings.CERTIFICATE_URL_PREFIX)
