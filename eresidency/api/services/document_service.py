"""
Document Service Layer.
Contains business logic for document ingestion, review, versioning and expiry.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from eresidency.api.dto.document_dto import DocumentResponseDTO
from eresidency.core.config import settings
from eresidency.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ResidencyException,
    UploadRejectedError,
    ValidationError,
)
from eresidency.core.logging import get_logger, log_document_review, log_reconciliation
from eresidency.domain.lifecycle import OPEN_FOR_DOCUMENTS, ensure_document_transition
from eresidency.domain.models.application import EmbeddedDocument
from eresidency.domain.models.common import to_naive_utc, utc_now
from eresidency.domain.models.document import (
    DocumentModel,
    DocumentStatus,
    DocumentType,
    StoredFile,
)
from eresidency.domain.repositories.application_repository import application_repository
from eresidency.domain.repositories.document_repository import document_repository
from eresidency.infrastructure.storage.file_storage import (
    FileStorage,
    document_storage,
    validate_upload,
)

logger = get_logger(__name__)


@dataclass
class IncomingFile:
    """An uploaded file read from the request."""

    filename: str
    content_type: str
    content: bytes


class DocumentService:
    """Service class for document management."""

    def __init__(self, storage: FileStorage = document_storage):
        self.storage = storage

    async def upload(
        self,
        user_id: str,
        files: List[IncomingFile],
        doc_type: DocumentType,
        application_id: Optional[str] = None,
        previous_version_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Store uploaded files and create their document records.

        Every file is validated before anything is written. Files are written
        before records; a failed record write removes its file.

        Args:
            user_id: Owning user
            files: Uploaded files (1 to MAX_FILES_PER_UPLOAD)
            doc_type: Declared document type for all files
            application_id: Application to attach the documents to
            previous_version_id: Rejected document this upload replaces
            expires_at: Optional garbage-collection deadline

        Returns:
            Created document records

        Raises:
            ValidationError: Wrong file count, or an invalid replacement
            UploadRejectedError: A file violates the ingestion policy
            ConflictError: The application no longer accepts documents
        """
        if not files:
            raise ValidationError("At least one file is required")
        if len(files) > settings.MAX_FILES_PER_UPLOAD:
            raise ValidationError(
                f"At most {settings.MAX_FILES_PER_UPLOAD} files per upload",
                {"received": len(files)},
            )

        for incoming in files:
            validation = validate_upload(
                incoming.filename, incoming.content_type, len(incoming.content)
            )
            if not validation.accepted:
                raise UploadRejectedError(incoming.filename or "", validation.reason)

        if application_id:
            await self._ensure_attachable(user_id, application_id)

        previous = None
        if previous_version_id:
            if len(files) != 1:
                raise ValidationError("A resubmission replaces exactly one document")
            previous = await self._ensure_replaceable(user_id, previous_version_id, doc_type)

        stored = await self._store_files(doc_type, files)

        created: List[Dict[str, Any]] = []
        for index, stored_file in enumerate(stored):
            try:
                document = await document_repository.create_document(
                    DocumentModel(
                        user_id=user_id,
                        application_id=application_id,
                        type=doc_type,
                        name=stored_file.display_name,
                        url=stored_file.url,
                        storage_path=stored_file.storage_path,
                        mime_type=stored_file.mime_type,
                        size=stored_file.size,
                        expires_at=to_naive_utc(expires_at),
                        previous_version=previous["id"] if previous else None,
                    )
                )
            except ResidencyException:
                await self._discard_files(stored[index:])
                raise
            created.append(document)

        if previous:
            await document_repository.mark_superseded(previous["id"])

        if application_id:
            await self._attach(application_id, created)

        logger.info(f"Stored {len(created)} {doc_type.value} document(s) for user {user_id}")
        return created

    async def _store_files(
        self, doc_type: DocumentType, files: List[IncomingFile]
    ) -> List[StoredFile]:
        stored: List[StoredFile] = []
        try:
            for incoming in files:
                stored.append(
                    await self.storage.store_upload(
                        doc_type.value,
                        incoming.filename,
                        incoming.content_type,
                        incoming.content,
                    )
                )
        except ResidencyException:
            await self._discard_files(stored)
            raise
        return stored

    async def _discard_files(self, stored: List[StoredFile]) -> None:
        for stored_file in stored:
            try:
                await self.storage.delete(stored_file.storage_path)
            except ResidencyException as e:
                logger.error(f"Failed to remove orphaned file {stored_file.storage_path}: {e}")

    async def _ensure_attachable(self, user_id: str, application_id: str) -> None:
        application = await application_repository.get_by_id(application_id)
        if application["user_id"] != user_id:
            raise NotFoundError(f"Application not found: {application_id}")
        if application["status"] not in [status.value for status in OPEN_FOR_DOCUMENTS]:
            raise ConflictError(
                "Application no longer accepts documents",
                {"status": application["status"]},
            )

    async def _ensure_replaceable(
        self, user_id: str, previous_version_id: str, doc_type: DocumentType
    ) -> Dict[str, Any]:
        previous = await document_repository.get_by_id(previous_version_id)
        if previous["user_id"] != user_id:
            raise NotFoundError(f"Document not found: {previous_version_id}")
        if previous["status"] != DocumentStatus.REJECTED.value:
            raise ValidationError("Only a rejected document can be resubmitted")
        if previous["type"] != doc_type.value:
            raise ValidationError("A resubmission must keep the document type")
        if not previous.get("is_latest", True):
            raise ConflictError("This document was already resubmitted")
        return previous

    async def _attach(self, application_id: str, documents: List[Dict[str, Any]]) -> None:
        for document in documents:
            updated = await application_repository.push_document(
                application_id,
                EmbeddedDocument(
                    document_id=document["id"],
                    name=document["name"],
                    url=document["url"],
                    type=document["type"],
                    size=document["size"],
                    status=document["status"],
                    uploaded_at=document["created_at"],
                ),
                OPEN_FOR_DOCUMENTS,
            )
            if updated is None:
                raise ConflictError(
                    "Application closed while documents were uploaded",
                    {"document_id": document["id"]},
                )

    async def get(self, document_id: str) -> Dict[str, Any]:
        return await document_repository.get_by_id(document_id)

    async def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        return await document_repository.list_for_user(user_id)

    async def download(self, document_id: str) -> Tuple[Dict[str, Any], bytes]:
        """
        Raises:
            NotFoundError: If the record or its artifact is missing
        """
        document = await document_repository.get_by_id(document_id)
        content = await self.storage.read(document["storage_path"])
        return document, content

    async def review(
        self,
        document_id: str,
        reviewer_id: str,
        status: DocumentStatus,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Verify or reject a pending document.

        Raises:
            ValidationError: If a rejection has no reason
            InvalidTransitionError: If the document was already reviewed
        """
        document = await document_repository.get_by_id(document_id)
        ensure_document_transition(document["status"], status)

        reason = (reason or "").strip() or None
        if status == DocumentStatus.REJECTED and not reason:
            raise ValidationError("A rejection requires a reason")

        updated = await document_repository.review(
            document["id"],
            status,
            reviewer_id,
            reason if status == DocumentStatus.REJECTED else None,
        )
        if updated is None:
            current = await document_repository.get_by_id(document["id"])
            raise InvalidTransitionError(current["status"], status.value)

        if updated.get("application_id"):
            await application_repository.set_embedded_document_status(
                updated["application_id"], updated["id"], status
            )

        log_document_review(updated["id"], reviewer_id, status.value, reason=reason)
        return updated

    async def expire_documents(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Remove documents whose ``expires_at`` elapsed, record first, then artifact.

        Returns:
            Counts of removed records and files
        """
        expired = await document_repository.list_expired(now or utc_now())
        report = {"expired": 0, "files_deleted": 0}

        for document in expired:
            if not await document_repository.delete(document["id"]):
                continue
            report["expired"] += 1
            try:
                if await self.storage.delete(document["storage_path"]):
                    report["files_deleted"] += 1
            except ResidencyException as e:
                logger.error(f"Failed to delete artifact of expired document {document['id']}: {e}")

        log_reconciliation("document_expiry", **report)
        return report

    def ensure_access(self, document: Dict[str, Any], user_id: str, is_reviewer: bool) -> None:
        if document["user_id"] != user_id and not is_reviewer:
            raise AuthorizationError("Access denied")

    def serialize(self, document: Dict[str, Any]) -> DocumentResponseDTO:
        """Convert a MongoDB document to a response DTO."""
        return DocumentResponseDTO(
            id=document["id"],
            user_id=document["user_id"],
            application_id=document.get("application_id"),
            type=document["type"],
            name=document["name"],
            url=document["url"],
            mime_type=document["mime_type"],
            size=document["size"],
            status=document["status"],
            rejection_reason=document.get("rejection_reason"),
            reviewed_by=document.get("reviewed_by"),
            reviewed_at=document.get("reviewed_at"),
            expires_at=document.get("expires_at"),
            is_latest=document.get("is_latest", True),
            previous_version=document.get("previous_version"),
            created_at=document.get("created_at"),
        )


# Global service instance
document_service = DocumentService()
