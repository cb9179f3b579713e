"""
MongoDB repository for uploaded documents.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from eresidency.core.exceptions import ConflictError, DatabaseError, NotFoundError
from eresidency.core.logging import get_logger
from eresidency.domain.models.common import utc_now
from eresidency.domain.models.document import DocumentModel, DocumentStatus
from eresidency.domain.repositories.mongo import (
    mongodb,
    to_document,
    to_object_id,
    with_id,
)

logger = get_logger(__name__)


class DocumentRepository:
    """Repository for documents in MongoDB."""

    collection_name = "documents"

    @property
    def collection(self):
        return mongodb.collection(self.collection_name)

    async def create_indexes(self):
        """Create database indexes for the documents collection."""
        try:
            await self.collection.create_index(
                [("user_id", ASCENDING), ("type", ASCENDING)], name="user_type_index"
            )
            await self.collection.create_index(
                [("user_id", ASCENDING), ("status", ASCENDING)], name="user_status_index"
            )
            await self.collection.create_index(
                [("application_id", ASCENDING), ("status", ASCENDING)],
                name="application_status_index",
            )
            await self.collection.create_index(
                [("expires_at", ASCENDING)], sparse=True, name="expires_at_index"
            )
            await self.collection.create_index(
                [("user_id", ASCENDING), ("created_at", DESCENDING)],
                name="user_created_at_index",
            )
        except PyMongoError as e:
            logger.error(f"Failed to create document indexes: {e}")
            raise DatabaseError(f"Failed to create document indexes: {e}")

    async def create_document(self, document: DocumentModel) -> Dict[str, Any]:
        """
        Insert a document record. The artifact must already be stored.

        Args:
            document: Document to create

        Returns:
            Created document with ``id``
        """
        try:
            result = await self.collection.insert_one(to_document(document))
        except DuplicateKeyError as e:
            raise ConflictError(f"Document already exists: {e}")
        except PyMongoError as e:
            logger.error(f"Failed to create document: {e}")
            raise DatabaseError(f"Failed to create document: {e}")

        logger.info(f"Created document with ID: {result.inserted_id}")
        return await self.get_by_id(result.inserted_id)

    async def get_by_id(self, document_id: Any) -> Dict[str, Any]:
        """
        Get a document by ID.

        Raises:
            NotFoundError: If the document does not exist
        """
        object_id = to_object_id(document_id, "Document")
        try:
            document = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            raise DatabaseError(f"Failed to load document {document_id}: {e}")

        if not document:
            raise NotFoundError(f"Document not found: {document_id}")
        return with_id(document)

    async def list_for_user(
        self, user_id: str, latest_only: bool = True, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List a user's documents, newest first."""
        query: Dict[str, Any] = {"user_id": user_id}
        if latest_only:
            query["is_latest"] = True
        if status:
            query["status"] = status

        try:
            cursor = self.collection.find(query).sort("created_at", DESCENDING)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to list documents for user {user_id}: {e}")
        return [with_id(document) for document in documents]

    async def list_for_application(
        self, application_id: str, latest_only: bool = True
    ) -> List[Dict[str, Any]]:
        """Documents attached to an application, oldest first."""
        query: Dict[str, Any] = {"application_id": application_id}
        if latest_only:
            query["is_latest"] = True

        try:
            cursor = self.collection.find(query).sort("created_at", ASCENDING)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to list documents for application {application_id}: {e}")
        return [with_id(document) for document in documents]

    async def review(
        self,
        document_id: Any,
        status: DocumentStatus,
        reviewer_id: str,
        reason: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Record a review decision on a pending document.

        Returns:
            Updated document, or None if the document is no longer pending
        """
        object_id = to_object_id(document_id, "Document")
        now = utc_now()
        try:
            document = await self.collection.find_one_and_update(
                {"_id": object_id, "status": DocumentStatus.PENDING.value},
                {
                    "$set": {
                        "status": status.value,
                        "rejection_reason": reason,
                        "reviewed_by": reviewer_id,
                        "reviewed_at": now,
                        "updated_at": now,
                    }
                },
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to review document {document_id}: {e}")
        return with_id(document)

    async def mark_superseded(self, document_id: Any) -> bool:
        """Flag a document as replaced by a newer version. Status is left untouched."""
        object_id = to_object_id(document_id, "Document")
        try:
            result = await self.collection.update_one(
                {"_id": object_id},
                {"$set": {"is_latest": False, "updated_at": utc_now()}},
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to supersede document {document_id}: {e}")
        return result.modified_count > 0

    async def list_expired(self, now: datetime, limit: int = 500) -> List[Dict[str, Any]]:
        """List documents whose ``expires_at`` has elapsed."""
        try:
            cursor = self.collection.find({"expires_at": {"$lte": now}}).limit(limit)
            documents = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to list expired documents: {e}")
        return [with_id(document) for document in documents]

    async def delete(self, document_id: Any) -> bool:
        object_id = to_object_id(document_id, "Document")
        try:
            result = await self.collection.delete_one({"_id": object_id})
        except PyMongoError as e:
            raise DatabaseError(f"Failed to delete document {document_id}: {e}")
        return result.deleted_count > 0


# Global repository instance
document_repository = DocumentRepository()
