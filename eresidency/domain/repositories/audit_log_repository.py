"""
MongoDB repository for the audit trail.
"""

from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from eresidency.core.exceptions import DatabaseError
from eresidency.core.logging import get_logger
from eresidency.domain.models.audit_log import AuditLogModel
from eresidency.domain.repositories.mongo import mongodb, to_document, with_id

logger = get_logger(__name__)


class AuditLogRepository:
    """Append-only repository for audit entries."""

    collection_name = "audit_logs"

    @property
    def collection(self):
        return mongodb.collection(self.collection_name)

    async def create_indexes(self):
        """Create database indexes for the audit_logs collection."""
        try:
            await self.collection.create_index(
                [("created_at", DESCENDING)], name="created_at_index"
            )
            await self.collection.create_index(
                [("entity_type", ASCENDING), ("entity_id", ASCENDING), ("created_at", ASCENDING)],
                name="entity_index",
            )
            await self.collection.create_index(
                [("action", ASCENDING), ("status", ASCENDING)], name="action_status_index"
            )
            await self.collection.create_index(
                [("user_id", ASCENDING), ("created_at", DESCENDING)], name="user_created_at_index"
            )
        except PyMongoError as e:
            logger.error(f"Failed to create audit log indexes: {e}")
            raise DatabaseError(f"Failed to create audit log indexes: {e}")

    async def append(self, entry: AuditLogModel) -> Dict[str, Any]:
        document = to_document(entry, exclude_none=False)
        try:
            await self.collection.insert_one(document)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to write audit entry {entry.action}: {e}")
        return with_id(document)

    async def search(
        self,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Entries matching ``filters``, newest first.

        Args:
            filters: Equality filters on stored fields; None values are ignored
            skip: Number of entries to skip
            limit: Maximum number of entries

        Returns:
            The page of entries and the total number of matches
        """
        query = {key: value for key, value in (filters or {}).items() if value is not None}
        try:
            total = await self.collection.count_documents(query)
            cursor = (
                self.collection.find(query)
                .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
                .skip(skip)
                .limit(limit)
            )
            entries = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to search audit logs: {e}")
        return [with_id(entry) for entry in entries], total


# Global repository instance
audit_log_repository = AuditLogRepository()
