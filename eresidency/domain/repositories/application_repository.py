"""
MongoDB repository for residency applications.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from eresidency.core.exceptions import (
    DatabaseError,
    InvalidTransitionError,
    NotFoundError,
)
from eresidency.core.logging import get_logger
from eresidency.domain.models.application import (
    ApplicationModel,
    ApplicationStatus,
    EmbeddedDocument,
)
from eresidency.domain.models.common import utc_now
from eresidency.domain.models.document import DocumentStatus
from eresidency.domain.repositories.mongo import (
    mongodb,
    to_document,
    to_object_id,
    with_id,
)

logger = get_logger(__name__)


class ApplicationRepository:
    """Repository for applications in MongoDB."""

    collection_name = "applications"

    @property
    def collection(self):
        return mongodb.collection(self.collection_name)

    async def create_indexes(self):
        """Create database indexes for the applications collection."""
        try:
            # Review and audit access patterns
            await self.collection.create_index(
                [("user_id", ASCENDING), ("status", ASCENDING)], name="user_status_index"
            )
            await self.collection.create_index(
                [("type", ASCENDING), ("status", ASCENDING)], name="type_status_index"
            )
            await self.collection.create_index(
                [("user_id", ASCENDING), ("created_at", DESCENDING)],
                name="user_created_at_index",
            )
        except PyMongoError as e:
            logger.error(f"Failed to create application indexes: {e}")
            raise DatabaseError(f"Failed to create application indexes: {e}")

    async def create_application(self, application: ApplicationModel) -> Dict[str, Any]:
        try:
            result = await self.collection.insert_one(to_document(application))
        except PyMongoError as e:
            logger.error(f"Failed to create application: {e}")
            raise DatabaseError(f"Failed to create application: {e}")

        logger.info(f"Created application with ID: {result.inserted_id}")
        return await self.get_by_id(result.inserted_id)

    async def get_by_id(self, application_id: Any) -> Dict[str, Any]:
        """
        Get an application by ID.

        Raises:
            NotFoundError: If the application does not exist
        """
        object_id = to_object_id(application_id, "Application")
        try:
            application = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            raise DatabaseError(f"Failed to load application {application_id}: {e}")

        if not application:
            raise NotFoundError(f"Application not found: {application_id}")
        return with_id(application)

    async def list_for_user(
        self, user_id: str, statuses: Optional[Sequence[ApplicationStatus]] = None
    ) -> List[Dict[str, Any]]:
        """List a user's applications, newest first."""
        query: Dict[str, Any] = {"user_id": user_id}
        if statuses:
            query["status"] = {"$in": [status.value for status in statuses]}

        try:
            cursor = self.collection.find(query).sort(
                [("created_at", DESCENDING), ("_id", DESCENDING)]
            )
            applications = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to list applications for user {user_id}: {e}")
        return [with_id(application) for application in applications]

    async def list_by_type_and_status(
        self,
        application_type: Optional[str],
        status: str,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Review queue lookup, oldest submission first."""
        query: Dict[str, Any] = {"status": status}
        if application_type:
            query["type"] = application_type

        try:
            cursor = (
                self.collection.find(query)
                .sort([("submitted_at", ASCENDING), ("_id", ASCENDING)])
                .skip(skip)
                .limit(limit)
            )
            applications = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to load review queue: {e}")
        return [with_id(application) for application in applications]

    async def count_by_type_and_status(self) -> List[Dict[str, Any]]:
        """``[{"type", "status", "count"}]`` for every type and status in use."""
        pipeline = [
            {"$group": {"_id": {"type": "$type", "status": "$status"}, "count": {"$sum": 1}}},
        ]
        try:
            cursor = self.collection.aggregate(pipeline)
            results = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to aggregate application counts: {e}")
        return [
            {
                "type": result["_id"]["type"],
                "status": result["_id"]["status"],
                "count": result["count"],
            }
            for result in results
        ]

    async def count_by_month(self, since: datetime) -> List[Dict[str, Any]]:
        """``[{"year", "month", "count"}]`` of applications created since ``since``, oldest first."""
        pipeline = [
            {"$match": {"created_at": {"$gte": since}}},
            {
                "$group": {
                    "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
                    "count": {"$sum": 1},
                }
            },
        ]
        try:
            cursor = self.collection.aggregate(pipeline)
            results = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to aggregate monthly applications: {e}")
        months = [
            {
                "year": result["_id"]["year"],
                "month": result["_id"]["month"],
                "count": result["count"],
            }
            for result in results
        ]
        return sorted(months, key=lambda month: (month["year"], month["month"]))

    async def transition(
        self,
        application_id: Any,
        from_status: ApplicationStatus,
        to_status: ApplicationStatus,
        set_fields: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Move an application from one status to another in a single conditional write.

        Args:
            application_id: Application ID
            from_status: Status the application must currently have
            to_status: Target status
            set_fields: Extra fields written with the status

        Returns:
            Updated application

        Raises:
            NotFoundError: If the application does not exist
            InvalidTransitionError: If the application is no longer in ``from_status``
        """
        object_id = to_object_id(application_id, "Application")
        update = {
            **(set_fields or {}),
            "status": to_status.value,
            "updated_at": utc_now(),
        }
        try:
            application = await self.collection.find_one_and_update(
                {"_id": object_id, "status": from_status.value},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to update application {application_id}: {e}")

        if application:
            return with_id(application)

        current = await self.get_by_id(object_id)
        raise InvalidTransitionError(current["status"], to_status.value)

    async def push_document(
        self,
        application_id: Any,
        document: EmbeddedDocument,
        open_statuses: Sequence[ApplicationStatus],
    ) -> Optional[Dict[str, Any]]:
        """
        Append a document reference while the application is in one of ``open_statuses``.

        Returns:
            Updated application, or None if the application is closed
        """
        object_id = to_object_id(application_id, "Application")
        try:
            application = await self.collection.find_one_and_update(
                {
                    "_id": object_id,
                    "status": {"$in": [status.value for status in open_statuses]},
                },
                {
                    "$push": {"documents": to_document(document)},
                    "$set": {"updated_at": utc_now()},
                },
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to attach document to {application_id}: {e}")
        return with_id(application)

    async def set_embedded_document_status(
        self, application_id: Any, document_id: str, status: DocumentStatus
    ) -> bool:
        object_id = to_object_id(application_id, "Application")
        try:
            result = await self.collection.update_one(
                {"_id": object_id, "documents.document_id": document_id},
                {"$set": {"documents.$.status": status.value, "updated_at": utc_now()}},
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to update embedded document {document_id}: {e}")
        return result.modified_count > 0


# Global repository instance
application_repository = ApplicationRepository()
