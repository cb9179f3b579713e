"""
Shared MongoDB handle for the repositories.
"""

from enum import Enum
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pydantic import BaseModel

from eresidency.core.config import get_mongodb_database_name, get_mongodb_url
from eresidency.core.exceptions import DatabaseError, NotFoundError
from eresidency.core.logging import get_logger

logger = get_logger(__name__)


class MongoDB:
    """Owns the Motor client and hands out collections."""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    @property
    def is_connected(self) -> bool:
        return self.database is not None

    async def connect(self):
        """Connect to MongoDB."""
        if self.is_connected:
            return

        try:
            database_name = get_mongodb_database_name()
            self.client = AsyncIOMotorClient(get_mongodb_url())
            self.database = self.client[database_name]
            logger.info(f"Connected to MongoDB database: {database_name}")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise DatabaseError(f"Failed to connect to MongoDB: {e}")

    def bind(self, database: AsyncIOMotorDatabase):
        """Use an already opened database, e.g. an in-memory one."""
        self.client = None
        self.database = database

    async def disconnect(self):
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")
        self.client = None
        self.database = None

    def collection(self, name: str) -> AsyncIOMotorCollection:
        if self.database is None:
            raise DatabaseError("MongoDB is not connected")
        return self.database[name]

    async def create_all_indexes(self):
        """Create the indexes every repository relies on."""
        from eresidency.domain.repositories.application_repository import application_repository
        from eresidency.domain.repositories.audit_log_repository import audit_log_repository
        from eresidency.domain.repositories.document_repository import document_repository
        from eresidency.domain.repositories.mint_record_repository import mint_record_repository
        from eresidency.domain.repositories.user_repository import user_repository

        for repository in (
            user_repository,
            document_repository,
            application_repository,
            mint_record_repository,
            audit_log_repository,
        ):
            await repository.create_indexes()
        logger.info("MongoDB indexes created successfully")


def to_object_id(value: Any, entity: str = "Resource") -> ObjectId:
    """
    Parse an ID coming from a client.

    Raises:
        NotFoundError: If the value is not a valid ObjectId
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f"{entity} not found: {value}")


def to_document(model: BaseModel, exclude_none: bool = True) -> Dict[str, Any]:
    """Dump a model for insertion, storing enums by value."""
    return _plain(model.model_dump(mode="python", exclude_none=exclude_none))


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def with_id(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Expose ``_id`` as a string ``id`` field."""
    if document is not None:
        document["id"] = str(document["_id"])
    return document


# Global database handle
mongodb = MongoDB()
