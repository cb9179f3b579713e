"""
MongoDB repository for mint records.

The insert of an in-flight record is the critical section of the minting
protocol: ``guard_key`` is unique and sparse, so a second in-flight or
succeeded record for the same user is rejected by the database itself.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from eresidency.core.exceptions import (
    AlreadyMintedError,
    ConflictError,
    DatabaseError,
    NotFoundError,
)
from eresidency.core.logging import get_logger
from eresidency.domain.models.common import utc_now
from eresidency.domain.models.mint_record import MintOutcome, MintRecordModel
from eresidency.domain.repositories.mongo import (
    mongodb,
    to_document,
    to_object_id,
    with_id,
)

logger = get_logger(__name__)


class MintRecordRepository:
    """Repository for mint records in MongoDB."""

    collection_name = "mint_records"

    @property
    def collection(self):
        return mongodb.collection(self.collection_name)

    async def create_indexes(self):
        """Create database indexes for the mint_records collection."""
        try:
            await self.collection.create_index(
                [("guard_key", ASCENDING)],
                unique=True,
                sparse=True,
                name="mint_guard_unique",
            )
            await self.collection.create_index(
                [("application_id", ASCENDING), ("outcome", ASCENDING)],
                name="application_outcome_index",
            )
            await self.collection.create_index(
                [("user_id", ASCENDING), ("created_at", DESCENDING)],
                name="user_created_at_index",
            )
            await self.collection.create_index(
                [("outcome", ASCENDING), ("created_at", ASCENDING)],
                name="outcome_created_at_index",
            )
        except PyMongoError as e:
            logger.error(f"Failed to create mint record indexes: {e}")
            raise DatabaseError(f"Failed to create mint record indexes: {e}")

    async def create_in_flight(self, record: MintRecordModel) -> Dict[str, Any]:
        """
        Atomically claim the mint guard for the record's user.

        Args:
            record: New attempt; outcome and guard_key are overwritten

        Returns:
            Created in-flight record

        Raises:
            AlreadyMintedError: If the user already has an in-flight or succeeded record
        """
        record_data = to_document(record)
        record_data["outcome"] = MintOutcome.IN_FLIGHT.value
        record_data["guard_key"] = record.user_id

        try:
            result = await self.collection.insert_one(record_data)
        except DuplicateKeyError:
            blocking = await self.collection.find_one({"guard_key": record.user_id})
            outcome = blocking["outcome"] if blocking else MintOutcome.IN_FLIGHT.value
            message = (
                "Residency token already minted"
                if outcome == MintOutcome.SUCCEEDED.value
                else "A mint is already in progress"
            )
            raise AlreadyMintedError(
                message,
                {
                    "outcome": outcome,
                    "record_id": str(blocking["_id"]) if blocking else None,
                    "transaction_hash": blocking.get("transaction_hash") if blocking else None,
                },
            )
        except PyMongoError as e:
            logger.error(f"Failed to create mint record: {e}")
            raise DatabaseError(f"Failed to create mint record: {e}")

        return await self.get_by_id(result.inserted_id)

    async def get_by_id(self, record_id: Any) -> Dict[str, Any]:
        object_id = to_object_id(record_id, "Mint record")
        try:
            record = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            raise DatabaseError(f"Failed to load mint record {record_id}: {e}")

        if not record:
            raise NotFoundError(f"Mint record not found: {record_id}")
        return with_id(record)

    async def note_transaction_hash(self, record_id: Any, transaction_hash: str) -> bool:
        """Store the hash of a broadcast transaction on an in-flight record, once."""
        object_id = to_object_id(record_id, "Mint record")
        now = utc_now()
        try:
            result = await self.collection.update_one(
                {
                    "_id": object_id,
                    "outcome": MintOutcome.IN_FLIGHT.value,
                    "transaction_hash": {"$ne": transaction_hash},
                },
                {
                    "$set": {
                        "transaction_hash": transaction_hash,
                        "broadcast_at": now,
                        "updated_at": now,
                    }
                },
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to update mint record {record_id}: {e}")
        return result.modified_count > 0

    async def mark_succeeded(
        self,
        record_id: Any,
        token_id: Optional[str],
        transaction_hash: Optional[str],
        contract_address: Optional[str],
        block_number: Optional[int] = None,
        resolved_by: str = "request",
    ) -> Optional[Dict[str, Any]]:
        """
        Resolve a record to succeeded.

        The ledger is authoritative, so a record already failed by a sweep is
        also accepted and takes the user's guard back.

        Returns:
            Updated record, or None if it had already succeeded

        Raises:
            ConflictError: If another record holds the user's guard
        """
        object_id = to_object_id(record_id, "Mint record")
        now = utc_now()
        record = await self.get_by_id(object_id)
        fields = {
            "outcome": MintOutcome.SUCCEEDED.value,
            "guard_key": record["user_id"],
            "token_id": token_id,
            "contract_address": contract_address,
            "block_number": block_number,
            "resolved_by": resolved_by,
            "minted_at": now,
            "updated_at": now,
        }
        if transaction_hash:
            fields["transaction_hash"] = transaction_hash

        try:
            updated = await self.collection.find_one_and_update(
                {
                    "_id": object_id,
                    "outcome": {
                        "$in": [MintOutcome.IN_FLIGHT.value, MintOutcome.FAILED.value]
                    },
                },
                {"$set": fields, "$unset": {"error": ""}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            logger.error(
                f"Ledger reports a token for record {record_id} but another record holds the guard"
            )
            raise ConflictError(
                "Another mint record already holds this user's guard",
                {"record_id": str(object_id), "token_id": token_id},
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to update mint record {record_id}: {e}")
        return with_id(updated)

    async def mark_failed(
        self, record_id: Any, error: str, resolved_by: str = "request"
    ) -> Optional[Dict[str, Any]]:
        """
        Resolve an in-flight record to failed and release the guard.

        Returns:
            Updated record, or None if it was already resolved
        """
        object_id = to_object_id(record_id, "Mint record")
        try:
            record = await self.collection.find_one_and_update(
                {"_id": object_id, "outcome": MintOutcome.IN_FLIGHT.value},
                {
                    "$set": {
                        "outcome": MintOutcome.FAILED.value,
                        "error": error[:500],
                        "resolved_by": resolved_by,
                        "updated_at": utc_now(),
                    },
                    "$unset": {"guard_key": ""},
                },
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to update mint record {record_id}: {e}")
        return with_id(record)

    async def mark_finalized(self, record_id: Any) -> bool:
        """Note that the record's application reached completed."""
        object_id = to_object_id(record_id, "Mint record")
        try:
            result = await self.collection.update_one(
                {"_id": object_id, "outcome": MintOutcome.SUCCEEDED.value},
                {"$set": {"finalized": True, "updated_at": utc_now()}},
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to finalize mint record {record_id}: {e}")
        return result.modified_count > 0

    async def attach_certificate(
        self, record_id: Any, certificate_url: str, certificate_path: str
    ) -> bool:
        object_id = to_object_id(record_id, "Mint record")
        try:
            result = await self.collection.update_one(
                {"_id": object_id},
                {
                    "$set": {
                        "certificate_url": certificate_url,
                        "certificate_path": certificate_path,
                        "updated_at": utc_now(),
                    }
                },
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to attach certificate to {record_id}: {e}")
        return result.modified_count > 0

    async def _find_one(self, query: Dict[str, Any], sort=None) -> Optional[Dict[str, Any]]:
        try:
            record = await self.collection.find_one(query, sort=sort)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to load mint record: {e}")
        return with_id(record)

    async def _find_many(self, query: Dict[str, Any], sort, limit: int) -> List[Dict[str, Any]]:
        try:
            cursor = self.collection.find(query).sort(sort).limit(limit)
            records = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to list mint records: {e}")
        return [with_id(record) for record in records]

    async def get_succeeded_for_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._find_one(
            {"user_id": user_id, "outcome": MintOutcome.SUCCEEDED.value}
        )

    async def get_succeeded_for_application(self, application_id: str) -> Optional[Dict[str, Any]]:
        return await self._find_one(
            {"application_id": application_id, "outcome": MintOutcome.SUCCEEDED.value}
        )

    async def get_active_for_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """The in-flight or succeeded record holding the user's guard, if any."""
        return await self._find_one({"guard_key": user_id})

    async def get_latest_for_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._find_one(
            {"user_id": user_id}, sort=[("created_at", DESCENDING), ("_id", DESCENDING)]
        )

    async def list_in_flight_older_than(
        self, cutoff: datetime, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """In-flight records created at or before ``cutoff``, oldest first."""
        return await self._find_many(
            {"outcome": MintOutcome.IN_FLIGHT.value, "created_at": {"$lte": cutoff}},
            [("created_at", ASCENDING)],
            limit,
        )

    async def list_unfinalized_succeeded(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Succeeded records whose application has not been completed yet."""
        return await self._find_many(
            {"outcome": MintOutcome.SUCCEEDED.value, "finalized": {"$ne": True}},
            [("created_at", ASCENDING)],
            limit,
        )


# Global repository instance
mint_record_repository = MintRecordRepository()
