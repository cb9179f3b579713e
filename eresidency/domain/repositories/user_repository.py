"""
MongoDB repository for users.
"""

from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from eresidency.core.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    WalletAlreadyLinkedError,
)
from eresidency.core.logging import get_logger
from eresidency.domain.models.common import utc_now
from eresidency.domain.models.user import UserModel
from eresidency.domain.repositories.mongo import (
    mongodb,
    to_document,
    to_object_id,
    with_id,
)

logger = get_logger(__name__)

# Default projection never exposes the password hash
PUBLIC_PROJECTION = {"password_hash": 0}


def duplicate_key_field(error: DuplicateKeyError, candidates: List[str]) -> Optional[str]:
    """Best effort name of the field that caused a duplicate key error."""
    key_pattern = (error.details or {}).get("keyPattern") or {}
    for field in candidates:
        if field in key_pattern or field in str(error):
            return field
    return None


class UserRepository:
    """Repository for users in MongoDB."""

    collection_name = "users"

    @property
    def collection(self):
        return mongodb.collection(self.collection_name)

    async def create_indexes(self):
        """Create database indexes for the users collection."""
        try:
            await self.collection.create_index(
                [("email", ASCENDING)], unique=True, name="email_unique"
            )
            await self.collection.create_index(
                [("passport_number", ASCENDING)], unique=True, name="passport_unique"
            )
            # One wallet per user, one user per wallet
            await self.collection.create_index(
                [("wallet_address", ASCENDING)],
                unique=True,
                sparse=True,
                name="wallet_unique",
            )
            await self.collection.create_index(
                [("role", ASCENDING), ("status", ASCENDING)], name="role_status_index"
            )
        except PyMongoError as e:
            logger.error(f"Failed to create user indexes: {e}")
            raise DatabaseError(f"Failed to create user indexes: {e}")

    async def create_user(self, user: UserModel) -> Dict[str, Any]:
        """
        Insert a new user.

        Args:
            user: User to create

        Returns:
            Created user document without the password hash

        Raises:
            ConflictError: If the email or passport number is already registered
        """
        user_data = to_document(user)

        try:
            result = await self.collection.insert_one(user_data)
        except DuplicateKeyError as e:
            field = duplicate_key_field(e, ["email", "passport_number"])
            logger.warning(f"Duplicate user registration rejected on {field}")
            raise ConflictError(
                f"A user with this {field or 'identity'} already exists",
                {"field": field},
            )
        except PyMongoError as e:
            logger.error(f"Failed to create user: {e}")
            raise DatabaseError(f"Failed to create user: {e}")

        logger.info(f"Created user with ID: {result.inserted_id}")
        return await self.get_by_id(result.inserted_id)

    async def get_by_id(self, user_id: Any, include_password: bool = False) -> Dict[str, Any]:
        """
        Get a user by ID.

        Raises:
            NotFoundError: If the user does not exist
        """
        object_id = to_object_id(user_id, "User")
        projection = None if include_password else PUBLIC_PROJECTION
        try:
            user = await self.collection.find_one({"_id": object_id}, projection)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to load user {user_id}: {e}")

        if not user:
            raise NotFoundError(f"User not found: {user_id}")
        return with_id(user)

    async def bind_wallet(
        self, user_id: Any, wallet_address: str, expected_current: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        """
        Set the wallet only if the stored wallet still equals ``expected_current``.

        Args:
            user_id: User ID
            wallet_address: Checksummed wallet address to bind
            expected_current: Wallet the caller observed (None when unbound)

        Returns:
            Updated user, or None if the wallet changed concurrently

        Raises:
            WalletAlreadyLinkedError: If another user already holds the wallet
        """
        object_id = to_object_id(user_id, "User")
        now = utc_now()
        try:
            user = await self.collection.find_one_and_update(
                {"_id": object_id, "wallet_address": expected_current},
                {
                    "$set": {
                        "wallet_address": wallet_address,
                        "wallet_bound_at": now,
                        "updated_at": now,
                    }
                },
                projection=PUBLIC_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise WalletAlreadyLinkedError(wallet_address)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to bind wallet for user {user_id}: {e}")
        return with_id(user)


# Global repository instance
user_repository = UserRepository()
