"""
User Service Layer.
Contains business logic for registration and wallet binding.
"""

from typing import Any, Dict

from eresidency.api.dto.user_dto import UserRegisterRequestDTO, UserResponseDTO
from eresidency.core.config import settings
from eresidency.core.exceptions import NotFoundError, WalletAlreadyLinkedError
from eresidency.core.logging import get_logger, log_wallet_operation
from eresidency.core.security import chain_validator, password_manager
from eresidency.domain.models.user import UserModel, UserStatus
from eresidency.domain.repositories.mint_record_repository import mint_record_repository
from eresidency.domain.repositories.user_repository import user_repository

logger = get_logger(__name__)


class UserService:
    """Service class for user management."""

    async def register(self, request: UserRegisterRequestDTO) -> UserResponseDTO:
        """
        Register an applicant.

        Raises:
            ConflictError: If the email or passport number is taken
        """
        user = UserModel(
            full_name=request.full_name,
            email=request.email,
            password_hash=password_manager.hash_password(request.password),
            passport_number=request.passport_number,
            country=request.country,
            residency_type=request.residency_type,
        )
        created = await user_repository.create_user(user)
        logger.info(f"Registered user {created['id']}")
        return self._serialize_user(created)

    async def get_user(self, user_id: str) -> UserResponseDTO:
        return self._serialize_user(await user_repository.get_by_id(user_id))

    async def get_active_user(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the user does not exist or is not active
        """
        user = await user_repository.get_by_id(user_id)
        if user.get("status", UserStatus.ACTIVE.value) != UserStatus.ACTIVE.value:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    async def bind_wallet(self, user_id: str, wallet_address: str) -> Dict[str, Any]:
        """
        Bind a wallet to a user.

        Binding the wallet already bound is a no-op. A different wallet replaces
        the bound one only while the user has no in-flight or succeeded mint.

        Args:
            user_id: User ID
            wallet_address: Wallet as supplied by the client

        Returns:
            Dict with ``user`` and ``changed``

        Raises:
            InvalidWalletAddressError: If the address is malformed
            WalletAlreadyLinkedError: If rebinding is not allowed or another user holds the wallet
        """
        wallet = chain_validator.normalize_address(wallet_address)
        user = await self.get_active_user(user_id)
        current = user.get("wallet_address")

        if current == wallet:
            return {"user": user, "changed": False}

        if current:
            active_mint = await mint_record_repository.get_active_for_user(user["id"])
            if active_mint:
                logger.warning(
                    f"Rejected wallet rebind for user {user_id}: mint is {active_mint['outcome']}"
                )
                raise WalletAlreadyLinkedError(
                    current,
                    {"reason": f"mint {active_mint['outcome']}", "requested": wallet},
                )

        updated = await user_repository.bind_wallet(user["id"], wallet, current)
        if updated is None:
            # Wallet changed concurrently; re-evaluate against the new state
            refreshed = await user_repository.get_by_id(user["id"])
            if refreshed.get("wallet_address") == wallet:
                return {"user": refreshed, "changed": False}
            raise WalletAlreadyLinkedError(
                refreshed.get("wallet_address") or wallet, {"reason": "concurrent update"}
            )

        active_mint = await mint_record_repository.get_active_for_user(user["id"])
        if active_mint and active_mint["wallet_address"] != wallet:
            # A mint claimed the previous wallet while this rebind was being written
            claimed = active_mint["wallet_address"]
            await user_repository.bind_wallet(user["id"], claimed, wallet)
            logger.warning(f"Reverted wallet rebind for user {user_id}: mint claimed {claimed}")
            raise WalletAlreadyLinkedError(
                claimed,
                {"reason": f"mint {active_mint['outcome']}", "requested": wallet},
            )

        log_wallet_operation(
            "rebind" if current else "bind",
            wallet,
            chain_id=settings.EVM_CHAIN_ID,
            user_id=user["id"],
        )
        return {"user": updated, "changed": True}

    def _serialize_user(self, user: Dict[str, Any]) -> UserResponseDTO:
        """Convert a MongoDB user to a response DTO."""
        return UserResponseDTO(
            id=user["id"],
            full_name=user["full_name"],
            email=user["email"],
            passport_number=user["passport_number"],
            country=user["country"],
            residency_type=user["residency_type"],
            is_verified=user.get("is_verified", False),
            role=user.get("role", "user"),
            status=user.get("status", "active"),
            wallet_address=user.get("wallet_address"),
            created_at=user.get("created_at"),
        )


# Global service instance
user_service = UserService()
