"""
Security utilities for the e-Residency Backend application.
Handles password hashing and wallet address validation.
"""

from typing import Optional

from passlib.context import CryptContext
from web3 import Web3

from eresidency.core.config import settings
from eresidency.core.logging import get_logger
from eresidency.core.exceptions import InvalidWalletAddressError

logger = get_logger(__name__)

# Password hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


class PasswordManager:
    """Hashes and verifies applicant passwords."""

    def hash_password(self, password: str) -> str:
        """
        Hash a plaintext password with bcrypt.

        Args:
            password: Plaintext password

        Returns:
            str: bcrypt hash
        """
        return pwd_context.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Check a plaintext password against a stored hash."""
        try:
            return pwd_context.verify(password, password_hash)
        except ValueError as e:
            logger.warning("Malformed password hash", error=str(e))
            return False


class ChainValidator:
    """Validates addresses on the active EVM chain."""

    @staticmethod
    def validate_ethereum_address(address: Optional[str]) -> bool:
        """Validate Ethereum address format (hex, 20 bytes, checksum when mixed-case)."""
        if not address or not isinstance(address, str):
            return False
        if not address.startswith("0x") or len(address) != 42:
            return False
        return Web3.is_address(address)

    @staticmethod
    def normalize_address(address: Optional[str]) -> str:
        """
        Validate an address and return its EIP-55 checksum form.

        Args:
            address: Address as supplied by the client

        Returns:
            str: Checksummed address

        Raises:
            InvalidWalletAddressError: If the address is not a valid EVM address
        """
        candidate = (address or "").strip()
        if not ChainValidator.validate_ethereum_address(candidate):
            raise InvalidWalletAddressError(candidate)
        return Web3.to_checksum_address(candidate)


# Global instances
password_manager = PasswordManager()
chain_validator = ChainValidator()
