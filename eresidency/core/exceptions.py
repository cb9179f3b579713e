"""
Custom exceptions for the e-Residency Backend application.
Provides structured error handling for residency applications, documents and credential minting.
"""

from typing import Any, Dict, List, Optional
from fastapi import status


class ResidencyException(Exception):
    """Base exception for e-Residency Backend application."""

    def __init__(
        self,
        message: str,
        error_code: str = "RESIDENCY_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication & Authorization
class AuthenticationError(ResidencyException):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "AUTH_ERROR", details)


class AuthorizationError(ResidencyException):
    """Raised when authorization fails."""

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "AUTHZ_ERROR", details)


# Validation
class ValidationError(ResidencyException):
    """Raised when input validation fails."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class InvalidWalletAddressError(ValidationError):
    """Raised when an invalid wallet address is provided."""

    def __init__(self, wallet_address: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Invalid wallet address: {wallet_address}", details)
        self.error_code = "INVALID_WALLET_ADDRESS"


class UploadRejectedError(ValidationError):
    """Raised when an uploaded file fails the ingestion policy."""

    def __init__(self, filename: str, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"File rejected: {filename} ({reason})", details)
        self.error_code = "UPLOAD_REJECTED"


# Storage Layer
class NotFoundError(ResidencyException):
    """Raised when a referenced entity does not exist."""

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class ConflictError(ResidencyException):
    """Raised on a uniqueness violation or a concurrent-write conflict."""

    def __init__(self, message: str = "Resource already exists", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFLICT", details)


class WalletAlreadyLinkedError(ConflictError):
    """Raised when a wallet is already bound to another user, or rebinding is not allowed."""

    def __init__(self, wallet_address: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Wallet already linked: {wallet_address}", details)
        self.error_code = "WALLET_ALREADY_LINKED"


class AlreadyMintedError(ConflictError):
    """Raised when a residency token already exists or is being minted for the user."""

    def __init__(self, message: str = "Residency token already minted", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.error_code = "ALREADY_MINTED"


# Lifecycle
class InvalidTransitionError(ResidencyException):
    """Raised when a status transition is not allowed from the current state."""

    def __init__(
        self,
        current_status: str,
        target_status: str,
        details: Optional[Dict[str, Any]] = None
    ):
        message = f"Invalid transition: {current_status} -> {target_status}"
        super().__init__(message, "INVALID_TRANSITION", details)
        self.current_status = current_status
        self.target_status = target_status


class IncompleteDocumentationError(ResidencyException):
    """Raised when an application is approved without every required document verified."""

    def __init__(self, missing_types: List[str], details: Optional[Dict[str, Any]] = None):
        message = f"Required documents not verified: {', '.join(missing_types)}"
        details = {**(details or {}), "missing_types": missing_types}
        super().__init__(message, "INCOMPLETE_DOCUMENTATION", details)
        self.missing_types = missing_types


# External services
class ExternalServiceError(ResidencyException):
    """Raised when the ledger or another external service fails."""

    def __init__(
        self,
        message: str = "External service failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "EXTERNAL_SERVICE_ERROR"
    ):
        super().__init__(message, error_code, details)


class LedgerRejectedError(ExternalServiceError):
    """Raised when the ledger definitely did not mint (not broadcast, or reverted)."""

    def __init__(
        self,
        message: str = "Ledger rejected the transaction",
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "LEDGER_REJECTED"
    ):
        super().__init__(message, details, error_code)


class InsufficientFundsError(LedgerRejectedError):
    """Raised when the minting account cannot pay for gas."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__("Insufficient funds for transaction", details, "INSUFFICIENT_FUNDS")


class LedgerTimeoutError(ExternalServiceError):
    """Raised when the ledger outcome is unknown, e.g. broadcast without a receipt."""

    def __init__(
        self,
        message: str = "Ledger call timed out, outcome pending reconciliation",
        details: Optional[Dict[str, Any]] = None,
        transaction_hash: Optional[str] = None
    ):
        if transaction_hash:
            details = {**(details or {}), "transaction_hash": transaction_hash}
        super().__init__(message, details, "LEDGER_TIMEOUT")
        self.transaction_hash = transaction_hash


# Infrastructure
class StorageIOError(ResidencyException):
    """Raised when the file store fails."""

    def __init__(self, message: str = "File storage operation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORAGE_IO_ERROR", details)


class DatabaseError(ResidencyException):
    """Raised when database operations fail."""

    def __init__(self, message: str = "Database operation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


def get_exception_status_code(exc: ResidencyException) -> int:
    """
    Get the appropriate HTTP status code for a ResidencyException.

    Args:
        exc: ResidencyException instance

    Returns:
        int: HTTP status code
    """
    status_mapping = {
        # Authentication & Authorization
        "AUTH_ERROR": status.HTTP_401_UNAUTHORIZED,
        "AUTHZ_ERROR": status.HTTP_403_FORBIDDEN,

        # Validation
        "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
        "INVALID_WALLET_ADDRESS": status.HTTP_400_BAD_REQUEST,
        "UPLOAD_REJECTED": status.HTTP_400_BAD_REQUEST,

        # Storage Layer
        "NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "CONFLICT": status.HTTP_409_CONFLICT,
        "WALLET_ALREADY_LINKED": status.HTTP_409_CONFLICT,
        "ALREADY_MINTED": status.HTTP_409_CONFLICT,

        # Lifecycle
        "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
        "INCOMPLETE_DOCUMENTATION": status.HTTP_422_UNPROCESSABLE_ENTITY,

        # External services
        "EXTERNAL_SERVICE_ERROR": status.HTTP_502_BAD_GATEWAY,
        "LEDGER_REJECTED": status.HTTP_502_BAD_GATEWAY,
        "INSUFFICIENT_FUNDS": status.HTTP_400_BAD_REQUEST,
        "LEDGER_TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,

        # Infrastructure
        "STORAGE_IO_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DATABASE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    return status_mapping.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
