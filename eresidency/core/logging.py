"""
Logging configuration for the e-Residency Backend application.
Provides structured logging for application review, document ingestion and minting operations.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory

from eresidency.core.config import settings


def setup_logging() -> None:
    """
    Configure structured logging for the application.
    Sets up different log formats for development and production environments.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _get_processor(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    # Set specific logger levels
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("motor").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)


def _get_processor():
    """
    Get the appropriate processor based on environment.

    Returns:
        Processor function for structlog
    """
    if settings.ENVIRONMENT == "production" or settings.LOG_FORMAT == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        structlog.stdlib.BoundLogger: Configured logger instance
    """
    return structlog.get_logger(name)


# Specialized logging functions for residency operations

def log_lifecycle_transition(
    application_id: str,
    from_status: str,
    to_status: str,
    actor_id: Optional[str] = None,
    **kwargs
) -> None:
    """
    Log an application status transition.

    Args:
        application_id: Application ID
        from_status: Status before the transition
        to_status: Status after the transition
        actor_id: Reviewer ID, or None for system transitions
        **kwargs: Additional context
    """
    logger = get_logger("application.lifecycle")
    logger.info(
        "Application transition",
        application_id=application_id,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        **kwargs
    )


def log_document_review(
    document_id: str,
    reviewer_id: str,
    status: str,
    **kwargs
) -> None:
    """Log a reviewer decision on a document."""
    logger = get_logger("document.review")
    logger.info(
        "Document review",
        document_id=document_id,
        reviewer_id=reviewer_id,
        status=status,
        **kwargs
    )


def log_file_operation(
    operation: str,
    storage_path: str,
    size: Optional[int] = None,
    mime_type: Optional[str] = None,
    **kwargs
) -> None:
    """
    Log file storage operations.

    Args:
        operation: Operation type (store, delete, read)
        storage_path: Storage-relative path of the artifact
        size: File size in bytes
        mime_type: MIME type of the artifact
        **kwargs: Additional context
    """
    logger = get_logger("file.operation")
    logger.info(
        "File operation",
        operation=operation,
        storage_path=storage_path,
        size=size,
        mime_type=mime_type,
        **kwargs
    )


def log_wallet_operation(
    operation: str,
    wallet_address: str,
    chain_id: int = None,
    user_id: str = None,
    **kwargs
) -> None:
    """
    Log wallet-related operations.

    Args:
        operation: Operation type (bind, rebind, confirm)
        wallet_address: Wallet address
        chain_id: Blockchain chain ID
        user_id: User ID
        **kwargs: Additional context
    """
    logger = get_logger("wallet.operation")
    logger.info(
        "Wallet operation",
        operation=operation,
        wallet_address=wallet_address,
        chain_id=chain_id,
        user_id=user_id,
        **kwargs
    )


def log_mint_operation(
    stage: str,
    record_id: str,
    user_id: str = None,
    application_id: str = None,
    outcome: str = None,
    **kwargs
) -> None:
    """
    Log a stage of the minting protocol.

    Args:
        stage: Protocol stage (guard_acquired, ledger_call, settled, failed, unknown)
        record_id: MintRecord ID
        user_id: User ID
        application_id: Application ID
        outcome: MintRecord outcome after this stage
        **kwargs: Additional context
    """
    logger = get_logger("mint.operation")
    logger.info(
        "Mint operation",
        stage=stage,
        record_id=record_id,
        user_id=user_id,
        application_id=application_id,
        outcome=outcome,
        **kwargs
    )


def log_blockchain_transaction(
    tx_hash: str,
    chain_id: int,
    contract_address: str = None,
    method: str = None,
    **kwargs
) -> None:
    """
    Log blockchain transaction details.

    Args:
        tx_hash: Transaction hash
        chain_id: Blockchain chain ID
        contract_address: Smart contract address
        method: Contract method called
        **kwargs: Additional transaction context
    """
    logger = get_logger("blockchain.transaction")
    logger.info(
        "Blockchain transaction",
        tx_hash=tx_hash,
        chain_id=chain_id,
        contract_address=contract_address,
        method=method,
        **kwargs
    )


def log_reconciliation(sweep: str, **counts: int) -> None:
    """Log the summary of a maintenance sweep."""
    logger = get_logger("maintenance.sweep")
    logger.info("Maintenance sweep finished", sweep=sweep, **counts)


def log_error(error: Exception, context: Dict[str, Any] = None) -> None:
    """
    Log an error with context.

    Args:
        error: Exception instance
        context: Additional context information
    """
    logger = get_logger("error")
    logger.error(
        "An error occurred",
        error=str(error),
        error_type=type(error).__name__,
        context=context or {},
        exc_info=True
    )


def log_request(method: str, url: str, status_code: int, duration: float, **kwargs) -> None:
    """
    Log HTTP request details.

    Args:
        method: HTTP method
        url: Request URL
        status_code: Response status code
        duration: Request duration in seconds
        **kwargs: Additional context to log
    """
    logger = get_logger("http.request")
    logger.info(
        "HTTP request completed",
        method=method,
        url=url,
        status_code=status_code,
        duration=duration,
        **kwargs
    )
