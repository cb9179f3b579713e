"""
Minting Coordinator.

Bridges the application lifecycle with the residency NFT ledger. The durable
in-flight mint record is the only lock: it is claimed before the ledger call
and resolved from the ledger's answer, or later by the reconciliation sweep
when the answer never arrives.
"""

import asyncio
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from eresidency.api.services.application_service import application_service
from eresidency.api.services.audit_service import audit_service
from eresidency.api.services.user_service import user_service
from eresidency.core.config import settings
from eresidency.core.exceptions import (
    AlreadyMintedError,
    ExternalServiceError,
    InvalidTransitionError,
    LedgerRejectedError,
    LedgerTimeoutError,
    NotFoundError,
    ResidencyException,
    WalletAlreadyLinkedError,
)
from eresidency.core.logging import (
    get_logger,
    log_blockchain_transaction,
    log_error,
    log_mint_operation,
)
from eresidency.domain.models.application import ApplicationStatus
from eresidency.domain.models.audit_log import AuditEntityType, AuditStatus
from eresidency.domain.models.mint_record import MintOutcome, MintRecordModel
from eresidency.domain.repositories.application_repository import application_repository
from eresidency.domain.repositories.mint_record_repository import mint_record_repository
from eresidency.infrastructure.blockchain.residency_ledger import (
    MintPayload,
    ResidencyLedger,
    residency_ledger,
)
from eresidency.infrastructure.certificates.qr_generator import (
    QRCertificateGenerator,
    qr_certificate_generator,
)

logger = get_logger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_e_residency_id(now_ms: Optional[int] = None) -> str:
    """``ER-<epoch ms>-<9 base36 chars>``."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"ER-{now_ms}-{suffix}"


def build_token_metadata(
    user: Dict[str, Any], e_residency_id: str, issued_ms: int
) -> Dict[str, Any]:
    """
    NFT metadata served at the token URI.

    Args:
        user: Token holder
        e_residency_id: e-Residency identifier
        issued_ms: Issue time in epoch milliseconds

    Returns:
        Dict[str, Any]: ERC-721 style metadata
    """
    base_uri = settings.METADATA_BASE_URI.rstrip("/")
    citizenship = user.get("country") or "Unknown"
    issued_at = datetime.fromtimestamp(issued_ms / 1000, tz=timezone.utc)
    return {
        "name": user["full_name"],
        "citizenshipCountry": citizenship,
        "eResidencyId": e_residency_id,
        "timestamp": issued_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "description": f"e-Residency NFT for {user['full_name']}",
        "image": f"{base_uri}/images/{e_residency_id}.png",
        "attributes": [
            {"trait_type": "Citizenship", "value": citizenship},
            {"trait_type": "Residency Type", "value": user.get("residency_type")},
            {
                "display_type": "date",
                "trait_type": "Issued On",
                "value": issued_ms // 1000,
            },
        ],
    }


class MintingCoordinator:
    """Runs the mint protocol for approved applications."""

    def __init__(
        self,
        ledger: ResidencyLedger = residency_ledger,
        certificates: QRCertificateGenerator = qr_certificate_generator,
    ):
        self.ledger = ledger
        self.certificates = certificates
        self._pending: Set[asyncio.Task] = set()

    async def mint(
        self,
        user_id: str,
        wallet_address: str,
        application_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Mint the residency token for a user's approved application.

        Preconditions are checked in order: the application is approved, the
        wallet is valid and bound to the user, and the user has no succeeded
        mint. The in-flight record is then claimed atomically before the ledger
        is called.

        Args:
            user_id: User ID
            wallet_address: Recipient wallet
            application_id: Approved application, defaults to the user's newest one

        Returns:
            Dict[str, Any]: Fields of ``MintResponseDTO``

        Raises:
            NotFoundError: If the user or application does not exist
            InvalidTransitionError: If the application is not approved
            InvalidWalletAddressError: If the wallet is malformed
            WalletAlreadyLinkedError: If the wallet cannot be bound to the user, or
                was rebound before the ledger call
            AlreadyMintedError: If a mint succeeded or is in flight for the user
            LedgerRejectedError: If the ledger definitely did not mint
            LedgerTimeoutError: If the outcome is unknown; the record stays in flight
        """
        user = await user_service.get_active_user(user_id)
        application = await self._select_application(user["id"], application_id)

        binding = await user_service.bind_wallet(user["id"], wallet_address)
        wallet = binding["user"]["wallet_address"]

        existing = await mint_record_repository.get_succeeded_for_user(user["id"])
        if existing:
            raise AlreadyMintedError(
                "Residency token already minted",
                {
                    "token_id": existing.get("token_id"),
                    "transaction_hash": existing.get("transaction_hash"),
                },
            )

        now_ms = int(time.time() * 1000)
        e_residency_id = generate_e_residency_id(now_ms)
        token_uri = f"{settings.METADATA_BASE_URI.rstrip('/')}/{e_residency_id}"
        metadata = build_token_metadata(user, e_residency_id, now_ms)

        record = await mint_record_repository.create_in_flight(
            MintRecordModel(
                application_id=application["id"],
                user_id=user["id"],
                wallet_address=wallet,
                contract_address=settings.RESIDENCY_NFT_CONTRACT_ADDRESS or None,
                e_residency_id=e_residency_id,
                token_uri=token_uri,
                metadata=metadata,
            )
        )
        log_mint_operation(
            "guard_acquired",
            record["id"],
            user_id=user["id"],
            application_id=application["id"],
            outcome=MintOutcome.IN_FLIGHT.value,
        )
        await self._audit("claimed", record, AuditStatus.PENDING, actor_id=user["id"], wallet=wallet)

        # A concurrent rebind may have landed between binding and claiming the guard
        bound = (await user_service.get_active_user(user["id"])).get("wallet_address")
        if bound != wallet:
            await mint_record_repository.mark_failed(record["id"], "Wallet changed before mint")
            log_mint_operation(
                "failed",
                record["id"],
                user_id=user["id"],
                application_id=application["id"],
                outcome=MintOutcome.FAILED.value,
                error="wallet changed",
            )
            await self._audit("failed", record, AuditStatus.FAILURE, error="wallet changed")
            raise WalletAlreadyLinkedError(wallet, {"reason": "wallet changed", "bound": bound})

        payload = MintPayload(
            name=metadata["name"],
            citizenship_country=metadata["citizenshipCountry"],
            e_residency_id=e_residency_id,
            token_uri=token_uri,
        )

        # The ledger call must outlive a disconnected or timed out caller
        task = asyncio.create_task(self._execute(record, payload))
        self._pending.add(task)
        task.add_done_callback(self._forget)

        try:
            return await asyncio.wait_for(
                asyncio.shield(task), timeout=settings.MINT_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            current = await mint_record_repository.get_by_id(record["id"])
            log_mint_operation(
                "unknown",
                record["id"],
                user_id=user["id"],
                application_id=application["id"],
                outcome=current["outcome"],
                reason="request timeout",
            )
            await self._audit("unknown", record, AuditStatus.PENDING, error="request timeout")
            raise LedgerTimeoutError(
                details={"record_id": record["id"]},
                transaction_hash=current.get("transaction_hash"),
            )

    async def _select_application(
        self, user_id: str, application_id: Optional[str]
    ) -> Dict[str, Any]:
        if application_id:
            application = await application_repository.get_by_id(application_id)
            if application["user_id"] != user_id:
                raise NotFoundError(f"Application not found: {application_id}")
            self._ensure_mintable(application)
            return application

        applications = await application_repository.list_for_user(user_id)
        if not applications:
            raise NotFoundError(f"No application found for user {user_id}")

        for application in applications:
            if application["status"] == ApplicationStatus.APPROVED.value:
                return application
        completed = [
            application for application in applications
            if application["status"] == ApplicationStatus.COMPLETED.value
        ]
        self._ensure_mintable(completed[0] if completed else applications[0])
        return applications[0]

    @staticmethod
    def _ensure_mintable(application: Dict[str, Any]) -> None:
        if application["status"] == ApplicationStatus.COMPLETED.value:
            raise AlreadyMintedError(
                "Residency token already minted",
                {"application_id": application["id"]},
            )
        if application["status"] != ApplicationStatus.APPROVED.value:
            raise InvalidTransitionError(
                application["status"],
                ApplicationStatus.COMPLETED.value,
                {"reason": "application is not approved"},
            )

    async def _audit(
        self,
        stage: str,
        record: Dict[str, Any],
        status: AuditStatus,
        actor_id: Optional[str] = None,
        **metadata: Any,
    ) -> None:
        await audit_service.record(
            f"mint.{stage}",
            AuditEntityType.MINT_RECORD,
            record["id"],
            actor_id=actor_id,
            user_id=record["user_id"],
            status=status,
            application_id=record["application_id"],
            **metadata,
        )

    async def _execute(self, record: Dict[str, Any], payload: MintPayload) -> Dict[str, Any]:
        record_id = record["id"]
        context = {"user_id": record["user_id"], "application_id": record["application_id"]}

        async def on_broadcast(tx_hash: str) -> None:
            await mint_record_repository.note_transaction_hash(record_id, tx_hash)
            log_blockchain_transaction(
                tx_hash,
                settings.EVM_CHAIN_ID,
                contract_address=settings.RESIDENCY_NFT_CONTRACT_ADDRESS,
                method="mintNFT",
                record_id=record_id,
            )

        log_mint_operation("ledger_call", record_id, outcome=MintOutcome.IN_FLIGHT.value, **context)
        try:
            result = await self.ledger.mint(
                payload, record["wallet_address"], on_broadcast=on_broadcast
            )
        except LedgerRejectedError as e:
            await mint_record_repository.mark_failed(record_id, e.message)
            log_mint_operation(
                "failed", record_id, outcome=MintOutcome.FAILED.value, error=e.message, **context
            )
            await self._audit("failed", record, AuditStatus.FAILURE, error=e.message)
            raise
        except LedgerTimeoutError as e:
            if e.transaction_hash:
                await mint_record_repository.note_transaction_hash(record_id, e.transaction_hash)
            log_mint_operation(
                "unknown", record_id, outcome=MintOutcome.IN_FLIGHT.value, error=e.message, **context
            )
            await self._audit(
                "unknown",
                record,
                AuditStatus.PENDING,
                error=e.message,
                transaction_hash=e.transaction_hash,
            )
            raise
        except ExternalServiceError as e:
            log_mint_operation(
                "unknown", record_id, outcome=MintOutcome.IN_FLIGHT.value, error=e.message, **context
            )
            await self._audit("unknown", record, AuditStatus.PENDING, error=e.message)
            raise LedgerTimeoutError(
                f"Ledger outcome unknown: {e.message}",
                details={"record_id": record_id},
            ) from e

        succeeded = await mint_record_repository.mark_succeeded(
            record_id,
            result.token_id,
            result.transaction_hash,
            result.contract_address,
            result.block_number,
        )
        if succeeded is None:
            succeeded = await mint_record_repository.get_by_id(record_id)
        log_mint_operation(
            "settled",
            record_id,
            outcome=MintOutcome.SUCCEEDED.value,
            token_id=result.token_id,
            transaction_hash=result.transaction_hash,
            **context,
        )
        await self._audit(
            "settled",
            record,
            AuditStatus.SUCCESS,
            token_id=result.token_id,
            transaction_hash=result.transaction_hash,
        )

        try:
            succeeded = await self.finalize(succeeded)
        except ResidencyException as e:
            # Left for the reconciliation sweep
            log_error(e, {"record_id": record_id, "stage": "finalize"})

        return {
            "success": True,
            "message": "Residency token minted",
            "transaction_hash": result.transaction_hash,
            "token_id": result.token_id,
            "contract_address": result.contract_address,
            "e_residency_id": succeeded["e_residency_id"],
            "application_id": succeeded["application_id"],
            "certificate_url": succeeded.get("certificate_url"),
        }

    async def finalize(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Complete the application of a succeeded record and issue its certificate.

        Safe to repeat: completing a completed application is a no-op and an
        existing certificate is kept.

        Returns:
            Dict[str, Any]: The refreshed mint record
        """
        await application_service.complete(record["application_id"])
        await mint_record_repository.mark_finalized(record["id"])

        if not record.get("certificate_url"):
            await self._issue_certificate(record)
        return await mint_record_repository.get_by_id(record["id"])

    async def _issue_certificate(self, record: Dict[str, Any]) -> None:
        verify_url = f"{settings.PUBLIC_VERIFY_BASE_URL.rstrip('/')}/{record['application_id']}"
        try:
            certificate = await self.certificates.generate(verify_url)
        except ResidencyException as e:
            log_error(e, {"record_id": record["id"], "stage": "certificate"})
            return
        await mint_record_repository.attach_certificate(
            record["id"], certificate.url, certificate.storage_path
        )

    async def status(self, user_id: str) -> Dict[str, Any]:
        """
        Mint status for a user.

        Returns:
            ``{"has_minted": False}`` when the user has no succeeded mint,
            otherwise the record projection
        """
        record = await mint_record_repository.get_succeeded_for_user(user_id)
        if not record:
            return {"has_minted": False}

        return {
            "has_minted": True,
            "token_id": record.get("token_id"),
            "contract_address": record.get("contract_address"),
            "transaction_hash": record.get("transaction_hash"),
            "minted_at": record.get("minted_at"),
            "e_residency_id": record.get("e_residency_id"),
            "certificate_url": record.get("certificate_url"),
            "metadata": record.get("metadata"),
        }

    def _forget(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled():
            task.exception()

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for ledger calls still running, e.g. at shutdown."""
        if self._pending:
            logger.info(f"Waiting for {len(self._pending)} in-flight mint(s)")
            await asyncio.wait(set(self._pending), timeout=timeout)


# Global coordinator instance
minting_coordinator = MintingCoordinator()
