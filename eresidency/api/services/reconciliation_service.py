"""
Reconciliation Service.

Resolves in-flight mint records from the ledger's ground truth and finishes
the application transition for succeeded records that never got it.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from eresidency.api.services.audit_service import audit_service
from eresidency.api.services.document_service import document_service
from eresidency.api.services.minting_coordinator import MintingCoordinator, minting_coordinator
from eresidency.core.config import settings
from eresidency.core.exceptions import ExternalServiceError, ResidencyException
from eresidency.core.logging import get_logger, log_error, log_mint_operation, log_reconciliation
from eresidency.domain.models.audit_log import AuditEntityType, AuditStatus
from eresidency.domain.models.common import utc_now
from eresidency.domain.models.mint_record import MintOutcome
from eresidency.domain.repositories.mint_record_repository import mint_record_repository
from eresidency.infrastructure.blockchain.residency_ledger import (
    LedgerToken,
    ResidencyLedger,
    TransactionState,
    residency_ledger,
)

logger = get_logger(__name__)


class ReconciliationService:
    """Service class for the mint reconciliation sweep."""

    def __init__(
        self,
        ledger: ResidencyLedger = residency_ledger,
        coordinator: MintingCoordinator = minting_coordinator,
    ):
        self.ledger = ledger
        self.coordinator = coordinator

    async def reconcile(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Run one reconciliation sweep.

        Only in-flight records older than the grace period are examined, so the
        sweep never races a request that is still waiting on the ledger. Records
        whose transaction may still be mined are counted as unresolved.

        Args:
            now: Reference time (naive UTC), defaults to the current time

        Returns:
            Dict[str, int]: Counters of ``ReconciliationReportDTO``
        """
        now = now or utc_now()
        cutoff = now - timedelta(seconds=settings.RECONCILE_GRACE_PERIOD_SECONDS)
        report = {
            "examined": 0,
            "resolved_succeeded": 0,
            "resolved_failed": 0,
            "unresolved": 0,
            "finalized": 0,
        }

        for record in await mint_record_repository.list_in_flight_older_than(cutoff):
            report["examined"] += 1
            try:
                outcome, token, reason = await self._resolve(record, now)
            except ExternalServiceError as e:
                logger.warning(f"Ledger unavailable for mint record {record['id']}: {e.message}")
                report["unresolved"] += 1
                continue

            if outcome is None:
                report["unresolved"] += 1
                continue

            if outcome == MintOutcome.FAILED:
                resolved = await mint_record_repository.mark_failed(
                    record["id"], reason, resolved_by="reconciliation"
                )
            else:
                resolved = await mint_record_repository.mark_succeeded(
                    record["id"],
                    token.token_id,
                    token.transaction_hash or record.get("transaction_hash"),
                    token.contract_address,
                    token.block_number,
                    resolved_by="reconciliation",
                )

            if resolved is None:
                # Settled by its own request in the meantime
                continue
            report[f"resolved_{outcome.value}"] += 1
            log_mint_operation(
                "reconciled",
                record["id"],
                user_id=record["user_id"],
                application_id=record["application_id"],
                outcome=outcome.value,
            )
            await audit_service.record(
                "mint.reconciled",
                AuditEntityType.MINT_RECORD,
                record["id"],
                user_id=record["user_id"],
                status=(
                    AuditStatus.SUCCESS if outcome == MintOutcome.SUCCEEDED else AuditStatus.FAILURE
                ),
                application_id=record["application_id"],
                outcome=outcome.value,
                error=reason,
            )

        for record in await mint_record_repository.list_unfinalized_succeeded():
            try:
                await self.coordinator.finalize(record)
            except ResidencyException as e:
                log_error(e, {"record_id": record["id"], "stage": "finalize"})
                continue
            report["finalized"] += 1

        log_reconciliation("mint", **report)
        return report

    async def _resolve(
        self, record: Dict[str, Any], now: datetime
    ) -> Tuple[Optional[MintOutcome], Optional[LedgerToken], Optional[str]]:
        """
        Decide an in-flight record from the ledger.

        A broadcast transaction decides the record once it is mined or reverted.
        While it is pending, or unknown to the node within the dropped-transaction
        horizon, the record stays in flight: it can still be mined.

        Returns:
            ``(outcome, token, failure reason)``, outcome None while undecided

        Raises:
            ExternalServiceError: If the ledger cannot be queried
        """
        transaction_hash = record.get("transaction_hash")
        if transaction_hash:
            transaction = await self.ledger.transaction_status(transaction_hash)
            if transaction.state == TransactionState.MINED:
                return MintOutcome.SUCCEEDED, transaction.token, None
            if transaction.state == TransactionState.REVERTED:
                return MintOutcome.FAILED, None, f"Transaction reverted: {transaction_hash}"
            if transaction.state == TransactionState.PENDING:
                return None, None, None

            broadcast_at = record.get("broadcast_at") or record["updated_at"]
            horizon = timedelta(seconds=settings.RECONCILE_DROPPED_TX_HORIZON_SECONDS)
            if now - broadcast_at < horizon:
                return None, None, None

        token = await self.ledger.find_token(record["wallet_address"])
        if token is None:
            return (
                MintOutcome.FAILED,
                None,
                f"No residency token held by {record['wallet_address']}",
            )
        return MintOutcome.SUCCEEDED, token, None

    async def run_maintenance(self) -> None:
        """One pass of every periodic sweep."""
        await self.reconcile()
        await document_service.expire_documents()

    async def maintenance_loop(self, interval_seconds: float) -> None:
        """Run the sweeps every ``interval_seconds`` until cancelled."""
        logger.info(f"Maintenance loop started, interval {interval_seconds}s")
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.run_maintenance()
            except Exception as e:
                log_error(e, {"stage": "maintenance"})


# Global service instance
reconciliation_service = ReconciliationService()
