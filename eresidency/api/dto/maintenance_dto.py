from pydantic import Field

from eresidency.api.dto.base import CamelModel


class ReconciliationReportDTO(CamelModel):
    """Result of one reconciliation sweep."""

    success: bool = Field(True, description="Operation success status")
    examined: int = Field(0, description="In-flight records past the grace period")
    resolved_succeeded: int = Field(0, description="Resolved to succeeded from the ledger")
    resolved_failed: int = Field(0, description="Resolved to failed from the ledger")
    unresolved: int = Field(0, description="Left in flight, ledger unavailable or transaction pending")
    finalized: int = Field(0, description="Applications completed for succeeded records")


class ExpirySweepReportDTO(CamelModel):
    """Result of one document expiry sweep."""

    success: bool = Field(True, description="Operation success status")
    expired: int = Field(0, description="Document records removed")
    files_deleted: int = Field(0, description="Artifacts removed from storage")
