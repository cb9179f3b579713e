"""
MongoDB model for residency token mint attempts.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from eresidency.domain.models.common import utc_now


class MintOutcome(str, Enum):
    """Outcome of a mint attempt."""

    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class MintRecordModel(BaseModel):
    """
    One mint attempt for an approved application.

    ``guard_key`` carries the owning user ID while the record is in flight or
    succeeded and is removed on failure. A unique sparse index on it makes the
    insert of an in-flight record the single-writer guard.
    """

    application_id: str = Field(..., description="Application ID")
    user_id: str = Field(..., description="User ID")
    wallet_address: str = Field(..., description="Recipient wallet (checksummed)")
    contract_address: Optional[str] = Field(None, description="Residency NFT contract")
    outcome: MintOutcome = Field(default=MintOutcome.IN_FLIGHT, description="Attempt outcome")
    guard_key: Optional[str] = Field(None, description="Unique while in flight or succeeded")
    e_residency_id: str = Field(..., description="e-Residency identifier")
    token_uri: str = Field(..., description="Token metadata URI")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="NFT metadata")
    token_id: Optional[str] = Field(None, description="Minted token ID")
    transaction_hash: Optional[str] = Field(None, description="Mint transaction hash")
    broadcast_at: Optional[datetime] = Field(None, description="When the mint transaction was broadcast")
    block_number: Optional[int] = Field(None, description="Block number of the receipt")
    error: Optional[str] = Field(None, description="Error summary for failed attempts")
    resolved_by: Optional[str] = Field(None, description="request or reconciliation")
    finalized: bool = Field(default=False, description="Application moved to completed")
    certificate_url: Optional[str] = Field(None, description="QR certificate URL")
    certificate_path: Optional[str] = Field(None, description="QR certificate storage path")
    minted_at: Optional[datetime] = Field(None, description="Mint confirmation timestamp")
    created_at: datetime = Field(default_factory=utc_now, description="Created at")
    updated_at: datetime = Field(default_factory=utc_now, description="Updated at")
