from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from eresidency.api.dto.base import CamelModel


# Request DTOs
class MintRequestDTO(CamelModel):
    """Request DTO for minting the residency token."""

    user_id: str = Field(..., description="User ID")
    wallet_address: str = Field(..., description="Recipient wallet address")
    application_id: Optional[str] = Field(None, description="Approved application, defaults to the user's")


# Response DTOs
class MintResponseDTO(CamelModel):
    """Response DTO for a successful mint."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    transaction_hash: str = Field(..., description="Transaction hash")
    token_id: Optional[str] = Field(None, description="Token ID")
    contract_address: Optional[str] = Field(None, description="Contract address")
    e_residency_id: str = Field(..., description="e-Residency ID")
    application_id: str = Field(..., description="Completed application ID")
    certificate_url: Optional[str] = Field(None, description="QR certificate URL")


class MintStatusResponseDTO(CamelModel):
    """
    Mint status. Only ``hasMinted`` is present when the user has no succeeded mint.
    """

    has_minted: bool = Field(..., description="A residency token was minted")
    token_id: Optional[str] = Field(None, description="Token ID")
    contract_address: Optional[str] = Field(None, description="Contract address")
    transaction_hash: Optional[str] = Field(None, description="Transaction hash")
    minted_at: Optional[datetime] = Field(None, description="Mint timestamp")
    e_residency_id: Optional[str] = Field(None, description="e-Residency ID")
    certificate_url: Optional[str] = Field(None, description="QR certificate URL")
    metadata: Optional[Dict[str, Any]] = Field(None, description="NFT metadata")
