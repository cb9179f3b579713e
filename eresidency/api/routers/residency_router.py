"""
Residency Router for e-Residency Backend.
Handles minting of the residency token and mint status.
"""

from fastapi import APIRouter, Depends

from eresidency.api.deps.auth_guard import AuthenticatedUser, ensure_self, get_current_user
from eresidency.api.dto.residency_dto import (
    MintRequestDTO,
    MintResponseDTO,
    MintStatusResponseDTO,
)
from eresidency.api.services.minting_coordinator import minting_coordinator
from eresidency.core.logging import get_logger

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.post("/mint", response_model=MintResponseDTO)
async def mint_residency(
    request: MintRequestDTO,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> MintResponseDTO:
    """
    Mint the residency token for an approved application.

    This endpoint:
    1. Checks the application is approved
    2. Binds the wallet to the user if none is bound
    3. Claims the in-flight mint record for the user
    4. Calls the residency NFT contract
    5. Completes the application and issues the QR certificate

    A ledger timeout answers 504 and leaves the mint in flight for the
    reconciliation sweep.

    **Access**: The user named in the body
    """
    ensure_self(current_user, request.user_id)
    logger.info(f"Mint requested for user {request.user_id}")
    result = await minting_coordinator.mint(
        request.user_id, request.wallet_address, request.application_id
    )
    return MintResponseDTO(**result)


@router.get(
    "/status/{user_id}",
    response_model=MintStatusResponseDTO,
    response_model_exclude_none=True,
)
async def mint_status(user_id: str) -> MintStatusResponseDTO:
    """
    Mint status of a user. ``{"hasMinted": false}`` when nothing was minted.

    **Access**: Public
    """
    return MintStatusResponseDTO(**await minting_coordinator.status(user_id))
