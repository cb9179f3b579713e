"""
Verify Router for e-Residency Backend.
Public lookup behind the QR certificates.
"""

from fastapi import APIRouter

from eresidency.api.dto.verify_dto import VerificationResponseDTO
from eresidency.api.services.verification_service import verification_service

# Create router
router = APIRouter()


@router.get("/{public_id}", response_model=VerificationResponseDTO)
async def verify_residency(public_id: str) -> VerificationResponseDTO:
    """
    Public projection of a residency by application or user ID.

    Unknown and non-public IDs answer the same 404.

    **Access**: Public
    """
    return VerificationResponseDTO(**await verification_service.verify(public_id))
