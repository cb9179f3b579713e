"""
Certificate Router for e-Residency Backend.
"""

import asyncio

from fastapi import APIRouter, Depends

from eresidency.api.deps.auth_guard import AuthenticatedUser, get_current_user
from eresidency.api.dto.certificate_dto import (
    CertificatePreviewRequestDTO,
    CertificatePreviewResponseDTO,
)
from eresidency.infrastructure.certificates.qr_generator import qr_certificate_generator

# Create router
router = APIRouter()


@router.post("/preview", response_model=CertificatePreviewResponseDTO)
async def preview_certificate(
    request: CertificatePreviewRequestDTO,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> CertificatePreviewResponseDTO:
    """
    Render a QR code inline as a data URL. Nothing is written to storage.

    **Access**: Authenticated user
    """
    data_url = await asyncio.to_thread(
        qr_certificate_generator.render_data_url, request.payload, request.options
    )
    return CertificatePreviewResponseDTO(
        success=True, data_url=data_url, format=request.options.format
    )
