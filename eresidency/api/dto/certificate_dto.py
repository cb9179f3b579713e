from pydantic import Field

from eresidency.api.dto.base import CamelModel
from eresidency.infrastructure.certificates.qr_generator import QRCodeOptions


class CertificatePreviewRequestDTO(CamelModel):
    """Request DTO for an inline QR preview."""

    payload: str = Field(..., min_length=1, max_length=2048, description="Data to encode")
    options: QRCodeOptions = Field(default_factory=QRCodeOptions, description="Rendering options")


class CertificatePreviewResponseDTO(CamelModel):
    """Response DTO for an inline QR preview."""

    success: bool = Field(..., description="Operation success status")
    data_url: str = Field(..., description="Embeddable data URL")
    format: str = Field(..., description="png or svg")
