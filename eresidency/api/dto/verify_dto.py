from datetime import datetime
from typing import Optional

from pydantic import Field

from eresidency.api.dto.base import CamelModel
from eresidency.domain.models.application import ApplicationStatus
from eresidency.domain.models.user import ResidencyType


class VerificationResponseDTO(CamelModel):
    """Public projection of a residency. No private fields."""

    name: str = Field(..., description="Holder name")
    country: str = Field(..., description="Country of citizenship")
    residency_type: ResidencyType = Field(..., description="Residency programme")
    status: ApplicationStatus = Field(..., description="Application status")
    issued_at: Optional[datetime] = Field(None, description="Mint timestamp, None until issued")
