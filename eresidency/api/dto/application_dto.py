from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from eresidency.api.dto.base import CamelModel
from eresidency.domain.models.application import ApplicationStatus, ApplicationType
from eresidency.domain.models.document import DocumentStatus, DocumentType


# Request DTOs
class ApplicationCreateRequestDTO(CamelModel):
    """Request DTO for submitting an application."""

    type: ApplicationType = Field(..., description="Application type")
    data: Dict[str, Any] = Field(default_factory=dict, description="Application payload")


class ReviewDecisionRequestDTO(CamelModel):
    """Request DTO for a reviewer decision."""

    decision: Literal["approved", "rejected"] = Field(..., description="Decision")
    notes: Optional[str] = Field(None, max_length=5000, description="Notes, required on rejection")


# Response DTOs
class EmbeddedDocumentDTO(CamelModel):
    """Document reference inside an application."""

    document_id: str = Field(..., description="Document ID")
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Public relative URL")
    type: DocumentType = Field(..., description="Document type")
    size: int = Field(..., description="Size in bytes")
    status: DocumentStatus = Field(..., description="Document status")
    uploaded_at: datetime = Field(..., description="Upload timestamp")


class ApplicationResponseDTO(CamelModel):
    """Response DTO for application data."""

    id: str = Field(..., description="Application ID")
    user_id: str = Field(..., description="Owning user ID")
    type: ApplicationType = Field(..., description="Application type")
    status: ApplicationStatus = Field(..., description="Lifecycle status")
    data: Dict[str, Any] = Field(default_factory=dict, description="Application payload")
    documents: List[EmbeddedDocumentDTO] = Field(default_factory=list, description="Attached documents")
    reviewed_by: Optional[str] = Field(None, description="Reviewer user ID")
    review_notes: Optional[str] = Field(None, description="Reviewer notes")
    submitted_at: Optional[datetime] = Field(None, description="Submission timestamp")
    review_started_at: Optional[datetime] = Field(None, description="Review start timestamp")
    reviewed_at: Optional[datetime] = Field(None, description="Decision timestamp")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    created_at: Optional[datetime] = Field(None, description="Created at")
    updated_at: Optional[datetime] = Field(None, description="Updated at")


class ApplicationCreateResponseDTO(CamelModel):
    """Response DTO for application submission."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    application_id: str = Field(..., description="Application ID")
    status: ApplicationStatus = Field(..., description="Initial status")


class ApplicationEnvelopeDTO(CamelModel):
    """Response DTO wrapping one application."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    data: Optional[ApplicationResponseDTO] = Field(None, description="Application data")


class ApplicationListResponseDTO(CamelModel):
    """Response DTO for application lists."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    data: List[ApplicationResponseDTO] = Field(default_factory=list, description="Applications")


class MonthlyCountDTO(CamelModel):
    """Applications created in one calendar month."""

    year: int = Field(..., description="Year")
    month: int = Field(..., ge=1, le=12, description="Month, 1-12")
    count: int = Field(..., description="Applications created")


class ApplicationStatsResponseDTO(CamelModel):
    """Response DTO for application statistics."""

    success: bool = Field(..., description="Operation success status")
    total: int = Field(..., description="All applications")
    by_status: Dict[str, int] = Field(..., description="Counts per status")
    by_type: Dict[str, int] = Field(..., description="Counts per type")
    monthly: List[MonthlyCountDTO] = Field(..., description="Created per month, oldest first")
