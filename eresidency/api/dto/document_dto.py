from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from eresidency.api.dto.base import CamelModel
from eresidency.domain.models.document import DocumentStatus, DocumentType


# Request DTOs
class DocumentReviewRequestDTO(CamelModel):
    """Request DTO for a document review decision."""

    status: Literal["verified", "rejected"] = Field(..., description="Review outcome")
    reason: Optional[str] = Field(None, max_length=2000, description="Reason, required on rejection")


# Response DTOs
class DocumentUploadItemDTO(CamelModel):
    """One stored upload."""

    document_id: str = Field(..., description="Document ID")
    url: str = Field(..., description="Public relative URL")
    status: DocumentStatus = Field(..., description="Verification status")
    name: str = Field(..., description="Display name")
    type: DocumentType = Field(..., description="Document type")
    mime_type: str = Field(..., description="MIME type")
    size: int = Field(..., description="Size in bytes")


class DocumentUploadResponseDTO(CamelModel):
    """
    Response DTO for uploads. Top-level ``documentId``/``url``/``status``
    describe the first file; ``documents`` lists every file.
    """

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    document_id: str = Field(..., description="First document ID")
    url: str = Field(..., description="First document URL")
    status: DocumentStatus = Field(..., description="First document status")
    documents: List[DocumentUploadItemDTO] = Field(..., description="All stored documents")


class DocumentResponseDTO(CamelModel):
    """Response DTO for document data."""

    id: str = Field(..., description="Document ID")
    user_id: str = Field(..., description="Owning user ID")
    application_id: Optional[str] = Field(None, description="Application ID")
    type: DocumentType = Field(..., description="Document type")
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Public relative URL")
    mime_type: str = Field(..., description="MIME type")
    size: int = Field(..., description="Size in bytes")
    status: DocumentStatus = Field(..., description="Verification status")
    rejection_reason: Optional[str] = Field(None, description="Rejection reason")
    reviewed_by: Optional[str] = Field(None, description="Reviewer user ID")
    reviewed_at: Optional[datetime] = Field(None, description="Review timestamp")
    expires_at: Optional[datetime] = Field(None, description="Expiry")
    is_latest: bool = Field(True, description="Latest version")
    previous_version: Optional[str] = Field(None, description="Replaced document ID")
    created_at: Optional[datetime] = Field(None, description="Created at")


class DocumentEnvelopeDTO(CamelModel):
    """Response DTO wrapping one document."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    data: Optional[DocumentResponseDTO] = Field(None, description="Document data")


class DocumentListResponseDTO(CamelModel):
    """Response DTO for document lists."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    data: List[DocumentResponseDTO] = Field(default_factory=list, description="Documents")
