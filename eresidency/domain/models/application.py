"""
MongoDB models for residency applications.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from eresidency.domain.models.common import utc_now
from eresidency.domain.models.document import DocumentStatus, DocumentType


class ApplicationType(str, Enum):
    """Application type."""

    VISA = "visa"
    COMPANY_REGISTRATION = "company_registration"
    RESIDENCY_RENEWAL = "residency_renewal"
    OTHER = "other"


class ApplicationStatus(str, Enum):
    """Application lifecycle status."""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


# Document types that must be verified before an application can be approved
REQUIRED_DOCUMENTS: Dict[ApplicationType, List[DocumentType]] = {
    ApplicationType.VISA: [DocumentType.PASSPORT, DocumentType.PHOTO],
    ApplicationType.COMPANY_REGISTRATION: [DocumentType.PASSPORT, DocumentType.PROOF_OF_ADDRESS],
    ApplicationType.RESIDENCY_RENEWAL: [DocumentType.PASSPORT, DocumentType.PROOF_OF_ADDRESS],
    ApplicationType.OTHER: [],
}


class EmbeddedDocument(BaseModel):
    """Document reference embedded in an application, in upload order."""

    document_id: str = Field(..., description="Document ID")
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Public relative URL")
    type: DocumentType = Field(..., description="Logical document type")
    size: int = Field(..., description="Size in bytes")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING, description="Mirrored document status")
    uploaded_at: datetime = Field(default_factory=utc_now, description="Upload timestamp")


class ApplicationModel(BaseModel):
    """Application as stored in the applications collection."""

    user_id: str = Field(..., description="Owning user ID")
    type: ApplicationType = Field(..., description="Application type")
    status: ApplicationStatus = Field(default=ApplicationStatus.PENDING, description="Lifecycle status")
    data: Dict[str, Any] = Field(default_factory=dict, description="Application payload")
    documents: List[EmbeddedDocument] = Field(default_factory=list, description="Attached documents")
    reviewed_by: Optional[str] = Field(None, description="Reviewer user ID")
    review_notes: Optional[str] = Field(None, description="Reviewer notes")
    submitted_at: datetime = Field(default_factory=utc_now, description="Submission timestamp")
    review_started_at: Optional[datetime] = Field(None, description="Review start timestamp")
    reviewed_at: Optional[datetime] = Field(None, description="Decision timestamp")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    created_at: datetime = Field(default_factory=utc_now, description="Created at")
    updated_at: datetime = Field(default_factory=utc_now, description="Updated at")
