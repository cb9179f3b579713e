"""
MongoDB models for uploaded identity documents.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from eresidency.domain.models.common import utc_now


class DocumentType(str, Enum):
    """Logical document type."""

    PASSPORT = "passport"
    ID_CARD = "id_card"
    PROOF_OF_ADDRESS = "proof_of_address"
    PHOTO = "photo"
    OTHER = "other"


class DocumentStatus(str, Enum):
    """Verification status of a document."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class StoredFile(BaseModel):
    """Retrieval reference for a persisted artifact."""

    display_name: str = Field(..., description="Original filename, display only")
    url: str = Field(..., description="Public relative URL")
    mime_type: str = Field(..., description="Declared MIME type")
    size: int = Field(..., description="Size in bytes")
    storage_path: str = Field(..., description="Storage-relative path")


class DocumentModel(BaseModel):
    """Document as stored in the documents collection."""

    user_id: str = Field(..., description="Owning user ID")
    application_id: Optional[str] = Field(None, description="Application the document is attached to")
    type: DocumentType = Field(..., description="Logical document type")
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Public relative URL")
    storage_path: str = Field(..., description="Storage-relative path")
    mime_type: str = Field(..., description="MIME type")
    size: int = Field(..., description="Size in bytes")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING, description="Verification status")
    rejection_reason: Optional[str] = Field(None, description="Reason given on rejection")
    reviewed_by: Optional[str] = Field(None, description="Reviewer user ID")
    reviewed_at: Optional[datetime] = Field(None, description="Review timestamp")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")
    tags: List[str] = Field(default_factory=list, description="Tags")
    expires_at: Optional[datetime] = Field(None, description="Garbage-collection deadline")
    is_latest: bool = Field(default=True, description="False once superseded by a resubmission")
    previous_version: Optional[str] = Field(None, description="Rejected document this one replaces")
    created_at: datetime = Field(default_factory=utc_now, description="Created at")
    updated_at: datetime = Field(default_factory=utc_now, description="Updated at")
