"""
MongoDB models for applicants and reviewers.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from eresidency.domain.models.common import utc_now


class ResidencyType(str, Enum):
    """Residency programme the applicant applies to."""

    BHUTAN = "bhutan"
    DRAPER = "draper"


class UserRole(str, Enum):
    """User role."""

    USER = "user"
    REVIEWER = "reviewer"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Soft lifecycle of a user account. Users are never hard-deleted."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


class UserModel(BaseModel):
    """User document as stored in the users collection."""

    full_name: str = Field(..., description="Full legal name")
    email: str = Field(..., description="Email, stored lower-cased")
    password_hash: str = Field(..., description="bcrypt hash, excluded from default projections")
    passport_number: str = Field(..., description="Passport number, globally unique")
    country: str = Field(..., description="Country of citizenship")
    residency_type: ResidencyType = Field(..., description="Residency programme")
    is_verified: bool = Field(default=False, description="Identity verified by a reviewer")
    role: UserRole = Field(default=UserRole.USER, description="User role")
    status: UserStatus = Field(default=UserStatus.ACTIVE, description="Account status")
    wallet_address: Optional[str] = Field(None, description="Bound wallet (checksummed)")
    wallet_bound_at: Optional[datetime] = Field(None, description="When the wallet was bound")
    created_at: datetime = Field(default_factory=utc_now, description="Created at")
    updated_at: datetime = Field(default_factory=utc_now, description="Updated at")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("passport_number")
    @classmethod
    def normalize_passport(cls, v: str) -> str:
        return v.strip().upper()
