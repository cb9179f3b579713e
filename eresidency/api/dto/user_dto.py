import re
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from eresidency.api.dto.base import CamelModel
from eresidency.domain.models.user import ResidencyType, UserRole, UserStatus

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# Request DTOs
class UserRegisterRequestDTO(CamelModel):
    """Request DTO for applicant registration."""

    full_name: str = Field(..., min_length=1, max_length=200, description="Full legal name")
    email: str = Field(..., description="Email address")
    password: str = Field(..., min_length=8, max_length=128, description="Password")
    passport_number: str = Field(..., min_length=3, max_length=32, description="Passport number")
    country: str = Field(..., min_length=2, max_length=100, description="Country of citizenship")
    residency_type: ResidencyType = Field(..., description="Residency programme")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v

    @field_validator("full_name", "country", "passport_number")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank")
        return v


class WalletBindRequestDTO(CamelModel):
    """Request DTO for binding a wallet to a user."""

    user_id: str = Field(..., description="User ID")
    wallet_address: str = Field(..., description="EVM wallet address")


# Response DTOs
class UserResponseDTO(CamelModel):
    """Response DTO for user data. Never carries the password hash."""

    id: str = Field(..., description="User ID")
    full_name: str = Field(..., description="Full legal name")
    email: str = Field(..., description="Email")
    passport_number: str = Field(..., description="Passport number")
    country: str = Field(..., description="Country of citizenship")
    residency_type: ResidencyType = Field(..., description="Residency programme")
    is_verified: bool = Field(..., description="Identity verified")
    role: UserRole = Field(..., description="Role")
    status: UserStatus = Field(..., description="Account status")
    wallet_address: Optional[str] = Field(None, description="Bound wallet")
    created_at: Optional[datetime] = Field(None, description="Registration timestamp")


class UserEnvelopeDTO(CamelModel):
    """Response DTO wrapping one user."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    data: Optional[UserResponseDTO] = Field(None, description="User data")


class WalletBindResponseDTO(CamelModel):
    """Response DTO for wallet binding."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    user_id: str = Field(..., description="User ID")
    wallet_address: str = Field(..., description="Bound wallet (checksummed)")
    changed: bool = Field(..., description="False when the same wallet was already bound")
