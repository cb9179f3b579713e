"""
MongoDB model for the persisted audit trail.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from eresidency.domain.models.common import utc_now


class AuditEntityType(str, Enum):
    """Kind of record an audit entry is about."""

    APPLICATION = "application"
    MINT_RECORD = "mint_record"


class AuditStatus(str, Enum):
    """Result of the audited action."""

    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class AuditLogModel(BaseModel):
    """
    One audited state change. Entries are append-only.

    ``action`` is dotted, e.g. ``application.approved`` or ``mint.settled``.
    """

    action: str = Field(..., description="Audited action")
    entity_type: AuditEntityType = Field(..., description="Entity kind")
    entity_id: str = Field(..., description="Entity ID")
    actor_id: Optional[str] = Field(None, description="User who acted, None for the system")
    user_id: Optional[str] = Field(None, description="Applicant the entity belongs to")
    status: AuditStatus = Field(default=AuditStatus.SUCCESS, description="Action result")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Action details")
    created_at: datetime = Field(default_factory=utc_now, description="Recorded at")
