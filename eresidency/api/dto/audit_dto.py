from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from eresidency.api.dto.base import CamelModel
from eresidency.domain.models.audit_log import AuditEntityType, AuditStatus


class AuditLogDTO(CamelModel):
    """One audit entry."""

    id: str = Field(..., description="Entry ID")
    action: str = Field(..., description="Audited action, e.g. application.approved")
    entity_type: AuditEntityType = Field(..., description="Entity kind")
    entity_id: str = Field(..., description="Entity ID")
    actor_id: Optional[str] = Field(None, description="User who acted, None for the system")
    user_id: Optional[str] = Field(None, description="Applicant the entity belongs to")
    status: AuditStatus = Field(..., description="Action result")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Action details")
    created_at: datetime = Field(..., description="Recorded at")


class AuditLogListResponseDTO(CamelModel):
    """A page of audit entries, newest first."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    total: int = Field(..., description="Entries matching the filters")
    data: List[AuditLogDTO] = Field(default_factory=list, description="Audit entries")
