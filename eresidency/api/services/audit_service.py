"""
Audit Service.

Persists lifecycle transitions and mint stages to the ``audit_logs``
collection, next to the structured log events for the same actions.
"""

from typing import Any, Dict, List, Optional, Tuple

from eresidency.api.dto.audit_dto import AuditLogDTO
from eresidency.core.exceptions import DatabaseError
from eresidency.core.logging import get_logger, log_error
from eresidency.domain.models.audit_log import AuditEntityType, AuditLogModel, AuditStatus
from eresidency.domain.repositories.audit_log_repository import audit_log_repository

logger = get_logger(__name__)


class AuditService:
    """Service class for the persisted audit trail."""

    async def record(
        self,
        action: str,
        entity_type: AuditEntityType,
        entity_id: str,
        actor_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        **metadata: Any,
    ) -> Optional[Dict[str, Any]]:
        """
        Append an audit entry.

        The audited change is already committed when this runs, so a failed
        write is logged and does not undo or fail the caller's operation.

        Returns:
            The stored entry, or None if it could not be written
        """
        entry = AuditLogModel(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            user_id=user_id,
            status=status,
            metadata={key: value for key, value in metadata.items() if value is not None},
        )
        try:
            return await audit_log_repository.append(entry)
        except DatabaseError as e:
            log_error(e, {"stage": "audit", "action": action, "entity_id": entity_id})
            return None

    async def search(
        self,
        action: Optional[str] = None,
        entity_type: Optional[AuditEntityType] = None,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[AuditStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        filters = {
            "action": action,
            "entity_type": entity_type.value if entity_type else None,
            "entity_id": entity_id,
            "user_id": user_id,
            "status": status.value if status else None,
        }
        return await audit_log_repository.search(filters, skip, limit)

    def serialize(self, entry: Dict[str, Any]) -> AuditLogDTO:
        return AuditLogDTO(
            id=entry["id"],
            action=entry["action"],
            entity_type=entry["entity_type"],
            entity_id=entry["entity_id"],
            actor_id=entry.get("actor_id"),
            user_id=entry.get("user_id"),
            status=entry["status"],
            metadata=entry.get("metadata") or {},
            created_at=entry["created_at"],
        )


# Global service instance
audit_service = AuditService()
