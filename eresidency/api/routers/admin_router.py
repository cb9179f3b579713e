"""
Admin Router for e-Residency Backend.
On-demand runs of the maintenance sweeps and the audit trail.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from eresidency.api.deps.auth_guard import AuthenticatedUser, get_admin_user
from eresidency.api.dto.audit_dto import AuditLogListResponseDTO
from eresidency.api.dto.maintenance_dto import ExpirySweepReportDTO, ReconciliationReportDTO
from eresidency.api.services.audit_service import audit_service
from eresidency.api.services.document_service import document_service
from eresidency.api.services.reconciliation_service import reconciliation_service
from eresidency.core.logging import get_logger
from eresidency.domain.models.audit_log import AuditEntityType, AuditStatus

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.post("/maintenance/reconcile", response_model=ReconciliationReportDTO)
async def reconcile_mints(
    current_user: AuthenticatedUser = Depends(get_admin_user),
) -> ReconciliationReportDTO:
    """
    Resolve stale in-flight mints from the ledger and finish pending completions.

    **Access**: Admin role required
    """
    logger.info(f"Reconciliation requested by admin {current_user.user_id}")
    report = await reconciliation_service.reconcile()
    return ReconciliationReportDTO(success=True, **report)


@router.post("/maintenance/expire-documents", response_model=ExpirySweepReportDTO)
async def expire_documents(
    current_user: AuthenticatedUser = Depends(get_admin_user),
) -> ExpirySweepReportDTO:
    """
    Remove documents whose expiry elapsed.

    **Access**: Admin role required
    """
    logger.info(f"Document expiry sweep requested by admin {current_user.user_id}")
    report = await document_service.expire_documents()
    return ExpirySweepReportDTO(success=True, **report)


@router.get("/audit-logs", response_model=AuditLogListResponseDTO)
async def list_audit_logs(
    action: Optional[str] = Query(None, description="Action, e.g. application.approved"),
    entity_type: Optional[AuditEntityType] = Query(None, alias="entityType"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    user: Optional[str] = Query(None, description="Applicant user ID"),
    status: Optional[AuditStatus] = Query(None, description="success, failure or pending"),
    skip: int = Query(0, ge=0, description="Number of entries to skip"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of entries"),
    current_user: AuthenticatedUser = Depends(get_admin_user),
) -> AuditLogListResponseDTO:
    """
    Audit trail of lifecycle transitions and mint stages, newest first.

    **Access**: Admin role required
    """
    entries, total = await audit_service.search(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user,
        status=status,
        skip=skip,
        limit=limit,
    )
    return AuditLogListResponseDTO(
        success=True,
        message=f"Found {total} audit entries",
        total=total,
        data=[audit_service.serialize(entry) for entry in entries],
    )
