"""
Application Router for e-Residency Backend.
Handles submission, listing and review of residency applications.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from eresidency.api.deps.auth_guard import (
    AuthenticatedUser,
    ensure_owner_or_reviewer,
    get_current_user,
    get_reviewer_user,
)
from eresidency.api.dto.application_dto import (
    ApplicationCreateRequestDTO,
    ApplicationCreateResponseDTO,
    ApplicationEnvelopeDTO,
    ApplicationListResponseDTO,
    ApplicationStatsResponseDTO,
    ReviewDecisionRequestDTO,
)
from eresidency.api.services.application_service import application_service
from eresidency.core.logging import get_logger
from eresidency.domain.models.application import ApplicationStatus, ApplicationType

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.post("", response_model=ApplicationCreateResponseDTO, status_code=status.HTTP_201_CREATED)
async def create_application(
    request: ApplicationCreateRequestDTO,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ApplicationCreateResponseDTO:
    """
    Submit an application. It starts in ``pending``.

    **Access**: Authenticated user

    Returns:
        ApplicationCreateResponseDTO with ``applicationId`` and ``status``
    """
    application = await application_service.create(current_user.user_id, request)
    return ApplicationCreateResponseDTO(
        success=True,
        message="Application submitted",
        application_id=application["id"],
        status=application["status"],
    )


@router.get("", response_model=ApplicationListResponseDTO)
async def list_applications(
    user: Optional[str] = Query(None, description="User ID, defaults to the caller"),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ApplicationListResponseDTO:
    """
    List a user's applications, newest first.

    **Access**: The user themself, or a reviewer
    """
    user_id = user or current_user.user_id
    ensure_owner_or_reviewer(current_user, user_id)

    applications = await application_service.list_for_user(user_id)
    return ApplicationListResponseDTO(
        success=True,
        message=f"Found {len(applications)} application(s)",
        data=[application_service.serialize(a) for a in applications],
    )


@router.get("/review-queue", response_model=ApplicationListResponseDTO)
async def review_queue(
    type: Optional[ApplicationType] = Query(None, description="Application type"),
    status: ApplicationStatus = Query(ApplicationStatus.PENDING, description="Status to list"),
    skip: int = Query(0, ge=0, description="Number of applications to skip"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of applications"),
    current_user: AuthenticatedUser = Depends(get_reviewer_user),
) -> ApplicationListResponseDTO:
    """
    Applications waiting for review, oldest first.

    **Access**: Reviewer or admin
    """
    applications = await application_service.review_queue(
        type.value if type else None, status, skip, limit
    )
    return ApplicationListResponseDTO(
        success=True,
        message=f"Found {len(applications)} application(s)",
        data=[application_service.serialize(a) for a in applications],
    )


@router.get("/stats", response_model=ApplicationStatsResponseDTO)
async def application_stats(
    months: int = Query(6, ge=1, le=24, description="Calendar months in the monthly series"),
    current_user: AuthenticatedUser = Depends(get_reviewer_user),
) -> ApplicationStatsResponseDTO:
    """
    Application counts by status, by type and per month.

    **Access**: Reviewer or admin
    """
    stats = await application_service.stats(months)
    return ApplicationStatsResponseDTO(success=True, **stats)


@router.get("/{application_id}", response_model=ApplicationEnvelopeDTO)
async def get_application(
    application_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ApplicationEnvelopeDTO:
    """
    Get one application.

    **Access**: Owner, or a reviewer
    """
    application = await application_service.get(application_id)
    ensure_owner_or_reviewer(current_user, application["user_id"])
    return ApplicationEnvelopeDTO(
        success=True,
        message="Application retrieved",
        data=application_service.serialize(application),
    )


@router.post("/{application_id}/review/start", response_model=ApplicationEnvelopeDTO)
async def start_review(
    application_id: str,
    current_user: AuthenticatedUser = Depends(get_reviewer_user),
) -> ApplicationEnvelopeDTO:
    """
    Begin evaluation: ``pending -> in_review``.

    **Access**: Reviewer or admin
    """
    logger.info(f"Reviewer {current_user.user_id} starts review of {application_id}")
    application = await application_service.start_review(application_id, current_user.user_id)
    return ApplicationEnvelopeDTO(
        success=True,
        message="Review started",
        data=application_service.serialize(application),
    )


@router.post("/{application_id}/review/decision", response_model=ApplicationEnvelopeDTO)
async def decide(
    application_id: str,
    request: ReviewDecisionRequestDTO,
    current_user: AuthenticatedUser = Depends(get_reviewer_user),
) -> ApplicationEnvelopeDTO:
    """
    Approve or reject an application under review.

    Approval requires every required document type to be verified; rejection
    requires notes.

    **Access**: Reviewer or admin
    """
    application = await application_service.decide(
        application_id, current_user.user_id, request.decision, request.notes
    )
    return ApplicationEnvelopeDTO(
        success=True,
        message=f"Application {application['status']}",
        data=application_service.serialize(application),
    )
