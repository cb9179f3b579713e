"""
Application Service Layer.
Contains business logic for submission and review of residency applications.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from eresidency.api.dto.application_dto import (
    ApplicationCreateRequestDTO,
    ApplicationResponseDTO,
    EmbeddedDocumentDTO,
)
from eresidency.api.services.audit_service import audit_service
from eresidency.api.services.user_service import user_service
from eresidency.core.exceptions import InvalidTransitionError, ValidationError
from eresidency.core.logging import get_logger, log_lifecycle_transition
from eresidency.domain.lifecycle import (
    TransitionActor,
    ensure_documents_complete,
    ensure_transition,
)
from eresidency.domain.models.application import (
    ApplicationModel,
    ApplicationStatus,
    ApplicationType,
)
from eresidency.domain.models.audit_log import AuditEntityType
from eresidency.domain.models.common import utc_now
from eresidency.domain.repositories.application_repository import application_repository
from eresidency.domain.repositories.document_repository import document_repository
from eresidency.domain.repositories.mint_record_repository import mint_record_repository
from eresidency.infrastructure.cache import cache_service

logger = get_logger(__name__)


class ApplicationService:
    """Service class for application lifecycle management."""

    async def create(self, user_id: str, request: ApplicationCreateRequestDTO) -> Dict[str, Any]:
        """Submit a new application in ``pending``."""
        await user_service.get_active_user(user_id)

        application = ApplicationModel(
            user_id=user_id,
            type=request.type,
            data=request.data,
        )
        created = await application_repository.create_application(application)
        logger.info(f"Application {created['id']} submitted by user {user_id}")
        await audit_service.record(
            "application.submitted",
            AuditEntityType.APPLICATION,
            created["id"],
            actor_id=user_id,
            user_id=user_id,
            type=created["type"],
        )
        return created

    async def get(self, application_id: str) -> Dict[str, Any]:
        return await application_repository.get_by_id(application_id)

    async def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        return await application_repository.list_for_user(user_id)

    async def review_queue(
        self,
        application_type: Optional[str] = None,
        status: ApplicationStatus = ApplicationStatus.PENDING,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        return await application_repository.list_by_type_and_status(
            application_type, status.value, skip, limit
        )

    async def stats(self, months: int = 6, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Application counts for the review dashboard.

        Args:
            months: Number of calendar months in ``monthly``, current month included
            now: Reference time (naive UTC), defaults to the current time

        Returns:
            Dict with ``total``, ``by_status``, ``by_type`` and ``monthly``; every
            status, type and month is present, with zero counts included
        """
        now = now or utc_now()
        by_status = {status.value: 0 for status in ApplicationStatus}
        by_type = {application_type.value: 0 for application_type in ApplicationType}
        for row in await application_repository.count_by_type_and_status():
            by_status[row["status"]] = by_status.get(row["status"], 0) + row["count"]
            by_type[row["type"]] = by_type.get(row["type"], 0) + row["count"]

        first_month = now.year * 12 + now.month - months
        since = datetime(first_month // 12, first_month % 12 + 1, 1)
        counted = {
            (row["year"], row["month"]): row["count"]
            for row in await application_repository.count_by_month(since)
        }
        monthly = []
        for index in range(first_month, first_month + months):
            year, month = index // 12, index % 12 + 1
            monthly.append({"year": year, "month": month, "count": counted.get((year, month), 0)})

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_type": by_type,
            "monthly": monthly,
        }

    async def start_review(self, application_id: str, reviewer_id: str) -> Dict[str, Any]:
        """
        ``pending -> in_review``, recording the reviewer.

        Raises:
            InvalidTransitionError: If the application is not pending
        """
        application = await application_repository.get_by_id(application_id)
        ensure_transition(application["status"], ApplicationStatus.IN_REVIEW)

        updated = await application_repository.transition(
            application["id"],
            ApplicationStatus.PENDING,
            ApplicationStatus.IN_REVIEW,
            {"reviewed_by": reviewer_id, "review_started_at": utc_now()},
        )
        await self._after_transition(updated, application["status"], reviewer_id)
        return updated

    async def decide(
        self,
        application_id: str,
        reviewer_id: str,
        decision: str,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        ``in_review -> approved | rejected``.

        Raises:
            ValidationError: If a rejection has no reason
            InvalidTransitionError: If the application is not in review
            IncompleteDocumentationError: If approving with required documents unverified
        """
        target = ApplicationStatus(decision)
        application = await application_repository.get_by_id(application_id)
        ensure_transition(application["status"], target)

        notes = (notes or "").strip() or None
        if target == ApplicationStatus.REJECTED and not notes:
            raise ValidationError("A rejection requires a reason in the review notes")

        if target == ApplicationStatus.APPROVED:
            documents = await document_repository.list_for_application(application["id"])
            ensure_documents_complete(application["type"], documents)

        updated = await application_repository.transition(
            application["id"],
            ApplicationStatus.IN_REVIEW,
            target,
            {"reviewed_by": reviewer_id, "review_notes": notes, "reviewed_at": utc_now()},
        )
        await self._after_transition(updated, application["status"], reviewer_id)
        return updated

    async def complete(self, application_id: str) -> Dict[str, Any]:
        """
        ``approved -> completed`` after a succeeded mint. Idempotent.

        Raises:
            InvalidTransitionError: If there is no succeeded mint or the application
                is not approved
        """
        application = await application_repository.get_by_id(application_id)
        if application["status"] == ApplicationStatus.COMPLETED.value:
            return application

        ensure_transition(
            application["status"], ApplicationStatus.COMPLETED, TransitionActor.MINTING
        )
        record = await mint_record_repository.get_succeeded_for_application(application["id"])
        if not record:
            raise InvalidTransitionError(
                application["status"],
                ApplicationStatus.COMPLETED.value,
                {"reason": "no succeeded mint record"},
            )

        try:
            updated = await application_repository.transition(
                application["id"],
                ApplicationStatus.APPROVED,
                ApplicationStatus.COMPLETED,
                {"completed_at": utc_now()},
            )
        except InvalidTransitionError as e:
            if e.current_status == ApplicationStatus.COMPLETED.value:
                return await application_repository.get_by_id(application["id"])
            raise

        await self._after_transition(updated, application["status"], None, record_id=record["id"])
        return updated

    async def _after_transition(
        self,
        application: Dict[str, Any],
        from_status: str,
        actor_id: Optional[str],
        **context,
    ) -> None:
        log_lifecycle_transition(
            application["id"], from_status, application["status"], actor_id, **context
        )
        await audit_service.record(
            f"application.{application['status']}",
            AuditEntityType.APPLICATION,
            application["id"],
            actor_id=actor_id,
            user_id=application["user_id"],
            from_status=from_status,
            to_status=application["status"],
            **context,
        )
        await cache_service.invalidate_verification(application["id"], application["user_id"])

    def serialize(self, application: Dict[str, Any]) -> ApplicationResponseDTO:
        """Convert a MongoDB application to a response DTO."""
        return ApplicationResponseDTO(
            id=application["id"],
            user_id=application["user_id"],
            type=application["type"],
            status=application["status"],
            data=application.get("data") or {},
            documents=[
                EmbeddedDocumentDTO(**document)
                for document in application.get("documents", [])
            ],
            reviewed_by=application.get("reviewed_by"),
            review_notes=application.get("review_notes"),
            submitted_at=application.get("submitted_at"),
            review_started_at=application.get("review_started_at"),
            reviewed_at=application.get("reviewed_at"),
            completed_at=application.get("completed_at"),
            created_at=application.get("created_at"),
            updated_at=application.get("updated_at"),
        )


# Global service instance
application_service = ApplicationService()
