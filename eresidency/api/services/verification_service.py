"""
Verification Service.
Public, unauthenticated lookup of a residency by application or user ID.
"""

from typing import Any, Dict

from eresidency.api.services.user_service import user_service
from eresidency.core.config import settings
from eresidency.core.exceptions import NotFoundError
from eresidency.core.logging import get_logger
from eresidency.domain.models.application import ApplicationStatus
from eresidency.domain.repositories.application_repository import application_repository
from eresidency.domain.repositories.mint_record_repository import mint_record_repository
from eresidency.infrastructure.cache import cache_service

logger = get_logger(__name__)


class VerificationService:
    """Service class for the public verification projection."""

    async def verify(self, public_id: str) -> Dict[str, Any]:
        """
        Public projection for an application ID or a user ID.

        Args:
            public_id: Application ID, or user ID (resolved to the user's
                completed application, else the newest one)

        Returns:
            Dict with ``name``, ``country``, ``residency_type``, ``status`` and
            ``issued_at`` (ISO string or None)

        Raises:
            NotFoundError: Same message whether the ID is unknown or not public
        """
        return await cache_service.get_verification(
            public_id, lambda: self._project(public_id), settings.VERIFY_CACHE_TTL_SECONDS
        )

    async def _project(self, public_id: str) -> Dict[str, Any]:
        try:
            application = await self._resolve_application(public_id)
            user = await user_service.get_active_user(application["user_id"])
        except NotFoundError:
            logger.info(f"Verification lookup missed: {public_id}")
            raise NotFoundError("Residency not found") from None

        record = await mint_record_repository.get_succeeded_for_application(application["id"])
        issued_at = record.get("minted_at") if record else None
        return {
            "name": user["full_name"],
            "country": user["country"],
            "residency_type": user["residency_type"],
            "status": application["status"],
            "issued_at": issued_at.isoformat() if issued_at else None,
        }

    async def _resolve_application(self, public_id: str) -> Dict[str, Any]:
        try:
            return await application_repository.get_by_id(public_id)
        except NotFoundError:
            applications = await application_repository.list_for_user(public_id)

        if not applications:
            raise NotFoundError(f"No application for {public_id}")
        for application in applications:
            if application["status"] == ApplicationStatus.COMPLETED.value:
                return application
        return applications[0]


# Global service instance
verification_service = VerificationService()
