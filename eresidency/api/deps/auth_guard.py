"""
Session Authentication Guard for FastAPI.
Resolves the session written by the auth service in Redis and applies role checks.
"""

from typing import List, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eresidency.core.config import settings
from eresidency.core.exceptions import AuthenticationError, AuthorizationError
from eresidency.core.logging import get_logger
from eresidency.infrastructure.cache import cache_service

logger = get_logger(__name__)

# Security scheme for session ID
security = HTTPBearer(auto_error=False)

REVIEWER_ROLES = ["reviewer", "admin"]


class AuthenticatedUser:
    """Authenticated user data structure."""

    def __init__(self, user_id: str, email: str, role: str = "user"):
        self.user_id = user_id
        self.email = email
        self.role = role

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


class SessionAuthGuard:
    """Session guard backed by the Redis session store."""

    def extract_session_id(
        self, request: Request, credentials: Optional[HTTPAuthorizationCredentials]
    ) -> Optional[str]:
        """Session ID from the session cookie, or from a Bearer header."""
        session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
        if not session_id and credentials:
            session_id = credentials.credentials
        return session_id

    async def validate_session(self, session_id: str) -> AuthenticatedUser:
        """Load the session document and build the user."""
        session_data = await cache_service.get_session(session_id)
        if session_data is None:
            raise AuthenticationError("Session not found or expired")

        return AuthenticatedUser(
            user_id=str(session_data["user_id"]),
            email=session_data.get("email", ""),
            role=session_data.get("role", "user"),
        )

    def check_role_access(
        self, user: AuthenticatedUser, required_roles: Optional[List[str]] = None
    ) -> None:
        """Check if user has required role access."""
        if required_roles and user.role not in required_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {', '.join(required_roles)}",
                {"role": user.role},
            )

    async def authenticate(
        self,
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = None,
        required_roles: Optional[List[str]] = None,
    ) -> AuthenticatedUser:
        """Main authentication method."""
        session_id = self.extract_session_id(request, credentials)
        if not session_id:
            raise AuthenticationError("Session ID is required")

        user = await self.validate_session(session_id)
        self.check_role_access(user, required_roles)

        logger.info(
            f"User {user.user_id} ({user.role}) accessed {request.method} {request.url.path}"
        )
        return user


# Global guard instance
session_auth_guard = SessionAuthGuard()


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """
    FastAPI dependency to get current authenticated user.

    Raises:
        AuthenticationError: If no valid session is presented
    """
    return await session_auth_guard.authenticate(request, credentials)


async def get_reviewer_user(
    user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Dependency for getting current reviewer or admin user."""
    session_auth_guard.check_role_access(user, REVIEWER_ROLES)
    return user


async def get_admin_user(
    user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Dependency for getting current admin user."""
    session_auth_guard.check_role_access(user, ["admin"])
    return user


def ensure_owner_or_reviewer(user: AuthenticatedUser, owner_id: str) -> None:
    """
    Raises:
        AuthorizationError: If the user neither owns the resource nor reviews
    """
    if user.user_id != owner_id and not user.is_reviewer:
        raise AuthorizationError("Access denied")


def ensure_self(user: AuthenticatedUser, user_id: str) -> None:
    """Wallet binding and minting act only on the caller's own account."""
    if user.user_id != user_id:
        raise AuthorizationError("Access denied", {"reason": "acting on another user"})
