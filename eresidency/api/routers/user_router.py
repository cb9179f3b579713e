"""
User Router for e-Residency Backend.
Handles registration, profiles and wallet binding.
"""

from fastapi import APIRouter, Depends, status

from eresidency.api.deps.auth_guard import (
    AuthenticatedUser,
    ensure_owner_or_reviewer,
    ensure_self,
    get_current_user,
)
from eresidency.api.dto.user_dto import (
    UserEnvelopeDTO,
    UserRegisterRequestDTO,
    WalletBindRequestDTO,
    WalletBindResponseDTO,
)
from eresidency.api.services.user_service import user_service
from eresidency.core.logging import get_logger

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.post("", response_model=UserEnvelopeDTO, status_code=status.HTTP_201_CREATED)
async def register_user(request: UserRegisterRequestDTO) -> UserEnvelopeDTO:
    """
    Register an applicant.

    **Access**: Public

    Args:
        request: Registration data

    Returns:
        UserEnvelopeDTO with the created profile (never the password hash)
    """
    logger.info(f"Registering user: {request.email}")
    user = await user_service.register(request)
    return UserEnvelopeDTO(success=True, message="User registered", data=user)


@router.put("/wallet", response_model=WalletBindResponseDTO)
async def bind_wallet(
    request: WalletBindRequestDTO,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> WalletBindResponseDTO:
    """
    Bind a wallet to a user.

    Idempotent for the wallet already bound. Rebinding a different wallet is
    rejected while a mint is in flight or after it succeeded.

    **Access**: The user named in the body
    """
    ensure_self(current_user, request.user_id)
    result = await user_service.bind_wallet(request.user_id, request.wallet_address)
    user = result["user"]
    return WalletBindResponseDTO(
        success=True,
        message="Wallet bound" if result["changed"] else "Wallet already bound",
        user_id=user["id"],
        wallet_address=user["wallet_address"],
        changed=result["changed"],
    )


@router.get("/{user_id}", response_model=UserEnvelopeDTO)
async def get_user(
    user_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> UserEnvelopeDTO:
    """
    Get a user profile.

    **Access**: The user themself, or a reviewer
    """
    ensure_owner_or_reviewer(current_user, user_id)
    user = await user_service.get_user(user_id)
    return UserEnvelopeDTO(success=True, message="User retrieved", data=user)
