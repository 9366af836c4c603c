# app/routers/auth.py
from fastapi import APIRouter, Depends

from .. import schemas
from ..models import UserType
from ..security import IdentityProvider, VerifiedIdentity, get_identity_provider
from ..services.profile_service import ProfileManager, get_profile_manager

import structlog

logger = structlog.get_logger(__name__)


router = APIRouter(
    tags=["Authentication"]
)

@router.post("/signup", response_model=schemas.SignupResponse)
def signup(
    signup_data: schemas.SignupRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
    profiles: ProfileManager = Depends(get_profile_manager),
):
    """Create the account with the identity provider, then the user's profile."""
    additional_info = signup_data.additional_info or {}
    is_doctor = signup_data.user_type == UserType.doctor

    metadata = {
        "name": signup_data.name,
        "userType": signup_data.user_type.value,
        "subscription": "free",
        "points": 0,
    }
    if is_doctor:
        metadata["status"] = "offline"
        metadata["expertise"] = additional_info.get("specialization") or ""

    user = provider.create_user(signup_data.email, signup_data.password, metadata)
    identity = VerifiedIdentity(user_id=user["id"], email=user.get("email", signup_data.email))

    # A failed profile write leaves the provider account without a profile
    profiles.create_profile(
        identity,
        name=signup_data.name,
        email=signup_data.email,
        user_type=signup_data.user_type.value,
        additional_info=additional_info,
    )
    logger.info("user_signed_up", user_id=identity.user_id, user_type=signup_data.user_type.value)
    return {"message": "User created successfully", "user": user}
