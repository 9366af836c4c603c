# app/routers/profiles.py
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from .. import schemas
from ..security import VerifiedIdentity, get_current_identity
from ..services.profile_service import ProfileManager, get_profile_manager

router = APIRouter(
    tags=["Profiles"],
    responses={404: {"description": "Not found"}},
)

@router.get("/profile/{user_id}", response_model=schemas.ProfileResponse)
def read_profile(
    user_id: str,
    identity: VerifiedIdentity = Depends(get_current_identity),
    profiles: ProfileManager = Depends(get_profile_manager),
):
    return {"profile": profiles.get_profile(identity, user_id)}

@router.put("/profile", response_model=schemas.ProfileResponse)
def update_own_profile(
    patch: Dict[str, Any] = Body(...),
    identity: VerifiedIdentity = Depends(get_current_identity),
    profiles: ProfileManager = Depends(get_profile_manager),
):
    """Merge the body onto the caller's own profile."""
    return {"profile": profiles.update_profile(identity, patch)}

@router.get("/doctors", response_model=schemas.DoctorListResponse)
def read_doctors(
    identity: VerifiedIdentity = Depends(get_current_identity),
    profiles: ProfileManager = Depends(get_profile_manager),
):
    return {"doctors": profiles.list_doctors(identity)}
