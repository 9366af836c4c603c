# app/services/profile_service.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pydantic
import structlog
from fastapi import Depends

from .. import crud, schemas
from ..compliance_logger import compliance_logger
from ..crud import RecordStore, get_record_store
from ..exceptions import NotFoundError, ValidationError
from ..models import UserType
from ..security import VerifiedIdentity

logger = structlog.get_logger(__name__)

# additional_info keys that never override the signup fields
_RESERVED_SIGNUP_KEYS = {"id", "name", "email", "userType", "status", "subscription", "points", "createdAt", "updatedAt"}


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def summarize_validation_error(error: pydantic.ValidationError) -> str:
    parts = []
    for err in error.errors():
        # Tagged-union errors carry the member tag first in ``loc``
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("patient", "doctor"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "invalid value"))
    return "; ".join(parts) or "Invalid profile"


def validate_profile(document: Dict[str, Any]) -> Dict[str, Any]:
    """Check a profile document against its user type and return the normalized document."""
    try:
        profile = schemas.profile_adapter.validate_python(document)
    except pydantic.ValidationError as e:
        raise ValidationError(summarize_validation_error(e)) from e
    return schemas.profile_adapter.dump_python(profile, by_alias=True, mode="json")


class ProfileManager:
    """Creates, reads and patches user profiles stored under ``user_profile:<id>``."""

    def __init__(self, store: RecordStore):
        self.store = store

    def create_profile(
        self,
        identity: VerifiedIdentity,
        name: Optional[str],
        email: Optional[str],
        user_type: Optional[str],
        additional_info: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not name or not email or not user_type:
            raise ValidationError("Missing required fields")
        user_type = getattr(user_type, "value", user_type)
        if user_type not in {t.value for t in UserType}:
            raise ValidationError(f"Invalid user type: {user_type}")
        if additional_info is not None and not isinstance(additional_info, dict):
            raise ValidationError("additionalInfo must be an object")

        key = crud.profile_key(identity.user_id)
        if self.store.get(key) is not None:
            raise ValidationError("Profile already exists")

        extra = {k: v for k, v in (additional_info or {}).items() if k not in _RESERVED_SIGNUP_KEYS}
        now = utcnow_iso()
        document = {
            **extra,
            "id": identity.user_id,
            "name": name,
            "email": email,
            "userType": user_type,
            "status": "offline" if user_type == UserType.doctor.value else "active",
            "subscription": "free",
            "points": 0,
            "createdAt": now,
            "updatedAt": now,
        }
        if user_type == UserType.doctor.value:
            document["expertise"] = extra.get("specialization") or "General Practice"
            document["consultationFee"] = extra.get("consultationFee") or "300"
            # Doctors start unverified until credentials are reviewed
            document["verified"] = False

        profile = validate_profile(document)
        self.store.set(key, profile)

        logger.info("profile_created", user_id=identity.user_id, user_type=user_type)
        compliance_logger.log_event(
            user_id=identity.user_id, role=user_type, action="CREATE", category="PROFILE",
            resource_type="UserProfile", resource_id=identity.user_id,
            details=f"Created {user_type} profile",
        )
        return profile

    def get_profile(self, identity: VerifiedIdentity, target_user_id: str) -> Dict[str, Any]:
        # Any authenticated caller may read any profile
        profile = self.store.get(crud.profile_key(target_user_id))
        if profile is None:
            raise NotFoundError("Profile not found")
        if target_user_id != identity.user_id:
            compliance_logger.log_access(
                user_id=identity.user_id, role=None, resource_type="UserProfile",
                resource_id=target_user_id, purpose="profile view",
            )
        return profile

    def update_profile(self, identity: VerifiedIdentity, patch: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(patch, dict):
            raise ValidationError("Profile update must be an object")
        locked = [field for field in schemas.IMMUTABLE_PROFILE_FIELDS if field in patch]
        if locked:
            raise ValidationError(f"Cannot change: {', '.join(locked)}")

        key = crud.profile_key(identity.user_id)
        existing = self.store.get(key)
        if existing is None:
            raise NotFoundError("Profile not found")

        # Both timestamps are server-owned
        profile = validate_profile({
            **existing, **patch, "createdAt": existing.get("createdAt"), "updatedAt": utcnow_iso(),
        })
        self.store.set(key, profile)

        logger.info("profile_updated", user_id=identity.user_id, fields=sorted(patch))
        compliance_logger.log_event(
            user_id=identity.user_id, role=profile.get("userType"), action="UPDATE", category="PROFILE",
            resource_type="UserProfile", resource_id=identity.user_id,
            details=f"Updated fields: {', '.join(sorted(patch)) or 'none'}",
        )
        return profile

    def list_doctors(self, identity: VerifiedIdentity) -> List[schemas.DoctorSummary]:
        doctors = []
        for profile in self.store.get_by_prefix(crud.PROFILE_PREFIX):
            if not isinstance(profile, dict) or profile.get("userType") != UserType.doctor.value:
                continue
            doctors.append(schemas.DoctorSummary(
                id=profile["id"],
                name=profile.get("name", ""),
                expertise=profile.get("expertise") or "General Practice",
                status=profile.get("status") or "offline",
            ))
        return doctors


def get_profile_manager(store: RecordStore = Depends(get_record_store)) -> ProfileManager:
    return ProfileManager(store)
