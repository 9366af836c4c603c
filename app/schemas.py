# app/schemas.py
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from .models import AppointmentStatus, DoctorStatus, SubscriptionPlan, UserType

# --- Base Schemas ---
class BaseSchema(BaseModel):
    """camelCase on the wire and in the record store, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Profile Schemas ---
# Profiles are an open document: unknown keys (medical details, specialization, ...)
# are kept verbatim. Only the camelCase alias is accepted for declared fields so a
# snake_case key in a patch can never shadow the type discriminator. Declared
# fields are strict: a patch value of the wrong type is rejected, never coerced.
class ProfileBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, extra="allow", strict=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    # Stored documents hold enum values as plain strings
    subscription: SubscriptionPlan = Field(default=SubscriptionPlan.free, strict=False)
    points: int = Field(default=0, ge=0)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PatientProfile(ProfileBase):
    user_type: Literal["patient"]
    status: str = "active"


class DoctorProfile(ProfileBase):
    user_type: Literal["doctor"]
    status: DoctorStatus = Field(default=DoctorStatus.offline, strict=False)
    expertise: str = "General Practice"
    consultation_fee: Union[str, int, float] = "300"
    verified: bool = False


Profile = Annotated[Union[PatientProfile, DoctorProfile], Field(discriminator="user_type")]
profile_adapter = TypeAdapter(Profile)

# Keys a profile patch may not change
IMMUTABLE_PROFILE_FIELDS = ("id", "userType")


class DoctorSummary(BaseSchema):
    id: str
    name: str
    expertise: str = "General Practice"
    status: str = DoctorStatus.offline.value


# --- Signup Schemas ---
class SignupRequest(BaseSchema):
    # Checked for shape, stored verbatim
    email: str
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    user_type: UserType
    additional_info: Optional[Dict[str, Any]] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        try:
            validate_email(v, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        if not v.strip():
            raise ValueError("Name must not be blank")
        return v


class SignupResponse(BaseModel):
    message: str
    user: Dict[str, Any]


class ProfileResponse(BaseModel):
    profile: Dict[str, Any]


class DoctorListResponse(BaseModel):
    doctors: List[DoctorSummary]


# --- Appointment Schemas ---
class AppointmentCreate(BaseSchema):
    doctor_id: str = Field(..., min_length=1)
    # date/time are checked by the appointment manager so every caller gets the same error
    date: Optional[str] = None
    time: Optional[str] = None
    notes: Optional[str] = None


class AppointmentStatusUpdate(BaseSchema):
    # Checked by the appointment manager after the appointment lookup
    status: Optional[str] = None


class Appointment(BaseSchema):
    id: str
    patient_id: str
    doctor_id: str
    date: str
    time: str
    notes: str = ""
    # Stored verbatim; see AppointmentManager.set_appointment_status
    status: str = AppointmentStatus.pending.value
    cost: Union[int, float]
    created_at: str
    updated_at: Optional[str] = None


class AppointmentView(Appointment):
    other_user_name: str = "Unknown"
    other_user_type: str = "unknown"


class AppointmentResponse(BaseModel):
    appointment: Appointment


class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentView]


# --- Index Consistency Schemas ---
class IndexInconsistency(BaseModel):
    key: str
    appointment_id: str
    issue: str


class ConsistencyReport(BaseModel):
    checked_at: datetime
    orphaned_index_entries: List[IndexInconsistency] = []
    missing_index_entries: List[IndexInconsistency] = []


class ConsistencyFixReport(BaseModel):
    checked_at: datetime
    removed_entries: List[str] = []
    restored_entries: List[str] = []
    errors: List[str] = []


# --- Health ---
class HealthResponse(BaseModel):
    status: str
    environment: str
    version: str
