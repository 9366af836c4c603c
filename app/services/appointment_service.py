# app/services/appointment_service.py
import uuid
from typing import Dict, FrozenSet, List, Optional, Tuple

import pydantic
import structlog
from fastapi import Depends, Request

from .. import crud, schemas
from ..compliance_logger import compliance_logger
from ..crud import RecordStore, get_record_store
from ..exceptions import NotFoundError, PermissionDeniedError, ValidationError
from ..models import AppointmentStatus, UserType
from ..security import VerifiedIdentity
from .pricing import PricingPolicy
from .profile_service import utcnow_iso

logger = structlog.get_logger(__name__)

PENDING = AppointmentStatus.pending.value
CONFIRMED = AppointmentStatus.confirmed.value
CANCELLED = AppointmentStatus.cancelled.value
COMPLETED = AppointmentStatus.completed.value
PATIENT = UserType.patient.value
DOCTOR = UserType.doctor.value

# (from, to) -> roles allowed to make the move; anything absent is illegal
ALLOWED_TRANSITIONS: Dict[Tuple[str, str], FrozenSet[str]] = {
    (PENDING, CONFIRMED): frozenset({DOCTOR}),
    (PENDING, CANCELLED): frozenset({PATIENT, DOCTOR}),
    (CONFIRMED, COMPLETED): frozenset({PATIENT, DOCTOR}),
    (CONFIRMED, CANCELLED): frozenset({DOCTOR}),
}
TERMINAL_STATUSES = frozenset({CANCELLED, COMPLETED})


def is_legal_transition(current: str, target: str) -> bool:
    return (current, target) in ALLOWED_TRANSITIONS


def transition_allowed(current: str, target: str, actor: str) -> bool:
    return actor in ALLOWED_TRANSITIONS.get((current, target), frozenset())


class AppointmentManager:
    """Books appointments, lists them per role and moves them through the status machine.

    Status changes are made by the appointment's doctor. The transition table
    is only enforced when ``enforce_transitions`` is set; in that mode the
    actor is checked against the table instead, which lets a patient cancel a
    pending appointment or mark a confirmed one completed.
    """

    def __init__(self, store: RecordStore, pricing_policy: PricingPolicy, enforce_transitions: bool = False):
        self.store = store
        self.pricing_policy = pricing_policy
        self.enforce_transitions = enforce_transitions

    def _own_profile(self, identity: VerifiedIdentity) -> dict:
        profile = self.store.get(crud.profile_key(identity.user_id))
        if profile is None:
            raise NotFoundError("Profile not found")
        return profile

    def book_appointment(
        self,
        identity: VerifiedIdentity,
        doctor_id: Optional[str],
        date: Optional[str],
        time: Optional[str],
        notes: Optional[str] = None,
    ) -> schemas.Appointment:
        if not doctor_id:
            raise ValidationError("doctorId is required")
        if not date or not time or not str(date).strip() or not str(time).strip():
            raise ValidationError("Date and time are required")

        patient = self._own_profile(identity)
        if patient.get("userType") != PATIENT:
            raise PermissionDeniedError("Only patients can book appointments")

        doctor = self.store.get(crud.profile_key(doctor_id))
        if doctor is None:
            raise NotFoundError("Doctor not found")
        if doctor.get("userType") != DOCTOR:
            raise ValidationError("Selected user is not a doctor")

        appointment_id = str(uuid.uuid4())
        now = utcnow_iso()
        appointment = schemas.Appointment(
            id=appointment_id,
            patient_id=identity.user_id,
            doctor_id=doctor_id,
            date=date,
            time=time,
            notes=notes or "",
            status=PENDING,
            cost=self.pricing_policy(doctor),
            created_at=now,
            updated_at=now,
        )

        # Primary record and both role indexes commit together
        self.store.set_many({
            crud.appointment_key(appointment_id): appointment.model_dump(by_alias=True, mode="json"),
            crud.patient_appointment_key(identity.user_id, appointment_id): appointment_id,
            crud.doctor_appointment_key(doctor_id, appointment_id): appointment_id,
        })

        logger.info(
            "appointment_booked",
            appointment_id=appointment_id, patient_id=identity.user_id, doctor_id=doctor_id, cost=appointment.cost,
        )
        compliance_logger.log_event(
            user_id=identity.user_id, role=PATIENT, action="CREATE", category="APPOINTMENT",
            resource_type="Appointment", resource_id=appointment_id,
            details=f"Booked appointment with doctor {doctor_id} on {date} at {time}",
        )
        return appointment

    def list_appointments(self, identity: VerifiedIdentity) -> List[schemas.AppointmentView]:
        profile = self._own_profile(identity)
        is_doctor = profile.get("userType") == DOCTOR
        prefix = crud.doctor_index_prefix(identity.user_id) if is_doctor else crud.patient_index_prefix(identity.user_id)

        appointments = []
        for appointment_id in self.store.get_by_prefix(prefix):
            record = self.store.get(crud.appointment_key(appointment_id))
            if record is None:
                # Index written without its primary record; see reconcile_indexes.py
                logger.warning("appointment_index_orphan", appointment_id=appointment_id, index_prefix=prefix)
                continue

            other_id = record.get("patientId") if is_doctor else record.get("doctorId")
            other = self.store.get(crud.profile_key(other_id)) if other_id else None
            try:
                view = schemas.AppointmentView.model_validate({
                    **record,
                    "otherUserName": (other or {}).get("name") or "Unknown",
                    "otherUserType": (other or {}).get("userType") or "unknown",
                })
            except pydantic.ValidationError as e:
                logger.warning("appointment_record_unreadable", appointment_id=appointment_id, error=str(e))
                continue
            appointments.append(view)
        return appointments

    def set_appointment_status(
        self, identity: VerifiedIdentity, appointment_id: str, new_status: Optional[str]
    ) -> schemas.Appointment:
        key = crud.appointment_key(appointment_id)
        record = self.store.get(key)
        if record is None:
            raise NotFoundError("Appointment not found")
        if not isinstance(new_status, str) or not new_status.strip():
            raise ValidationError("Status is required")

        current = record.get("status")
        if self.enforce_transitions:
            actor = self._enforce_transition(identity, record, current, new_status)
        else:
            if record.get("doctorId") != identity.user_id:
                raise PermissionDeniedError("Not authorized to update this appointment")
            actor = DOCTOR
            if not is_legal_transition(current, new_status):
                logger.warning(
                    "appointment_status_transition_unchecked",
                    appointment_id=appointment_id, from_status=current, to_status=new_status,
                )

        updated = schemas.Appointment.model_validate({**record, "status": new_status, "updatedAt": utcnow_iso()})
        self.store.set(key, updated.model_dump(by_alias=True, mode="json"))

        logger.info("appointment_status_changed", appointment_id=appointment_id, from_status=current, to_status=new_status)
        compliance_logger.log_event(
            user_id=identity.user_id, role=actor, action="UPDATE", category="APPOINTMENT",
            resource_type="Appointment", resource_id=appointment_id,
            details=f"Status changed from '{current}' to '{new_status}'",
        )
        return updated

    def _enforce_transition(self, identity: VerifiedIdentity, record: dict, current: str, target: str) -> str:
        if identity.user_id == record.get("doctorId"):
            actor = DOCTOR
        elif identity.user_id == record.get("patientId"):
            actor = PATIENT
        else:
            raise PermissionDeniedError("Not authorized to update this appointment")

        if target not in {s.value for s in AppointmentStatus}:
            raise ValidationError(f"Unknown appointment status: {target}")
        if current in TERMINAL_STATUSES or not is_legal_transition(current, target):
            raise ValidationError(f"Cannot change status from '{current}' to '{target}'")
        if not transition_allowed(current, target, actor):
            raise PermissionDeniedError(f"A {actor} cannot change status from '{current}' to '{target}'")
        return actor


def get_pricing_policy(request: Request) -> PricingPolicy:
    return request.app.state.pricing_policy


def get_appointment_manager(
    request: Request,
    store: RecordStore = Depends(get_record_store),
    pricing_policy: PricingPolicy = Depends(get_pricing_policy),
) -> AppointmentManager:
    settings = request.app.state.settings
    return AppointmentManager(store, pricing_policy, enforce_transitions=settings.enforce_status_transitions)
