# app/routers/appointments.py
from fastapi import APIRouter, Depends

from .. import schemas
from ..security import VerifiedIdentity, get_current_identity
from ..services.appointment_service import AppointmentManager, get_appointment_manager

router = APIRouter(
    tags=["Appointments"],
    responses={404: {"description": "Not found"}},
)

@router.post("/appointments", response_model=schemas.AppointmentResponse)
def book_appointment(
    appointment: schemas.AppointmentCreate,
    identity: VerifiedIdentity = Depends(get_current_identity),
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    """Book a pending appointment with a doctor for the calling patient."""
    booked = manager.book_appointment(
        identity,
        doctor_id=appointment.doctor_id,
        date=appointment.date,
        time=appointment.time,
        notes=appointment.notes,
    )
    return {"appointment": booked}

@router.get("/appointments", response_model=schemas.AppointmentListResponse)
def read_appointments(
    identity: VerifiedIdentity = Depends(get_current_identity),
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    """Appointments of the caller, seen from their side (patient or doctor)."""
    return {"appointments": manager.list_appointments(identity)}

@router.put("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def update_appointment_status(
    appointment_id: str,
    status_update: schemas.AppointmentStatusUpdate,
    identity: VerifiedIdentity = Depends(get_current_identity),
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    updated = manager.set_appointment_status(identity, appointment_id, status_update.status)
    return {"appointment": updated}
