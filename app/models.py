# app/models.py
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from .database import Base
import enum


class UserType(str, enum.Enum):
    patient = "patient"
    doctor = "doctor"


class DoctorStatus(str, enum.Enum):
    available = "available"
    busy = "busy"
    offline = "offline"


class SubscriptionPlan(str, enum.Enum):
    free = "free"
    individual = "individual"
    family = "family"
    corporate = "corporate"


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"


class KVRecord(Base):
    """One row of the key-value record store; values are JSON documents."""
    __tablename__ = "kv_store"

    key = Column(String(255), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<KVRecord(key='{self.key}')>"
