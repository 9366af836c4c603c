# app/crud.py - Key-value record store over the kv_store table
import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, NoReturn, Optional, Tuple

import structlog
from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .database import get_db
from .exceptions import InternalError

logger = structlog.get_logger(__name__)

# ==================== RECORD KEYS ====================

PROFILE_PREFIX = "user_profile:"
APPOINTMENT_PREFIX = "appointment:"
PATIENT_INDEX_PREFIX = "patient_appointment:"
DOCTOR_INDEX_PREFIX = "doctor_appointment:"


def profile_key(user_id: str) -> str:
    return f"{PROFILE_PREFIX}{user_id}"


def appointment_key(appointment_id: str) -> str:
    return f"{APPOINTMENT_PREFIX}{appointment_id}"


def patient_index_prefix(patient_id: str) -> str:
    return f"{PATIENT_INDEX_PREFIX}{patient_id}:"


def doctor_index_prefix(doctor_id: str) -> str:
    return f"{DOCTOR_INDEX_PREFIX}{doctor_id}:"


def patient_appointment_key(patient_id: str, appointment_id: str) -> str:
    return f"{patient_index_prefix(patient_id)}{appointment_id}"


def doctor_appointment_key(doctor_id: str, appointment_id: str) -> str:
    return f"{doctor_index_prefix(doctor_id)}{appointment_id}"


# ==================== RECORD STORE ====================

class RecordStore:
    """get / set / delete by key and scan by key prefix.

    Every write commits; ``set_many`` and ``delete_many`` commit once for the
    whole batch, so a batch lands completely or not at all. Values come back
    as copies, never as the session's tracked JSON objects.
    """

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, operation: str, key: str, error: SQLAlchemyError) -> NoReturn:
        self.db.rollback()
        logger.error("record_store_error", operation=operation, key=key, error=str(error))
        raise InternalError("Record store unavailable") from error

    def get(self, key: str) -> Optional[Any]:
        try:
            record = self.db.get(models.KVRecord, key)
        except SQLAlchemyError as e:
            self._fail("get", key, e)
        return copy.deepcopy(record.value) if record is not None else None

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, items: Dict[str, Any]) -> None:
        try:
            for key, value in items.items():
                self.db.merge(models.KVRecord(key=key, value=copy.deepcopy(value)))
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("set", ",".join(items), e)

    def delete(self, key: str) -> bool:
        return self.delete_many([key]) == 1

    def delete_many(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        try:
            deleted = self.db.query(models.KVRecord).filter(
                models.KVRecord.key.in_(keys)
            ).delete(synchronize_session="fetch")
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("delete", ",".join(keys), e)
        return deleted

    def scan_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        """Return ``(key, value)`` pairs whose key starts with ``prefix``, ordered by key."""
        try:
            records = self.db.query(models.KVRecord).filter(
                models.KVRecord.key.startswith(prefix, autoescape=True)
            ).order_by(models.KVRecord.key).all()
        except SQLAlchemyError as e:
            self._fail("scan", prefix, e)
        return [(record.key, copy.deepcopy(record.value)) for record in records]

    def get_by_prefix(self, prefix: str) -> List[Any]:
        return [value for _, value in self.scan_prefix(prefix)]


def get_record_store(db: Session = Depends(get_db)) -> RecordStore:
    return RecordStore(db)


# ==================== INDEX CONSISTENCY ====================

def _expected_index_keys(appointment: Dict[str, Any]) -> List[str]:
    appointment_id = appointment.get("id")
    keys = []
    if appointment.get("patientId"):
        keys.append(patient_appointment_key(appointment["patientId"], appointment_id))
    if appointment.get("doctorId"):
        keys.append(doctor_appointment_key(appointment["doctorId"], appointment_id))
    return keys


def run_consistency_checks(store: RecordStore) -> schemas.ConsistencyReport:
    """Find index entries without a primary appointment, and appointments missing an index entry."""
    report = schemas.ConsistencyReport(checked_at=datetime.now(timezone.utc))

    # Check 1: index entries pointing at a missing appointment record
    for prefix in (PATIENT_INDEX_PREFIX, DOCTOR_INDEX_PREFIX):
        for key, appointment_id in store.scan_prefix(prefix):
            if store.get(appointment_key(appointment_id)) is None:
                report.orphaned_index_entries.append(schemas.IndexInconsistency(
                    key=key,
                    appointment_id=appointment_id,
                    issue="Index entry points at an appointment record that does not exist.",
                ))

    # Check 2: appointment records invisible to one side
    for _, appointment in store.scan_prefix(APPOINTMENT_PREFIX):
        for index_key in _expected_index_keys(appointment):
            if store.get(index_key) is None:
                report.missing_index_entries.append(schemas.IndexInconsistency(
                    key=index_key,
                    appointment_id=appointment["id"],
                    issue="Appointment record has no matching index entry.",
                ))

    return report


def fix_consistency_issues(store: RecordStore) -> schemas.ConsistencyFixReport:
    """Run the checks, delete orphaned index entries and recreate missing ones."""
    issues = run_consistency_checks(store)
    fix_report = schemas.ConsistencyFixReport(checked_at=issues.checked_at)

    for issue in issues.orphaned_index_entries:
        try:
            if store.delete(issue.key):
                fix_report.removed_entries.append(issue.key)
        except InternalError as e:
            fix_report.errors.append(f"Error removing index entry {issue.key}: {e.message}")

    for issue in issues.missing_index_entries:
        try:
            store.set(issue.key, issue.appointment_id)
            fix_report.restored_entries.append(issue.key)
        except InternalError as e:
            fix_report.errors.append(f"Error restoring index entry {issue.key}: {e.message}")

    logger.info(
        "index_reconciliation_finished",
        removed=len(fix_report.removed_entries),
        restored=len(fix_report.restored_entries),
        errors=len(fix_report.errors),
    )
    return fix_report
