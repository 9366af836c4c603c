# tests/test_consistency.py
import pytest

from app import crud
from app.services.appointment_service import AppointmentManager
from app.services.pricing import fixed_consultation_cost

import reconcile_indexes


@pytest.fixture
def booked(store, make_user):
    patient, doctor = make_user("patient"), make_user("doctor")
    appointment = AppointmentManager(store, fixed_consultation_cost(5)).book_appointment(
        patient, doctor_id=doctor.user_id, date="2025-07-01", time="08:15"
    )
    return patient, doctor, appointment


def test_clean_store_has_no_issues(store, booked):
    report = crud.run_consistency_checks(store)
    assert report.orphaned_index_entries == []
    assert report.missing_index_entries == []


def test_detects_orphans_and_missing_entries(store, booked):
    patient, doctor, appointment = booked
    orphan_key = crud.doctor_appointment_key(doctor.user_id, "lost")
    store.set(orphan_key, "lost")
    missing_key = crud.patient_appointment_key(patient.user_id, appointment.id)
    store.delete(missing_key)

    report = crud.run_consistency_checks(store)
    assert [i.key for i in report.orphaned_index_entries] == [orphan_key]
    assert [i.key for i in report.missing_index_entries] == [missing_key]
    assert report.missing_index_entries[0].appointment_id == appointment.id


def test_fix_repairs_the_indexes(store, booked):
    patient, doctor, appointment = booked
    orphan_key = crud.patient_appointment_key(patient.user_id, "lost")
    store.set(orphan_key, "lost")
    missing_key = crud.doctor_appointment_key(doctor.user_id, appointment.id)
    store.delete(missing_key)

    fix = crud.fix_consistency_issues(store)
    assert fix.removed_entries == [orphan_key]
    assert fix.restored_entries == [missing_key]
    assert fix.errors == []

    assert store.get(orphan_key) is None
    assert store.get(missing_key) == appointment.id
    after = crud.run_consistency_checks(store)
    assert after.orphaned_index_entries == [] and after.missing_index_entries == []


def test_reconcile_script_exit_codes(monkeypatch, settings, store, booked, capsys):
    patient, _, _ = booked
    store.set(crud.patient_appointment_key(patient.user_id, "lost"), "lost")
    monkeypatch.setattr(reconcile_indexes, "get_settings", lambda: settings)

    assert reconcile_indexes.main([]) == 1
    assert "orphaned_index_entries" in capsys.readouterr().out
    assert reconcile_indexes.main(["--fix"]) == 0
    assert reconcile_indexes.main([]) == 0
