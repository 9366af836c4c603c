# tests/test_profile_service.py
import pytest

from app.exceptions import NotFoundError, ValidationError
from app.security import VerifiedIdentity


def test_patient_defaults(profile_manager):
    identity = VerifiedIdentity(user_id="p1")
    profile = profile_manager.create_profile(
        identity, name="Ann", email="ann@example.com", user_type="patient", additional_info={"age": 34}
    )
    assert profile["status"] == "active"
    assert profile["subscription"] == "free"
    assert profile["points"] == 0
    assert profile["age"] == 34
    assert profile["createdAt"] == profile["updatedAt"]
    assert "expertise" not in profile


def test_doctor_defaults(profile_manager):
    profile = profile_manager.create_profile(
        VerifiedIdentity(user_id="d1"), name="Dr. Bo", email="bo@example.com", user_type="doctor"
    )
    assert profile["status"] == "offline"
    assert profile["expertise"] == "General Practice"
    assert profile["consultationFee"] == "300"
    assert profile["verified"] is False


def test_doctor_specialization_and_fee_are_kept(profile_manager):
    profile = profile_manager.create_profile(
        VerifiedIdentity(user_id="d2"), name="Dr. Cy", email="cy@example.com", user_type="doctor",
        additional_info={"specialization": "Dermatology", "consultationFee": 450},
    )
    assert profile["expertise"] == "Dermatology"
    assert profile["specialization"] == "Dermatology"
    assert profile["consultationFee"] == 450


def test_additional_info_cannot_override_signup_fields(profile_manager):
    profile = profile_manager.create_profile(
        VerifiedIdentity(user_id="p2"), name="Dee", email="dee@example.com", user_type="patient",
        additional_info={"id": "someone-else", "userType": "doctor", "points": 500},
    )
    assert profile["id"] == "p2"
    assert profile["userType"] == "patient"
    assert profile["points"] == 0


@pytest.mark.parametrize("name, email, user_type", [
    ("", "x@example.com", "patient"),
    ("X", None, "patient"),
    ("X", "x@example.com", None),
])
def test_missing_required_fields(profile_manager, name, email, user_type):
    with pytest.raises(ValidationError, match="Missing required fields"):
        profile_manager.create_profile(VerifiedIdentity(user_id="u"), name=name, email=email, user_type=user_type)


def test_invalid_user_type(profile_manager):
    with pytest.raises(ValidationError):
        profile_manager.create_profile(VerifiedIdentity(user_id="u"), name="X", email="x@example.com", user_type="nurse")


def test_profile_cannot_be_created_twice(profile_manager):
    identity = VerifiedIdentity(user_id="p3")
    profile_manager.create_profile(identity, name="Eve", email="eve@example.com", user_type="patient")
    with pytest.raises(ValidationError, match="already exists"):
        profile_manager.create_profile(identity, name="Eve", email="eve@example.com", user_type="patient")


def test_get_profile_of_another_user(profile_manager, make_user):
    owner = make_user("doctor", name="Dr. Fox")
    reader = make_user("patient")
    assert profile_manager.get_profile(reader, owner.user_id)["name"] == "Dr. Fox"


def test_get_missing_profile(profile_manager, make_user):
    with pytest.raises(NotFoundError):
        profile_manager.get_profile(make_user(), "missing")


def test_update_merges_and_keeps_unknown_fields(profile_manager, make_user):
    identity = make_user("patient", allergies=["latex"])
    updated = profile_manager.update_profile(identity, {"bloodType": "A-", "name": "Renamed"})
    assert updated["bloodType"] == "A-"
    assert updated["name"] == "Renamed"
    assert updated["allergies"] == ["latex"]
    assert profile_manager.get_profile(identity, identity.user_id) == updated


def test_update_bumps_updated_at_only(profile_manager, make_user):
    identity = make_user()
    before = profile_manager.get_profile(identity, identity.user_id)
    after = profile_manager.update_profile(identity, {"city": "Lagos"})
    assert after["createdAt"] == before["createdAt"]
    assert after["updatedAt"] >= before["updatedAt"]


@pytest.mark.parametrize("field, value", [("id", "other"), ("userType", "doctor")])
def test_update_rejects_immutable_fields(profile_manager, make_user, field, value):
    identity = make_user()
    with pytest.raises(ValidationError, match=field):
        profile_manager.update_profile(identity, {field: value})


def test_update_validates_known_fields(profile_manager, make_user):
    patient = make_user("patient")
    with pytest.raises(ValidationError):
        profile_manager.update_profile(patient, {"points": -5})

    doctor = make_user("doctor")
    with pytest.raises(ValidationError):
        profile_manager.update_profile(doctor, {"status": "on-holiday"})
    assert profile_manager.update_profile(doctor, {"status": "available"})["status"] == "available"


def test_update_keeps_stored_created_at(profile_manager, make_user):
    identity = make_user()
    created_at = profile_manager.get_profile(identity, identity.user_id)["createdAt"]
    updated = profile_manager.update_profile(identity, {"createdAt": "2000-01-01T00:00:00+00:00", "city": "Accra"})
    assert updated["createdAt"] == created_at
    assert updated["city"] == "Accra"


@pytest.mark.parametrize("user_type, patch", [
    ("patient", {"points": "5"}),
    ("patient", {"name": 42}),
    ("doctor", {"verified": "true"}),
    ("doctor", {"expertise": ["Cardiology"]}),
])
def test_update_rejects_wrongly_typed_fields(profile_manager, make_user, user_type, patch):
    identity = make_user(user_type)
    before = profile_manager.get_profile(identity, identity.user_id)
    with pytest.raises(ValidationError):
        profile_manager.update_profile(identity, patch)
    assert profile_manager.get_profile(identity, identity.user_id) == before


def test_update_stores_typed_values_unchanged(profile_manager, make_user):
    identity = make_user("doctor")
    patch = {"points": 5, "verified": True, "consultationFee": 250.5, "subscription": "family"}
    profile_manager.update_profile(identity, patch)
    stored = profile_manager.get_profile(identity, identity.user_id)
    for field, value in patch.items():
        assert stored[field] == value
        assert type(stored[field]) is type(value)


def test_update_without_profile(profile_manager):
    with pytest.raises(NotFoundError):
        profile_manager.update_profile(VerifiedIdentity(user_id="ghost"), {"name": "Boo"})


def test_list_doctors_filters_patients(profile_manager, make_user):
    doctor = make_user("doctor", name="Dr. Gil", specialization="Pediatrics")
    make_user("patient")

    doctors = profile_manager.list_doctors(doctor)
    assert [(d.id, d.name, d.expertise, d.status) for d in doctors] == [
        (doctor.user_id, "Dr. Gil", "Pediatrics", "offline")
    ]


def test_list_doctors_empty(profile_manager, make_user):
    assert profile_manager.list_doctors(make_user()) == []


def test_repeated_patch_is_idempotent(profile_manager, make_user):
    identity = make_user("doctor")
    patch = {"expertise": "Neurology", "languages": ["en", "fr"]}
    first = profile_manager.update_profile(identity, patch)
    second = profile_manager.update_profile(identity, patch)
    first.pop("updatedAt")
    second.pop("updatedAt")
    assert first == second
