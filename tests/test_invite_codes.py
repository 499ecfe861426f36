import pytest

from chartbuddies import crud, models
from chartbuddies.services import invite_codes
from chartbuddies.services.invite_codes import (
    INVITE_CODE_ALPHABET, INVITE_CODE_LENGTH, assign_unique_invite_code, generate_invite_code,
    normalize_invite_code,
)


def test_generated_codes_use_the_unambiguous_alphabet():
    for _ in range(50):
        code = generate_invite_code()
        assert len(code) == INVITE_CODE_LENGTH
        assert set(code) <= set(INVITE_CODE_ALPHABET)
        assert not set(code) & set("01IO")


def test_normalize_invite_code():
    assert normalize_invite_code("  ab12cd34 ") == "AB12CD34"
    assert normalize_invite_code(None) == ""


def test_taken_codes_are_skipped(db, hospital):
    codes = iter([hospital.invite_code, "FRESHCD2"])
    new_hospital = models.Hospital(name="Annex", facility_type="clinic")

    assign_unique_invite_code(db, new_hospital, generator=lambda: next(codes))
    db.commit()

    assert new_hospital.invite_code == "FRESHCD2"


def test_exhausted_attempts_raise_conflict(db, hospital):
    new_hospital = models.Hospital(name="Annex", facility_type="clinic")

    with pytest.raises(crud.ConflictError):
        assign_unique_invite_code(db, new_hospital, max_attempts=3, generator=lambda: hospital.invite_code)


def test_regenerating_replaces_the_code(db, hospital, superadmin):
    old_code = hospital.invite_code

    updated = crud.regenerate_invite_code(db, superadmin, hospital.id)

    assert updated.invite_code != old_code
    assert db.query(models.Hospital).filter_by(invite_code=old_code).first() is None


def test_code_claimed_between_check_and_flush_is_retried(db, hospital, monkeypatch):
    codes = iter([hospital.invite_code, "FRESHCD3"])
    new_hospital = models.Hospital(name="Annex", facility_type="clinic")
    # The other signup commits after our check ran
    monkeypatch.setattr(invite_codes, "code_taken", lambda session, code: False)

    assign_unique_invite_code(db, new_hospital, generator=lambda: next(codes))
    db.commit()

    assert new_hospital.invite_code == "FRESHCD3"
    assert db.query(models.Hospital).count() == 2
