from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from chartbuddies import crud, models, schemas
from chartbuddies.services import mar_duplication


def add_lisinopril(db, actor, form):
    return crud.add_medication(db, actor, form.id, schemas.MedicationCreate(
        medication_name="Lisinopril", dosage="10mg", start_date=date(2025, 11, 1),
        frequency=2, hours=["09:00", "21:00"],
    ))


@pytest.mark.parametrize("text,label", [
    ("November 2025", "November 2025"),
    ("nov 2025", "November 2025"),
    ("2025-11", "November 2025"),
    ("11/2025", "November 2025"),
    ("2026-02-14", "February 2026"),
])
def test_normalize_month_year(text, label):
    assert crud.normalize_month_year(text) == label


def test_days_in_month():
    assert crud.days_in_month("February 2024") == 29
    assert crud.days_in_month("February 2025") == 28
    assert crud.days_in_month("November 2025") == 30


def test_split_full_name():
    assert crud.split_full_name("Mary Ann Evans Cross") == ("Mary", "Ann Evans", "Cross")
    assert crud.split_full_name("Cher") == ("Cher", None, None)
    assert crud.split_full_name("  ") == (None, None, None)


def test_opening_a_month_twice_returns_one_form(db, head_nurse, patient):
    first, created = crud.get_or_create_mar_form(db, head_nurse, patient.id, "2025-11")
    second, created_again = crud.get_or_create_mar_form(db, head_nurse, patient.id, "November 2025")

    assert created and not created_again
    assert first.id == second.id
    assert db.query(models.MarForm).count() == 1


def test_duplicate_lisinopril_into_december(db, head_nurse, november_form):
    add_lisinopril(db, head_nurse, november_form)

    december = mar_duplication.duplicate_mar_form(db, head_nurse, november_form.id, "December 2025")

    assert december.month_year == "December 2025"
    assert sorted(m.hour for m in december.medications) == ["09:00", "21:00"]
    assert december.created_by == head_nurse.id
    entries = crud.get_grouped_medications(db, head_nurse, december.id)
    assert len(entries) == 1 and entries[0].frequency == 2


def test_failed_duplication_leaves_nothing_behind(db, head_nurse, november_form, monkeypatch):
    add_lisinopril(db, head_nurse, november_form)
    real_commit = db.commit

    def broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(crud.DuplicationError):
        mar_duplication.duplicate_mar_form(db, head_nurse, november_form.id, "December 2025")
    monkeypatch.setattr(db, "commit", real_commit)

    assert crud.find_mar_form(db, november_form.patient_id, "December 2025") is None
    assert db.query(models.MarMedication).count() == 2


def test_discontinue_on_last_day_only_touches_that_day(db, nurse, assigned_patient):
    form, _ = crud.get_or_create_mar_form(db, nurse, assigned_patient.id, "November 2025")
    row = add_lisinopril(db, nurse, form)[0]

    crud.set_administration(db, nurse, row.id, 30, initials="DC")

    cells = crud.get_administrations(db, nurse, form.id)
    assert [(c.day_of_month, c.initials) for c in cells] == [(30, "DC")]


def test_initials_are_required_when_profile_has_none(db, head_nurse, november_form):
    head_nurse.staff_initials_text = None
    db.commit()
    row = add_lisinopril(db, head_nurse, november_form)[0]

    with pytest.raises(crud.ValidationError):
        crud.set_administration(db, head_nurse, row.id, 1)


def test_placement_below_the_last_row(db, head_nurse, november_form):
    rows = add_lisinopril(db, head_nurse, november_form)
    last = rows[-1]

    below = crud.add_medication(db, head_nurse, november_form.id, schemas.MedicationCreate(
        medication_name="Aspirin", dosage="81mg", start_date=date(2025, 11, 1),
        placement=schemas.Placement(target_medication_id=last.id, position="below"),
    ))[0]

    assert below.display_order > last.display_order


def test_clearing_an_empty_cell_is_a_no_op(db, head_nurse, november_form):
    row = add_lisinopril(db, head_nurse, november_form)[0]
    assert crud.clear_administration(db, head_nurse, row.id, 9) is False


def test_reactivating_an_inactive_assignment(db, head_nurse, nurse, assigned_patient):
    assignment = db.query(models.NursePatientAssignment).filter_by(nurse_id=nurse.id).one()
    assignment.is_active = False
    db.commit()

    again = crud.create_assignment(db, head_nurse, assigned_patient.id, nurse.id)

    assert again.id == assignment.id
    assert again.is_active is True


def test_duplicating_after_a_row_was_deleted_keeps_only_the_remaining_hours(db, head_nurse, november_form):
    rows = crud.add_medication(db, head_nurse, november_form.id, schemas.MedicationCreate(
        medication_name="Metoprolol", dosage="25mg", start_date=date(2025, 11, 1),
        frequency=3, hours=["08:00", "14:00", "20:00"],
    ))
    midday = next(r for r in rows if r.hour == "14:00")
    crud.delete_medication(db, head_nurse, midday.id)

    december = mar_duplication.duplicate_mar_form(db, head_nurse, november_form.id, "December 2025")

    assert sorted(m.hour for m in december.medications) == ["08:00", "20:00"]


def test_two_rows_sharing_an_hour_are_both_duplicated(db, head_nurse, november_form):
    crud.add_medication(db, head_nurse, november_form.id, schemas.MedicationCreate(
        medication_name="Furosemide", dosage="40mg", start_date=date(2025, 11, 1),
        frequency=2, hours=["09:00"],
    ))

    december = mar_duplication.duplicate_mar_form(db, head_nurse, november_form.id, "December 2025")

    assert [m.hour for m in december.medications] == ["09:00", "09:00"]


def test_many_slots_placed_below_a_row_keep_every_order_unique(db, head_nurse, november_form):
    lisinopril = add_lisinopril(db, head_nurse, november_form)
    crud.add_medication(db, head_nurse, november_form.id, schemas.MedicationCreate(
        medication_name="Aspirin", dosage="81mg", start_date=date(2025, 11, 1),
    ))

    crud.add_medication(db, head_nurse, november_form.id, schemas.MedicationCreate(
        medication_name="Insulin", dosage="4 units", start_date=date(2025, 11, 1),
        frequency=12, hours=[f"{h:02d}:00" for h in range(0, 24, 2)],
        placement=schemas.Placement(target_medication_id=lisinopril[-1].id, position="below"),
    ))

    rows = db.query(models.MarMedication).filter_by(mar_form_id=november_form.id).order_by(
        models.MarMedication.display_order).all()
    orders = [r.display_order for r in rows]
    assert len(set(orders)) == len(orders) == 15
    assert [r.medication_name for r in rows] == ["Lisinopril"] * 2 + ["Insulin"] * 12 + ["Aspirin"]


def test_losing_the_insert_race_updates_the_winning_cell(db, head_nurse, november_form, monkeypatch):
    row_id = add_lisinopril(db, head_nurse, november_form)[0].id
    # Written by another nurse after our lookup came back empty
    db.add(models.MarAdministration(medication_id=row_id, mar_form_id=november_form.id, day_of_month=4,
                                    initials="KB", given=True))
    db.commit()

    real_find = crud._find_administration
    lookups = []

    def stale_then_real(session, medication_id, day):
        lookups.append(day)
        return None if len(lookups) == 1 else real_find(session, medication_id, day)

    monkeypatch.setattr(crud, "_find_administration", stale_then_real)
    cell = crud.set_administration(db, head_nurse, row_id, 4, initials="HN")

    assert len(lookups) == 2
    cells = db.query(models.MarAdministration).filter_by(medication_id=row_id).all()
    assert [(c.id, c.initials) for c in cells] == [(cell.id, "HN")]


def test_opening_a_month_someone_else_just_created_returns_their_form(db, head_nurse, november_form, monkeypatch):
    real_find = crud.find_mar_form
    calls = []

    def stale_then_real(session, patient_id, label):
        calls.append(label)
        return None if len(calls) == 1 else real_find(session, patient_id, label)

    monkeypatch.setattr(crud, "find_mar_form", stale_then_real)
    form, created = crud.get_or_create_mar_form(db, head_nurse, november_form.patient_id, "November 2025")

    assert created is False
    assert form.id == november_form.id
    assert db.query(models.MarForm).count() == 1
