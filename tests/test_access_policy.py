import pytest

from chartbuddies import crud, models
from chartbuddies.access_policy import (
    Action, Resource, Subject, TenantChain, authorize, can_access, resolve_chain, scope_patients,
)

H1, H2 = "hospital-1", "hospital-2"

superadmin = Subject(id="sa", role=models.UserRole.superadmin, hospital_id=H1)
head = Subject(id="hn", role=models.UserRole.head_nurse, hospital_id=H1)
nurse = Subject(id="n1", role=models.UserRole.nurse, hospital_id=H1)
orphan = Subject(id="new", role=models.UserRole.nurse, hospital_id=None)

assigned_chain = TenantChain(hospital_id=H1, patient_id="p1", assigned_nurse_ids=frozenset({"n1"}))
unassigned_chain = TenantChain(hospital_id=H1, patient_id="p2")
foreign_chain = TenantChain(hospital_id=H2, patient_id="p3", assigned_nurse_ids=frozenset({"n1"}))


@pytest.mark.parametrize("action", list(Action))
def test_superadmin_reaches_every_hospital(action):
    assert can_access(superadmin, action, Resource.mar_form, foreign_chain)


def test_head_nurse_is_confined_to_own_hospital():
    assert can_access(head, Action.delete, Resource.patient, unassigned_chain)
    assert can_access(head, Action.update, Resource.mar_administration, unassigned_chain)
    assert not can_access(head, Action.read, Resource.patient, foreign_chain)


def test_nurse_needs_an_active_assignment():
    assert can_access(nurse, Action.read, Resource.patient, assigned_chain)
    assert can_access(nurse, Action.update, Resource.mar_medication, assigned_chain)
    assert not can_access(nurse, Action.read, Resource.patient, unassigned_chain)
    assert not can_access(nurse, Action.update, Resource.mar_form, unassigned_chain)


def test_assignment_in_another_hospital_grants_nothing():
    assert not can_access(nurse, Action.read, Resource.mar_form, foreign_chain)


def test_nurse_may_register_but_not_delete_patients():
    assert can_access(nurse, Action.create, Resource.patient, TenantChain(hospital_id=H1))
    assert not can_access(nurse, Action.delete, Resource.patient, assigned_chain)


def test_profile_without_hospital_sees_no_hospital_data():
    assert not can_access(orphan, Action.read, Resource.patient, TenantChain(hospital_id=None))
    assert can_access(orphan, Action.create, Resource.hospital, TenantChain())


def test_legends_are_private_to_their_owner():
    mine = TenantChain(owner_id="n1")
    assert can_access(nurse, Action.update, Resource.mar_custom_legend, mine)
    assert not can_access(head, Action.read, Resource.mar_custom_legend, mine)


def test_nurse_sees_only_own_assignments():
    own = TenantChain(hospital_id=H1, patient_id="p1", owner_id="n1")
    someone_else = TenantChain(hospital_id=H1, patient_id="p1", owner_id="n9")
    assert can_access(nurse, Action.read, Resource.assignment, own)
    assert not can_access(nurse, Action.read, Resource.assignment, someone_else)
    assert not can_access(nurse, Action.create, Resource.assignment, own)


def test_resolve_chain_walks_medication_up_to_patient(db, assigned_patient, nurse, november_form):
    row = models.MarMedication(mar_form_id=november_form.id, medication_name="Aspirin", dosage="81mg")
    db.add(row)
    db.commit()

    chain = resolve_chain(db, row)

    assert chain.hospital_id == assigned_patient.hospital_id
    assert chain.patient_id == assigned_patient.id
    assert nurse.id in chain.assigned_nurse_ids


def test_inactive_assignment_is_not_in_the_chain(db, assigned_patient, nurse):
    assignment = db.query(models.NursePatientAssignment).filter_by(nurse_id=nurse.id).one()
    assignment.is_active = False
    db.commit()

    assert nurse.id not in resolve_chain(db, assigned_patient).assigned_nurse_ids


def test_denial_is_reported_as_not_found_and_audited(db, patient, other_nurse):
    with pytest.raises(crud.NotFoundError, match="Patient not found"):
        authorize(db, Subject.from_profile(other_nurse), Action.read, patient, label="Patient")

    denied = db.query(models.AuditLog).filter(models.AuditLog.action == models.AuditAction.ACCESS_DENIED).all()
    assert len(denied) == 1
    assert denied[0].user_id == other_nurse.id
    assert denied[0].resource_id == patient.id


def test_scope_patients_filters_by_role(db, head_nurse, nurse, other_nurse, assigned_patient, foreign_head_nurse):
    query = db.query(models.Patient)

    assert [p.id for p in scope_patients(query, Subject.from_profile(head_nurse))] == [assigned_patient.id]
    assert [p.id for p in scope_patients(query, Subject.from_profile(nurse))] == [assigned_patient.id]
    assert scope_patients(query, Subject.from_profile(other_nurse)).all() == []
    assert scope_patients(query, Subject.from_profile(foreign_head_nurse)).all() == []
