from conftest import PATIENT_PAYLOAD, auth

API = "/api/v1"


def new_patient(**overrides):
    return {**PATIENT_PAYLOAD, **overrides}


def test_head_nurse_registers_patient_in_own_hospital(client, head_nurse, hospital):
    response = client.post(f"{API}/patients", headers=auth(head_nurse.id), json=new_patient())

    assert response.status_code == 201
    body = response.json()
    assert body["hospital_id"] == hospital.id
    assert body["created_by"] == head_nurse.id
    assert body["sex"] == "Male"


def test_record_number_is_unique(client, head_nurse, patient):
    response = client.post(f"{API}/patients", headers=auth(head_nurse.id), json=new_patient())
    assert response.status_code == 409


def test_nurse_keeps_access_to_patients_they_register(client, nurse, other_nurse):
    created = client.post(f"{API}/patients", headers=auth(nurse.id),
                          json=new_patient(record_number="MRN-100", patient_name="Mary Major"))
    assert created.status_code == 201
    patient_id = created.json()["id"]

    mine = client.get(f"{API}/patients", headers=auth(nurse.id)).json()
    assert [p["id"] for p in mine] == [patient_id]

    assert client.get(f"{API}/patients/{patient_id}", headers=auth(other_nurse.id)).status_code == 404
    assert client.get(f"{API}/patients", headers=auth(other_nurse.id)).json() == []


def test_other_hospital_cannot_see_patient(client, patient, foreign_head_nurse):
    response = client.get(f"{API}/patients/{patient.id}", headers=auth(foreign_head_nurse.id))

    assert response.status_code == 404
    assert response.json()["detail"] == "Patient not found"


def test_nurse_cannot_delete_patient(client, nurse, assigned_patient, head_nurse):
    assert client.delete(f"{API}/patients/{assigned_patient.id}", headers=auth(nurse.id)).status_code == 404
    assert client.delete(f"{API}/patients/{assigned_patient.id}", headers=auth(head_nurse.id)).status_code == 204
    assert client.get(f"{API}/patients/{assigned_patient.id}", headers=auth(head_nurse.id)).status_code == 404


def test_search_by_name_or_record_number(client, head_nurse, patient):
    client.post(f"{API}/patients", headers=auth(head_nurse.id),
                json=new_patient(record_number="MRN-777", patient_name="Ruth Roe"))

    by_name = client.get(f"{API}/patients", params={"search": "ruth"}, headers=auth(head_nurse.id)).json()
    by_record = client.get(f"{API}/patients", params={"search": "MRN-001"}, headers=auth(head_nurse.id)).json()

    assert [p["patient_name"] for p in by_name] == ["Ruth Roe"]
    assert [p["id"] for p in by_record] == [patient.id]


def test_assigned_nurse_updates_patient(client, nurse, assigned_patient):
    response = client.put(f"{API}/patients/{assigned_patient.id}", headers=auth(nurse.id),
                          json={"diet": "Diabetic", "allergies": None})

    assert response.status_code == 200
    assert response.json()["diet"] == "Diabetic"
    assert response.json()["allergies"] == ""


def test_assignment_lifecycle(client, head_nurse, other_nurse, patient):
    url = f"{API}/patients/{patient.id}/assignments"

    created = client.post(url, headers=auth(head_nurse.id), json={"nurse_id": other_nurse.id})
    assert created.status_code == 201
    assert created.json()["assigned_by"] == head_nurse.id
    assert client.post(url, headers=auth(head_nurse.id), json={"nurse_id": other_nurse.id}).status_code == 409
    assert client.get(f"{API}/patients/{patient.id}", headers=auth(other_nurse.id)).status_code == 200

    assert client.delete(f"{url}/{other_nurse.id}", headers=auth(head_nurse.id)).status_code == 204
    assert client.get(f"{API}/patients/{patient.id}", headers=auth(other_nurse.id)).status_code == 404


def test_nurse_cannot_assign(client, nurse, other_nurse, assigned_patient):
    response = client.post(f"{API}/patients/{assigned_patient.id}/assignments", headers=auth(nurse.id),
                           json={"nurse_id": other_nurse.id})
    assert response.status_code == 403


def test_cannot_assign_nurse_from_another_hospital(client, head_nurse, foreign_head_nurse, patient):
    response = client.post(f"{API}/patients/{patient.id}/assignments", headers=auth(head_nurse.id),
                           json={"nurse_id": foreign_head_nurse.id})
    assert response.status_code == 422


def test_nurse_sees_only_own_assignment_rows(client, head_nurse, nurse, other_nurse, assigned_patient):
    client.post(f"{API}/patients/{assigned_patient.id}/assignments", headers=auth(head_nurse.id),
                json={"nurse_id": other_nurse.id})

    as_nurse = client.get(f"{API}/patients/{assigned_patient.id}/assignments", headers=auth(nurse.id)).json()
    as_head = client.get(f"{API}/patients/{assigned_patient.id}/assignments", headers=auth(head_nurse.id)).json()

    assert [a["nurse_id"] for a in as_nurse] == [nurse.id]
    assert {a["nurse_id"] for a in as_head} == {nurse.id, other_nurse.id}


def test_patient_reads_are_audited(client, db, head_nurse, patient):
    from chartbuddies import models

    client.get(f"{API}/patients/{patient.id}", headers=auth(head_nurse.id))

    entry = db.query(models.AuditLog).filter_by(resource_id=patient.id, category="PATIENT").one()
    assert entry.action == models.AuditAction.READ
    assert entry.user_id == head_nurse.id
