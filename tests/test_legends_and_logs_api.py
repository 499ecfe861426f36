from conftest import auth

API = "/api/v1"


def test_legend_starts_with_built_in_codes(client, nurse):
    legend = client.get(f"{API}/legends", headers=auth(nurse.id)).json()

    assert [entry["code"] for entry in legend] == ["DC", "NG", "PRN", "H", "R"]
    assert all(entry["built_in"] for entry in legend)


def test_custom_legend_lifecycle(client, nurse):
    headers = auth(nurse.id)

    created = client.post(f"{API}/legends", headers=headers, json={"code": " lo ", "description": "Leave of absence"})
    assert created.status_code == 201
    assert created.json()["code"] == "LO"
    assert created.json()["built_in"] is False

    assert client.post(f"{API}/legends", headers=headers,
                       json={"code": "LO", "description": "Again"}).status_code == 409
    assert client.post(f"{API}/legends", headers=headers,
                       json={"code": "ng", "description": "Shadow"}).status_code == 422

    legend_id = created.json()["id"]
    updated = client.put(f"{API}/legends/{legend_id}", headers=headers, json={"description": "Out on pass"})
    assert updated.json()["description"] == "Out on pass"

    codes = [entry["code"] for entry in client.get(f"{API}/legends", headers=headers).json()]
    assert codes[-1] == "LO"

    assert client.delete(f"{API}/legends/{legend_id}", headers=headers).status_code == 204


def test_legends_are_private(client, nurse, head_nurse):
    legend_id = client.post(f"{API}/legends", headers=auth(nurse.id),
                            json={"code": "LO", "description": "Leave of absence"}).json()["id"]

    assert client.put(f"{API}/legends/{legend_id}", headers=auth(head_nurse.id),
                      json={"description": "Mine now"}).status_code == 404
    head_codes = [entry["code"] for entry in client.get(f"{API}/legends", headers=auth(head_nurse.id)).json()]
    assert "LO" not in head_codes


def test_audit_log_is_superadmin_only(client, superadmin, head_nurse, patient):
    client.get(f"{API}/patients/{patient.id}", headers=auth(head_nurse.id))

    assert client.get(f"{API}/logs", headers=auth(head_nurse.id)).status_code == 403

    logs = client.get(f"{API}/logs", headers=auth(superadmin.id), params={"category": "PATIENT"}).json()
    assert len(logs) == 1
    assert logs[0]["action"] == "READ"
    assert logs[0]["user_id"] == head_nurse.id


def test_access_denials_are_logged(client, superadmin, other_nurse, patient):
    client.get(f"{API}/patients/{patient.id}", headers=auth(other_nurse.id))

    logs = client.get(f"{API}/logs", headers=auth(superadmin.id), params={"category": "ACCESS"}).json()
    assert [(entry["action"], entry["user_id"]) for entry in logs] == [("ACCESS_DENIED", other_nurse.id)]
