import pytest

from conftest import auth

API = "/api/v1"


@pytest.fixture
def chart(client, nurse, assigned_patient):
    """An open November form with one once-daily medication, charted by the assigned nurse."""
    headers = auth(nurse.id)
    form = client.post(f"{API}/patients/{assigned_patient.id}/mar-forms/open", headers=headers,
                       json={"month_year": "November 2025"}).json()
    row = client.post(f"{API}/mar-forms/{form['id']}/medications", headers=headers, json={
        "medication_name": "Metoprolol", "dosage": "25mg", "start_date": "2025-11-01", "hours": ["08:00"],
    }).json()[0]
    return {"headers": headers, "form_id": form["id"], "medication_id": row["id"]}


def cell_url(chart, day):
    return f"{API}/mar-medications/{chart['medication_id']}/administrations/{day}"


def administrations(client, chart):
    detail = client.get(f"{API}/mar-forms/{chart['form_id']}", headers=chart["headers"]).json()
    return {a["day_of_month"]: a for a in detail["administrations"]}


def test_cell_set_update_and_clear(client, chart):
    first = client.put(cell_url(chart, 5), headers=chart["headers"], json={"initials": "JS"})
    assert first.status_code == 200
    assert first.json()["given"] is True
    assert first.json()["administered_at"] is not None

    second = client.put(cell_url(chart, 5), headers=chart["headers"], json={"initials": "KB"})
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["initials"] == "KB"
    assert list(administrations(client, chart)) == [5]

    assert client.delete(cell_url(chart, 5), headers=chart["headers"]).status_code == 204
    assert administrations(client, chart) == {}


def test_initials_default_to_the_chartings_nurse(client, chart):
    response = client.put(cell_url(chart, 2), headers=chart["headers"], json={})
    assert response.json()["initials"] == "JS"


def test_not_given_codes_record_an_omission(client, chart):
    response = client.put(cell_url(chart, 7), headers=chart["headers"], json={"initials": "R"})

    body = response.json()
    assert body["given"] is False
    assert body["reason_for_omission"] == "Refused"
    assert body["administered_at"] is None

    held = client.put(cell_url(chart, 8), headers=chart["headers"],
                      json={"initials": "NG", "reason_for_omission": "NPO for surgery"}).json()
    assert held["reason_for_omission"] == "NPO for surgery"


def test_discontinued_fills_the_rest_of_the_month(client, chart):
    client.put(cell_url(chart, 29), headers=chart["headers"], json={"initials": "JS"})

    client.put(cell_url(chart, 28), headers=chart["headers"], json={"initials": "DC"})

    cells = administrations(client, chart)
    assert sorted(cells) == [28, 29, 30]
    assert {cells[d]["initials"] for d in (28, 29, 30)} == {"DC"}
    assert cells[29]["administered_at"] is None


def test_day_outside_the_month_is_rejected(client, chart):
    assert client.put(cell_url(chart, 31), headers=chart["headers"], json={"initials": "JS"}).status_code == 422
    assert client.put(cell_url(chart, 32), headers=chart["headers"], json={"initials": "JS"}).status_code == 422


def test_cell_note(client, chart):
    assert client.patch(f"{cell_url(chart, 4)}/note", headers=chart["headers"],
                        json={"notes": "late"}).status_code == 404

    client.put(cell_url(chart, 4), headers=chart["headers"], json={"initials": "JS"})
    response = client.patch(f"{cell_url(chart, 4)}/note", headers=chart["headers"],
                            json={"notes": "Given 40 min late"})

    assert response.status_code == 200
    assert response.json()["notes"] == "Given 40 min late"


def test_unassigned_nurse_cannot_chart(client, chart, other_nurse):
    response = client.put(cell_url(chart, 5), headers=auth(other_nurse.id), json={"initials": "KB"})
    assert response.status_code == 404


def test_vital_sign_cells(client, chart):
    url = f"{API}/mar-forms/{chart['form_id']}/vital-signs"
    headers = chart["headers"]

    first = client.put(url, headers=headers, json={"vital_type": "TEMPERATURE", "day_of_month": 3, "value": "98.6"})
    assert first.status_code == 200
    again = client.put(url, headers=headers, json={"vital_type": "TEMPERATURE", "day_of_month": 3, "value": "99.1"})
    assert again.json()["id"] == first.json()["id"]
    assert again.json()["value"] == "99.1"

    assert client.put(url, headers=headers,
                      json={"vital_type": "PULSE", "day_of_month": 3, "value": "fast"}).status_code == 422
    assert client.put(url, headers=headers,
                      json={"vital_type": "BOWEL_MOVEMENT", "day_of_month": 3, "value": "LG"}).status_code == 200

    cleared = client.put(url, headers=headers, json={"vital_type": "TEMPERATURE", "day_of_month": 3, "value": ""})
    assert cleared.status_code == 204
    remaining = client.get(url, headers=headers).json()
    assert [(v["vital_type"], v["value"]) for v in remaining] == [("BOWEL_MOVEMENT", "LG")]


def test_prn_records(client, chart, nurse):
    url = f"{API}/mar-forms/{chart['form_id']}/prn-records"
    headers = chart["headers"]

    first = client.post(url, headers=headers, json={
        "date": "2025-11-04", "hour": "14:30", "medication": "Acetaminophen 650mg", "reason": "Headache",
    })
    assert first.status_code == 201
    assert first.json()["hour"] == "2:30 PM"
    assert first.json()["entry_number"] == 1

    second = client.post(url, headers=headers, json={
        "date": "2025-11-05", "medication": "Ondansetron 4mg", "reason": "Nausea",
    }).json()
    assert second["entry_number"] == 2

    record_url = f"{API}/prn-records/{first.json()['id']}"
    early = client.patch(record_url, headers=headers, json={"initials": "JS"})
    assert early.status_code == 422
    assert early.json()["detail"] == "Time and Result must be filled before setting Initials"

    client.patch(record_url, headers=headers, json={"result": "Relieved"})
    signed = client.patch(record_url, headers=headers, json={"initials": "JS"})
    assert signed.status_code == 200
    assert signed.json()["staff_signature"] == nurse.full_name

    assert client.patch(record_url, headers=headers, json={"reason": "  "}).status_code == 422

    assert client.delete(f"{API}/prn-records/{second['id']}", headers=headers).status_code == 204
    assert [r["entry_number"] for r in client.get(url, headers=headers).json()] == [1]
