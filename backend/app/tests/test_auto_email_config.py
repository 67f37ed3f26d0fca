from .conftest import client, db, reset_auto_email, create_user, create_department

from datetime import datetime

from app import models


def _schedule(dept, **overrides):
    payload = {
        "department_id": str(dept.id),
        "enabled": True,
        "days_of_week": [1, 2, 3, 4, 5],
        "time_of_day": "18:00",
    }
    payload.update(overrides)
    return payload


def _config(*schedules, **overrides):
    payload = {
        "enabled": True,
        "recipients": ["lead@example.com"],
        "timezone": "UTC",
        "send_when_empty": False,
        "department_schedules": list(schedules),
    }
    payload.update(overrides)
    return payload


def test_default_config_is_disabled(client, reset_auto_email):
    _, headers = create_user("super_admin")
    resp = client.get("/api/admin/auto-email", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["enabled"] is False
    assert data["timezone"] == "Asia/Kolkata"
    assert data["recipients"] == []
    assert data["department_schedules"] == []


def test_only_super_admin_can_manage(client, reset_auto_email):
    _, admin_headers = create_user("admin")
    _, user_headers = create_user()
    for headers in (admin_headers, user_headers):
        assert client.get("/api/admin/auto-email", headers=headers).status_code == 403
        assert client.put("/api/admin/auto-email", json=_config(), headers=headers).status_code == 403
    assert client.get("/api/admin/auto-email").status_code == 401


def test_save_normalizes_and_round_trips(client, reset_auto_email):
    _, headers = create_user("super_admin")
    dept = create_department()
    payload = _config(
        _schedule(dept, days_of_week=[5, 1, 1, 3]),
        recipients=["  Lead@Example.com ", "lead@example.com", "ops@example.com"],
    )
    resp = client.post("/api/admin/auto-email", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["recipients"] == ["lead@example.com", "ops@example.com"]
    schedule = data["department_schedules"][0]
    assert schedule["days_of_week"] == [1, 3, 5]
    assert schedule["department_name"] == dept.name
    assert schedule["last_run_at"] is None

    again = client.get("/api/admin/auto-email", headers=headers).json()
    assert again["recipients"] == data["recipients"]
    assert again["department_schedules"] == data["department_schedules"]


def test_validation_errors_name_the_field(client, reset_auto_email):
    _, headers = create_user("super_admin")
    dept = create_department(name=f"Sales-{datetime.now().timestamp()}")

    cases = [
        (_config(_schedule(dept), recipients=[]), "recipients"),
        (_config(_schedule(dept), recipients=["not-an-email"]), "recipients"),
        (_config(), "department_schedules"),
        (_config(_schedule(dept), timezone="Mars/Olympus"), "timezone"),
        (_config(_schedule(dept, time_of_day="25:00")), "department_schedules[0].time_of_day"),
        (_config(_schedule(dept, days_of_week=[])), "department_schedules[0].days_of_week"),
        (_config(_schedule(dept, days_of_week=[7])), "department_schedules[0].days_of_week"),
    ]
    for payload, field in cases:
        resp = client.put("/api/admin/auto-email", json=payload, headers=headers)
        assert resp.status_code == 400, payload
        assert resp.json()["detail"]["field"] == field

    resp = client.put(
        "/api/admin/auto-email",
        json=_config(_schedule(dept, time_of_day="7:5")),
        headers=headers,
    )
    assert resp.json()["detail"]["message"] == f"Department {dept.name}: invalid time format"


def test_recipients_follow_the_mail_endpoint_rules(client, reset_auto_email):
    _, headers = create_user("super_admin")
    dept = create_department()
    for address in ("lead@example..com", "lead@@example.com", "lead@example"):
        resp = client.put(
            "/api/admin/auto-email",
            json=_config(_schedule(dept), recipients=[address]),
            headers=headers,
        )
        assert resp.status_code == 400, address
        assert resp.json()["detail"]["field"] == "recipients"
        mail = client.post(
            "/api/email/send",
            json={"to": [address], "subject": "s", "body": "b"},
            headers=headers,
        )
        assert mail.status_code == 422, address


def test_rejected_save_leaves_previous_config(client, reset_auto_email):
    _, headers = create_user("super_admin")
    dept = create_department()
    assert client.put("/api/admin/auto-email", json=_config(_schedule(dept)), headers=headers).status_code == 200
    bad = _config(_schedule(dept, time_of_day="noon"), recipients=["new@example.com"])
    assert client.put("/api/admin/auto-email", json=bad, headers=headers).status_code == 400
    data = client.get("/api/admin/auto-email", headers=headers).json()
    assert data["recipients"] == ["lead@example.com"]
    assert data["department_schedules"][0]["time_of_day"] == "18:00"


def test_disabled_config_may_be_incomplete(client, reset_auto_email):
    _, headers = create_user("super_admin")
    dept = create_department()
    payload = _config(_schedule(dept, enabled=False, days_of_week=[]), enabled=False, recipients=[])
    resp = client.put("/api/admin/auto-email", json=payload, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["enabled"] is False


def test_unknown_department_rejected(client, reset_auto_email):
    _, headers = create_user("super_admin")
    payload = _config(
        {"department_id": "00000000-0000-0000-0000-000000000000", "days_of_week": [1], "time_of_day": "09:00"}
    )
    resp = client.put("/api/admin/auto-email", json=payload, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "department_schedules[0].department_id"


def test_replace_keeps_last_run_for_retained_departments(client, db, reset_auto_email):
    _, headers = create_user("super_admin")
    kept = create_department()
    dropped = create_department()
    resp = client.put(
        "/api/admin/auto-email",
        json=_config(_schedule(kept), _schedule(dropped)),
        headers=headers,
    )
    assert resp.status_code == 200
    stamp = datetime(2024, 5, 7, 18, 0)
    for row in db.query(models.DepartmentSchedule).all():
        row.last_run_at = stamp
    db.commit()

    resp = client.put(
        "/api/admin/auto-email",
        json=_config(_schedule(kept, time_of_day="19:30")),
        headers=headers,
    )
    assert resp.status_code == 200
    schedules = resp.json()["department_schedules"]
    assert [s["department_id"] for s in schedules] == [str(kept.id)]
    assert schedules[0]["time_of_day"] == "19:30"
    assert schedules[0]["last_run_at"].startswith("2024-05-07T18:00")

    # re-adding the dropped department starts it fresh
    resp = client.put(
        "/api/admin/auto-email",
        json=_config(_schedule(kept), _schedule(dropped)),
        headers=headers,
    )
    by_id = {s["department_id"]: s for s in resp.json()["department_schedules"]}
    assert by_id[str(dropped.id)]["last_run_at"] is None


def test_department_rename_keeps_schedule(client, reset_auto_email):
    _, headers = create_user("super_admin")
    dept = create_department()
    client.put("/api/admin/auto-email", json=_config(_schedule(dept)), headers=headers)
    new_name = f"Renamed-{dept.name}"
    resp = client.put(f"/api/team/departments/{dept.id}", json={"name": new_name}, headers=headers)
    assert resp.status_code == 200
    schedules = client.get("/api/admin/auto-email", headers=headers).json()["department_schedules"]
    assert schedules[0]["department_id"] == str(dept.id)
    assert schedules[0]["department_name"] == new_name
