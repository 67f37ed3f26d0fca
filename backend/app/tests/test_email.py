from .conftest import client, create_user

from app.notify import EMAIL_OUTBOX


def test_send_email_records_log(client):
    _, headers = create_user()
    resp = client.post(
        "/api/email/send",
        json={
            "to": ["Client@Example.com"],
            "cc": ["client@example.com", "boss@example.com"],
            "subject": "Weekly update",
            "body": "All green.",
        },
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    log = resp.json()
    assert log["status"] == "sent"
    assert log["to"] == ["client@example.com"]
    assert log["cc"] == ["boss@example.com"]
    assert EMAIL_OUTBOX == [(["client@example.com"], ["boss@example.com"], "Weekly update", "All green.")]
    logs = client.get("/api/email/logs", headers=headers).json()
    assert [entry["id"] for entry in logs] == [log["id"]]


def test_send_email_validates_payload(client):
    _, headers = create_user()
    resp = client.post("/api/email/send", json={"to": [], "subject": "s", "body": "b"}, headers=headers)
    assert resp.status_code == 422
    resp = client.post("/api/email/send", json={"to": ["nope"], "subject": "s", "body": "b"}, headers=headers)
    assert resp.status_code == 422
