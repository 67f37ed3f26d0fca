from .conftest import client, db, create_user

from app import models
from app.notify import notify_user


def _seed(db, user, count):
    for i in range(count):
        notify_user(db, user.id, f"message {i}", title="Heads up", category="task")
    db.commit()


def test_unread_count_and_mark_read(client, db):
    user, headers = create_user()
    _seed(db, user, 3)
    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"count": 3}

    notes = client.get("/api/notifications", headers=headers).json()
    assert len(notes) == 3
    resp = client.put(f"/api/notifications/{notes[0]['id']}/read", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["is_read"] is True
    assert client.get("/api/notifications/unread-count", headers=headers).json()["count"] == 2

    unread = client.get("/api/notifications?is_read=false", headers=headers).json()
    assert len(unread) == 2

    assert client.put("/api/notifications/read-all", headers=headers).json() == {"count": 0}
    assert client.get("/api/notifications/unread-count", headers=headers).json()["count"] == 0


def test_cannot_read_someone_elses_notification(client, db):
    owner, _ = create_user()
    _, other_headers = create_user()
    _seed(db, owner, 1)
    note = db.query(models.Notification).filter_by(user_id=owner.id).first()
    assert client.put(f"/api/notifications/{note.id}/read", headers=other_headers).status_code == 404
