from .conftest import client, db, reset_auto_email, create_user, create_department

from datetime import datetime, timezone

from app import models, schemas, tasks
from app.notify import EMAIL_OUTBOX
from app.services import scheduling


def _configure(db, dept):
    actor, _ = create_user("super_admin")
    task = models.Task(title="Prepare invoice", created_by=actor.id)
    member, _ = create_user(department_id=dept.id)
    db.add(task)
    db.flush()
    db.add(models.TaskAssignee(task_id=task.id, user_id=member.id))
    db.commit()
    scheduling.put_config(
        db,
        schemas.AutoEmailConfigIn(
            enabled=True,
            recipients=["lead@example.com"],
            timezone="UTC",
            department_schedules=[
                schemas.DepartmentScheduleIn(department_id=dept.id, days_of_week=[2], time_of_day="18:00")
            ],
        ),
        actor,
    )


def test_beat_runs_every_minute():
    entry = tasks.celery_app.conf.beat_schedule["auto-email-digest"]
    assert entry["task"] == "app.tasks.run_auto_email_tick"


def test_tick_sends_due_digest(db, reset_auto_email):
    dept = create_department()
    _configure(db, dept)
    report = tasks.run_auto_email_tick("2024-05-07T18:00:00+00:00")
    assert report["sent"] == [dept.name]
    assert len(EMAIL_OUTBOX) == 1


def test_tick_skips_while_another_instance_holds_lock(db, reset_auto_email):
    dept = create_department()
    _configure(db, dept)
    lock = tasks.get_redis().lock(tasks.AUTO_EMAIL_LOCK_NAME, timeout=30)
    assert lock.acquire(blocking=False)
    try:
        assert tasks.run_auto_email_tick("2024-05-07T18:00:00+00:00") is None
    finally:
        lock.release()
    assert EMAIL_OUTBOX == []
    wednesday = datetime(2024, 5, 8, 18, 0, tzinfo=timezone.utc)
    assert tasks.enqueue_auto_email_tick(wednesday)["sent"] == []


def test_tick_keeps_report_when_lock_expires_mid_run(db, reset_auto_email, monkeypatch):
    dept = create_department()
    _configure(db, dept)

    def slow_evaluation(session, now=None):
        # the lock times out while the evaluation is still running
        tasks.get_redis().delete(tasks.AUTO_EMAIL_LOCK_NAME)
        return scheduling.evaluate_schedules(session, now=now)

    monkeypatch.setattr(tasks, "evaluate_schedules", slow_evaluation)
    report = tasks.run_auto_email_tick("2024-05-07T18:00:00+00:00")
    assert report["sent"] == [dept.name]
    assert len(EMAIL_OUTBOX) == 1


def test_manual_run_endpoint(client, reset_auto_email, db):
    dept = create_department()
    _configure(db, dept)
    _, headers = create_user("super_admin")
    resp = client.post("/api/admin/auto-email/run?at=2024-05-07T18:00:00Z", headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["sent"] == [dept.name]
    again = client.post("/api/admin/auto-email/run?at=2024-05-07T18:00:00Z", headers=headers)
    assert again.json()["sent"] == []
