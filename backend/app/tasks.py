import os
import datetime
from datetime import timezone
from celery import Celery
from celery.schedules import crontab
from celery.utils.log import get_task_logger
import redis

from .database import session_scope
from .services.scheduling import evaluate_schedules

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
AUTO_EMAIL_LOCK_NAME = "auto-email-tick"
AUTO_EMAIL_LOCK_TIMEOUT = int(os.getenv("AUTO_EMAIL_LOCK_TIMEOUT", "55"))

celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

_logger = get_task_logger(__name__)
_redis = None


def get_redis():
    global _redis
    if _redis is None:
        if os.getenv("TESTING") == "1":
            import fakeredis
            _redis = fakeredis.FakeRedis()
        else:
            _redis = redis.Redis.from_url(REDIS_URL)
    return _redis


celery_app.conf.beat_schedule = {
    "auto-email-digest": {
        "task": "app.tasks.run_auto_email_tick",
        "schedule": crontab(minute="*"),
    },
}


@celery_app.task(name="app.tasks.run_auto_email_tick")
def run_auto_email_tick(now: str | None = None) -> dict | None:
    """Evaluate department digests once per minute across all scheduler instances."""

    at = datetime.datetime.fromisoformat(now) if now else datetime.datetime.now(timezone.utc)
    lock = get_redis().lock(AUTO_EMAIL_LOCK_NAME, timeout=AUTO_EMAIL_LOCK_TIMEOUT)
    if not lock.acquire(blocking=False):
        _logger.info("Auto email tick already running elsewhere; skipping")
        return None
    try:
        with session_scope() as db:
            report = evaluate_schedules(db, now=at)
        if report.failed:
            _logger.warning("Digest failures: %s", report.errors)
        if report.sent or report.skipped_empty:
            _logger.info("Digests sent=%s skipped_empty=%s", report.sent, report.skipped_empty)
        return report.to_schema().model_dump(mode="json")
    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            _logger.warning(
                "Auto email lock expired after %ss before the tick finished", AUTO_EMAIL_LOCK_TIMEOUT
            )


def enqueue_auto_email_tick(now: datetime.datetime | None = None):
    stamp = now.isoformat() if now else None
    if celery_app.conf.task_always_eager:
        return run_auto_email_tick(stamp)
    return run_auto_email_tick.delay(stamp)
