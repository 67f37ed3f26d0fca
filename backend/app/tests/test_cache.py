from .conftest import client, db, create_user

from datetime import datetime, timedelta, timezone

from app import models
from app.cache import TTLResponseCache, get_response_cache, user_key


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLResponseCache(ttl_seconds=300, clock=clock)
    cache.set("/api/tasks", [1])
    clock.now += timedelta(seconds=299)
    assert cache.get("/api/tasks") == [1]
    clock.now += timedelta(seconds=1)
    assert cache.get("/api/tasks") is None
    assert len(cache) == 0


def test_values_are_copied():
    cache = TTLResponseCache()
    payload = {"items": [1]}
    cache.set("k", payload)
    payload["items"].append(2)
    got = cache.get("k")
    got["items"].append(3)
    assert cache.get("k") == {"items": [1]}


def test_invalidate_by_prefix():
    cache = TTLResponseCache()
    cache.set(user_key("/api/tasks", 1), "a")
    cache.set(user_key("/api/tasks/my", 1), "b")
    cache.set(user_key("/api/projects", 1), "c")
    cache.invalidate("/api/tasks")
    assert len(cache) == 1
    cache.invalidate()
    assert len(cache) == 0


def test_list_endpoint_served_from_cache_until_write(client, db):
    user, headers = create_user()
    assert client.get("/api/tasks/my", headers=headers).json() == []
    assert get_response_cache().get(user_key("/api/tasks/my", user.id)) == []

    # a row written behind the API's back stays invisible while cached
    task = models.Task(title="sneaky", created_by=user.id)
    db.add(task)
    db.flush()
    db.add(models.TaskAssignee(task_id=task.id, user_id=user.id))
    db.commit()
    assert client.get("/api/tasks/my", headers=headers).json() == []

    client.post("/api/tasks", json={"title": "fresh"}, headers=headers)
    titles = {t["title"] for t in client.get("/api/tasks/my", headers=headers).json()}
    assert titles == {"sneaky", "fresh"}
