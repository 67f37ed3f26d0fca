from .conftest import client, create_user

import uuid
from app.main import app, _depends_on
from app.auth import get_current_user

PUBLIC_PATHS = {
    "/api/auth/login",
    "/api/auth/register",
    "/metrics",
}


def test_all_routes_protected():
    for route in app.routes:
        path = getattr(route, 'path', '')
        if not path.startswith('/api'):
            continue
        if path in PUBLIC_PATHS:
            continue
        if not hasattr(route, 'dependant'):
            continue
        assert _depends_on(route.dependant, get_current_user), f"{path} missing authentication"


def test_admin_routes_are_gated(client):
    resp = client.post("/api/admin/auto-email/run")
    assert resp.status_code == 401


def test_metrics_label_requests_by_route_template(client):
    _, headers = create_user()
    task_id = uuid.uuid4()
    for _ in range(2):
        assert client.get(f"/api/tasks/{uuid.uuid4()}", headers=headers).status_code == 404
    client.get(f"/api/tasks/{task_id}", headers=headers)
    body = client.get("/metrics").text
    assert 'endpoint="/api/tasks/{task_id}"' in body
    assert str(task_id) not in body
