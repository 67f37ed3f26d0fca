from .conftest import client, create_user


def _create_task(client, headers, **overrides):
    payload = {"title": "Quarterly deck"}
    payload.update(overrides)
    resp = client.post("/api/tasks", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _request_review(client, task, reviewer, headers):
    return client.post(
        f"/api/tasks/{task['id']}/review", json={"reviewer_id": str(reviewer.id)}, headers=headers
    )


def test_review_request_pauses_task_and_notifies_reviewer(client):
    _, headers = create_user(full_name="Riley")
    reviewer, reviewer_headers = create_user()
    task = _create_task(client, headers)
    resp = _request_review(client, task, reviewer, headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["review_status"] == "REVIEW_REQUESTED"
    assert body["status"] == "ON_HOLD"
    assert body["reviewer"]["id"] == str(reviewer.id)
    assert body["review_requested_at"] is not None
    queue = client.get("/api/tasks/review", headers=reviewer_headers).json()
    assert [t["id"] for t in queue] == [task["id"]]
    notes = client.get("/api/notifications", headers=reviewer_headers).json()
    assert notes[0]["title"] == "Task Review Requested"
    assert notes[0]["message"] == "Riley asked you to review Quarterly deck"


def test_accept_then_approve_completes_task(client):
    requester, headers = create_user(full_name="Riley")
    reviewer, reviewer_headers = create_user(full_name="Sam")
    task = _create_task(client, headers)
    _request_review(client, task, reviewer, headers)
    base = f"/api/tasks/{task['id']}/review"
    accepted = client.post(f"{base}/accept", json={"accept": True}, headers=reviewer_headers)
    assert accepted.status_code == 200, accepted.text
    assert accepted.json()["review_status"] == "UNDER_REVIEW"
    done = client.post(
        f"{base}/respond", json={"action": "APPROVED", "comment": "Looks good"}, headers=reviewer_headers
    )
    assert done.status_code == 200, done.text
    body = done.json()
    assert body["review_status"] == "APPROVED"
    assert body["status"] == "COMPLETED"
    assert body["reviewed_by"]["id"] == str(reviewer.id)
    comments = client.get(f"/api/tasks/{task['id']}/comments", headers=headers).json()
    assert [c["content"] for c in comments] == ["Looks good"]
    notes = client.get("/api/notifications", headers=headers).json()
    assert notes[0]["title"] == "Task Review Completed"
    assert notes[0]["message"] == "Sam approved Quarterly deck"
    assert client.get("/api/tasks/review", headers=reviewer_headers).json() == []


def test_reject_sends_task_back_to_progress(client):
    _, headers = create_user()
    reviewer, reviewer_headers = create_user()
    task = _create_task(client, headers)
    _request_review(client, task, reviewer, headers)
    base = f"/api/tasks/{task['id']}/review"
    client.post(f"{base}/accept", json={}, headers=reviewer_headers)
    resp = client.post(f"{base}/respond", json={"action": "REJECTED"}, headers=reviewer_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["review_status"] == "REJECTED"
    assert resp.json()["status"] == "IN_PROGRESS"
    assert client.get(f"/api/tasks/{task['id']}/comments", headers=headers).json() == []


def test_declined_review_clears_reviewer(client):
    _, headers = create_user()
    reviewer, reviewer_headers = create_user(full_name="Sam")
    task = _create_task(client, headers)
    _request_review(client, task, reviewer, headers)
    resp = client.post(
        f"/api/tasks/{task['id']}/review/accept", json={"accept": False}, headers=reviewer_headers
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["review_status"] is None
    assert body["reviewer"] is None
    assert body["status"] == "IN_PROGRESS"
    notes = client.get("/api/notifications", headers=headers).json()
    assert notes[0]["message"] == "Sam declined to review Quarterly deck"
    # a fresh review can be requested afterwards
    assert _request_review(client, task, reviewer, headers).status_code == 200


def test_only_the_reviewer_can_act(client):
    _, headers = create_user()
    reviewer, _ = create_user()
    _, stranger_headers = create_user()
    task = _create_task(client, headers)
    _request_review(client, task, reviewer, headers)
    base = f"/api/tasks/{task['id']}/review"
    assert client.post(f"{base}/accept", json={}, headers=stranger_headers).status_code == 403
    assert client.post(f"{base}/accept", json={}, headers=headers).status_code == 403
    resp = client.post(f"{base}/respond", json={"action": "APPROVED"}, headers=stranger_headers)
    assert resp.status_code == 403


def test_out_of_order_transitions_conflict(client):
    _, headers = create_user()
    reviewer, reviewer_headers = create_user()
    task = _create_task(client, headers)
    base = f"/api/tasks/{task['id']}/review"
    _request_review(client, task, reviewer, headers)
    # respond before accepting
    resp = client.post(f"{base}/respond", json={"action": "APPROVED"}, headers=reviewer_headers)
    assert resp.status_code == 409
    assert _request_review(client, task, reviewer, headers).status_code == 409
    client.post(f"{base}/accept", json={}, headers=reviewer_headers)
    assert client.post(f"{base}/accept", json={}, headers=reviewer_headers).status_code == 409


def test_review_request_rules(client):
    creator, headers = create_user()
    _, stranger_headers = create_user()
    reviewer, _ = create_user()
    inactive, _ = create_user(is_active=False)
    task = _create_task(client, headers)
    assert _request_review(client, task, reviewer, stranger_headers).status_code == 403
    assert _request_review(client, task, creator, headers).status_code == 400
    assert _request_review(client, task, inactive, headers).status_code == 400
    resp = client.post(
        f"/api/tasks/{task['id']}/review",
        json={"reviewer_id": "00000000-0000-0000-0000-000000000000"},
        headers=headers,
    )
    assert resp.status_code == 404
    resp = client.post(
        f"/api/tasks/{task['id']}/review/respond", json={"action": "MAYBE"}, headers=headers
    )
    assert resp.status_code == 422
