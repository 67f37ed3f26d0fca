from __future__ import annotations

from typing import Any

import requests

from ..cache import ResponseCache, TTLResponseCache

# purpose: thin HTTP client for the WorkDesk API with read-through caching of list endpoints
# inputs: base url, any session exposing requests-style .request(), an injected ResponseCache
# outputs: decoded JSON payloads; ApiError for non-2xx responses


class ApiError(RuntimeError):
    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class ApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        session=None,
        cache: ResponseCache | None = None,
        token: str | None = None,
        timeout: float = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.cache = cache if cache is not None else TTLResponseCache()
        self.token = token
        self.timeout = timeout

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def request(self, method: str, path: str, **kwargs) -> Any:
        kwargs.setdefault("headers", {}).update(self._headers())
        if isinstance(self.session, requests.Session):
            kwargs.setdefault("timeout", self.timeout)
        r = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        if r.status_code >= 400:
            try:
                detail = r.json().get("detail")
            except ValueError:
                detail = r.text
            raise ApiError(r.status_code, detail)
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    def cached_get(self, path: str) -> Any:
        cached = self.cache.get(path)
        if cached is not None:
            return cached
        data = self.request("GET", path)
        self.cache.set(path, data)
        return data

    def write(self, method: str, path: str, invalidates: tuple[str, ...], **kwargs) -> Any:
        try:
            return self.request(method, path, **kwargs)
        finally:
            for prefix in invalidates:
                self.cache.invalidate(prefix)

    # auth

    def login(self, email: str, password: str) -> str:
        data = self.request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["access_token"]
        self.cache.invalidate()
        return self.token

    def me(self) -> dict:
        return self.request("GET", "/api/auth/me")

    # tasks and projects

    def list_tasks(self) -> list:
        return self.cached_get("/api/tasks")

    def my_tasks(self) -> list:
        return self.cached_get("/api/tasks/my")

    def task_stats(self, view: str = "my") -> dict:
        return self.request("GET", "/api/tasks/stats", params={"view": view})

    def create_task(self, payload: dict) -> dict:
        return self.write("POST", "/api/tasks", ("/api/tasks", "/api/team"), json=payload)

    def update_task(self, task_id, payload: dict) -> dict:
        return self.write("PUT", f"/api/tasks/{task_id}", ("/api/tasks", "/api/team"), json=payload)

    def delete_task(self, task_id) -> None:
        self.write("DELETE", f"/api/tasks/{task_id}", ("/api/tasks", "/api/team"))

    def review_tasks(self) -> list:
        return self.cached_get("/api/tasks/review")

    def request_review(self, task_id, reviewer_id) -> dict:
        return self.write(
            "POST", f"/api/tasks/{task_id}/review", ("/api/tasks", "/api/team"),
            json={"reviewer_id": str(reviewer_id)},
        )

    def accept_review(self, task_id, accept: bool = True) -> dict:
        return self.write(
            "POST", f"/api/tasks/{task_id}/review/accept", ("/api/tasks", "/api/team"), json={"accept": accept}
        )

    def respond_to_review(self, task_id, action: str, comment: str | None = None) -> dict:
        return self.write(
            "POST",
            f"/api/tasks/{task_id}/review/respond",
            ("/api/tasks", "/api/team"),
            json={"action": action, "comment": comment},
        )

    def list_projects(self) -> list:
        return self.cached_get("/api/projects")

    def create_project(self, payload: dict) -> dict:
        return self.write("POST", "/api/projects", ("/api/projects",), json=payload)

    def team_members(self) -> list:
        return self.cached_get("/api/team/members")

    # vaults: kind is "credentials" or "subscriptions"

    def list_records(self, kind: str) -> list:
        return self.cached_get(f"/api/{kind}")

    def create_record(self, kind: str, payload: dict) -> dict:
        return self.write("POST", f"/api/{kind}", (f"/api/{kind}",), json=payload)

    def update_record(self, kind: str, record_id, payload: dict) -> dict:
        return self.write("PUT", f"/api/{kind}/{record_id}", (f"/api/{kind}",), json=payload)

    def add_collaborator(self, kind: str, record_id, user_id, role: str = "viewer") -> dict:
        return self.write(
            "POST",
            f"/api/{kind}/{record_id}/members",
            (f"/api/{kind}",),
            json={"user_id": str(user_id), "role": role},
        )

    def remove_collaborator(self, kind: str, record_id, membership_id) -> None:
        self.write("DELETE", f"/api/{kind}/{record_id}/members/{membership_id}", (f"/api/{kind}",))

    def request_collaboration(self, kind: str, resource_ids, member_ids, role: str = "viewer") -> dict:
        data = self.write(
            "POST",
            f"/api/{kind}/collaboration-requests",
            (f"/api/{kind}",),
            json={
                "resource_ids": [str(r) for r in resource_ids],
                "member_ids": [str(m) for m in member_ids],
                "role": role,
            },
        )
        return data["summary"]

    # request hub

    def sent_requests(self) -> list:
        return self.cached_get("/api/requests/sent")

    def received_requests(self) -> list:
        return self.cached_get("/api/requests/received")

    def department_admins(self, department) -> list:
        return self.request("GET", f"/api/team/departments/{department}/admins")

    def create_request(self, payload: dict) -> dict:
        return self.write("POST", "/api/requests", ("/api/requests",), json=payload)

    def update_request_status(self, request_id, status: str) -> dict:
        return self.write(
            "PUT", f"/api/requests/{request_id}/status", ("/api/requests",), json={"status": status}
        )

    def assign_request(self, request_id, user_id) -> dict:
        return self.write(
            "PUT",
            f"/api/requests/{request_id}/assignment",
            ("/api/requests", "/api/tasks", "/api/team"),
            json={"assigned_to_id": str(user_id) if user_id else None},
        )

    def delete_request(self, request_id) -> None:
        self.write("DELETE", f"/api/requests/{request_id}", ("/api/requests",))

    # auto email

    def get_auto_email_config(self) -> dict:
        return self.request("GET", "/api/admin/auto-email")

    def save_auto_email_config(self, config: dict) -> dict:
        return self.request("PUT", "/api/admin/auto-email", json=config)

    def run_auto_email(self) -> dict:
        return self.request("POST", "/api/admin/auto-email/run")
