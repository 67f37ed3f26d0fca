from .conftest import client, create_user
import uuid


def test_register_and_login(client):
    email = f"Person-{uuid.uuid4().hex[:6]}@Example.com"
    resp = client.post("/api/auth/register", json={"email": email, "password": "secret", "full_name": "P"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    assert token
    resp2 = client.post("/api/auth/login", json={"email": email.lower(), "password": "secret"})
    assert resp2.status_code == 200
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {resp2.json()['access_token']}"})
    assert me.status_code == 200
    profile = me.json()
    assert profile["email"] == email.lower()
    # the bootstrap owner already exists, so later sign-ups are plain users
    assert profile["role"] == "user"
    assert profile["has_credential_access"] is False


def test_duplicate_and_bad_credentials(client):
    email = f"dup-{uuid.uuid4().hex[:6]}@example.com"
    client.post("/api/auth/register", json={"email": email, "password": "secret"})
    assert client.post("/api/auth/register", json={"email": email, "password": "x"}).status_code == 400
    assert client.post("/api/auth/login", json={"email": email, "password": "wrong"}).status_code == 401


def test_inactive_user_is_locked_out(client):
    user, headers = create_user(is_active=False)
    assert client.get("/api/auth/me", headers=headers).status_code == 401
    assert client.post("/api/auth/login", json={"email": user.email, "password": "secret"}).status_code == 403


def test_missing_or_garbage_token(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401
