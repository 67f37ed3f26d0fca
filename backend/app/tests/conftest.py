import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from app.main import app
from app.database import Base, get_db
from app import auth, models, notify
from app.cache import get_response_cache

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


def _bootstrap_owner():
    # the first account in an empty database becomes super admin; claim it here
    db = TestingSessionLocal()
    db.add(
        models.User(
            email="owner@example.com",
            hashed_password=auth.get_password_hash("secret"),
            full_name="Owner",
            role=models.ROLE_SUPER_ADMIN,
        )
    )
    db.commit()
    db.close()


_bootstrap_owner()


@pytest.fixture(autouse=True)
def clean_side_channels():
    notify.EMAIL_OUTBOX.clear()
    get_response_cache().invalidate()
    yield
    notify.EMAIL_OUTBOX.clear()
    get_response_cache().invalidate()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def reset_auto_email():
    session = TestingSessionLocal()
    session.query(models.DepartmentSchedule).delete()
    session.query(models.AutoEmailConfig).delete()
    session.commit()
    session.close()
    yield


def auth_headers(email: str) -> dict:
    token = auth.create_access_token({"sub": email})
    return {"Authorization": f"Bearer {token}"}


def create_user(role: str = "user", department_id=None, full_name=None, is_active=True, **flags):
    """Insert a user directly and return (user, headers)."""
    db = TestingSessionLocal()
    email = f"{role}-{uuid.uuid4().hex[:10]}@example.com"
    user = models.User(
        email=email,
        hashed_password=auth.get_password_hash("secret"),
        full_name=full_name or email.split("@")[0],
        role=role,
        department_id=department_id,
        is_active=is_active,
        **flags,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    db.close()
    return user, auth_headers(email)


def create_department(name: str | None = None):
    db = TestingSessionLocal()
    dept = models.Department(name=name or f"Dept-{uuid.uuid4().hex[:8]}")
    db.add(dept)
    db.commit()
    db.refresh(dept)
    db.close()
    return dept
