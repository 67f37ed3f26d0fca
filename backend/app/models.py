import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
    Float,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"

PRIVACY_PUBLIC = "PUBLIC"
PRIVACY_PRIVATE = "PRIVATE"


class Department(Base):
    __tablename__ = "departments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)
    description = Column(String)
    created_at = Column(DateTime, default=utcnow)

    users = relationship("User", back_populates="department")
    schedule = relationship(
        "DepartmentSchedule",
        back_populates="department",
        cascade="all, delete-orphan",
        uselist=False,
    )


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String)
    role = Column(String, default=ROLE_USER, nullable=False)
    department_id = Column(
        UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    is_active = Column(Boolean, default=True)
    has_credential_access = Column(Boolean, default=False)
    has_subscription_access = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    department = relationship("Department", back_populates="users")
    projects = relationship("ProjectMember", back_populates="user")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_SUPER_ADMIN)

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class Project(Base):
    __tablename__ = "projects"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(String)
    status = Column(String, default="ACTIVE", nullable=False)
    start_date = Column(DateTime)
    end_date = Column(DateTime)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    members = relationship(
        "ProjectMember", back_populates="project", cascade="all, delete-orphan"
    )
    tasks = relationship("Task", back_populates="project")


class ProjectMember(Base):
    __tablename__ = "project_members"
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True)
    role = Column(String, default="member")

    project = relationship("Project", back_populates="members")
    user = relationship("User", back_populates="projects")


class Task(Base):
    __tablename__ = "tasks"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text)
    status = Column(String, default="IN_PROGRESS", nullable=False)
    priority = Column(String, default="MEDIUM", nullable=False)
    due_date = Column(DateTime)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    brand = Column(String)
    tags = Column(String)
    recurring = Column(String)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    # review workflow: REVIEW_REQUESTED -> UNDER_REVIEW -> APPROVED | REJECTED
    review_status = Column(String, nullable=True)
    reviewer_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    review_requested_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    review_requested_at = Column(DateTime, nullable=True)
    reviewed_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    project = relationship("Project", back_populates="tasks")
    creator = relationship("User", foreign_keys=[created_by])
    reviewer = relationship("User", foreign_keys=[reviewer_id])
    review_requested_by = relationship("User", foreign_keys=[review_requested_by_id])
    reviewed_by = relationship("User", foreign_keys=[reviewed_by_id])
    assignees = relationship(
        "TaskAssignee", back_populates="task", cascade="all, delete-orphan"
    )
    comments = relationship(
        "TaskComment", back_populates="task", cascade="all, delete-orphan"
    )


class TaskAssignee(Base):
    __tablename__ = "task_assignees"
    task_id = Column(UUID(as_uuid=True), ForeignKey("tasks.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True)
    assigned_at = Column(DateTime, default=utcnow)

    task = relationship("Task", back_populates="assignees")
    user = relationship("User")


class TaskComment(Base):
    __tablename__ = "task_comments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    task_id = Column(UUID(as_uuid=True), ForeignKey("tasks.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    mentions = Column(JSON, default=list)
    created_at = Column(DateTime, default=utcnow)

    task = relationship("Task", back_populates="comments")
    author = relationship("User")


class Credential(Base):
    __tablename__ = "credentials"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company = Column(String, nullable=False)
    geography = Column(String)
    platform = Column(String, nullable=False)
    url = Column(String)
    username = Column(String, nullable=False)
    password = Column(String, nullable=False)
    authenticator = Column(String)
    notes = Column(Text)
    privacy_level = Column(String, default=PRIVACY_PRIVATE, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[created_by])
    members = relationship(
        "CredentialMember", back_populates="credential", cascade="all, delete-orphan"
    )


class CredentialMember(Base):
    __tablename__ = "credential_members"
    __table_args__ = (sa.UniqueConstraint("credential_id", "user_id"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    credential_id = Column(UUID(as_uuid=True), ForeignKey("credentials.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    role = Column(String, default="viewer", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    credential = relationship("Credential", back_populates="members")
    user = relationship("User")


class Subscription(Base):
    __tablename__ = "subscriptions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    url = Column(String)
    amount = Column(Float, default=0.0, nullable=False)
    currency = Column(String, default="USD", nullable=False)
    billing_cycle = Column(String, default="MONTHLY", nullable=False)
    status = Column(String, default="ACTIVE", nullable=False)
    start_date = Column(DateTime)
    renewal_date = Column(DateTime)
    description = Column(Text)
    notes = Column(Text)
    privacy_level = Column(String, default=PRIVACY_PRIVATE, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[created_by])
    members = relationship(
        "SubscriptionMember", back_populates="subscription", cascade="all, delete-orphan"
    )


class SubscriptionMember(Base):
    __tablename__ = "subscription_members"
    __table_args__ = (sa.UniqueConstraint("subscription_id", "user_id"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    subscription_id = Column(UUID(as_uuid=True), ForeignKey("subscriptions.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    role = Column(String, default="viewer", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    subscription = relationship("Subscription", back_populates="members")
    user = relationship("User")


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    message = Column(String, nullable=False)
    title = Column(String, nullable=True)
    category = Column(String, nullable=True)  # task, project, collaboration, system
    is_read = Column(Boolean, default=False)
    meta = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
    user = relationship("User", back_populates="notifications")


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String, nullable=False)
    action = Column(String, nullable=False)
    description = Column(String)
    entity_type = Column(String)
    entity_id = Column(UUID(as_uuid=True))
    meta = Column(JSON, default=dict)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User")


class EmailLog(Base):
    __tablename__ = "email_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    to = Column(JSON, default=list)
    cc = Column(JSON, default=list)
    subject = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    status = Column(String, default="sent", nullable=False)
    error = Column(String)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class AutoEmailConfig(Base):
    __tablename__ = "auto_email_configs"
    id = Column(Integer, primary_key=True)
    enabled = Column(Boolean, default=False, nullable=False)
    recipients = Column(JSON, default=list)
    timezone = Column(String, default="Asia/Kolkata", nullable=False)
    send_when_empty = Column(Boolean, default=False, nullable=False)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    schedules = relationship(
        "DepartmentSchedule",
        back_populates="config",
        cascade="all, delete-orphan",
        order_by="DepartmentSchedule.position",
    )


class DepartmentSchedule(Base):
    __tablename__ = "department_schedules"
    __table_args__ = (sa.UniqueConstraint("config_id", "department_id"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    config_id = Column(Integer, ForeignKey("auto_email_configs.id"), nullable=False)
    department_id = Column(
        UUID(as_uuid=True), ForeignKey("departments.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, default=0, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    days_of_week = Column(JSON, default=list)
    time_of_day = Column(String, default="18:00", nullable=False)
    last_run_at = Column(DateTime, nullable=True)

    config = relationship("AutoEmailConfig", back_populates="schedules")
    department = relationship("Department", back_populates="schedule")


class Request(Base):
    """Cross-department work request raised in the request hub."""

    __tablename__ = "requests"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    request_type = Column(String, default="OTHER", nullable=False)
    priority = Column(String, default="MEDIUM", nullable=False)
    status = Column(String, default="SUBMITTED", nullable=False)
    from_department_id = Column(
        UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    to_department_id = Column(
        UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    assigned_to_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    task_id = Column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    tentative_deadline = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[created_by])
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    from_department = relationship("Department", foreign_keys=[from_department_id])
    to_department = relationship("Department", foreign_keys=[to_department_id])
    task = relationship("Task")
