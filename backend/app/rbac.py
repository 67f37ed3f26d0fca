from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import models

# purpose: centralize role and ownership checks shared by task, project and vault routes


@dataclass(frozen=True)
class ViewScope:
    """Resolved audience for the my / department / all-departments views."""

    view: str
    user_ids: list[UUID] | None  # None means every user


def resolve_view_scope(db: Session, user: models.User, view: str, noun: str) -> ViewScope:
    if view == "department":
        if not user.is_admin:
            raise HTTPException(status_code=403, detail=f"Only admins can access department {noun}")
        if not user.department_id:
            raise HTTPException(status_code=400, detail="User does not have a department assigned")
        rows = (
            db.query(models.User.id)
            .filter(models.User.department_id == user.department_id, models.User.is_active == True)
            .all()
        )
        return ViewScope(view="department", user_ids=[r[0] for r in rows])
    if view == "all-departments":
        if not user.is_super_admin:
            raise HTTPException(
                status_code=403, detail=f"Only super admins can access all departments {noun}"
            )
        return ViewScope(view="all-departments", user_ids=None)
    return ViewScope(view="my", user_ids=[user.id])


def ensure_project_member(db: Session, user: models.User, project_id: UUID, roles: list[str] | tuple[str, ...] = ("member", "owner")):
    if user.is_admin:
        return
    membership = (
        db.query(models.ProjectMember)
        .filter(models.ProjectMember.project_id == project_id, models.ProjectMember.user_id == user.id)
        .first()
    )
    if not membership or membership.role not in roles:
        raise HTTPException(status_code=403, detail="Not authorized")


def ensure_task_editor(user: models.User, task: models.Task) -> None:
    if user.is_admin or task.created_by == user.id:
        return
    raise HTTPException(status_code=403, detail="Not authorized")


def can_manage_record(user: models.User, record) -> bool:
    """Creators and admins manage a vault record and its collaborators."""
    return user.is_admin or record.created_by == user.id


def ensure_feature_access(user: models.User, flag: str) -> None:
    if user.is_admin or getattr(user, flag, False):
        return
    raise HTTPException(status_code=403, detail="Feature not enabled for this user")


def active_membership(record, user: models.User):
    for member in record.members:
        if member.user_id == user.id and member.is_active:
            return member
    return None


def ensure_record_access(
    user: models.User,
    record,
    roles: list[str] | tuple[str, ...] = ("viewer", "editor"),
):
    """Return the record if the user manages it or holds an active membership in ``roles``."""
    if can_manage_record(user, record):
        return record
    member = active_membership(record, user)
    if member and member.role in roles:
        return record
    raise HTTPException(status_code=403, detail="Not authorized")
