"""Cross-department work requests: raising, routing and tracking."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..activity import log_activity
from ..notify import notify_user

# purpose: let admins send requests to other departments and turn them into assigned tasks
# inputs: RequestCreate payloads, status/deadline/assignment changes, task status changes
# outputs: Request rows, linked Task rows, notifications and activity entries

logger = logging.getLogger(__name__)

TASK_TO_REQUEST_STATUS = {
    "YTS": "APPROVED",
    "IN_PROGRESS": "IN_PROGRESS",
    "ON_HOLD": "WAITING_INFO",
    "COMPLETED": "COMPLETED",
    "RECURRING": "IN_PROGRESS",
}
REQUEST_TO_TASK_PRIORITY = {"CRITICAL": "HIGH", "HIGH": "HIGH", "MEDIUM": "MEDIUM", "LOW": "LOW"}


def find_department(db: Session, identifier: str) -> models.Department:
    """Resolve a department by id or, failing that, by name."""
    try:
        dept = db.get(models.Department, UUID(str(identifier)))
    except ValueError:
        dept = db.query(models.Department).filter(models.Department.name == identifier).first()
    if dept is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return dept


def department_admins(db: Session, dept: models.Department) -> list[models.User]:
    return (
        db.query(models.User)
        .filter(
            models.User.department_id == dept.id,
            models.User.role.in_((models.ROLE_ADMIN, models.ROLE_SUPER_ADMIN)),
            models.User.is_active == True,
        )
        .order_by(models.User.full_name, models.User.email)
        .all()
    )


def can_handle(user: models.User, req: models.Request) -> bool:
    """Assignee, admins of the receiving department and super admins act on a request."""
    if user.is_super_admin or req.assigned_to_id == user.id:
        return True
    return bool(
        user.is_admin and req.to_department_id and req.to_department_id == user.department_id
    )


def sent_requests(db: Session, user: models.User) -> list[models.Request]:
    return (
        db.query(models.Request)
        .filter(models.Request.created_by == user.id)
        .order_by(models.Request.created_at.desc())
        .all()
    )


def received_requests(db: Session, user: models.User) -> list[models.Request]:
    q = db.query(models.Request).filter(models.Request.created_by != user.id)
    if not user.is_super_admin:
        clauses = [models.Request.assigned_to_id == user.id]
        if user.is_admin and user.department_id:
            clauses.append(models.Request.to_department_id == user.department_id)
        q = q.filter(or_(*clauses))
    return q.order_by(models.Request.created_at.desc()).all()


def load_request(db: Session, request_id: UUID, user: models.User) -> models.Request:
    req = db.get(models.Request, request_id)
    if req is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    if req.created_by != user.id and not can_handle(user, req):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
    return req


def _ensure_handler(user: models.User, req: models.Request) -> None:
    if not can_handle(user, req):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")


def _resolve_assignee(db: Session, dept: models.Department | None, user_id: UUID) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignee not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assignee account is inactive")
    if dept is not None and user.department_id != dept.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Assignee must belong to {dept.name}",
        )
    return user


def create_request(db: Session, actor: models.User, data: schemas.RequestCreate) -> models.Request:
    dept = find_department(db, str(data.to_department_id)) if data.to_department_id else None
    assignee = _resolve_assignee(db, dept, data.assigned_to_id) if data.assigned_to_id else None
    req = models.Request(
        title=data.title.strip(),
        description=data.description.strip(),
        request_type=data.request_type,
        priority=data.priority,
        from_department_id=actor.department_id,
        to_department_id=dept.id if dept else None,
        created_by=actor.id,
        assigned_to_id=assignee.id if assignee else None,
        tentative_deadline=data.tentative_deadline,
    )
    db.add(req)
    db.flush()
    if assignee is not None:
        audience = [assignee]
    elif dept is not None:
        audience = department_admins(db, dept)
    else:
        audience = []
    for target in audience:
        if target.id == actor.id:
            continue
        notify_user(
            db,
            target.id,
            f"{actor.display_name} sent a {data.priority.lower()} priority request: {req.title}",
            title="New request",
            category="request",
            meta={"request_id": str(req.id)},
        )
    log_activity(
        db, actor.id, "REQUEST_CREATED", "Request Created", f"Raised request {req.title}",
        "request", req.id, meta={"to_department_id": str(dept.id) if dept else None},
    )
    return req


def update_status(db: Session, req: models.Request, actor: models.User, value: str) -> models.Request:
    _ensure_handler(actor, req)
    new_status = TASK_TO_REQUEST_STATUS.get(value, value)
    previous = req.status
    req.status = new_status
    if req.created_by != actor.id:
        notify_user(
            db,
            req.created_by,
            f"{actor.display_name} moved your request {req.title} to {new_status}",
            title="Request updated",
            category="request",
            meta={"request_id": str(req.id), "status": new_status},
        )
    log_activity(
        db, actor.id, "REQUEST_STATUS_UPDATED", "Request Updated",
        f"Request {req.title}: {previous} -> {new_status}", "request", req.id,
    )
    return req


def update_deadline(
    db: Session, req: models.Request, actor: models.User, deadline: datetime | None
) -> models.Request:
    if req.created_by != actor.id:
        _ensure_handler(actor, req)
    req.tentative_deadline = deadline
    if req.task is not None:
        req.task.due_date = deadline
    log_activity(
        db, actor.id, "REQUEST_DEADLINE_UPDATED", "Request Updated",
        f"Set deadline of {req.title}", "request", req.id,
        meta={"tentative_deadline": deadline.isoformat() if deadline else None},
    )
    return req


def assign_request(
    db: Session, req: models.Request, actor: models.User, user_id: UUID | None
) -> models.Request:
    """Assign the request, opening a task for the assignee; ``None`` unassigns."""

    _ensure_handler(actor, req)
    if user_id is None:
        req.assigned_to_id = None
        log_activity(db, actor.id, "REQUEST_UNASSIGNED", "Request Unassigned", f"Unassigned {req.title}", "request", req.id)
        return req

    assignee = _resolve_assignee(db, req.to_department, user_id)
    task = models.Task(
        title=f"[Request] {req.title}",
        description=f"Request Type: {req.request_type}\n\n{req.description}",
        status="COMPLETED" if req.status == "COMPLETED" else "IN_PROGRESS",
        priority=REQUEST_TO_TASK_PRIORITY.get(req.priority, "MEDIUM"),
        due_date=req.tentative_deadline,
        created_by=actor.id,
    )
    db.add(task)
    db.flush()
    db.add(models.TaskAssignee(task_id=task.id, user_id=assignee.id))
    req.assigned_to_id = assignee.id
    req.task_id = task.id
    req.status = TASK_TO_REQUEST_STATUS[task.status]
    if assignee.id != actor.id:
        notify_user(
            db,
            assignee.id,
            f"{actor.display_name} assigned you request {req.title}",
            title="Request assigned",
            category="request",
            meta={"request_id": str(req.id), "task_id": str(task.id)},
        )
    log_activity(
        db, actor.id, "REQUEST_ASSIGNED", "Request Assigned",
        f"Assigned {req.title} to {assignee.display_name}", "request", req.id,
        meta={"task_id": str(task.id), "assignee_id": str(assignee.id)},
    )
    return req


def delete_request(db: Session, req: models.Request, actor: models.User) -> None:
    if req.created_by != actor.id and not actor.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the sender can delete a request")
    log_activity(db, actor.id, "REQUEST_DELETED", "Request Deleted", f"Deleted request {req.title}", "request", req.id)
    db.delete(req)


def sync_from_task(db: Session, task: models.Task) -> None:
    """Mirror a linked task's status onto the requests it was opened for."""
    mapped = TASK_TO_REQUEST_STATUS.get(str(task.status or "").upper())
    if mapped is None or task.id is None:
        return
    for req in db.query(models.Request).filter(models.Request.task_id == task.id).all():
        if req.status != mapped:
            logger.info("Request %s follows task %s to %s", req.id, task.id, mapped)
            req.status = mapped


def detach_task(db: Session, task_id: UUID) -> None:
    db.query(models.Request).filter(models.Request.task_id == task_id).update(
        {"task_id": None}, synchronize_session="fetch"
    )


def detach_department(db: Session, department_id: UUID) -> None:
    db.query(models.Request).filter(models.Request.from_department_id == department_id).update(
        {"from_department_id": None}, synchronize_session="fetch"
    )
    db.query(models.Request).filter(models.Request.to_department_id == department_id).update(
        {"to_department_id": None}, synchronize_session="fetch"
    )
