"""Task review hand-offs between a requester and a chosen reviewer."""

from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from .. import models
from ..activity import log_activity
from ..notify import notify_user
from . import request_hub

# purpose: move a task through REVIEW_REQUESTED -> UNDER_REVIEW -> APPROVED | REJECTED
# inputs: task, acting user, reviewer choice or decision
# outputs: updated review columns, reviewer/requester notifications, activity entries

REVIEW_REQUESTED = "REVIEW_REQUESTED"
UNDER_REVIEW = "UNDER_REVIEW"
PENDING_REVIEW = (REVIEW_REQUESTED, UNDER_REVIEW)
# task status applied when a review settles
DECISION_STATUS = {"APPROVED": "COMPLETED", "REJECTED": "IN_PROGRESS"}


def _ensure_reviewer(task: models.Task, user: models.User) -> None:
    if task.reviewer_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Only the requested reviewer can do this"
        )


def _ensure_state(task: models.Task, expected: str) -> None:
    if task.review_status != expected:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Task review is {task.review_status or 'not requested'}",
        )


def _set_status(db: Session, task: models.Task, value: str) -> None:
    task.status = value
    request_hub.sync_from_task(db, task)


def pending_reviews(db: Session, user: models.User):
    return (
        db.query(models.Task)
        .filter(models.Task.reviewer_id == user.id, models.Task.review_status.in_(PENDING_REVIEW))
        .order_by(models.Task.review_requested_at.desc())
    )


def request_review(db: Session, task: models.Task, actor: models.User, reviewer_id: UUID) -> models.Task:
    """Pause the task and hand it to ``reviewer_id``.

    Creators, assignees and admins may ask for a review; a task has at most
    one pending review at a time.
    """

    assignee_ids = {a.user_id for a in task.assignees}
    if not (actor.is_admin or task.created_by == actor.id or actor.id in assignee_ids):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
    if task.review_status in PENDING_REVIEW:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Task already has a pending review")
    reviewer = db.get(models.User, reviewer_id)
    if reviewer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reviewer not found")
    if reviewer.id == actor.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot review your own request")
    if not reviewer.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reviewer account is inactive")

    task.review_status = REVIEW_REQUESTED
    task.reviewer_id = reviewer.id
    task.review_requested_by_id = actor.id
    task.review_requested_at = models.utcnow()
    task.reviewed_by_id = None
    task.reviewed_at = None
    _set_status(db, task, "ON_HOLD")
    notify_user(
        db,
        reviewer.id,
        f"{actor.display_name} asked you to review {task.title}",
        title="Task Review Requested",
        category="review",
        meta={"task_id": str(task.id)},
    )
    log_activity(
        db, actor.id, "TASK_REVIEW_REQUESTED", "Review Requested",
        f"Requested review of {task.title} from {reviewer.display_name}", "task", task.id,
        meta={"reviewer_id": str(reviewer.id)},
    )
    return task


def accept_review(db: Session, task: models.Task, reviewer: models.User, accept: bool) -> models.Task:
    _ensure_reviewer(task, reviewer)
    _ensure_state(task, REVIEW_REQUESTED)
    requester_id = task.review_requested_by_id
    if accept:
        task.review_status = UNDER_REVIEW
        message = f"{reviewer.display_name} started reviewing {task.title}"
        kind, action = "TASK_REVIEW_ACCEPTED", "Review Accepted"
    else:
        task.review_status = None
        task.reviewer_id = None
        task.review_requested_by_id = None
        task.review_requested_at = None
        _set_status(db, task, "IN_PROGRESS")
        message = f"{reviewer.display_name} declined to review {task.title}"
        kind, action = "TASK_REVIEW_DECLINED", "Review Declined"
    if requester_id:
        notify_user(db, requester_id, message, title=action, category="review", meta={"task_id": str(task.id)})
    log_activity(db, reviewer.id, kind, action, message, "task", task.id)
    return task


def respond_to_review(
    db: Session,
    task: models.Task,
    reviewer: models.User,
    decision: str,
    comment: str | None = None,
) -> models.Task:
    _ensure_reviewer(task, reviewer)
    _ensure_state(task, UNDER_REVIEW)
    task.review_status = decision
    task.reviewed_by_id = reviewer.id
    task.reviewed_at = models.utcnow()
    _set_status(db, task, DECISION_STATUS[decision])
    if comment and comment.strip():
        db.add(models.TaskComment(task_id=task.id, user_id=reviewer.id, content=comment.strip(), mentions=[]))
    verdict = "approved" if decision == "APPROVED" else "rejected"
    if task.review_requested_by_id:
        notify_user(
            db,
            task.review_requested_by_id,
            f"{reviewer.display_name} {verdict} {task.title}",
            title="Task Review Completed",
            category="review",
            meta={"task_id": str(task.id), "decision": decision},
        )
    log_activity(
        db, reviewer.id, "TASK_REVIEW_COMPLETED", "Review Completed",
        f"{verdict.capitalize()} {task.title}", "task", task.id, meta={"decision": decision},
    )
    return task
