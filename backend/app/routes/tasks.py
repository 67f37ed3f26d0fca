from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session, selectinload

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..activity import log_activity
from ..notify import notify_user
from ..rbac import ensure_task_editor, resolve_view_scope
from ..cache import ResponseCache, get_response_cache, user_key
from ..services import request_hub, task_review

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

CACHE_PREFIX = "/api/tasks"
ON_HOLD_ALIASES = {"ON_HOLD", "ONHOLD", "ON HOLD"}


def _task_query(db: Session):
    return db.query(models.Task).options(
        selectinload(models.Task.assignees).selectinload(models.TaskAssignee.user)
    )


def _user_out(user: Optional[models.User]) -> Optional[schemas.UserOut]:
    return schemas.UserOut.model_validate(user) if user is not None else None


def _task_out(task: models.Task) -> schemas.TaskOut:
    return schemas.TaskOut(
        id=task.id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        due_date=task.due_date,
        project_id=task.project_id,
        brand=task.brand,
        tags=task.tags,
        recurring=task.recurring,
        created_by=task.created_by,
        assignees=[schemas.UserOut.model_validate(a.user) for a in task.assignees if a.user],
        review_status=task.review_status,
        reviewer=_user_out(task.reviewer),
        review_requested_by=_user_out(task.review_requested_by),
        review_requested_at=task.review_requested_at,
        reviewed_by=_user_out(task.reviewed_by),
        reviewed_at=task.reviewed_at,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def _cached_list(cache: ResponseCache, key: str, build):
    cached = cache.get(key)
    if cached is not None:
        return cached
    tasks = [_task_out(t) for t in build()]
    cache.set(key, [t.model_dump(mode="json") for t in tasks])
    return tasks


def _get_task(db: Session, task_id: UUID) -> models.Task:
    task = _task_query(db).filter(models.Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _load_users(db: Session, user_ids: List[UUID]) -> List[models.User]:
    wanted = list(dict.fromkeys(user_ids))
    found = {u.id: u for u in db.query(models.User).filter(models.User.id.in_(wanted)).all()}
    missing = [str(uid) for uid in wanted if uid not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"Assignee not found: {', '.join(missing)}")
    return [found[uid] for uid in wanted]


def _notify_assigned(db: Session, task: models.Task, actor: models.User, users: List[models.User]):
    for assignee in users:
        if assignee.id == actor.id:
            continue
        notify_user(
            db,
            assignee.id,
            f"{actor.display_name} assigned you to {task.title}",
            title="Task assigned",
            category="task",
            meta={"task_id": str(task.id)},
        )


def _status(value) -> str:
    return str(value or "").upper().strip()


def _is_overdue(task: models.Task, now: datetime) -> bool:
    if not task.due_date or _status(task.status) == "COMPLETED":
        return False
    due = task.due_date
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    return due < now


@router.get("", response_model=List[schemas.TaskOut])
def list_tasks(
    status: Optional[schemas.TaskStatus] = None,
    project_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    q = _task_query(db).order_by(models.Task.created_at.desc())
    if status is None and project_id is None:
        return _cached_list(cache, user_key(CACHE_PREFIX, user.id), q.all)
    if status:
        q = q.filter(models.Task.status == status)
    if project_id:
        q = q.filter(models.Task.project_id == project_id)
    return [_task_out(t) for t in q.all()]


@router.get("/my", response_model=List[schemas.TaskOut])
def my_tasks(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    assigned = db.query(models.TaskAssignee.task_id).filter(models.TaskAssignee.user_id == user.id)
    q = _task_query(db).filter(models.Task.id.in_(assigned)).order_by(models.Task.created_at.desc())
    return _cached_list(cache, user_key(f"{CACHE_PREFIX}/my", user.id), q.all)


@router.get("/team", response_model=List[schemas.TaskOut])
def team_tasks(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    projects = db.query(models.ProjectMember.project_id).filter(models.ProjectMember.user_id == user.id)
    assigned = db.query(models.TaskAssignee.task_id).filter(models.TaskAssignee.user_id == user.id)
    q = (
        _task_query(db)
        .filter(models.Task.project_id.in_(projects), ~models.Task.id.in_(assigned))
        .order_by(models.Task.created_at.desc())
    )
    return _cached_list(cache, user_key(f"{CACHE_PREFIX}/team", user.id), q.all)


@router.get("/review", response_model=List[schemas.TaskOut])
def review_tasks(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    """Tasks waiting on the caller as reviewer."""
    return _cached_list(
        cache, user_key(f"{CACHE_PREFIX}/review", user.id), task_review.pending_reviews(db, user).all
    )


@router.get("/stats", response_model=schemas.TaskStatsOut)
def task_stats(
    view: str = "my",
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    scope = resolve_view_scope(db, user, view, "tasks")
    q = db.query(models.Task)
    if scope.user_ids is not None:
        assigned = db.query(models.TaskAssignee.task_id).filter(
            models.TaskAssignee.user_id.in_(scope.user_ids)
        )
        q = q.filter(models.Task.id.in_(assigned))
    tasks = q.all()
    statuses = [_status(t.status) for t in tasks]
    now = datetime.now(timezone.utc)
    return schemas.TaskStatsOut(
        total_tasks=len(tasks),
        completed_tasks=statuses.count("COMPLETED"),
        in_progress=statuses.count("IN_PROGRESS"),
        yts=statuses.count("YTS"),
        on_hold=sum(1 for s in statuses if s in ON_HOLD_ALIASES),
        overdue=sum(1 for t in tasks if _is_overdue(t, now)),
        recurring=sum(1 for t in tasks if t.recurring is not None),
    )


@router.post("", response_model=schemas.TaskOut)
def create_task(
    data: schemas.TaskCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    if data.project_id and not db.get(models.Project, data.project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    assignees = _load_users(db, data.assignees or [user.id])
    task = models.Task(**data.model_dump(exclude={"assignees"}), created_by=user.id)
    db.add(task)
    db.flush()
    for assignee in assignees:
        db.add(models.TaskAssignee(task_id=task.id, user_id=assignee.id))
    _notify_assigned(db, task, user, assignees)
    log_activity(
        db, user.id, "TASK_CREATED", "Task Created", f"Created task {task.title}", "task", task.id,
        meta={"assignees": [str(a.id) for a in assignees]},
    )
    db.commit()
    cache.invalidate(CACHE_PREFIX)
    cache.invalidate("/api/team")
    return _task_out(_get_task(db, task.id))


@router.get("/{task_id}", response_model=schemas.TaskOut)
def get_task(task_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return _task_out(_get_task(db, task_id))


@router.put("/{task_id}", response_model=schemas.TaskOut)
def update_task(
    task_id: UUID,
    data: schemas.TaskUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    task = _get_task(db, task_id)
    ensure_task_editor(user, task)
    changes = data.model_dump(exclude_unset=True)
    new_assignees = changes.pop("assignees", None)
    if changes.get("project_id") and not db.get(models.Project, changes["project_id"]):
        raise HTTPException(status_code=404, detail="Project not found")
    previous_status = task.status
    for k, v in changes.items():
        setattr(task, k, v)
    added: List[models.User] = []
    if new_assignees is not None:
        users = _load_users(db, new_assignees)
        current = {a.user_id for a in task.assignees}
        wanted = {u.id for u in users}
        task.assignees = [a for a in task.assignees if a.user_id in wanted]
        added = [u for u in users if u.id not in current]
        for assignee in added:
            task.assignees.append(models.TaskAssignee(task_id=task.id, user_id=assignee.id))
        _notify_assigned(db, task, user, added)
    if task.status != previous_status:
        request_hub.sync_from_task(db, task)
    completed = task.status == "COMPLETED" and previous_status != "COMPLETED"
    log_activity(
        db,
        user.id,
        "TASK_COMPLETED" if completed else "TASK_UPDATED",
        "Task Completed" if completed else "Task Updated",
        f"{'Completed' if completed else 'Updated'} task {task.title}",
        "task",
        task.id,
        meta={"fields": sorted(changes), "added_assignees": [str(u.id) for u in added]},
    )
    db.commit()
    cache.invalidate(CACHE_PREFIX)
    cache.invalidate("/api/team")
    return _task_out(_get_task(db, task_id))


@router.delete("/{task_id}", status_code=204)
def delete_task(
    task_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    task = _get_task(db, task_id)
    ensure_task_editor(user, task)
    log_activity(db, user.id, "TASK_DELETED", "Task Deleted", f"Deleted task {task.title}", "task", task.id)
    request_hub.detach_task(db, task.id)
    db.delete(task)
    db.commit()
    cache.invalidate(CACHE_PREFIX)
    cache.invalidate("/api/team")
    return Response(status_code=204)


@router.post("/{task_id}/review", response_model=schemas.TaskOut)
def request_review(
    task_id: UUID,
    data: schemas.ReviewRequestIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    task = _get_task(db, task_id)
    task_review.request_review(db, task, user, data.reviewer_id)
    db.commit()
    cache.invalidate(CACHE_PREFIX)
    cache.invalidate("/api/team")
    return _task_out(_get_task(db, task_id))


@router.post("/{task_id}/review/accept", response_model=schemas.TaskOut)
def accept_review(
    task_id: UUID,
    data: schemas.ReviewAcceptIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    task = _get_task(db, task_id)
    task_review.accept_review(db, task, user, data.accept)
    db.commit()
    cache.invalidate(CACHE_PREFIX)
    cache.invalidate("/api/team")
    return _task_out(_get_task(db, task_id))


@router.post("/{task_id}/review/respond", response_model=schemas.TaskOut)
def respond_to_review(
    task_id: UUID,
    data: schemas.ReviewRespondIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    task = _get_task(db, task_id)
    task_review.respond_to_review(db, task, user, data.action, data.comment)
    db.commit()
    cache.invalidate(CACHE_PREFIX)
    cache.invalidate("/api/team")
    return _task_out(_get_task(db, task_id))


@router.get("/{task_id}/comments", response_model=List[schemas.CommentOut])
def list_comments(task_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    _get_task(db, task_id)
    return (
        db.query(models.TaskComment)
        .filter(models.TaskComment.task_id == task_id)
        .order_by(models.TaskComment.created_at)
        .all()
    )


@router.post("/{task_id}/comments", response_model=schemas.CommentOut)
def add_comment(
    task_id: UUID,
    data: schemas.CommentCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    task = _get_task(db, task_id)
    mention_ids = list(dict.fromkeys(data.mentions))
    mentioned = (
        db.query(models.User).filter(models.User.id.in_(mention_ids)).all() if mention_ids else []
    )
    comment = models.TaskComment(
        task_id=task.id,
        user_id=user.id,
        content=data.content,
        mentions=[str(u.id) for u in mentioned],
    )
    db.add(comment)
    db.flush()
    for target in mentioned:
        if target.id == user.id:
            continue
        notify_user(
            db,
            target.id,
            f"{user.display_name} mentioned you on {task.title}",
            title="Mentioned in a comment",
            category="task",
            meta={"task_id": str(task.id), "comment_id": str(comment.id)},
        )
    log_activity(db, user.id, "TASK_COMMENTED", "Comment Added", f"Commented on {task.title}", "task", task.id)
    db.commit()
    db.refresh(comment)
    return comment
