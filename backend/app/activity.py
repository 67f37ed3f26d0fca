from datetime import datetime, timezone
from uuid import UUID
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload
from . import models


def log_activity(
    db: Session,
    user_id: str | UUID | None,
    type: str,
    action: str,
    description: str | None = None,
    entity_type: str | None = None,
    entity_id: str | UUID | None = None,
    meta: dict | None = None,
) -> models.ActivityLog:
    """Stage an activity row; the caller's commit persists it with its change."""
    log = models.ActivityLog(
        user_id=UUID(str(user_id)) if user_id else None,
        type=type,
        action=action,
        description=description,
        entity_type=entity_type,
        entity_id=UUID(str(entity_id)) if entity_id else None,
        meta=meta or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(log)
    return log


def list_activities(
    db: Session,
    user_ids: list[UUID] | None,
    limit: int = 20,
    skip: int = 0,
):
    """Activities by the given users or touching their assigned tasks and projects.

    ``user_ids`` of None returns everything.
    """
    query = db.query(models.ActivityLog).options(joinedload(models.ActivityLog.user))
    if user_ids is not None:
        task_ids = [
            row[0]
            for row in db.query(models.TaskAssignee.task_id)
            .filter(models.TaskAssignee.user_id.in_(user_ids))
            .distinct()
            .all()
        ]
        project_ids = [
            row[0]
            for row in db.query(models.ProjectMember.project_id)
            .filter(models.ProjectMember.user_id.in_(user_ids))
            .distinct()
            .all()
        ]
        clauses = [models.ActivityLog.user_id.in_(user_ids)]
        if task_ids:
            clauses.append(
                (models.ActivityLog.entity_type == "task") & models.ActivityLog.entity_id.in_(task_ids)
            )
        if project_ids:
            clauses.append(
                (models.ActivityLog.entity_type == "project")
                & models.ActivityLog.entity_id.in_(project_ids)
            )
        query = query.filter(or_(*clauses))
    return (
        query.order_by(models.ActivityLog.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
