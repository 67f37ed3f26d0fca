from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from ..database import get_db
from ..models import Project, ProjectMember, User
from ..schemas import ProjectCreate, ProjectUpdate, ProjectOut, ProjectMemberAdd, UserOut
from ..auth import get_current_user
from ..rbac import ensure_project_member
from ..activity import log_activity
from ..notify import notify_user
from ..cache import ResponseCache, get_response_cache, user_key

router = APIRouter(prefix="/api/projects", tags=["projects"])

CACHE_PREFIX = "/api/projects"


@router.post("", response_model=ProjectOut)
def create_project(
    project: ProjectCreate,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    db_proj = Project(**project.model_dump(), created_by=user.id)
    db.add(db_proj)
    db.flush()
    db.add(ProjectMember(project_id=db_proj.id, user_id=user.id, role="owner"))
    log_activity(db, user.id, "PROJECT_CREATED", "Project Created", f"Created project {db_proj.name}", "project", db_proj.id)
    db.commit()
    db.refresh(db_proj)
    cache.invalidate(CACHE_PREFIX)
    return db_proj


@router.get("", response_model=list[ProjectOut])
def list_projects(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    key = user_key(CACHE_PREFIX, user.id)
    if status is None:
        cached = cache.get(key)
        if cached is not None:
            return cached
    q = db.query(Project)
    if not user.is_admin:
        mine = db.query(ProjectMember.project_id).filter(ProjectMember.user_id == user.id)
        q = q.filter(or_(Project.created_by == user.id, Project.id.in_(mine)))
    if status:
        q = q.filter(Project.status == status)
    projects = [ProjectOut.model_validate(p) for p in q.order_by(Project.created_at.desc()).all()]
    if status is None:
        cache.set(key, [p.model_dump(mode="json") for p in projects])
    return projects


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(project_id: UUID, db: Session = Depends(get_db), user=Depends(get_current_user)):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    if proj.created_by != user.id:
        ensure_project_member(db, user, project_id)
    return proj


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: UUID,
    project: ProjectUpdate,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    ensure_project_member(db, user, project_id, ("owner",))
    changes = project.model_dump(exclude_unset=True)
    for k, v in changes.items():
        setattr(proj, k, v)
    log_activity(
        db, user.id, "PROJECT_UPDATED", "Project Updated", f"Updated project {proj.name}",
        "project", proj.id, meta={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(proj)
    cache.invalidate(CACHE_PREFIX)
    return proj


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    ensure_project_member(db, user, project_id, ("owner",))
    for task in proj.tasks:
        task.project_id = None
    log_activity(db, user.id, "PROJECT_DELETED", "Project Deleted", f"Deleted project {proj.name}", "project", proj.id)
    db.delete(proj)
    db.commit()
    cache.invalidate(CACHE_PREFIX)
    cache.invalidate("/api/tasks")
    return Response(status_code=204)


@router.get("/{project_id}/members", response_model=list[UserOut])
def list_project_members(project_id: UUID, db: Session = Depends(get_db), user=Depends(get_current_user)):
    ensure_project_member(db, user, project_id)
    return (
        db.query(User)
        .join(ProjectMember, ProjectMember.user_id == User.id)
        .filter(ProjectMember.project_id == project_id)
        .order_by(User.email)
        .all()
    )


@router.post("/{project_id}/members", status_code=204)
def add_project_member(
    project_id: UUID,
    data: ProjectMemberAdd,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    proj = db.get(Project, project_id)
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    ensure_project_member(db, user, project_id, ("owner",))
    if not db.get(User, data.user_id):
        raise HTTPException(status_code=404, detail="User not found")
    membership = db.get(ProjectMember, (project_id, data.user_id))
    if membership:
        membership.role = data.role
    else:
        db.add(ProjectMember(project_id=project_id, user_id=data.user_id, role=data.role))
        notify_user(
            db,
            data.user_id,
            f"You were added to project {proj.name}",
            title="Project membership",
            category="project",
            meta={"project_id": str(project_id)},
        )
    db.commit()
    cache.invalidate(CACHE_PREFIX)
    return Response(status_code=204)
