from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user, require_admin, require_super_admin
from .. import models, schemas
from ..activity import log_activity
from ..cache import ResponseCache, get_response_cache, user_key
from ..services import request_hub

router = APIRouter(prefix="/api/team", tags=["team"])

TEAM_CACHE_PREFIX = "/api/team"
ON_HOLD_ALIASES = {"ON_HOLD", "ONHOLD", "ON HOLD"}


def _status_summary(tasks: list[models.Task]) -> schemas.StatusSummary:
    statuses = [str(t.status or "").upper().strip() for t in tasks]
    return schemas.StatusSummary(
        in_progress=statuses.count("IN_PROGRESS"),
        completed=statuses.count("COMPLETED"),
        yts=statuses.count("YTS"),
        on_hold=sum(1 for s in statuses if s in ON_HOLD_ALIASES),
        recurring=statuses.count("RECURRING"),
    )


def _member_out(db: Session, member: models.User) -> schemas.TeamMemberOut:
    tasks = (
        db.query(models.Task)
        .outerjoin(models.TaskAssignee)
        .filter(or_(models.TaskAssignee.user_id == member.id, models.Task.created_by == member.id))
        .distinct()
        .all()
    )
    projects = db.query(func.count(models.ProjectMember.project_id)).filter(
        models.ProjectMember.user_id == member.id
    ).scalar()
    return schemas.TeamMemberOut(
        id=member.id,
        full_name=member.full_name,
        email=member.email,
        role=member.role,
        department=member.department.name if member.department else None,
        is_active=bool(member.is_active),
        tasks_assigned=len(tasks),
        projects_involved=projects or 0,
        status_summary=_status_summary(tasks),
    )


@router.get("/members", response_model=List[schemas.TeamMemberOut])
def list_members(
    department: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    default_view = not department and not search
    key = user_key(f"{TEAM_CACHE_PREFIX}/members", user.id)
    if default_view:
        cached = cache.get(key)
        if cached is not None:
            return cached
    q = db.query(models.User).filter(models.User.is_active == True)
    if department:
        q = q.join(models.Department).filter(models.Department.name == department)
    if search:
        pattern = f"%{search.lower()}%"
        q = q.filter(
            or_(func.lower(models.User.email).like(pattern), func.lower(models.User.full_name).like(pattern))
        )
    members = [_member_out(db, m) for m in q.order_by(models.User.email).all()]
    if default_view:
        cache.set(key, [m.model_dump(mode="json") for m in members])
    return members


@router.get("/departments", response_model=List[schemas.DepartmentOut])
def list_departments(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return db.query(models.Department).order_by(models.Department.name).all()


@router.get("/departments/{identifier}/admins", response_model=List[schemas.DepartmentAdminOut])
def list_department_admins(
    identifier: str, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)
):
    """Active admins of a department, looked up by id or name."""
    return request_hub.department_admins(db, request_hub.find_department(db, identifier))


@router.post("/departments", response_model=schemas.DepartmentOut)
def create_department(
    data: schemas.DepartmentCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_super_admin),
):
    name = data.name.strip()
    if db.query(models.Department).filter(models.Department.name == name).first():
        raise HTTPException(status_code=400, detail="Department already exists")
    dept = models.Department(name=name, description=data.description)
    db.add(dept)
    db.flush()
    log_activity(db, user.id, "DEPARTMENT_CREATED", "Department Created", f"Created department {name}", "department", dept.id)
    db.commit()
    db.refresh(dept)
    return dept


@router.put("/departments/{department_id}", response_model=schemas.DepartmentOut)
def update_department(
    department_id: UUID,
    data: schemas.DepartmentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_super_admin),
    cache: ResponseCache = Depends(get_response_cache),
):
    dept = db.get(models.Department, department_id)
    if not dept:
        raise HTTPException(status_code=404, detail="Department not found")
    if data.name is not None:
        name = data.name.strip()
        clash = (
            db.query(models.Department)
            .filter(models.Department.name == name, models.Department.id != department_id)
            .first()
        )
        if clash:
            raise HTTPException(status_code=400, detail="Department already exists")
        dept.name = name
    if data.description is not None:
        dept.description = data.description
    db.commit()
    db.refresh(dept)
    cache.invalidate(TEAM_CACHE_PREFIX)
    return dept


@router.delete("/departments/{department_id}", status_code=204)
def delete_department(
    department_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_super_admin),
    cache: ResponseCache = Depends(get_response_cache),
):
    dept = db.get(models.Department, department_id)
    if not dept:
        raise HTTPException(status_code=404, detail="Department not found")
    for member in list(dept.users):
        member.department_id = None
    request_hub.detach_department(db, dept.id)
    log_activity(db, user.id, "DEPARTMENT_DELETED", "Department Deleted", f"Deleted department {dept.name}", "department", dept.id)
    db.delete(dept)
    db.commit()
    cache.invalidate(TEAM_CACHE_PREFIX)
    return Response(status_code=204)


def _get_member(db: Session, user_id: UUID) -> models.User:
    member = db.get(models.User, user_id)
    if not member:
        raise HTTPException(status_code=404, detail="User not found")
    return member


@router.put("/members/{user_id}/department", response_model=schemas.ProfileOut)
def set_member_department(
    user_id: UUID,
    data: schemas.MemberDepartmentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_super_admin),
    cache: ResponseCache = Depends(get_response_cache),
):
    member = _get_member(db, user_id)
    if data.department_id is not None and not db.get(models.Department, data.department_id):
        raise HTTPException(status_code=404, detail="Department not found")
    member.department_id = data.department_id
    db.commit()
    db.refresh(member)
    cache.invalidate(TEAM_CACHE_PREFIX)
    return member


@router.put("/members/{user_id}/role", response_model=schemas.ProfileOut)
def set_member_role(
    user_id: UUID,
    data: schemas.MemberRoleUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_super_admin),
    cache: ResponseCache = Depends(get_response_cache),
):
    member = _get_member(db, user_id)
    if member.id == user.id and data.role != models.ROLE_SUPER_ADMIN:
        raise HTTPException(status_code=400, detail="Cannot demote yourself")
    member.role = data.role
    db.commit()
    db.refresh(member)
    cache.invalidate(TEAM_CACHE_PREFIX)
    return member


@router.put("/members/{user_id}/features", response_model=schemas.ProfileOut)
def set_member_features(
    user_id: UUID,
    data: schemas.MemberFeaturesUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    member = _get_member(db, user_id)
    for k, v in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(member, k, v)
    db.commit()
    db.refresh(member)
    return member
