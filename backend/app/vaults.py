from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from . import models
from .activity import log_activity
from .rbac import active_membership, can_manage_record, ensure_record_access
from .services import collaboration
from .services.collaboration import ShareableKind

# purpose: shared record access and membership handling for the credential and subscription vaults
# inputs: ShareableKind describing the record and membership models, acting user
# outputs: visible records, updated records and memberships, HTTP errors for collaboration failures


def collaboration_http_error(exc: collaboration.CollaborationError) -> HTTPException:
    if isinstance(exc, collaboration.CollaborationDenied):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, collaboration.MemberNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def visible_records(db: Session, kind: ShareableKind, user: models.User):
    q = db.query(kind.model).options(
        selectinload(kind.model.members), selectinload(kind.model.creator)
    )
    if not user.is_admin:
        shared = (
            db.query(getattr(kind.member_model, kind.fk))
            .filter(kind.member_model.user_id == user.id, kind.member_model.is_active == True)
        )
        q = q.filter(or_(kind.model.created_by == user.id, kind.model.id.in_(shared)))
    return q.order_by(kind.model.created_at.desc()).all()


def load_record(db: Session, kind: ShareableKind, record_id: UUID, user: models.User, roles=("viewer", "editor")):
    record = db.get(kind.model, record_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"{kind.name.capitalize()} not found")
    return ensure_record_access(user, record, roles)


def load_managed_record(db: Session, kind: ShareableKind, record_id: UUID, user: models.User):
    record = db.get(kind.model, record_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"{kind.name.capitalize()} not found")
    if not can_manage_record(user, record):
        raise HTTPException(status_code=403, detail="Not authorized")
    return record


def create_record(db: Session, kind: ShareableKind, user: models.User, data: dict):
    record = kind.model(**data, created_by=user.id)
    db.add(record)
    db.flush()
    log_activity(
        db,
        user.id,
        f"{kind.name.upper()}_CREATED",
        f"{kind.name.capitalize()} Created",
        entity_type=kind.name,
        entity_id=record.id,
    )
    db.commit()
    db.refresh(record)
    return record


def update_record(db: Session, kind: ShareableKind, record, user: models.User, changes: dict):
    """Editors may change fields; only managers change privacy, and PRIVATE suspends members."""
    manager = can_manage_record(user, record)
    if not manager:
        membership = active_membership(record, user)
        if not membership or membership.role != "editor":
            raise HTTPException(status_code=403, detail="Viewers cannot edit this record")
        if "privacy_level" in changes and changes["privacy_level"] != record.privacy_level:
            raise HTTPException(status_code=403, detail="Only the owner can change the privacy level")
    going_private = (
        changes.get("privacy_level") == models.PRIVACY_PRIVATE
        and record.privacy_level != models.PRIVACY_PRIVATE
    )
    for k, v in changes.items():
        setattr(record, k, v)
    meta = {"fields": sorted(changes)}
    if going_private:
        meta["deactivated_members"] = collaboration.deactivate_memberships(record)
    log_activity(
        db,
        user.id,
        f"{kind.name.upper()}_UPDATED",
        f"{kind.name.capitalize()} Updated",
        entity_type=kind.name,
        entity_id=record.id,
        meta=meta,
    )
    db.commit()
    db.refresh(record)
    return record


def delete_record(db: Session, kind: ShareableKind, record, user: models.User) -> None:
    log_activity(
        db,
        user.id,
        f"{kind.name.upper()}_DELETED",
        f"{kind.name.capitalize()} Deleted",
        entity_type=kind.name,
        entity_id=record.id,
    )
    db.delete(record)
    db.commit()


def add_member(db: Session, kind: ShareableKind, record, user: models.User, member_id: UUID, role: str):
    try:
        return collaboration.add_member(db, kind, user, record, member_id, role)
    except collaboration.CollaborationError as exc:
        raise collaboration_http_error(exc)


def get_membership(db: Session, kind: ShareableKind, record, membership_id: UUID):
    membership = db.get(kind.member_model, membership_id)
    if not membership or getattr(membership, kind.fk) != record.id:
        raise HTTPException(status_code=404, detail="Member not found")
    return membership


def remove_member(db: Session, kind: ShareableKind, record, membership_id: UUID) -> None:
    membership = get_membership(db, kind, record, membership_id)
    db.delete(membership)
    db.commit()


def set_member_active(db: Session, kind: ShareableKind, record, membership_id: UUID, is_active: bool):
    membership = get_membership(db, kind, record, membership_id)
    if is_active and record.privacy_level != models.PRIVACY_PUBLIC:
        raise HTTPException(status_code=400, detail=f"Cannot activate members on a PRIVATE {kind.name}")
    membership.is_active = is_active
    membership.updated_at = models.utcnow()
    db.commit()
    db.refresh(membership)
    return membership


def request_collaboration(db: Session, kind: ShareableKind, user: models.User, payload):
    try:
        return collaboration.merge_collaboration_requests(
            db, kind, user, payload.resource_ids, payload.member_ids, payload.role
        )
    except collaboration.CollaborationError as exc:
        raise collaboration_http_error(exc)
