from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, vaults
from ..rbac import ensure_feature_access
from ..cache import ResponseCache, get_response_cache, user_key
from ..services.collaboration import CREDENTIALS

router = APIRouter(prefix="/api/credentials", tags=["credentials"])

CACHE_PREFIX = "/api/credentials"


def credential_user(user: models.User = Depends(get_current_user)) -> models.User:
    ensure_feature_access(user, "has_credential_access")
    return user


@router.get("", response_model=List[schemas.CredentialOut])
def list_credentials(
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    key = user_key(CACHE_PREFIX, user.id)
    cached = cache.get(key)
    if cached is not None:
        return cached
    records = [
        schemas.CredentialOut.model_validate(r) for r in vaults.visible_records(db, CREDENTIALS, user)
    ]
    cache.set(key, [r.model_dump(mode="json") for r in records])
    return records


@router.post("", response_model=schemas.CredentialOut)
def create_credential(
    data: schemas.CredentialCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.create_record(db, CREDENTIALS, user, data.model_dump())
    cache.invalidate(CACHE_PREFIX)
    return record


@router.post("/collaboration-requests", response_model=schemas.CollaborationResponse)
def request_collaboration(
    payload: schemas.CollaborationRequestIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    summary = vaults.request_collaboration(db, CREDENTIALS, user, payload)
    cache.invalidate(CACHE_PREFIX)
    return schemas.CollaborationResponse(summary=summary)


@router.get("/{credential_id}", response_model=schemas.CredentialOut)
def get_credential(
    credential_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
):
    return vaults.load_record(db, CREDENTIALS, credential_id, user)


@router.put("/{credential_id}", response_model=schemas.CredentialOut)
def update_credential(
    credential_id: UUID,
    data: schemas.CredentialUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_record(db, CREDENTIALS, credential_id, user)
    record = vaults.update_record(db, CREDENTIALS, record, user, data.model_dump(exclude_unset=True))
    cache.invalidate(CACHE_PREFIX)
    return record


@router.delete("/{credential_id}", status_code=204)
def delete_credential(
    credential_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_managed_record(db, CREDENTIALS, credential_id, user)
    vaults.delete_record(db, CREDENTIALS, record, user)
    cache.invalidate(CACHE_PREFIX)
    return Response(status_code=204)


@router.get("/{credential_id}/members", response_model=List[schemas.VaultMemberOut])
def list_credential_members(
    credential_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
):
    return vaults.load_record(db, CREDENTIALS, credential_id, user).members


@router.post("/{credential_id}/members", response_model=schemas.VaultMemberOut)
def add_credential_member(
    credential_id: UUID,
    data: schemas.VaultMemberAdd,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_managed_record(db, CREDENTIALS, credential_id, user)
    membership = vaults.add_member(db, CREDENTIALS, record, user, data.user_id, data.role)
    cache.invalidate(CACHE_PREFIX)
    return membership


@router.delete("/{credential_id}/members/{membership_id}", status_code=204)
def remove_credential_member(
    credential_id: UUID,
    membership_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_managed_record(db, CREDENTIALS, credential_id, user)
    vaults.remove_member(db, CREDENTIALS, record, membership_id)
    cache.invalidate(CACHE_PREFIX)
    return Response(status_code=204)


@router.put("/{credential_id}/members/{membership_id}/active", response_model=schemas.VaultMemberOut)
def set_credential_member_active(
    credential_id: UUID,
    membership_id: UUID,
    data: schemas.VaultMemberActiveUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(credential_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_managed_record(db, CREDENTIALS, credential_id, user)
    membership = vaults.set_member_active(db, CREDENTIALS, record, membership_id, data.is_active)
    cache.invalidate(CACHE_PREFIX)
    return membership
