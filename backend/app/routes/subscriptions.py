from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, vaults
from ..rbac import ensure_feature_access
from ..cache import ResponseCache, get_response_cache, user_key
from ..services.collaboration import SUBSCRIPTIONS

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])

CACHE_PREFIX = "/api/subscriptions"


def subscription_user(user: models.User = Depends(get_current_user)) -> models.User:
    ensure_feature_access(user, "has_subscription_access")
    return user


@router.get("", response_model=List[schemas.SubscriptionOut])
def list_subscriptions(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    key = user_key(CACHE_PREFIX, user.id)
    if status is None:
        cached = cache.get(key)
        if cached is not None:
            return cached
    records = [
        schemas.SubscriptionOut.model_validate(r)
        for r in vaults.visible_records(db, SUBSCRIPTIONS, user)
        if status is None or r.status == status
    ]
    if status is None:
        cache.set(key, [r.model_dump(mode="json") for r in records])
    return records


@router.post("", response_model=schemas.SubscriptionOut)
def create_subscription(
    data: schemas.SubscriptionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.create_record(db, SUBSCRIPTIONS, user, data.model_dump())
    cache.invalidate(CACHE_PREFIX)
    return record


@router.post("/collaboration-requests", response_model=schemas.CollaborationResponse)
def request_collaboration(
    payload: schemas.CollaborationRequestIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    summary = vaults.request_collaboration(db, SUBSCRIPTIONS, user, payload)
    cache.invalidate(CACHE_PREFIX)
    return schemas.CollaborationResponse(summary=summary)


@router.get("/{subscription_id}", response_model=schemas.SubscriptionOut)
def get_subscription(
    subscription_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
):
    return vaults.load_record(db, SUBSCRIPTIONS, subscription_id, user)


@router.put("/{subscription_id}", response_model=schemas.SubscriptionOut)
def update_subscription(
    subscription_id: UUID,
    data: schemas.SubscriptionUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_record(db, SUBSCRIPTIONS, subscription_id, user)
    record = vaults.update_record(db, SUBSCRIPTIONS, record, user, data.model_dump(exclude_unset=True))
    cache.invalidate(CACHE_PREFIX)
    return record


@router.delete("/{subscription_id}", status_code=204)
def delete_subscription(
    subscription_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_managed_record(db, SUBSCRIPTIONS, subscription_id, user)
    vaults.delete_record(db, SUBSCRIPTIONS, record, user)
    cache.invalidate(CACHE_PREFIX)
    return Response(status_code=204)


@router.get("/{subscription_id}/members", response_model=List[schemas.VaultMemberOut])
def list_subscription_members(
    subscription_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
):
    return vaults.load_record(db, SUBSCRIPTIONS, subscription_id, user).members


@router.post("/{subscription_id}/members", response_model=schemas.VaultMemberOut)
def add_subscription_member(
    subscription_id: UUID,
    data: schemas.VaultMemberAdd,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_managed_record(db, SUBSCRIPTIONS, subscription_id, user)
    membership = vaults.add_member(db, SUBSCRIPTIONS, record, user, data.user_id, data.role)
    cache.invalidate(CACHE_PREFIX)
    return membership


@router.delete("/{subscription_id}/members/{membership_id}", status_code=204)
def remove_subscription_member(
    subscription_id: UUID,
    membership_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_managed_record(db, SUBSCRIPTIONS, subscription_id, user)
    vaults.remove_member(db, SUBSCRIPTIONS, record, membership_id)
    cache.invalidate(CACHE_PREFIX)
    return Response(status_code=204)


@router.put("/{subscription_id}/members/{membership_id}/active", response_model=schemas.VaultMemberOut)
def set_subscription_member_active(
    subscription_id: UUID,
    membership_id: UUID,
    data: schemas.VaultMemberActiveUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(subscription_user),
    cache: ResponseCache = Depends(get_response_cache),
):
    record = vaults.load_managed_record(db, SUBSCRIPTIONS, subscription_id, user)
    membership = vaults.set_member_active(db, SUBSCRIPTIONS, record, membership_id, data.is_active)
    cache.invalidate(CACHE_PREFIX)
    return membership
