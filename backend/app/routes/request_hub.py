from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import require_admin
from .. import models, schemas
from ..cache import ResponseCache, get_response_cache
from ..services import request_hub

router = APIRouter(prefix="/api/requests", tags=["requests"])


def _invalidate_tasks(cache: ResponseCache) -> None:
    cache.invalidate("/api/tasks")
    cache.invalidate("/api/team")


@router.get("/sent", response_model=List[schemas.RequestOut])
def list_sent(db: Session = Depends(get_db), user: models.User = Depends(require_admin)):
    return request_hub.sent_requests(db, user)


@router.get("/received", response_model=List[schemas.RequestOut])
def list_received(db: Session = Depends(get_db), user: models.User = Depends(require_admin)):
    return request_hub.received_requests(db, user)


@router.post("", response_model=schemas.RequestOut)
def create_request(
    data: schemas.RequestCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    req = request_hub.create_request(db, user, data)
    db.commit()
    db.refresh(req)
    return req


@router.get("/{request_id}", response_model=schemas.RequestOut)
def get_request(request_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(require_admin)):
    return request_hub.load_request(db, request_id, user)


@router.put("/{request_id}/status", response_model=schemas.RequestOut)
def update_status(
    request_id: UUID,
    data: schemas.RequestStatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    req = request_hub.load_request(db, request_id, user)
    request_hub.update_status(db, req, user, data.status)
    db.commit()
    db.refresh(req)
    return req


@router.put("/{request_id}/deadline", response_model=schemas.RequestOut)
def update_deadline(
    request_id: UUID,
    data: schemas.RequestDeadlineUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
    cache: ResponseCache = Depends(get_response_cache),
):
    req = request_hub.load_request(db, request_id, user)
    request_hub.update_deadline(db, req, user, data.tentative_deadline)
    db.commit()
    if req.task_id:
        _invalidate_tasks(cache)
    db.refresh(req)
    return req


@router.put("/{request_id}/assignment", response_model=schemas.RequestOut)
def update_assignment(
    request_id: UUID,
    data: schemas.RequestAssignmentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
    cache: ResponseCache = Depends(get_response_cache),
):
    req = request_hub.load_request(db, request_id, user)
    request_hub.assign_request(db, req, user, data.assigned_to_id)
    db.commit()
    _invalidate_tasks(cache)
    db.refresh(req)
    return req


@router.delete("/{request_id}", status_code=204)
def delete_request(request_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(require_admin)):
    req = request_hub.load_request(db, request_id, user)
    request_hub.delete_request(db, req, user)
    db.commit()
    return Response(status_code=204)
