from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..activity import list_activities
from ..rbac import resolve_view_scope

router = APIRouter(prefix="/api/activities", tags=["activities"])


@router.get("", response_model=list[schemas.ActivityOut])
def get_activities(
    view: str = "my",
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    scope = resolve_view_scope(db, user, view, "activities")
    return list_activities(db, scope.user_ids, limit=limit, skip=skip)
