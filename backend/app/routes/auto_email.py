from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import require_super_admin
from .. import models, schemas
from ..services import scheduling

router = APIRouter(prefix="/api/admin/auto-email", tags=["auto-email"])


def _save(db: Session, payload: schemas.AutoEmailConfigIn, user: models.User):
    try:
        config = scheduling.put_config(db, payload, user)
    except scheduling.ScheduleValidationError as exc:
        raise HTTPException(status_code=400, detail={"field": exc.field, "message": exc.message})
    return scheduling.to_schema(config)


@router.get("", response_model=schemas.AutoEmailConfigOut)
def read_config(db: Session = Depends(get_db), user: models.User = Depends(require_super_admin)):
    return scheduling.to_schema(scheduling.get_config(db))


@router.put("", response_model=schemas.AutoEmailConfigOut)
def replace_config(
    payload: schemas.AutoEmailConfigIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_super_admin),
):
    return _save(db, payload, user)


@router.post("", response_model=schemas.AutoEmailConfigOut)
def save_config(
    payload: schemas.AutoEmailConfigIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_super_admin),
):
    return _save(db, payload, user)


@router.post("/run", response_model=schemas.EvaluationReportOut)
def run_now(
    at: Optional[datetime] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_super_admin),
):
    """Evaluate schedules immediately, optionally as of ``at``."""
    report = scheduling.evaluate_schedules(db, now=at)
    return report.to_schema()
