from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, notify
from ..activity import log_activity

router = APIRouter(prefix="/api/email", tags=["email"])


@router.post("/send", response_model=schemas.EmailLogOut)
def send_email(
    data: schemas.EmailSendRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    to = [str(addr).lower() for addr in data.to]
    cc = [str(addr).lower() for addr in data.cc if str(addr).lower() not in to]
    try:
        log = notify.send_logged_email(db, to, cc, data.subject, data.body, user_id=user.id)
    except notify.DeliveryError as exc:
        db.commit()
        raise HTTPException(status_code=502, detail=f"Email delivery failed: {exc}")
    log_activity(
        db, user.id, "EMAIL_SENT", "Email Sent", f"Sent {data.subject!r}",
        entity_type="email", meta={"to": to, "cc": cc},
    )
    db.commit()
    db.refresh(log)
    return log


@router.get("/logs", response_model=list[schemas.EmailLogOut])
def list_email_logs(
    limit: int = 50,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    q = db.query(models.EmailLog)
    if not user.is_admin:
        q = q.filter(models.EmailLog.user_id == user.id)
    return q.order_by(models.EmailLog.created_at.desc()).limit(limit).all()
