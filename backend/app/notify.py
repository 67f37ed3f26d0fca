import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)

# (to, cc, subject, body) tuples captured instead of sending when TESTING=1
EMAIL_OUTBOX: list[tuple[list[str], list[str], str, str]] = []


class DeliveryError(RuntimeError):
    """Raised when the mail transport rejects or cannot deliver a message."""


def send_email(to: Iterable[str], cc: Iterable[str] | None, subject: str, body: str) -> None:
    to_list = [addr for addr in to if addr]
    cc_list = [addr for addr in (cc or []) if addr]
    if not to_list:
        raise DeliveryError("no recipients")
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_list, cc_list, subject, body))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        logger.warning("SMTP_SERVER not configured; dropping email %r", subject)
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@example.com")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = ", ".join(to_list)
    if cc_list:
        msg["Cc"] = ", ".join(cc_list)
    msg.set_content(body)
    try:
        with smtplib.SMTP(server) as s:
            s.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise DeliveryError(str(exc)) from exc


def send_logged_email(
    db: Session,
    to: list[str],
    cc: list[str],
    subject: str,
    body: str,
    user_id: UUID | None = None,
    mailer=send_email,
) -> models.EmailLog:
    """Send through ``mailer`` and record the attempt; re-raises DeliveryError."""
    log = models.EmailLog(to=list(to), cc=list(cc), subject=subject, body=body, user_id=user_id)
    try:
        mailer(to, cc, subject, body)
    except DeliveryError as exc:
        log.status = "failed"
        log.error = str(exc)
        db.add(log)
        raise
    db.add(log)
    return log


def notify_user(
    db: Session,
    user_id: UUID,
    message: str,
    title: str | None = None,
    category: str | None = None,
    meta: dict[str, Any] | None = None,
) -> models.Notification:
    notif = models.Notification(
        user_id=user_id,
        message=message,
        title=title,
        category=category,
        meta=meta or {},
    )
    db.add(notif)
    return notif
