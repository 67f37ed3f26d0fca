"""Department digest scheduling: configuration store and per-minute evaluator."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Sequence
from uuid import UUID

import pytz
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models, notify, schemas
from ..activity import log_activity

# purpose: persist the auto-email configuration and decide which department digests are due
# inputs: AutoEmailConfigIn payloads, wall-clock time from the Celery beat tick
# outputs: validated ScheduleConfig values, EvaluationReport per tick, EmailLog rows

logger = logging.getLogger(__name__)

CONFIG_ID = 1
DEFAULT_TIMEZONE = "Asia/Kolkata"
DEFAULT_TIME_OF_DAY = "18:00"

TIME_OF_DAY_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")
RECIPIENT_ADAPTER = TypeAdapter(EmailStr)
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
DIGEST_STATUS_ORDER = ("YTS", "IN_PROGRESS", "ON_HOLD", "RECURRING")


class ScheduleValidationError(RuntimeError):
    """Rejected configuration; ``field`` names the first offending input."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def normalize_recipients(values: Iterable[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for raw in values:
        email = (raw or "").strip().lower()
        try:
            email = RECIPIENT_ADAPTER.validate_python(email).lower()
        except ValidationError:
            raise ScheduleValidationError("recipients", f"Invalid email format: {raw}")
        if email not in seen:
            seen.append(email)
    return tuple(seen)


def validate_timezone(name: str) -> str:
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ScheduleValidationError("timezone", f"Unknown timezone: {name}")
    return name


@dataclass(frozen=True)
class DepartmentSchedule:
    """One department's digest slot. Invariants hold from construction on."""

    department_id: UUID
    department_name: str
    enabled: bool = True
    days_of_week: tuple[int, ...] = ()
    time_of_day: str = DEFAULT_TIME_OF_DAY
    last_run_at: datetime | None = None
    position: int = 0

    def __post_init__(self):
        prefix = f"department_schedules[{self.position}]"
        days = set()
        for day in self.days_of_week:
            if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
                raise ScheduleValidationError(
                    f"{prefix}.days_of_week",
                    f"Department {self.department_name}: invalid day of week {day!r}",
                )
            days.add(day)
        object.__setattr__(self, "days_of_week", tuple(sorted(days)))
        if not TIME_OF_DAY_PATTERN.match(self.time_of_day or ""):
            raise ScheduleValidationError(
                f"{prefix}.time_of_day",
                f"Department {self.department_name}: invalid time format",
            )
        if self.enabled and not self.days_of_week:
            raise ScheduleValidationError(
                f"{prefix}.days_of_week",
                f"Department {self.department_name}: select at least one day of week",
            )

    def describe(self) -> str:
        days = ", ".join(DAY_NAMES[d] for d in self.days_of_week) or "no days"
        return f"{self.department_name}: {days} at {self.time_of_day}"


@dataclass(frozen=True)
class ScheduleConfig:
    enabled: bool = False
    recipients: tuple[str, ...] = ()
    timezone: str = DEFAULT_TIMEZONE
    send_when_empty: bool = False
    department_schedules: tuple[DepartmentSchedule, ...] = ()
    updated_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "recipients", normalize_recipients(self.recipients))
        validate_timezone(self.timezone)
        seen: set[UUID] = set()
        for schedule in self.department_schedules:
            if schedule.department_id in seen:
                raise ScheduleValidationError(
                    f"department_schedules[{schedule.position}].department_id",
                    f"Department {schedule.department_name}: listed more than once",
                )
            seen.add(schedule.department_id)
        if self.enabled:
            if not self.recipients:
                raise ScheduleValidationError(
                    "recipients", "Please add at least one recipient email when enabled"
                )
            if not self.department_schedules:
                raise ScheduleValidationError(
                    "department_schedules", "Please select at least one department when enabled"
                )

    @property
    def schedules_by_department(self) -> dict[UUID, DepartmentSchedule]:
        return {s.department_id: s for s in self.department_schedules}

    @property
    def tz(self):
        return pytz.timezone(self.timezone)


def build_config(
    payload: schemas.AutoEmailConfigIn,
    department_names: Mapping[UUID, str],
) -> ScheduleConfig:
    """Validate a full payload in field order, raising on the first problem."""

    recipients = normalize_recipients(payload.recipients)
    validate_timezone(payload.timezone)
    schedules = []
    for position, item in enumerate(payload.department_schedules):
        name = department_names.get(item.department_id)
        if name is None:
            raise ScheduleValidationError(
                f"department_schedules[{position}].department_id",
                f"Department {item.department_id}: not found",
            )
        schedules.append(
            DepartmentSchedule(
                department_id=item.department_id,
                department_name=name,
                enabled=item.enabled,
                days_of_week=tuple(item.days_of_week),
                time_of_day=item.time_of_day,
                position=position,
            )
        )
    return ScheduleConfig(
        enabled=payload.enabled,
        recipients=recipients,
        timezone=payload.timezone,
        send_when_empty=payload.send_when_empty,
        department_schedules=tuple(schedules),
    )


def _config_from_row(row: models.AutoEmailConfig) -> ScheduleConfig:
    # deleting the last scheduled department leaves nothing to send
    return ScheduleConfig(
        enabled=bool(row.enabled and row.recipients and row.schedules),
        recipients=tuple(row.recipients or ()),
        timezone=row.timezone,
        send_when_empty=row.send_when_empty,
        department_schedules=tuple(
            DepartmentSchedule(
                department_id=s.department_id,
                department_name=s.department.name,
                enabled=s.enabled,
                days_of_week=tuple(s.days_of_week or ()),
                time_of_day=s.time_of_day,
                last_run_at=s.last_run_at,
                position=index,
            )
            for index, s in enumerate(row.schedules)
        ),
        updated_at=row.updated_at,
    )


def get_config(db: Session) -> ScheduleConfig:
    row = db.get(models.AutoEmailConfig, CONFIG_ID)
    if row is None:
        return ScheduleConfig()
    return _config_from_row(row)


def put_config(
    db: Session,
    payload: schemas.AutoEmailConfigIn,
    actor: models.User,
) -> ScheduleConfig:
    """Replace the stored configuration wholesale.

    Validation runs before any write. Schedules for departments that stay in
    the list keep their ``last_run_at``; departments left out lose theirs.
    """

    requested_ids = [item.department_id for item in payload.department_schedules]
    departments = (
        db.query(models.Department).filter(models.Department.id.in_(requested_ids)).all()
        if requested_ids
        else []
    )
    config = build_config(payload, {d.id: d.name for d in departments})

    row = db.get(models.AutoEmailConfig, CONFIG_ID)
    if row is None:
        row = models.AutoEmailConfig(id=CONFIG_ID)
        db.add(row)
    existing = {s.department_id: s for s in row.schedules}
    replacement: list[models.DepartmentSchedule] = []
    for schedule in config.department_schedules:
        record = existing.pop(schedule.department_id, None) or models.DepartmentSchedule(
            department_id=schedule.department_id
        )
        record.enabled = schedule.enabled
        record.days_of_week = list(schedule.days_of_week)
        record.time_of_day = schedule.time_of_day
        record.position = schedule.position
        replacement.append(record)

    row.enabled = config.enabled
    row.recipients = list(config.recipients)
    row.timezone = config.timezone
    row.send_when_empty = config.send_when_empty
    row.schedules = replacement
    row.updated_by = actor.id
    row.updated_at = models.utcnow()
    log_activity(
        db,
        actor.id,
        "AUTO_EMAIL_CONFIG_UPDATED",
        "Auto Email Updated",
        description=(
            "Enabled automatic department emails"
            if config.enabled
            else "Disabled automatic department emails"
        ),
        entity_type="auto_email_config",
        meta={
            "recipients": list(config.recipients),
            "schedules": [s.describe() for s in config.department_schedules],
            "removed_departments": [str(d) for d in existing],
        },
    )
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(row)
    return _config_from_row(row)


def to_schema(config: ScheduleConfig) -> schemas.AutoEmailConfigOut:
    return schemas.AutoEmailConfigOut(
        enabled=config.enabled,
        recipients=list(config.recipients),
        timezone=config.timezone,
        send_when_empty=config.send_when_empty,
        department_schedules=[
            schemas.DepartmentScheduleOut(
                department_id=s.department_id,
                department_name=s.department_name,
                enabled=s.enabled,
                days_of_week=list(s.days_of_week),
                time_of_day=s.time_of_day,
                last_run_at=s.last_run_at,
            )
            for s in config.department_schedules
        ],
        updated_at=config.updated_at,
    )


# ---------------------------------------------------------------------------
# evaluator


@dataclass
class EvaluationReport:
    evaluated_at: datetime
    sent: list[str] = field(default_factory=list)
    skipped_empty: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_schema(self) -> schemas.EvaluationReportOut:
        return schemas.EvaluationReportOut(
            evaluated_at=self.evaluated_at,
            sent=list(self.sent),
            skipped_empty=list(self.skipped_empty),
            failed=list(self.failed),
            errors=dict(self.errors),
        )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_minute(now: datetime, tz) -> datetime:
    return _as_utc(now).astimezone(tz).replace(second=0, microsecond=0)


def weekday_index(local: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return local.isoweekday() % 7


def ran_on_local_day(last_run_at: datetime | None, local_now: datetime, tz) -> bool:
    if last_run_at is None:
        return False
    return _as_utc(last_run_at).astimezone(tz).date() == local_now.date()


def is_due(schedule: DepartmentSchedule, local_now: datetime, tz) -> bool:
    if not schedule.enabled:
        return False
    if weekday_index(local_now) not in schedule.days_of_week:
        return False
    if local_now.strftime("%H:%M") != schedule.time_of_day:
        return False
    return not ran_on_local_day(schedule.last_run_at, local_now, tz)


def department_members(db: Session, department_id: UUID) -> list[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.department_id == department_id, models.User.is_active == True)
        .order_by(models.User.email)
        .all()
    )


def department_open_tasks(db: Session, department_id: UUID) -> list[models.Task]:
    member_ids = select(models.User.id).where(
        models.User.department_id == department_id, models.User.is_active == True
    )
    task_ids = select(models.TaskAssignee.task_id).where(models.TaskAssignee.user_id.in_(member_ids))
    return (
        db.query(models.Task)
        .filter(models.Task.id.in_(task_ids), models.Task.status != "COMPLETED")
        .order_by(models.Task.due_date.is_(None), models.Task.due_date, models.Task.created_at)
        .all()
    )


def compose_digest(
    department: models.Department,
    tasks: Sequence[models.Task],
    local_now: datetime,
) -> tuple[str, str]:
    subject = f"[{department.name}] Task digest for {local_now:%d %b %Y}"
    if not tasks:
        return subject, f"No open tasks for {department.name}."
    lines = [f"Department: {department.name}", f"Open tasks: {len(tasks)}", ""]
    by_status: dict[str, list[models.Task]] = {}
    for task in tasks:
        by_status.setdefault(task.status, []).append(task)
    ordered = [s for s in DIGEST_STATUS_ORDER if s in by_status]
    ordered += sorted(s for s in by_status if s not in DIGEST_STATUS_ORDER)
    for status in ordered:
        lines.append(f"{status} ({len(by_status[status])})")
        for task in by_status[status]:
            assignees = ", ".join(a.user.display_name for a in task.assignees if a.user) or "unassigned"
            due = task.due_date.strftime("%Y-%m-%d") if task.due_date else "no due date"
            lines.append(f"  - {task.title} | {task.priority} | due {due} | {assignees}")
        lines.append("")
    return subject, "\n".join(lines).rstrip() + "\n"


def _run_department(
    db: Session,
    config: ScheduleConfig,
    department: models.Department,
    local_now: datetime,
    mailer: Callable,
) -> bool:
    """Send (or skip) one digest. Returns False when skipped for being empty."""

    tasks = department_open_tasks(db, department.id)
    if not tasks and not config.send_when_empty:
        logger.info("No open tasks for %s; digest skipped", department.name)
        return False
    subject, body = compose_digest(department, tasks, local_now)
    cc = [m.email for m in department_members(db, department.id) if m.email not in config.recipients]
    notify.send_logged_email(db, list(config.recipients), cc, subject, body, mailer=mailer)
    logger.info("Digest for %s sent to %d recipients (%d cc)", department.name, len(config.recipients), len(cc))
    return True


def evaluate_schedules(
    db: Session,
    now: datetime | None = None,
    mailer: Callable = notify.send_email,
) -> EvaluationReport:
    """Send every department digest due at ``now``.

    Each department commits on its own; one failing department leaves its
    ``last_run_at`` unset and does not stop the others.
    """

    now = _as_utc(now or datetime.now(timezone.utc))
    report = EvaluationReport(evaluated_at=now)
    row = db.get(models.AutoEmailConfig, CONFIG_ID)
    if row is None or not row.enabled:
        return report
    config = _config_from_row(row)
    tz = config.tz
    local_now = local_minute(now, tz)

    due = [
        (record, config.schedules_by_department[record.department_id])
        for record in row.schedules
        if is_due(config.schedules_by_department[record.department_id], local_now, tz)
    ]
    for record, schedule in due:
        name = schedule.department_name
        try:
            sent = _run_department(db, config, record.department, local_now, mailer)
        except notify.DeliveryError as exc:
            logger.warning("Digest delivery failed for %s: %s", name, exc)
            report.failed.append(name)
            report.errors[name] = str(exc)
            db.commit()  # keeps the failed EmailLog row
            continue
        except Exception as exc:
            logger.exception("Digest evaluation failed for %s", name)
            db.rollback()
            report.failed.append(name)
            report.errors[name] = str(exc)
            continue
        record.last_run_at = now
        db.commit()
        (report.sent if sent else report.skipped_empty).append(name)
    return report
