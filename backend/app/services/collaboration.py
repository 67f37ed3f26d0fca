"""Collaboration memberships for shareable vault records (credentials, subscriptions)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, notify, schemas
from ..activity import log_activity
from ..rbac import can_manage_record

# purpose: grant viewer/editor access to PUBLIC vault records in bulk or one at a time
# inputs: record ids, member ids, requested role, acting user
# outputs: membership rows, collaboration notifications, per-member batch summaries

logger = logging.getLogger(__name__)

MEMBER_ROLES = ("viewer", "editor")
MAX_BATCH_ATTEMPTS = 2

T = TypeVar("T")


class CollaborationError(RuntimeError):
    """Base error for collaboration flows."""


class RecordNotShareable(CollaborationError):
    """Raised when a PRIVATE record is offered for collaboration."""


class MemberNotFound(CollaborationError):
    """Raised when the requested collaborator does not exist."""


class SelfCollaboration(CollaborationError):
    """Raised when the record creator is added to their own record."""


class CollaborationDenied(CollaborationError):
    """Raised when the actor cannot manage the record's collaborators."""


@dataclass(frozen=True)
class ShareableKind:
    name: str
    model: type
    member_model: type
    fk: str

    @property
    def plural(self) -> str:
        return f"{self.name}s"

    def count_label(self, count: int) -> str:
        return f"{count} {self.name if count == 1 else self.plural}"


CREDENTIALS = ShareableKind("credential", models.Credential, models.CredentialMember, "credential_id")
SUBSCRIPTIONS = ShareableKind(
    "subscription", models.Subscription, models.SubscriptionMember, "subscription_id"
)


@dataclass
class _MemberTally:
    user: models.User
    created: int = 0
    updated: int = 0
    skipped: int = 0
    notes: list[str] = field(default_factory=list)

    @property
    def action(self) -> str:
        if self.created:
            return "created"
        if self.updated:
            return "updated"
        return "skipped"

    @property
    def count(self) -> int:
        return {"created": self.created, "updated": self.updated, "skipped": self.skipped}[self.action]


def _dedupe(values: Iterable[T]) -> list[T]:
    seen: list[T] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _member_fk(kind: ShareableKind):
    return getattr(kind.member_model, kind.fk)


def _new_membership(kind: ShareableKind, record, user_id: UUID, role: str):
    return kind.member_model(**{kind.fk: record.id, "user_id": user_id, "role": role, "is_active": True})


def _refresh_membership(membership, role: str) -> None:
    membership.role = role
    membership.is_active = True
    membership.updated_at = models.utcnow()


def _plan_batch(
    db: Session,
    kind: ShareableKind,
    records: Sequence,
    members: Sequence[models.User],
    role: str,
) -> tuple[dict[UUID, _MemberTally], list]:
    """Decide every (record, member) pair against one snapshot of memberships."""

    tallies = {user.id: _MemberTally(user=user) for user in members}
    snapshot = {
        (getattr(m, kind.fk), m.user_id): m
        for m in db.query(kind.member_model)
        .filter(
            _member_fk(kind).in_([r.id for r in records]),
            kind.member_model.user_id.in_([u.id for u in members]),
        )
        .all()
    }
    writes: list = []
    owned: dict[UUID, int] = {}
    for record in records:
        for user in members:
            tally = tallies[user.id]
            if not user.is_active:
                tally.skipped += 1
                continue
            if record.created_by == user.id:
                tally.skipped += 1
                owned[user.id] = owned.get(user.id, 0) + 1
                continue
            existing = snapshot.get((record.id, user.id))
            if existing is not None:
                writes.append((existing, None, user))
                tally.updated += 1
            else:
                writes.append((None, record, user))
                tally.created += 1
    for user in members:
        tally = tallies[user.id]
        if not user.is_active:
            tally.notes.append("Member account is inactive")
        elif user.id in owned:
            tally.notes.append(
                f"Cannot collaborate on own {kind.name}: skipped {kind.count_label(owned[user.id])}"
            )
    return tallies, writes


def merge_collaboration_requests(
    db: Session,
    kind: ShareableKind,
    actor: models.User,
    resource_ids: Sequence[UUID],
    member_ids: Sequence[UUID],
    role: str = "viewer",
) -> schemas.CollaborationSummaryOut:
    """Create or refresh memberships for every eligible record x member pair.

    Records that are missing, PRIVATE or not managed by ``actor`` are only
    counted. Decisions are computed before any write, so the batch never sees
    its own changes; the whole batch commits once and is replayed once if a
    concurrent writer wins a unique constraint.
    """

    if role not in MEMBER_ROLES:
        raise CollaborationError(f"Unsupported role {role!r}")
    resource_ids = _dedupe(resource_ids)
    member_ids = _dedupe(member_ids)

    for attempt in range(1, MAX_BATCH_ATTEMPTS + 1):
        found = {
            r.id: r for r in db.query(kind.model).filter(kind.model.id.in_(resource_ids)).all()
        }
        eligible = []
        for rid in resource_ids:
            record = found.get(rid)
            if (
                record is None
                or record.privacy_level != models.PRIVACY_PUBLIC
                or not can_manage_record(actor, record)
            ):
                continue
            eligible.append(record)
        inaccessible = len(resource_ids) - len(eligible)

        users = {u.id: u for u in db.query(models.User).filter(models.User.id.in_(member_ids)).all()}
        unknown = [mid for mid in member_ids if mid not in users]
        if unknown:
            logger.info("Ignoring %d unknown collaborator id(s): %s", len(unknown), unknown)
        members = [users[mid] for mid in member_ids if mid in users]

        summary = schemas.CollaborationSummaryOut(inaccessible_credential_count=inaccessible)
        if not eligible or not members:
            return summary

        tallies, writes = _plan_batch(db, kind, eligible, members, role)
        for existing, record, user in writes:
            if existing is not None:
                _refresh_membership(existing, role)
            else:
                db.add(_new_membership(kind, record, user.id, role))

        for tally in tallies.values():
            if tally.created:
                notify.notify_user(
                    db,
                    tally.user.id,
                    f"{actor.display_name} shared {kind.count_label(tally.created)} with you",
                    title="New collaboration",
                    category="collaboration",
                    meta={"kind": kind.name, "role": role},
                )
            summary.details.append(
                schemas.CollaborationDetailOut(
                    member_id=tally.user.id,
                    member_name=tally.user.display_name,
                    member_email=tally.user.email,
                    action=tally.action,
                    credential_count=tally.count,
                    note="; ".join(tally.notes) or None,
                )
            )
        summary.created = sum(1 for d in summary.details if d.action == "created")
        summary.updated = sum(1 for d in summary.details if d.action == "updated")
        summary.skipped = sum(1 for d in summary.details if d.action == "skipped")
        log_activity(
            db,
            actor.id,
            f"{kind.name.upper()}_COLLABORATION_REQUESTED",
            "Collaboration Requested",
            description=(
                f"Shared {kind.count_label(len(eligible))} with "
                f"{len(members)} member{'' if len(members) == 1 else 's'}"
            ),
            entity_type=kind.name,
            meta={
                "created": summary.created,
                "updated": summary.updated,
                "skipped": summary.skipped,
                "inaccessible": inaccessible,
                "role": role,
            },
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if attempt == MAX_BATCH_ATTEMPTS:
                raise
            logger.warning("Collaboration batch raced a concurrent writer; replaying")
            continue
        return summary
    raise CollaborationError("collaboration batch could not be applied")


def add_member(
    db: Session,
    kind: ShareableKind,
    actor: models.User,
    record,
    user_id: UUID,
    role: str = "viewer",
):
    """Upsert one collaborator on ``record``; an existing membership is refreshed."""

    if not can_manage_record(actor, record):
        raise CollaborationDenied(f"Not allowed to manage {kind.name} collaborators")
    if record.privacy_level != models.PRIVACY_PUBLIC:
        raise RecordNotShareable(
            f"Only {kind.plural} with PUBLIC privacy level can be shared for collaboration"
        )
    if role not in MEMBER_ROLES:
        raise CollaborationError(f"Unsupported role {role!r}")
    user = db.get(models.User, user_id)
    if user is None:
        raise MemberNotFound("User not found")
    if record.created_by == user.id:
        raise SelfCollaboration(f"Cannot collaborate on your own {kind.name}")
    membership = (
        db.query(kind.member_model)
        .filter(_member_fk(kind) == record.id, kind.member_model.user_id == user.id)
        .first()
    )
    if membership is None:
        membership = _new_membership(kind, record, user.id, role)
        db.add(membership)
        notify.notify_user(
            db,
            user.id,
            f"{actor.display_name} shared a {kind.name} with you",
            title="New collaboration",
            category="collaboration",
            meta={"kind": kind.name, "record_id": str(record.id), "role": role},
        )
    else:
        _refresh_membership(membership, role)
    db.commit()
    db.refresh(membership)
    return membership


def deactivate_memberships(record) -> int:
    """Switching a record to PRIVATE suspends every collaborator."""
    changed = 0
    for member in record.members:
        if member.is_active:
            member.is_active = False
            member.updated_at = models.utcnow()
            changed += 1
    return changed
