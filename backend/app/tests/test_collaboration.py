from .conftest import client, db, create_user

import uuid

import pytest

from app import models
from app.services import collaboration
from app.services.collaboration import CREDENTIALS, SUBSCRIPTIONS


def _credential(db, owner, privacy="PUBLIC", company="Acme"):
    record = models.Credential(
        company=company,
        platform="AWS",
        username="root",
        password="pw",
        privacy_level=privacy,
        created_by=owner.id,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def _actor(db, user):
    return db.get(models.User, user.id)


def test_first_request_creates_then_repeats_update(db):
    owner, _ = create_user(has_credential_access=True)
    member, _ = create_user()
    records = [_credential(db, owner), _credential(db, owner, company="Globex")]
    ids = [r.id for r in records]

    summary = collaboration.merge_collaboration_requests(db, CREDENTIALS, _actor(db, owner), ids, [member.id])
    assert (summary.created, summary.updated, summary.skipped) == (1, 0, 0)
    detail = summary.details[0]
    assert detail.member_id == member.id
    assert detail.action == "created"
    assert detail.credential_count == 2
    assert summary.inaccessible_credential_count == 0

    again = collaboration.merge_collaboration_requests(
        db, CREDENTIALS, _actor(db, owner), ids, [member.id], role="editor"
    )
    assert (again.created, again.updated, again.skipped) == (0, 1, 0)
    assert again.details[0].credential_count == 2
    rows = db.query(models.CredentialMember).filter(models.CredentialMember.user_id == member.id).all()
    assert len(rows) == 2
    assert {r.role for r in rows} == {"editor"}


def test_mixed_new_and_existing_memberships_count_as_created(db):
    owner, _ = create_user()
    member, _ = create_user()
    shared = _credential(db, owner)
    fresh = _credential(db, owner, company="Initech")
    db.add(models.CredentialMember(credential_id=shared.id, user_id=member.id, role="viewer"))
    db.commit()

    summary = collaboration.merge_collaboration_requests(
        db, CREDENTIALS, _actor(db, owner), [shared.id, fresh.id], [member.id], role="editor"
    )
    assert (summary.created, summary.updated, summary.skipped) == (1, 0, 0)
    assert len(summary.details) == 1
    detail = summary.details[0]
    assert detail.action == "created"
    assert detail.credential_count == 1
    rows = db.query(models.CredentialMember).filter_by(user_id=member.id).all()
    assert len(rows) == 2
    assert {r.role for r in rows} == {"editor"}
    notes = db.query(models.Notification).filter_by(user_id=member.id, category="collaboration").all()
    assert [n.message for n in notes] == [f"{owner.full_name} shared 1 credential with you"]


def test_private_and_missing_records_are_inaccessible(db):
    owner, _ = create_user()
    member, _ = create_user()
    public = _credential(db, owner)
    private = _credential(db, owner, privacy="PRIVATE")
    summary = collaboration.merge_collaboration_requests(
        db, CREDENTIALS, _actor(db, owner), [public.id, private.id, uuid.uuid4()], [member.id]
    )
    assert summary.inaccessible_credential_count == 2
    assert summary.created == 1
    assert db.query(models.CredentialMember).filter_by(credential_id=private.id).count() == 0


def test_only_private_records_yield_empty_summary(db):
    owner, _ = create_user()
    member, _ = create_user()
    private = _credential(db, owner, privacy="PRIVATE")
    summary = collaboration.merge_collaboration_requests(
        db, CREDENTIALS, _actor(db, owner), [private.id], [member.id]
    )
    assert summary.details == []
    assert summary.inaccessible_credential_count == 1


def test_records_of_other_users_are_inaccessible_to_non_admins(db):
    owner, _ = create_user()
    stranger, _ = create_user()
    member, _ = create_user()
    record = _credential(db, owner)
    summary = collaboration.merge_collaboration_requests(
        db, CREDENTIALS, _actor(db, stranger), [record.id], [member.id]
    )
    assert summary.inaccessible_credential_count == 1
    assert summary.details == []


def test_owner_and_inactive_members_are_skipped(db):
    owner, _ = create_user("admin")
    other_owner, _ = create_user()
    inactive, _ = create_user(is_active=False)
    mine = _credential(db, owner)
    theirs = _credential(db, other_owner)

    summary = collaboration.merge_collaboration_requests(
        db, CREDENTIALS, _actor(db, owner), [mine.id, theirs.id], [other_owner.id, inactive.id]
    )
    by_member = {d.member_id: d for d in summary.details}
    owner_detail = by_member[other_owner.id]
    assert owner_detail.action == "created"
    assert owner_detail.credential_count == 1
    assert owner_detail.note == "Cannot collaborate on own credential: skipped 1 credential"
    inactive_detail = by_member[inactive.id]
    assert inactive_detail.action == "skipped"
    assert inactive_detail.credential_count == 2
    assert inactive_detail.note == "Member account is inactive"
    assert (summary.created, summary.updated, summary.skipped) == (1, 0, 1)
    assert db.query(models.CredentialMember).filter_by(user_id=inactive.id).count() == 0


def test_duplicate_ids_and_unknown_members_are_ignored(db):
    owner, _ = create_user()
    member, _ = create_user()
    record = _credential(db, owner)
    summary = collaboration.merge_collaboration_requests(
        db,
        CREDENTIALS,
        _actor(db, owner),
        [record.id, record.id],
        [member.id, member.id, uuid.uuid4()],
    )
    assert len(summary.details) == 1
    assert summary.details[0].credential_count == 1
    assert db.query(models.CredentialMember).filter_by(credential_id=record.id).count() == 1


def test_new_collaborators_are_notified(db):
    owner, _ = create_user(full_name="Olive Owner")
    member, _ = create_user()
    record = _credential(db, owner)
    collaboration.merge_collaboration_requests(db, CREDENTIALS, _actor(db, owner), [record.id], [member.id])
    notes = db.query(models.Notification).filter_by(user_id=member.id, category="collaboration").all()
    assert len(notes) == 1
    assert notes[0].message == "Olive Owner shared 1 credential with you"


def test_deactivated_membership_is_reactivated_as_update(db):
    owner, _ = create_user()
    member, _ = create_user()
    record = _credential(db, owner)
    db.add(models.CredentialMember(credential_id=record.id, user_id=member.id, role="viewer", is_active=False))
    db.commit()
    summary = collaboration.merge_collaboration_requests(db, CREDENTIALS, _actor(db, owner), [record.id], [member.id])
    assert summary.details[0].action == "updated"
    row = db.query(models.CredentialMember).filter_by(credential_id=record.id, user_id=member.id).one()
    assert row.is_active is True


def test_add_member_rules(db):
    owner, _ = create_user()
    member, _ = create_user()
    actor = _actor(db, owner)
    private = _credential(db, owner, privacy="PRIVATE")
    with pytest.raises(collaboration.RecordNotShareable):
        collaboration.add_member(db, CREDENTIALS, actor, private, member.id)
    public = _credential(db, owner)
    with pytest.raises(collaboration.SelfCollaboration):
        collaboration.add_member(db, CREDENTIALS, actor, public, owner.id)
    with pytest.raises(collaboration.MemberNotFound):
        collaboration.add_member(db, CREDENTIALS, actor, public, uuid.uuid4())
    first = collaboration.add_member(db, CREDENTIALS, actor, public, member.id)
    second = collaboration.add_member(db, CREDENTIALS, actor, public, member.id, role="editor")
    assert first.id == second.id
    assert second.role == "editor"


def test_subscription_requests_over_http(client):
    owner, owner_headers = create_user(has_subscription_access=True)
    member, _ = create_user()
    resp = client.post(
        "/api/subscriptions",
        json={"name": "Figma", "amount": 15, "privacy_level": "PUBLIC"},
        headers=owner_headers,
    )
    assert resp.status_code == 200, resp.text
    sub_id = resp.json()["id"]
    resp = client.post(
        "/api/subscriptions/collaboration-requests",
        json={"resource_ids": [sub_id], "member_ids": [str(member.id)]},
        headers=owner_headers,
    )
    assert resp.status_code == 200, resp.text
    summary = resp.json()["summary"]
    assert summary["created"] == 1
    assert summary["details"][0]["member_email"] == member.email
    assert summary["details"][0]["credential_count"] == 1


def test_collaboration_request_requires_feature_access(client):
    _, headers = create_user()
    resp = client.post(
        "/api/credentials/collaboration-requests",
        json={"resource_ids": [str(uuid.uuid4())], "member_ids": [str(uuid.uuid4())]},
        headers=headers,
    )
    assert resp.status_code == 403


def test_subscription_kind_labels():
    assert SUBSCRIPTIONS.count_label(1) == "1 subscription"
    assert CREDENTIALS.count_label(3) == "3 credentials"
