"""Optimistic edits: change local state first, write remotely, revert on failure."""

from __future__ import annotations

from typing import Any

from .api import ApiClient


class OptimisticCommand:
    """``execute`` applies locally, performs the remote write and undoes on error."""

    def apply(self) -> None:
        raise NotImplementedError

    def undo(self) -> None:
        raise NotImplementedError

    def remote(self) -> Any:
        raise NotImplementedError

    def execute(self) -> Any:
        self.apply()
        try:
            return self.remote()
        except Exception:
            self.undo()
            raise


class AddRecipientCommand(OptimisticCommand):
    def __init__(self, client: ApiClient, config: dict, email: str):
        self.client = client
        self.config = config
        self.email = email.strip().lower()
        self._added = False

    def apply(self) -> None:
        recipients = self.config.setdefault("recipients", [])
        self._added = self.email not in recipients
        if self._added:
            recipients.append(self.email)

    def undo(self) -> None:
        if self._added:
            self.config["recipients"].remove(self.email)
            self._added = False

    def remote(self) -> dict:
        return self.client.save_auto_email_config(self.config)


class RemoveRecipientCommand(OptimisticCommand):
    def __init__(self, client: ApiClient, config: dict, email: str):
        self.client = client
        self.config = config
        self.email = email.strip().lower()
        self._index: int | None = None

    def apply(self) -> None:
        recipients = self.config.setdefault("recipients", [])
        if self.email in recipients:
            self._index = recipients.index(self.email)
            recipients.pop(self._index)

    def undo(self) -> None:
        if self._index is not None:
            self.config["recipients"].insert(self._index, self.email)
            self._index = None

    def remote(self) -> dict:
        return self.client.save_auto_email_config(self.config)


class AddCollaboratorCommand(OptimisticCommand):
    """Adds (or re-roles) a member on a locally held vault record."""

    def __init__(self, client: ApiClient, kind: str, record: dict, user_id, role: str = "viewer"):
        self.client = client
        self.kind = kind
        self.record = record
        self.user_id = str(user_id)
        self.role = role
        self._placeholder: dict | None = None
        self._previous: dict | None = None

    def _existing(self) -> dict | None:
        for member in self.record.setdefault("members", []):
            if str(member["user"]["id"]) == self.user_id:
                return member
        return None

    def apply(self) -> None:
        existing = self._existing()
        if existing is not None:
            self._previous = {"role": existing["role"], "is_active": existing["is_active"]}
            existing.update(role=self.role, is_active=True)
            return
        self._placeholder = {
            "id": None,
            "role": self.role,
            "is_active": True,
            "user": {"id": self.user_id},
        }
        self.record["members"].append(self._placeholder)

    def undo(self) -> None:
        if self._placeholder is not None:
            self.record["members"].remove(self._placeholder)
            self._placeholder = None
        elif self._previous is not None:
            self._existing().update(self._previous)
            self._previous = None

    def remote(self) -> dict:
        member = self.client.add_collaborator(self.kind, self.record["id"], self.user_id, self.role)
        target = self._placeholder if self._placeholder is not None else self._existing()
        target.clear()
        target.update(member)
        return member


class RemoveCollaboratorCommand(OptimisticCommand):
    def __init__(self, client: ApiClient, kind: str, record: dict, membership_id):
        self.client = client
        self.kind = kind
        self.record = record
        self.membership_id = str(membership_id)
        self._removed: tuple[int, dict] | None = None

    def apply(self) -> None:
        members = self.record.setdefault("members", [])
        for index, member in enumerate(members):
            if str(member["id"]) == self.membership_id:
                self._removed = (index, members.pop(index))
                return

    def undo(self) -> None:
        if self._removed is not None:
            index, member = self._removed
            self.record["members"].insert(index, member)
            self._removed = None

    def remote(self) -> None:
        self.client.remove_collaborator(self.kind, self.record["id"], self.membership_id)
