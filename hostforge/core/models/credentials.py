"""
CredentialRecord — per-engine secret document.

Serialized to ``<state_dir>/credentials/<type>.json`` with mode 600.
Older agents wrote a single ``{"rootPassword", "createdAt"}`` object;
``CredentialRecord.from_document`` migrates that shape on read.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class CredentialInstance(BaseModel):
    """One database/user pair and its secret."""

    name: str
    user: str
    secret: str
    created_at: str = Field(default_factory=_now_iso)

    def __repr__(self) -> str:
        return f"CredentialInstance(name={self.name!r}, user={self.user!r}, secret='***')"


class CredentialRecord(BaseModel):
    """All secrets held for one component type."""

    root_secret: str | None = None
    created_at: str = Field(default_factory=_now_iso)
    instances: list[CredentialInstance] = Field(default_factory=list)

    def __repr__(self) -> str:
        names = [i.name for i in self.instances]
        return f"CredentialRecord(instances={names!r}, root_secret={'***' if self.root_secret else None})"

    def get(self, name: str) -> CredentialInstance | None:
        for instance in self.instances:
            if instance.name == name:
                return instance
        return None

    def find_user(self, user: str) -> CredentialInstance | None:
        for instance in self.instances:
            if instance.user == user:
                return instance
        return None

    def upsert(self, instance: CredentialInstance) -> bool:
        """Replace the instance with the same name, or append it.

        Returns:
            True when an existing entry was replaced.
        """
        for idx, existing in enumerate(self.instances):
            if existing.name == instance.name:
                self.instances[idx] = instance
                return True
        self.instances.append(instance)
        return False

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> CredentialRecord:
        """Build a record from a stored JSON document, migrating legacy shapes."""
        if "instances" in data or "root_secret" in data:
            return cls.model_validate(data)

        # Legacy single-instance shape
        root = data.get("rootPassword") or data.get("root_password")
        created = data.get("createdAt") or data.get("created_at") or _now_iso()
        record = cls(root_secret=root, created_at=created)
        if data.get("user") and (data.get("password") or data.get("secret")):
            record.instances.append(CredentialInstance(
                name=data.get("name") or data["user"],
                user=data["user"],
                secret=data.get("password") or data["secret"],
                created_at=created,
            ))
        return record
