"""
Account repository — direct edits of the local user/group databases.

Package purges leave the dedicated system principal behind (``postgres``,
``mysql``, ``redis``, ``opendkim``, ...). ``userdel`` refuses when the
account is half-broken, so the cleanup engine edits the four flat files
itself: ``/etc/passwd``, ``/etc/shadow``, ``/etc/group`` and
``/etc/gshadow`` (all resolved under ``host_root``).
"""

from __future__ import annotations

import logging
from pathlib import Path

from hostforge.core.persistence.state_file import atomic_write_text

logger = logging.getLogger(__name__)

USER_FILES = ("etc/passwd", "etc/shadow")
GROUP_FILES = ("etc/group", "etc/gshadow")

# Colon-separated field indexes holding comma-separated member lists
_MEMBER_FIELDS = {
    "etc/group": (3,),
    "etc/gshadow": (2, 3),
}


class AccountRepository:
    """Find and delete local accounts by editing the account databases."""

    def __init__(self, host_root: Path | str = "/"):
        self.host_root = Path(host_root)

    def _path(self, rel: str) -> Path:
        return self.host_root / rel

    def _read(self, rel: str) -> list[str]:
        path = self._path(rel)
        if not path.is_file():
            return []
        return path.read_text(encoding="utf-8").splitlines()

    @staticmethod
    def _names(lines: list[str]) -> list[str]:
        return [line.split(":", 1)[0] for line in lines if line and not line.startswith("#")]

    # ── Queries ─────────────────────────────────────────────────

    def users(self) -> list[str]:
        return self._names(self._read("etc/passwd"))

    def groups(self) -> list[str]:
        return self._names(self._read("etc/group"))

    def find_by_prefix(self, prefix: str) -> list[str]:
        """Every user or group name starting with ``prefix`` (sorted, unique)."""
        found = {n for n in self.users() if n.startswith(prefix)}
        found.update(n for n in self.groups() if n.startswith(prefix))
        return sorted(found)

    # ── Mutations ───────────────────────────────────────────────

    def delete_by_name(self, name: str) -> bool:
        """Remove the user and group ``name`` and drop it from member lists.

        Returns:
            True when any of the four files changed.
        """
        changed = False
        for rel in (*USER_FILES, *GROUP_FILES):
            lines = self._read(rel)
            if not lines:
                continue
            kept: list[str] = []
            for line in lines:
                fields = line.split(":")
                if fields[0] == name:
                    continue
                for idx in _MEMBER_FIELDS.get(rel, ()):
                    if idx < len(fields) and fields[idx]:
                        members = [m for m in fields[idx].split(",") if m != name]
                        fields[idx] = ",".join(members)
                kept.append(":".join(fields))
            if kept != lines:
                atomic_write_text(self._path(rel), "\n".join(kept) + "\n" if kept else "")
                logger.info("Removed %s from %s", name, rel)
                changed = True
        return changed
