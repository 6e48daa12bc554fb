"""
Credential store — per-component secret records on disk.

Records live at ``<state_dir>/credentials/<type>.json`` (file mode 600,
directory mode 700). Nothing in this module logs a secret value; log
lines name the component and principal only.

Secret rotation is two-phase: the component's authentication is changed
first (via a callback), then the new secret is persisted. A failure in
the second phase leaves the host and the store out of sync, which is
reported as ``PartialStepFailure`` so an operator can reconcile.
"""

from __future__ import annotations

import logging
import secrets
import string
from pathlib import Path
from typing import Callable

from hostforge.core.errors import PartialStepFailure
from hostforge.core.models.credentials import CredentialInstance, CredentialRecord
from hostforge.core.persistence.state_file import ensure_dir, read_json, write_json

logger = logging.getLogger(__name__)

DIR_MODE = 0o700
FILE_MODE = 0o600

# Safe inside single-quoted SQL, unquoted shell words and URL userinfo
SAFE_SYMBOLS = "-_.~+="

_FORBIDDEN = set("'\"`\\$")

ROOT_PRINCIPAL = "root"


def generate_secret(length: int = 24) -> str:
    """Random secret with at least one upper, lower, digit and symbol."""
    if length < 4:
        raise ValueError("secret length must be at least 4")
    classes = (string.ascii_uppercase, string.ascii_lowercase, string.digits, SAFE_SYMBOLS)
    alphabet = "".join(classes)
    chars = [secrets.choice(c) for c in classes]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(classes)))
    # Fisher-Yates with a CSPRNG so the guaranteed chars are not positional
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)


def validate_secret(secret: str) -> str:
    """Reject secrets that cannot be embedded safely in SQL or shell.

    Raises:
        ValueError: on empty secrets, quotes, backslashes, ``$``, backticks
            or whitespace.
    """
    if not secret:
        raise ValueError("secret must not be empty")
    if any(c in _FORBIDDEN or c.isspace() for c in secret):
        raise ValueError("secret must not contain quotes, backslashes, '$', backticks or whitespace")
    return secret


class CredentialStore:
    """Read and write ``CredentialRecord`` documents."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, component_type: str) -> Path:
        return self.root / f"{component_type}.json"

    def save(self, component_type: str, record: CredentialRecord) -> None:
        ensure_dir(self.root, DIR_MODE)
        write_json(self.path_for(component_type), record.model_dump(mode="json"), mode=FILE_MODE)
        logger.info("Stored credentials for %s (%d instance(s))", component_type, len(record.instances))

    def load(self, component_type: str) -> CredentialRecord | None:
        data = read_json(self.path_for(component_type))
        if data is None:
            return None
        return CredentialRecord.from_document(data)

    def save_instance(self, component_type: str, instance: CredentialInstance) -> CredentialRecord:
        """Merge ``instance`` into the record (replace by name or append)."""
        record = self.load(component_type) or CredentialRecord()
        replaced = record.upsert(instance)
        self.save(component_type, record)
        logger.debug("%s credential %s for %s", "Replaced" if replaced else "Added",
                     instance.name, component_type)
        return record

    def set_root_secret(self, component_type: str, secret: str) -> CredentialRecord:
        record = self.load(component_type) or CredentialRecord()
        record.root_secret = secret
        self.save(component_type, record)
        return record

    def delete(self, component_type: str) -> bool:
        path = self.path_for(component_type)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted credentials for %s", component_type)
        return True

    def reset_secret(
        self,
        component_type: str,
        principal: str,
        rotate: Callable[[str], None],
        explicit_secret: str | None = None,
    ) -> str:
        """Rotate a principal's secret on the component, then persist it.

        Args:
            component_type: Credential file key (``postgresql``, ...).
            principal: User name, or ``root`` for the root secret.
            rotate: Applies the new secret to the component.
            explicit_secret: Use this value instead of generating one.

        Returns:
            The new secret.

        Raises:
            ValueError: when ``explicit_secret`` is unsafe.
            PartialStepFailure: when the component accepted the secret but
                the store could not be updated.
        """
        secret = validate_secret(explicit_secret) if explicit_secret is not None else generate_secret()

        rotate(secret)

        try:
            record = self.load(component_type) or CredentialRecord()
            if principal == ROOT_PRINCIPAL:
                record.root_secret = secret
            else:
                existing = record.find_user(principal) or record.get(principal)
                name = existing.name if existing else principal.removesuffix("_user")
                record.upsert(CredentialInstance(name=name, user=principal, secret=secret))
            self.save(component_type, record)
        except OSError as e:
            raise PartialStepFailure(
                "persist credentials",
                f"secret for {principal} was changed on {component_type} but could not be "
                f"stored ({e}); manual reconciliation is needed",
                completed=["rotate"],
            ) from e

        logger.info("Rotated secret for %s on %s", principal, component_type)
        return secret
