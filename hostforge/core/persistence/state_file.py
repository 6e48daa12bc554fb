"""
State file persistence — atomic read/write for JSON documents.

Credential records and stack documents are stored as JSON under the
state directory. Writes are atomic (write to temp file, then rename) so
a crash mid-write never leaves a half-written secret file behind, and
the permission mode is applied to the temp file before it becomes
visible under its final name.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def ensure_dir(path: Path, mode: int | None = None) -> Path:
    """Create ``path`` (and parents) and enforce ``mode`` on the leaf."""
    path.mkdir(parents=True, exist_ok=True)
    if mode is not None:
        os.chmod(path, mode)
    return path


def _default_mode() -> int:
    """0o666 filtered through the process umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def atomic_write_text(
    path: Path,
    content: str,
    mode: int | None = None,
    create_dirs: bool = True,
) -> None:
    """Write text to ``path`` atomically.

    An existing file keeps its owner and group, and keeps its permissions
    when ``mode`` is None. A new file gets ``mode`` or 0o666 minus the
    umask. The temp file carries the final mode and owner before it is
    renamed into place.

    Args:
        path: Target file.
        content: Full file content.
        mode: Optional permission bits (e.g. ``0o600``).
        create_dirs: Create missing parent directories.

    Raises:
        FileNotFoundError: when the parent is missing and ``create_dirs``
            is False.
    """
    if create_dirs:
        path.parent.mkdir(parents=True, exist_ok=True)

    owner: tuple[int, int] | None = None
    if path.exists():
        st = path.stat()
        owner = (st.st_uid, st.st_gid)
        if mode is None:
            mode = st.st_mode & 0o7777
    if mode is None:
        mode = _default_mode()

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(content)
        if owner is not None:
            tmp_st = tmp.stat()
            if (tmp_st.st_uid, tmp_st.st_gid) != owner:
                os.chown(tmp, *owner)
        # chown can clear setuid/setgid bits, so chmod last
        os.chmod(tmp, mode)
        tmp.replace(path)
        logger.debug("Wrote %s", path)
    except Exception as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to write %s: %s", path, e)
        raise


def write_json(path: Path, data: Any, mode: int | None = 0o600) -> None:
    """Serialize ``data`` and write it atomically with ``mode``."""
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    atomic_write_text(path, content, mode=mode)


def read_json(path: Path) -> dict[str, Any] | None:
    """Load a JSON object from ``path``.

    Returns:
        The parsed mapping, or None if the file is absent or corrupt.
    """
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Corrupt JSON document %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Expected a JSON object in %s, got %s", path, type(data).__name__)
        return None
    return data
