"""
Operation log — the human-readable narrative of every operation.

Each message is appended to the aggregate ``infrastructure.log`` and,
while an operation is scoped to a component, to ``<component>.log`` in
the same directory. Lines are formatted ``[<iso-ts>] [<stream>] <msg>``.

Secret values registered with ``mask()`` are replaced by ``***`` before
anything is written or forwarded.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

AGGREGATE_LOG = "infrastructure"

LogSink = Callable[[str, str], None]


class OperationLog:
    """Sink that persists operation output per component and in aggregate.

    Args:
        log_dir: Directory holding the ``.log`` files.
        forward: Optional downstream sink (console, socket, ...).
        clock: Returns the timestamp for each line (injectable for tests).
    """

    def __init__(
        self,
        log_dir: Path,
        forward: LogSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.log_dir = Path(log_dir)
        self.forward = forward
        self._clock = clock or (lambda: datetime.now(UTC))
        self._current: str | None = None
        self._masked: set[str] = set()

    # ── Scoping ─────────────────────────────────────────────────

    @contextmanager
    def component(self, component_id: str) -> Iterator[OperationLog]:
        """Route messages to ``<component_id>.log`` for the block's duration."""
        previous = self._current
        self._current = component_id
        try:
            yield self
        finally:
            self._current = previous

    @property
    def current(self) -> str | None:
        return self._current

    def mask(self, secret: str | None) -> None:
        """Never write ``secret`` to any log from now on."""
        if secret:
            self._masked.add(secret)

    # ── Sink ────────────────────────────────────────────────────

    def _redact(self, message: str) -> str:
        for secret in self._masked:
            message = message.replace(secret, "***")
        return message

    def __call__(self, message: str, stream: str = "info") -> None:
        message = self._redact(message)
        stamp = self._clock().isoformat()
        lines = message.splitlines() or [""]
        text = "".join(f"[{stamp}] [{stream}] {line}\n" for line in lines)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        targets = [AGGREGATE_LOG]
        if self._current and self._current != AGGREGATE_LOG:
            targets.append(self._current)
        for name in targets:
            with self.path_for(name).open("a", encoding="utf-8") as fh:
                fh.write(text)

        if self.forward is not None:
            self.forward(message, stream)

    def info(self, message: str) -> None:
        self(message, "info")

    def error(self, message: str) -> None:
        self(message, "stderr")

    # ── Reading ─────────────────────────────────────────────────

    def path_for(self, component_id: str | None = None) -> Path:
        return self.log_dir / f"{component_id or AGGREGATE_LOG}.log"

    def read(self, component_id: str | None = None, lines: int | None = None) -> str:
        """Return the log content, or only the last ``lines`` lines."""
        path = self.path_for(component_id)
        if not path.is_file():
            return ""
        content = path.read_text(encoding="utf-8")
        if not lines:
            return content
        return "\n".join(content.splitlines()[-lines:])

    def clear(self, component_id: str | None = None) -> None:
        path = self.path_for(component_id)
        if path.is_file():
            path.write_text("", encoding="utf-8")
            logger.debug("Cleared %s", path)

    def has_logs(self, component_id: str | None = None) -> bool:
        path = self.path_for(component_id)
        return path.is_file() and path.stat().st_size > 0
