"""
Command runner — the single place where host processes are spawned.

Every package-manager, service-manager and tool invocation goes through
``CommandRunner``. Output is streamed line by line to the log sink so a
long apt run is visible while it happens; probes (``run_silent``,
``exists``, ``is_active``, ``version``) capture quietly.

Privilege model:
    Commands run as the current user. A non-root user gets a
    ``sudo -n`` prefix on mutating calls (never on probes), so a
    missing sudoers entry fails fast instead of hanging on a prompt.

``DEBIAN_FRONTEND=noninteractive`` is always set.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
import time
from typing import Callable, Sequence

from pydantic import BaseModel

logger = logging.getLogger(__name__)

# (message, stream); stream is one of stdout, stderr, info
Sink = Callable[[str, str], None]

DEFAULT_TIMEOUT = 1800
DEFAULT_PROBE_TIMEOUT = 30


class CommandResult(BaseModel):
    """Captured outcome of one process invocation."""

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined, stripped."""
        return "\n".join(p for p in (self.stdout.strip(), self.stderr.strip()) if p)


class CommandError(Exception):
    """A process exited non-zero (with ``check``), timed out, or could not start."""

    code = "command_failed"

    def __init__(
        self,
        argv: Sequence[str],
        message: str,
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ):
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out
        super().__init__(message)

    @property
    def output(self) -> str:
        return "\n".join(p for p in (self.stdout.strip(), self.stderr.strip()) if p)


def _format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class CommandRunner:
    """Spawn host processes with timeouts, privilege prefix and streaming."""

    def __init__(
        self,
        sink: Sink | None = None,
        *,
        timeout: int = DEFAULT_TIMEOUT,
        probe_timeout: int = DEFAULT_PROBE_TIMEOUT,
        use_sudo: bool | None = None,
    ):
        self.sink = sink
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        if use_sudo is None:
            use_sudo = os.geteuid() != 0
        self.use_sudo = use_sudo

    # ── Environment ─────────────────────────────────────────────

    def _env(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        env = os.environ.copy()
        env["DEBIAN_FRONTEND"] = "noninteractive"
        if extra:
            env.update(extra)
        return env

    def _argv(self, program: str, args: Sequence[str], privileged: bool) -> list[str]:
        argv = [program, *args]
        if privileged and self.use_sudo:
            # Keep the environment so DEBIAN_FRONTEND survives sudo
            argv = ["sudo", "-n", "-E", *argv]
        return argv

    def emit(self, message: str, stream: str = "info") -> None:
        if self.sink is not None:
            self.sink(message, stream)

    # ── Execution ───────────────────────────────────────────────

    def run(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        stdin: str | None = None,
        check: bool = True,
        timeout: int | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run a privileged command, streaming output lines to the sink.

        Raises:
            CommandError: on timeout, spawn failure, or non-zero exit when
                ``check`` is true.
        """
        argv = self._argv(program, args, privileged=True)
        limit = timeout or self.timeout
        logger.debug("run: %s (timeout=%ss)", _format_argv(argv), limit)
        self.emit(f"$ {_format_argv([program, *args])}", "info")

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self._env(env),
            )
        except OSError as e:
            raise CommandError(argv, f"Cannot start {program}: {e}") from e

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        def _pump(pipe, lines: list[str], stream: str) -> None:
            for raw in pipe:
                line = raw.rstrip("\n")
                lines.append(line)
                self.emit(line, stream)
            pipe.close()

        readers = [
            threading.Thread(target=_pump, args=(proc.stdout, stdout_lines, "stdout"), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, stderr_lines, "stderr"), daemon=True),
        ]
        for reader in readers:
            reader.start()

        if stdin is not None and proc.stdin is not None:
            try:
                proc.stdin.write(stdin)
                proc.stdin.close()
            except BrokenPipeError:
                pass

        try:
            proc.wait(timeout=limit)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
            for reader in readers:
                reader.join(timeout=5)
            self.emit(f"Command timed out after {limit}s", "stderr")
            raise CommandError(
                argv,
                f"{program} timed out after {limit}s",
                stdout="\n".join(stdout_lines),
                stderr="\n".join(stderr_lines),
                timed_out=True,
            ) from None

        for reader in readers:
            reader.join()

        result = CommandResult(
            argv=argv,
            returncode=proc.returncode,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        if check and not result.ok:
            raise CommandError(
                argv,
                f"{program} exited with code {result.returncode}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def run_silent(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        stdin: str | None = None,
        check: bool = False,
        timeout: int | None = None,
        privileged: bool = True,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run a command capturing output without streaming it."""
        argv = self._argv(program, args, privileged=privileged)
        limit = timeout or self.probe_timeout
        logger.debug("run_silent: %s", _format_argv(argv))
        start = time.monotonic()
        try:
            completed = subprocess.run(
                argv,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=limit,
                env=self._env(env),
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(argv, f"{program} timed out after {limit}s", timed_out=True) from e
        except OSError as e:
            raise CommandError(argv, f"Cannot start {program}: {e}") from e

        result = CommandResult(
            argv=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        if check and not result.ok:
            raise CommandError(
                argv,
                f"{program} exited with code {result.returncode}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    # ── Probes ──────────────────────────────────────────────────

    def exists(self, command: str) -> bool:
        """Whether ``command`` resolves on the host PATH."""
        try:
            result = self.run_silent("sh", ["-c", f"command -v {shlex.quote(command)}"], privileged=False)
        except CommandError:
            return False
        return result.ok and bool(result.stdout.strip())

    def is_active(self, service: str) -> bool:
        try:
            result = self.run_silent("systemctl", ["is-active", "--quiet", service], privileged=False)
        except CommandError:
            return False
        return result.ok

    def is_enabled(self, service: str) -> bool:
        try:
            result = self.run_silent("systemctl", ["is-enabled", "--quiet", service], privileged=False)
        except CommandError:
            return False
        return result.ok

    def version(self, argv: Sequence[str]) -> str | None:
        """First non-empty output line of a version probe, or None."""
        if not argv:
            return None
        try:
            result = self.run_silent(argv[0], list(argv[1:]), privileged=False)
        except CommandError:
            return None
        if not result.ok:
            return None
        for line in result.output.splitlines():
            if line.strip():
                return line.strip()
        return None
