"""
Mock runner — test double for ``CommandRunner``.

Records every invocation instead of touching the host. By default every
command succeeds with empty output; responses can be scripted per
command-line substring. ``systemctl`` start/stop/restart calls update an
in-memory set of active services so probes see a consistent host.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

from hostforge.adapters.shell.command import CommandError, CommandResult, CommandRunner, Sink


class _Scripted:
    def __init__(
        self,
        stdout: str,
        stderr: str,
        returncode: int,
        effect: Callable[[list[str]], None] | None,
    ):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.effect = effect


class MockRunner(CommandRunner):
    """In-memory command runner for tests.

    Args:
        available: Commands that ``exists()`` reports as present.
        active: Services that ``is_active()`` reports as running.
        versions: Version strings keyed by program name.
    """

    def __init__(
        self,
        sink: Sink | None = None,
        *,
        available: Iterable[str] = (),
        active: Iterable[str] = (),
        versions: dict[str, str] | None = None,
    ):
        super().__init__(sink, use_sudo=False)
        self.available: set[str] = set(available)
        self.active: set[str] = set(active)
        self.enabled: set[str] = set(active)
        self.versions: dict[str, str] = dict(versions or {})
        self._responses: list[tuple[str, _Scripted]] = []
        self._calls: list[list[str]] = []
        self._stdin: list[str | None] = []
        self._envs: list[dict[str, str] | None] = []

    # ── Scripting ───────────────────────────────────────────────

    def set_response(
        self,
        pattern: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        effect: Callable[[list[str]], None] | None = None,
    ) -> None:
        """Script the result of any command line containing ``pattern``.

        Later registrations win over earlier ones.
        """
        self._responses.insert(0, (pattern, _Scripted(stdout, stderr, returncode, effect)))

    def set_failure(self, pattern: str, stderr: str = "Mock failure", returncode: int = 1) -> None:
        """Configure matching commands to exit non-zero."""
        self.set_response(pattern, stderr=stderr, returncode=returncode)

    # ── Inspection ──────────────────────────────────────────────

    @property
    def calls(self) -> list[list[str]]:
        """Every argv this mock has received, in order."""
        return self._calls

    @property
    def call_count(self) -> int:
        return len(self._calls)

    @property
    def command_lines(self) -> list[str]:
        return [" ".join(argv) for argv in self._calls]

    def called(self, pattern: str) -> bool:
        return any(pattern in line for line in self.command_lines)

    def matching(self, pattern: str) -> list[str]:
        return [line for line in self.command_lines if pattern in line]

    def stdin_for(self, pattern: str) -> list[str]:
        """stdin payloads sent to commands whose line contains ``pattern``."""
        return [
            data for argv, data in zip(self._calls, self._stdin)
            if data is not None and pattern in " ".join(argv)
        ]

    def env_for(self, pattern: str) -> list[dict[str, str]]:
        """Extra environments passed to commands whose line contains ``pattern``."""
        return [
            env for argv, env in zip(self._calls, self._envs)
            if env is not None and pattern in " ".join(argv)
        ]

    def reset(self) -> None:
        """Clear the call log and scripted responses."""
        self._calls.clear()
        self._stdin.clear()
        self._envs.clear()
        self._responses.clear()

    # ── Execution ───────────────────────────────────────────────

    def _dispatch(
        self,
        argv: list[str],
        stdin: str | None,
        check: bool,
        stream: bool,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        self._calls.append(argv)
        self._stdin.append(stdin)
        self._envs.append(env)
        line = " ".join(argv)
        if stream:
            self.emit(f"$ {line}", "info")

        scripted = next((s for pattern, s in self._responses if pattern in line), None)
        if scripted is None:
            result = CommandResult(argv=argv, returncode=0)
        else:
            if scripted.effect is not None:
                scripted.effect(argv)
            result = CommandResult(
                argv=argv,
                returncode=scripted.returncode,
                stdout=scripted.stdout,
                stderr=scripted.stderr,
            )

        if result.ok:
            self._track_services(argv)

        if stream:
            for out in result.stdout.splitlines():
                self.emit(out, "stdout")
            for err in result.stderr.splitlines():
                self.emit(err, "stderr")

        if check and not result.ok:
            raise CommandError(
                argv,
                f"{argv[0]} exited with code {result.returncode}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def _track_services(self, argv: list[str]) -> None:
        if len(argv) < 3 or argv[0] != "systemctl":
            return
        verb = argv[1]
        units = [a for a in argv[2:] if not a.startswith("-")]
        if verb in ("start", "restart", "reload-or-restart"):
            self.active.update(units)
        elif verb == "stop":
            self.active.difference_update(units)
        elif verb == "enable":
            self.enabled.update(units)
            if "--now" in argv:
                self.active.update(units)
        elif verb == "disable":
            self.enabled.difference_update(units)
            if "--now" in argv:
                self.active.difference_update(units)

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
        return self._dispatch([program, *args], stdin, check, stream=True, env=env)

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
        return self._dispatch([program, *args], stdin, check, stream=False, env=env)

    # ── Probes ──────────────────────────────────────────────────

    def exists(self, command: str) -> bool:
        return command in self.available

    def is_active(self, service: str) -> bool:
        return service in self.active

    def is_enabled(self, service: str) -> bool:
        return service in self.enabled

    def version(self, argv: Sequence[str]) -> str | None:
        if not argv:
            return None
        return self.versions.get(argv[0])
