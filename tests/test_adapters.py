"""
Tests for the process runners — the real CommandRunner against harmless
local programs, and the MockRunner test double.
"""

import pytest

from hostforge.adapters.mock import MockRunner
from hostforge.adapters.shell.command import CommandError, CommandResult, CommandRunner


class Collector:
    def __init__(self):
        self.lines: list[tuple[str, str]] = []

    def __call__(self, message: str, stream: str) -> None:
        self.lines.append((message, stream))


# ── CommandRunner ───────────────────────────────────────────────


class TestCommandRunner:
    def test_run_streams_output(self):
        sink = Collector()
        result = CommandRunner(sink, use_sudo=False).run("echo", ["hello world"])

        assert result.ok
        assert result.stdout == "hello world"
        assert ("$ echo 'hello world'", "info") in sink.lines
        assert ("hello world", "stdout") in sink.lines

    def test_stderr_stream(self):
        sink = Collector()
        CommandRunner(sink, use_sudo=False).run("sh", ["-c", "echo oops >&2"])
        assert ("oops", "stderr") in sink.lines

    def test_check_raises(self):
        with pytest.raises(CommandError) as exc:
            CommandRunner(use_sudo=False).run("false")
        assert exc.value.returncode == 1
        assert exc.value.code == "command_failed"
        assert "false exited with code 1" in str(exc.value)

    def test_unchecked_failure(self):
        result = CommandRunner(use_sudo=False).run("false", check=False)
        assert not result.ok
        assert result.returncode == 1

    def test_stdin(self):
        result = CommandRunner(use_sudo=False).run("cat", stdin="line one\nline two\n")
        assert result.stdout == "line one\nline two"

    def test_env_and_noninteractive(self):
        result = CommandRunner(use_sudo=False).run_silent(
            "sh", ["-c", 'echo "$DEBIAN_FRONTEND $EXTRA"'], env={"EXTRA": "set"}
        )
        assert result.stdout.strip() == "noninteractive set"

    def test_timeout(self):
        with pytest.raises(CommandError) as exc:
            CommandRunner(use_sudo=False).run("sleep", ["5"], timeout=1)
        assert exc.value.timed_out

    def test_missing_program(self):
        with pytest.raises(CommandError) as exc:
            CommandRunner(use_sudo=False).run("hostforge-no-such-program")
        assert "Cannot start" in str(exc.value)

    def test_run_silent_does_not_stream(self):
        sink = Collector()
        result = CommandRunner(sink, use_sudo=False).run_silent("echo", ["quiet"])
        assert result.stdout == "quiet\n"
        assert sink.lines == []

    def test_sudo_prefix_only_on_privileged(self):
        runner = CommandRunner(use_sudo=True)
        assert runner._argv("apt-get", ["update"], privileged=True) == ["sudo", "-n", "-E", "apt-get", "update"]
        assert runner._argv("df", ["-h"], privileged=False) == ["df", "-h"]

    def test_exists(self):
        runner = CommandRunner(use_sudo=False)
        assert runner.exists("sh")
        assert not runner.exists("hostforge-no-such-program")

    def test_version_first_line(self):
        runner = CommandRunner(use_sudo=False)
        assert runner.version(["sh", "-c", "printf '\\nTool 1.2.3\\nmore\\n'"]) == "Tool 1.2.3"
        assert runner.version(["false"]) is None
        assert runner.version([]) is None


class TestCommandResult:
    def test_output_combines_streams(self):
        result = CommandResult(argv=["x"], returncode=0, stdout="out\n", stderr=" err ")
        assert result.output == "out\nerr"


# ── MockRunner ──────────────────────────────────────────────────


class TestMockRunner:
    def test_default_success(self):
        runner = MockRunner()
        result = runner.run("apt-get", ["update"])
        assert result.ok
        assert runner.calls == [["apt-get", "update"]]

    def test_scripted_response(self):
        runner = MockRunner()
        runner.set_response("dpkg-query", stdout="nginx install ok installed\n")
        assert runner.run_silent("dpkg-query", ["-W"]).stdout == "nginx install ok installed\n"

    def test_later_registration_wins(self):
        runner = MockRunner()
        runner.set_failure("systemctl")
        runner.set_response("systemctl start")
        assert runner.run("systemctl", ["start", "nginx"]).ok
        with pytest.raises(CommandError):
            runner.run("systemctl", ["stop", "nginx"])

    def test_failure_unchecked(self):
        runner = MockRunner()
        runner.set_failure("freshclam", stderr="429 Too Many Requests")
        result = runner.run("freshclam", check=False)
        assert result.returncode == 1
        assert "429" in result.output

    def test_effect(self):
        runner = MockRunner()
        runner.set_response("apt-get install", effect=lambda argv: runner.available.add(argv[-1]))
        runner.run("apt-get", ["install", "-y", "nginx"])
        assert runner.exists("nginx")

    def test_service_tracking(self):
        runner = MockRunner(active={"ssh"})
        assert runner.is_enabled("ssh")
        runner.run("systemctl", ["enable", "--now", "nginx"])
        assert runner.is_active("nginx") and runner.is_enabled("nginx")
        runner.run("systemctl", ["stop", "ssh"])
        assert not runner.is_active("ssh")
        runner.run("systemctl", ["disable", "nginx"])
        assert not runner.is_enabled("nginx")
        assert runner.is_active("nginx")

    def test_failed_start_not_tracked(self):
        runner = MockRunner()
        runner.set_failure("systemctl start")
        runner.run("systemctl", ["start", "nginx"], check=False)
        assert not runner.is_active("nginx")

    def test_probes_not_recorded(self):
        runner = MockRunner(available={"psql"}, versions={"psql": "psql (PostgreSQL) 16.2"})
        assert runner.exists("psql")
        assert runner.version(["psql", "--version"]) == "psql (PostgreSQL) 16.2"
        assert runner.version(["redis-server", "--version"]) is None
        assert runner.call_count == 0

    def test_inspection(self):
        runner = MockRunner()
        runner.run("mysql", ["-u", "root"], stdin="SELECT 1;\n", env={"MYSQL_PWD": "s3cret"})
        runner.run("mysql", ["-u", "root"], stdin="SELECT 2;\n")
        assert runner.matching("mysql") == ["mysql -u root", "mysql -u root"]
        assert runner.stdin_for("mysql") == ["SELECT 1;\n", "SELECT 2;\n"]
        assert runner.env_for("mysql") == [{"MYSQL_PWD": "s3cret"}]

    def test_streams_to_sink(self):
        sink = Collector()
        runner = MockRunner(sink)
        runner.set_response("echo", stdout="hi")
        runner.run("echo", ["hi"])
        runner.run_silent("echo", ["quiet"])
        assert sink.lines == [("$ echo hi", "info"), ("hi", "stdout")]

    def test_reset(self):
        runner = MockRunner()
        runner.set_failure("x")
        runner.run("x", check=False)
        runner.reset()
        assert runner.call_count == 0
        assert runner.run("x").ok
