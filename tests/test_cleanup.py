"""
Tests for the cleanup engine and the account repository it edits.
"""

import os
import stat
from pathlib import Path

import pytest

from hostforge.adapters.accounts import AccountRepository
from hostforge.adapters.mock import MockRunner
from hostforge.core.errors import UnknownComponent
from hostforge.core.services.cleanup import CleanupEngine

PASSWD = """\
root:x:0:0:root:/root:/bin/bash
postgres:x:114:121:PostgreSQL administrator,,,:/var/lib/postgresql:/bin/bash
alice:x:1000:1000::/home/alice:/bin/bash
"""

SHADOW = """\
root:*:19000:0:99999:7:::
postgres:*:19000:0:99999:7:::
alice:$y$j9T:19000:0:99999:7:::
"""

GROUP = """\
root:x:0:
ssl-cert:x:110:postgres,alice
postgres:x:121:
alice:x:1000:
"""

GSHADOW = """\
root:*::
ssl-cert:!:postgres:postgres,alice
postgres:!::
alice:!::
"""

STATOVERRIDE = """\
root ssl-cert 710 /etc/ssl/private
postgres postgres 2775 /var/run/postgresql
"""


@pytest.fixture
def seeded_host(host_root: Path, host_file) -> Path:
    host_file("/etc/passwd", PASSWD)
    host_file("/etc/shadow", SHADOW)
    host_file("/etc/group", GROUP)
    host_file("/etc/gshadow", GSHADOW)
    host_file("/var/lib/dpkg/statoverride", STATOVERRIDE)
    host_file("/var/lib/dpkg/info/postgresql-16.list", "")
    host_file("/var/lib/dpkg/info/postgresql-common.postinst", "")
    host_file("/var/lib/dpkg/info/nginx.list", "")
    host_file("/var/lib/postgresql/16/main/PG_VERSION", "16\n")
    host_file("/etc/postgresql/16/main/postgresql.conf", "port = 5432\n")
    host_file("/var/log/postgresql/postgresql-16-main.log", "")
    return host_root


def _other_gid(path: Path) -> int:
    """A group id different from the file's that this process may chown to."""
    current = path.stat().st_gid
    if os.geteuid() == 0:
        return 42 if current != 42 else 43
    others = [g for g in os.getgroups() if g != current]
    if not others:
        pytest.skip("changing the group needs root or a supplementary group")
    return others[0]


def _snapshot(root: Path) -> dict[str, str]:
    return {
        p.relative_to(root).as_posix(): p.read_text() if p.is_file() else "<dir>"
        for p in sorted(root.rglob("*"))
    }


# ── Accounts ────────────────────────────────────────────────────


class TestAccountRepository:
    def test_queries(self, seeded_host: Path):
        repo = AccountRepository(seeded_host)
        assert repo.users() == ["root", "postgres", "alice"]
        assert "ssl-cert" in repo.groups()
        assert repo.find_by_prefix("post") == ["postgres"]

    def test_delete_by_name(self, seeded_host: Path):
        repo = AccountRepository(seeded_host)
        assert repo.delete_by_name("postgres") is True

        etc = seeded_host / "etc"
        assert "postgres" not in (etc / "passwd").read_text()
        assert "postgres" not in (etc / "shadow").read_text()
        assert "ssl-cert:x:110:alice\n" in (etc / "group").read_text()
        assert "ssl-cert:!::alice\n" in (etc / "gshadow").read_text()
        assert "alice:x:1000" in (etc / "passwd").read_text()

    def test_delete_keeps_owner_and_mode(self, seeded_host: Path):
        shadow = seeded_host / "etc" / "shadow"
        gid = _other_gid(shadow)
        os.chown(shadow, shadow.stat().st_uid, gid)
        shadow.chmod(0o640)

        assert AccountRepository(seeded_host).delete_by_name("postgres") is True

        assert "postgres" not in shadow.read_text()
        assert shadow.stat().st_gid == gid
        assert stat.S_IMODE(shadow.stat().st_mode) == 0o640

    def test_delete_missing(self, seeded_host: Path):
        assert AccountRepository(seeded_host).delete_by_name("nobody") is False

    def test_missing_files(self, tmp_path: Path):
        repo = AccountRepository(tmp_path)
        assert repo.users() == []
        assert repo.delete_by_name("postgres") is False


# ── Purge ───────────────────────────────────────────────────────


class TestPurge:
    def test_purge_postgresql(self, seeded_host: Path):
        runner = MockRunner(active={"postgresql"}, available={"debconf-communicate"})
        runner.set_response(
            "dpkg-query",
            stdout="postgresql-16 install ok installed\npostgresql-common deinstall ok config-files\n"
                   "postgresql-doc unknown ok not-installed\n",
        )
        issues = CleanupEngine(runner, seeded_host).purge("postgresql")

        assert issues == []
        assert runner.called("systemctl stop postgresql")
        assert runner.called("apt-get purge -y postgresql-16 postgresql-common")
        assert not runner.called("postgresql-doc")
        assert runner.called("apt-get autoremove -y")
        assert runner.stdin_for("debconf-communicate") == ["PURGE\n"]

        assert not (seeded_host / "var/lib/postgresql").exists()
        assert not (seeded_host / "etc/postgresql").exists()
        assert not (seeded_host / "var/log/postgresql").exists()
        info = sorted(p.name for p in (seeded_host / "var/lib/dpkg/info").iterdir())
        assert info == ["nginx.list"]
        assert (seeded_host / "var/lib/dpkg/statoverride").read_text() == "root ssl-cert 710 /etc/ssl/private\n"
        assert "postgres" not in (seeded_host / "etc/passwd").read_text()

    def test_purge_is_idempotent(self, seeded_host: Path):
        runner = MockRunner()
        engine = CleanupEngine(runner, seeded_host)
        engine.purge("postgresql")
        first = _snapshot(seeded_host)
        assert engine.purge("postgresql") == []
        assert _snapshot(seeded_host) == first

    def test_nothing_installed_skips_apt(self, host_root: Path):
        runner = MockRunner()
        CleanupEngine(runner, host_root).purge("redis")
        assert runner.called("dpkg-query")
        assert not runner.called("apt-get")
        assert not runner.called("debconf-communicate")

    def test_step_failure_is_advisory(self, seeded_host: Path):
        runner = MockRunner()
        runner.set_response("dpkg-query", stdout="postgresql-16 install ok installed\n")
        runner.set_failure("apt-get purge", stderr="dpkg lock held")
        issues = CleanupEngine(runner, seeded_host).purge("postgresql")

        assert [i.step for i in issues] == ["purge packages"]
        assert issues[0].code == "command_failed"
        # Later steps still ran
        assert not (seeded_host / "var/lib/postgresql").exists()

    def test_unknown_profile(self, host_root: Path):
        with pytest.raises(UnknownComponent):
            CleanupEngine(MockRunner(), host_root).purge("nginx")

    def test_has_profile(self, host_root: Path):
        engine = CleanupEngine(MockRunner(), host_root)
        assert engine.has_profile("mysql")
        assert not engine.has_profile("nginx")
