"""
Tests for detection — probe parsers, version helpers and the full
host status snapshot.
"""

import json

import pytest

from hostforge.adapters.mock import MockRunner
from hostforge.core.services.detection import detect_host_status
from hostforge.core.services.detection.system import (
    detect_system,
    format_uptime,
    parse_df,
    parse_meminfo,
    parse_os_release,
)
from hostforge.core.services.detection.versions import (
    apt_candidate,
    compare_versions,
    extract_version,
    latest_version,
)

OS_RELEASE = """\
PRETTY_NAME="Ubuntu 24.04.1 LTS"
NAME="Ubuntu"
VERSION_ID="24.04"
ID=ubuntu
"""

DF_OUTPUT = """\
Filesystem      Size  Used Avail Use% Mounted on
/dev/sda1        40G   12G   26G  32% /
"""

APT_POLICY = """\
python3:
  Installed: 3.12.3-0ubuntu1
  Candidate: 3.12.3-0ubuntu2
  Version table:
"""


# ── Parsers ─────────────────────────────────────────────────────


class TestParsers:
    def test_os_release(self):
        assert parse_os_release(OS_RELEASE) == ("Ubuntu 24.04.1 LTS", "24.04")

    def test_os_release_missing(self):
        assert parse_os_release("") == ("Linux", "")

    def test_meminfo_rounds_to_gb(self):
        assert parse_meminfo("MemTotal:        8039196 kB\nMemFree: 1 kB\n") == "8GB"
        assert parse_meminfo("garbage") == ""

    def test_df(self):
        assert parse_df(DF_OUTPUT) == "12G / 40G (32%)"

    @pytest.mark.parametrize("output", ["", "Filesystem Size\n", "header\nshort line\n"])
    def test_df_unknown(self, output):
        assert parse_df(output) == "Unknown"

    def test_uptime(self):
        assert format_uptime(90061.5) == "1d 1h 1m"
        assert format_uptime(59) == "0d 0h 0m"


# ── Versions ────────────────────────────────────────────────────


class TestVersions:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Python 3.11.2", "3.11.2"),
            ("go version go1.22.0 linux/amd64", "1.22.0"),
            ("v20.11.1", "20.11.1"),
            ("Redis server v=7.0.15 sha=00000000:0", "7.0.15"),
            ("nginx version: nginx/1.24.0 (Ubuntu)", "1.24.0"),
            ("no digits here", None),
            (None, None),
        ],
    )
    def test_extract(self, text, expected):
        assert extract_version(text) == expected

    def test_compare(self):
        assert compare_versions("3.11", "3.11.0") == 0
        assert compare_versions("1.9.9", "1.10.0") == -1
        assert compare_versions("20.11.1", "18.19.0") == 1

    def test_apt_candidate(self):
        runner = MockRunner()
        runner.set_response("apt-cache policy python3", stdout=APT_POLICY)
        assert apt_candidate(runner, "python3") == "3.12.3"

    def test_apt_candidate_failure(self):
        runner = MockRunner()
        runner.set_failure("apt-cache")
        assert apt_candidate(runner, "python3") is None

    def test_latest_node_lts(self):
        releases = [
            {"version": "v23.1.0", "lts": False},
            {"version": "v22.11.0", "lts": "Jod"},
            {"version": "v20.18.0", "lts": "Iron"},
        ]
        runner = MockRunner()
        runner.set_response("curl", stdout=json.dumps(releases))
        assert latest_version(runner, "nodejs") == "22.11.0"

    def test_latest_go(self):
        runner = MockRunner()
        runner.set_response("curl", stdout="go1.23.2\ntime 2024-10-01T16:00:00Z\n")
        assert latest_version(runner, "go") == "1.23.2"

    def test_latest_bad_body(self):
        runner = MockRunner()
        runner.set_response("curl", stdout="<html>not json</html>")
        assert latest_version(runner, "nodejs") is None

    def test_latest_unknown_runtime(self):
        assert latest_version(MockRunner(), "cobol") is None


# ── Snapshot ────────────────────────────────────────────────────


class TestDetectSystem:
    def test_reads_under_host_root(self, host_root, host_file):
        host_file("/etc/os-release", OS_RELEASE)
        host_file("/proc/meminfo", "MemTotal:       16318480 kB\n")
        host_file("/proc/uptime", "3725.42 7000.00\n")
        runner = MockRunner()
        runner.set_response("df -h /", stdout=DF_OUTPUT)

        info = detect_system(runner, host_root)

        assert info.os == "Ubuntu 24.04.1 LTS"
        assert info.os_version == "24.04"
        assert info.ram == "16GB"
        assert info.uptime == "0d 1h 2m"
        assert info.disk == "12G / 40G (32%)"
        assert info.cpu >= 1

    def test_bare_host(self, host_root):
        runner = MockRunner()
        runner.set_failure("df")
        info = detect_system(runner, host_root)
        assert info.os == "Linux"
        assert info.disk == "Unknown"
        assert info.uptime == ""


class TestDetectHostStatus:
    @pytest.fixture
    def runner(self) -> MockRunner:
        return MockRunner(
            available={"python3", "psql", "redis-server", "nginx"},
            active={"postgresql", "ssh"},
            versions={
                "python3": "Python 3.12.3",
                "psql": "psql (PostgreSQL) 16.2",
                "redis-server": "Redis server v=7.0.15 sha=00000000:0",
                "nginx": "nginx version: nginx/1.24.0",
            },
        )

    def test_snapshot(self, registry):
        status = detect_host_status(registry, check_latest=False)

        python = status.find("python")
        assert python.installed and python.version == "3.12.3"
        assert not status.find("nodejs").installed

        postgres = status.find("postgresql")
        assert postgres.installed and postgres.running
        assert postgres.version == "16.2"
        redis = status.find("redis")
        assert redis.installed and not redis.running
        assert not status.find("mysql").installed

        nginx = status.find("nginx")
        assert nginx.installed and nginx.version == "1.24.0"
        assert not nginx.running
        assert status.find("ssh").protected

    def test_update_available(self, registry, runner: MockRunner):
        runner.set_response("apt-cache policy python3", stdout=APT_POLICY.replace("3.12.3-0ubuntu2", "3.13.0-1"))
        status = detect_host_status(registry)
        python = status.find("python")
        assert python.latest_version == "3.13.0"
        assert python.update_available

    def test_probes_do_not_touch_host(self, registry, runner: MockRunner):
        detect_host_status(registry, check_latest=False)
        assert runner.matching("apt-get") == []
        assert runner.matching("systemctl") == []
