"""
Tests for CLI commands — global options, config check, components,
stacks and logs. Every command that touches the host runs with --mock.
"""

import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from hostforge.main import cli


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    host = tmp_path / "host"
    host.mkdir(exist_ok=True)
    path = tmp_path / "hostforge.yml"
    path.write_text(textwrap.dedent(f"""\
        hostforge:
          host_root: {host}
          state_dir: {tmp_path / "state"}
          status_ttl_seconds: 0
    """))
    return path


def _invoke(config_file: Path, *args: str):
    return CliRunner().invoke(cli, ["-q", "--mock", "--config", str(config_file), *args])


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "hostforge" in result.output
        for group in ("component", "db", "stack", "logs", "status", "config"):
            assert group in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestConfigCheckCommand:
    def test_valid(self, config_file: Path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "config", "check"])
        assert result.exit_code == 0
        assert "valid" in result.output.lower()
        assert "1800s (probes 30s)" in result.output

    def test_valid_json(self, config_file: Path, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "config", "check", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["config"]["state_dir"] == str(tmp_path / "state")
        assert data["warnings"] == []

    def test_auto_detected(self, config_file: Path, tmp_path: Path):
        # cwd is tmp_path, where hostforge.yml lives
        result = CliRunner().invoke(cli, ["config", "check", "--json"])
        data = json.loads(result.output)
        assert data["config"]["host_root"] == str(tmp_path / "host")

    def test_invalid_yaml(self, tmp_path: Path):
        bad = tmp_path / "bad.yml"
        bad.write_text("host_root: [unclosed\n")
        result = CliRunner().invoke(cli, ["--config", str(bad), "config", "check"])
        assert result.exit_code == 1
        assert "Invalid YAML" in result.output

    def test_unknown_key_json(self, tmp_path: Path):
        bad = tmp_path / "bad.yml"
        bad.write_text("hostroot: /\n")
        result = CliRunner().invoke(cli, ["--config", str(bad), "config", "check", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["valid"] is False


class TestStatusCommand:
    def test_json(self, config_file: Path):
        result = _invoke(config_file, "status", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [db["type"] for db in data["databases"]] == ["postgresql", "mysql", "redis"]
        assert "system" in data

    def test_human(self, config_file: Path):
        result = _invoke(config_file, "status")
        assert result.exit_code == 0
        assert "Runtimes:" in result.output
        assert "ssh 🔒" in result.output


class TestComponentCommands:
    def test_install_json(self, config_file: Path):
        result = _invoke(config_file, "component", "install", "nginx", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["data"]["version"] == "installed"

    def test_install_with_options(self, config_file: Path, tmp_path: Path):
        result = _invoke(config_file, "component", "install", "postfix", "-o", "hostname=mail.example.com")
        assert result.exit_code == 0
        assert "postfix installed" in result.output
        assert (tmp_path / "host/etc/mailname").read_text() == "mail.example.com\n"

    def test_bad_option(self, config_file: Path):
        result = _invoke(config_file, "component", "install", "postfix", "-o", "hostname")
        assert result.exit_code == 1
        assert "KEY=VALUE" in result.output

    def test_remove_protected(self, config_file: Path):
        result = _invoke(config_file, "component", "remove", "ssh", "--json")
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["error_code"] == "protected_resource"

    def test_unknown(self, config_file: Path):
        result = _invoke(config_file, "component", "install", "mongodb")
        assert result.exit_code == 1
        assert "mongodb" in result.output

    def test_remove_data_requires_confirmation(self, config_file: Path):
        result = CliRunner().invoke(
            cli,
            ["-q", "--mock", "--config", str(config_file), "component", "remove", "redis", "--remove-data"],
            input="n\n",
        )
        assert result.exit_code == 1
        assert "Aborted" in result.output


class TestDbCommands:
    def test_configure_json(self, config_file: Path):
        result = _invoke(config_file, "db", "configure", "redis", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["data"]["connection_string"].startswith("redis://:")

    def test_unsupported_engine(self, config_file: Path):
        result = _invoke(config_file, "db", "configure", "mongodb")
        assert result.exit_code == 2


class TestStackCommands:
    def test_mail_json(self, config_file: Path, tmp_path: Path):
        stack = tmp_path / "mail.yml"
        stack.write_text(textwrap.dedent("""\
            domain: example.com
            hostname: mail.example.com
            components:
              spf_policyd: false
            dkim:
              key_size: 1024
        """))
        result = _invoke(config_file, "stack", "mail", str(stack), "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["stack"] == "mail"
        assert "persist" in data["completed"]
        assert data["data"]["dkim"]["example.com"]["name"] == "mail._domainkey.example.com"
        assert (tmp_path / "state/stacks/mail.json").is_file()

    def test_dns_human(self, config_file: Path, tmp_path: Path):
        stack = tmp_path / "dns.json"
        stack.write_text(json.dumps({"zones": [{"name": "example.com"}], "host_ipv4": "203.0.113.10"}))
        result = _invoke(config_file, "stack", "dns", str(stack))
        assert result.exit_code == 0, result.output
        assert "DNS stack configured (authoritative)" in result.output
        assert "example.com  serial" in result.output

    def test_invalid_stack_file(self, config_file: Path, tmp_path: Path):
        stack = tmp_path / "db.yml"
        stack.write_text("engine: mongodb\n")
        result = _invoke(config_file, "stack", "database", str(stack), "--json")
        assert result.exit_code == 1
        assert json.loads(result.output)["error_code"] == "invalid_input"

    def test_not_a_mapping(self, config_file: Path, tmp_path: Path):
        stack = tmp_path / "db.yml"
        stack.write_text("- engine\n")
        result = _invoke(config_file, "stack", "database", str(stack))
        assert result.exit_code == 1
        assert "Expected a mapping" in result.output


class TestLogsCommands:
    def test_show_and_clear(self, config_file: Path):
        _invoke(config_file, "component", "install", "nginx", "--json")

        result = _invoke(config_file, "logs", "show", "nginx", "--json")
        data = json.loads(result.output)
        assert data["component"] == "nginx"
        assert "── install nginx ──" in data["content"]

        result = _invoke(config_file, "logs", "clear", "nginx")
        assert "Cleared nginx log" in result.output

        result = _invoke(config_file, "logs", "show", "nginx")
        assert "No log entries for nginx" in result.output

    def test_show_last_lines(self, config_file: Path):
        _invoke(config_file, "component", "install", "nginx", "--json")
        result = _invoke(config_file, "logs", "show", "-n", "1")
        assert result.output.strip().endswith("✓ install nginx done")
