"""
Tests for the configuration loader.
"""

import os
from pathlib import Path

import pytest

from hostforge.core.config.loader import (
    ConfigError,
    HostforgeConfig,
    find_config_file,
    host_path,
    load_config,
)


class TestDefaults:
    def test_no_file(self):
        config = load_config()
        assert config.host_root == Path("/")
        assert config.state_dir == Path.home() / ".hostforge"
        assert config.status_ttl_seconds == 5.0
        assert config.command_timeout == 1800
        assert config.probe_timeout == 30

    def test_derived_dirs(self, tmp_path: Path):
        config = HostforgeConfig(state_dir=tmp_path)
        assert config.log_dir == tmp_path / "logs"
        assert config.credentials_dir == tmp_path / "credentials"
        assert config.stacks_dir == tmp_path / "stacks"


class TestLoadConfig:
    def test_flat_layout(self, tmp_path: Path):
        path = tmp_path / "custom.yml"
        path.write_text("host_root: /srv/sandbox\ncommand_timeout: 600\n")
        config = load_config(path)
        assert config.host_root == Path("/srv/sandbox")
        assert config.command_timeout == 600

    def test_wrapped_layout(self, tmp_path: Path):
        path = tmp_path / "hostforge.yml"
        path.write_text("hostforge:\n  status_ttl_seconds: 0\n")
        assert load_config(path).status_ttl_seconds == 0

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "hostforge.yml"
        path.write_text("")
        assert load_config(path).host_root == Path("/")

    def test_state_dir_expanded(self, tmp_path: Path):
        path = tmp_path / "hostforge.yml"
        path.write_text("state_dir: ~/hf-state\n")
        assert load_config(path).state_dir == Path.home() / "hf-state"

    def test_unknown_key(self, tmp_path: Path):
        path = tmp_path / "hostforge.yml"
        path.write_text("hostroot: /\n")
        with pytest.raises(ConfigError) as exc:
            load_config(path)
        assert exc.value.code == "config_error"

    @pytest.mark.parametrize("content", ["command_timeout: 0\n", "status_ttl_seconds: -1\n"])
    def test_out_of_range(self, tmp_path: Path, content: str):
        path = tmp_path / "hostforge.yml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "hostforge.yml"
        path.write_text("host_root: [oops\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "hostforge.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(path)

    def test_explicit_missing(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")


class TestEnvironment:
    def test_config_env(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "elsewhere.yml"
        path.write_text("probe_timeout: 5\n")
        monkeypatch.setenv("HOSTFORGE_CONFIG", str(path))
        assert load_config().probe_timeout == 5

    def test_config_env_missing_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOSTFORGE_CONFIG", str(tmp_path / "missing.yml"))
        with pytest.raises(ConfigError, match="HOSTFORGE_CONFIG"):
            load_config()

    def test_state_dir_env_overrides_file(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "hostforge.yml"
        path.write_text(f"state_dir: {tmp_path / 'from-file'}\n")
        monkeypatch.setenv("HOSTFORGE_STATE_DIR", str(tmp_path / "from-env"))
        assert load_config(path).state_dir == tmp_path / "from-env"


class TestFindConfigFile:
    def test_walks_up(self, tmp_path: Path):
        (tmp_path / "hostforge.yml").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == (tmp_path / "hostforge.yml").resolve()

    def test_cwd_is_default(self, tmp_path: Path):
        (tmp_path / "hostforge.yml").write_text("probe_timeout: 7\n")
        assert Path(os.getcwd()).resolve() == tmp_path.resolve()
        assert load_config().probe_timeout == 7


class TestHostPath:
    def test_joins_under_root(self, tmp_path: Path):
        assert host_path(tmp_path, "/etc/passwd") == tmp_path / "etc/passwd"

    def test_real_root(self):
        assert host_path("/", "/etc/passwd") == Path("/etc/passwd")

    def test_config_method(self, tmp_path: Path):
        assert HostforgeConfig(host_root=tmp_path).host_path("/var/lib") == tmp_path / "var/lib"
