"""
Shared test fixtures and configuration.

Every test runs against a sandboxed host: OS paths resolve under
``tmp_path/host`` and processes go to a ``MockRunner``.
"""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from hostforge.adapters.mock import MockRunner
from hostforge.core.config.loader import HostforgeConfig
from hostforge.core.services.orchestrator import HostOrchestrator

FIXED_NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep the developer's environment out of config resolution."""
    for var in ("HOSTFORGE_CONFIG", "HOSTFORGE_STATE_DIR", "HOSTFORGE_LOG_FILE", "HOSTFORGE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    """Return the sandboxed host filesystem root."""
    root = tmp_path / "host"
    root.mkdir()
    return root


@pytest.fixture
def config(host_root: Path, tmp_path: Path) -> HostforgeConfig:
    return HostforgeConfig(host_root=host_root, state_dir=tmp_path / "state")


@pytest.fixture
def runner() -> MockRunner:
    return MockRunner()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def orchestrator(config: HostforgeConfig, runner: MockRunner, clock) -> HostOrchestrator:
    return HostOrchestrator(config, runner=runner, clock=clock)


@pytest.fixture
def registry(orchestrator: HostOrchestrator):
    return orchestrator.registry


@pytest.fixture
def ctx(orchestrator: HostOrchestrator):
    return orchestrator.ctx


@pytest.fixture
def host_file(host_root: Path):
    """Return a helper that creates ``os_path`` under the host root."""

    def _write(os_path: str, content: str = "") -> Path:
        path = host_root / os_path.lstrip("/")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
