"""
Tests for the component registry, the catalog and the protected guard.
"""

import pytest

from hostforge.adapters.mock import MockRunner
from hostforge.core.errors import ProtectedResourceViolation, UnknownComponent
from hostforge.core.models.component import ComponentCategory
from hostforge.core.services.components.catalog import PROTECTED_IDS, all_descriptors, removal_packages
from hostforge.core.services.components.databases import MysqlDatabase, PostgresDatabase, RedisDatabase
from hostforge.core.services.components.registry import ComponentRegistry
from hostforge.core.services.components.runtimes import PythonRuntime
from hostforge.core.services.components.services import Bind9Service, ServiceComponent


# ── Catalog ─────────────────────────────────────────────────────


class TestCatalog:
    def test_ids_unique(self):
        ids = [d.id for d in all_descriptors()]
        assert len(ids) == len(set(ids))

    def test_categories(self, registry: ComponentRegistry):
        assert registry.ids(ComponentCategory.RUNTIME) == [
            "nodejs", "python", "php", "go", "docker", "rust", "ruby",
        ]
        assert registry.ids(ComponentCategory.DATABASE) == ["postgresql", "mysql", "redis"]
        services = registry.ids(ComponentCategory.SERVICE)
        for cid in ("nginx", "postfix", "opendkim", "bind9", "ssh", "cron", "rsync", "nfs"):
            assert cid in services

    def test_protected(self, registry: ComponentRegistry):
        assert set(registry.protected_ids()) == set(PROTECTED_IDS)

    def test_mysql_runs_as_mariadb(self, registry: ComponentRegistry):
        mysql = registry.resolve("mysql")
        assert mysql.service_name == "mariadb"
        assert "mysql" in mysql.descriptor.service_aliases

    def test_tools_have_no_service(self, registry: ComponentRegistry):
        for cid in ("rsync", "restic", "spf-policyd"):
            assert not registry.resolve(cid).descriptor.has_service

    def test_removal_packages_override(self):
        assert removal_packages("nginx") == ["nginx", "nginx-common"]
        assert removal_packages("redis") == ["redis-server"]
        assert removal_packages("nope") == []


# ── Resolution ──────────────────────────────────────────────────


class TestResolve:
    def test_classes(self, registry: ComponentRegistry):
        assert isinstance(registry.resolve("postgresql"), PostgresDatabase)
        assert isinstance(registry.resolve("mysql"), MysqlDatabase)
        assert isinstance(registry.resolve("redis"), RedisDatabase)
        assert isinstance(registry.resolve("python"), PythonRuntime)
        assert isinstance(registry.resolve("bind9"), Bind9Service)
        assert type(registry.resolve("nginx")) is ServiceComponent

    def test_unknown(self, registry: ComponentRegistry):
        with pytest.raises(UnknownComponent) as exc:
            registry.resolve("mongodb")
        assert exc.value.code == "unknown_component"

    def test_category_mismatch(self, registry: ComponentRegistry):
        with pytest.raises(UnknownComponent) as exc:
            registry.resolve("nginx", ComponentCategory.DATABASE)
        assert "database" in str(exc.value)

    def test_database_helper(self, registry: ComponentRegistry):
        assert isinstance(registry.database("redis"), RedisDatabase)
        assert isinstance(registry.database("mysql"), MysqlDatabase)
        with pytest.raises(UnknownComponent):
            registry.database("nginx")

    def test_contains(self, registry: ComponentRegistry):
        assert "redis" in registry
        assert "mongodb" not in registry

    def test_resolve_has_no_side_effects(self, registry: ComponentRegistry, runner: MockRunner):
        registry.resolve("postgresql")
        with pytest.raises(UnknownComponent):
            registry.resolve("mongodb")
        assert runner.call_count == 0


# ── Guard ───────────────────────────────────────────────────────


class TestGuard:
    @pytest.mark.parametrize("cid", ["ssh", "cron", "python"])
    @pytest.mark.parametrize("operation", ["remove", "stop"])
    def test_protected_refused(self, registry: ComponentRegistry, cid: str, operation: str):
        with pytest.raises(ProtectedResourceViolation) as exc:
            registry.guard(registry.resolve(cid), operation)
        assert exc.value.code == "protected_resource"

    @pytest.mark.parametrize("operation", ["install", "update", "start"])
    def test_protected_allows_other_operations(self, registry: ComponentRegistry, operation: str):
        registry.guard(registry.resolve("ssh"), operation)

    def test_unprotected(self, registry: ComponentRegistry):
        registry.guard(registry.resolve("nginx"), "remove")


class TestOrchestratorRefusals:
    """Refusals happen before any command reaches the host."""

    def test_remove_ssh(self, orchestrator, runner: MockRunner):
        runner.active.add("ssh")
        result = orchestrator.remove("ssh")
        assert not result.success
        assert result.error_code == "protected_resource"
        assert runner.call_count == 0
        assert runner.is_active("ssh")

    def test_stop_cron(self, orchestrator, runner: MockRunner):
        result = orchestrator.stop("cron")
        assert result.error_code == "protected_resource"
        assert runner.call_count == 0

    def test_unknown_install(self, orchestrator, runner: MockRunner):
        result = orchestrator.install("mongodb")
        assert result.error_code == "unknown_component"
        assert runner.call_count == 0

    def test_python_install(self, orchestrator, runner: MockRunner):
        result = orchestrator.install("python")
        assert result.error_code == "self_hosted_runtime"
        assert runner.call_count == 0

    def test_start_tool(self, orchestrator, runner: MockRunner):
        result = orchestrator.start("rsync")
        assert result.error_code == "not_a_service"
        assert runner.call_count == 0

    def test_database_operation_on_service(self, orchestrator, runner: MockRunner):
        result = orchestrator.configure_database("nginx")
        assert result.error_code == "unknown_component"
        assert runner.call_count == 0
