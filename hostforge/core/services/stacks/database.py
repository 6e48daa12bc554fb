"""
Database stack — one engine, hardened, tuned for its workload, backed up.

The connection string (which embeds the secret) is returned in the report
only. The persisted ``database-<engine>.json`` document describes the
tuning and backup layout and never carries a secret.
"""

from __future__ import annotations

import logging
from typing import Any

from hostforge.core.models.result import IssueLog
from hostforge.core.models.stacks import DatabaseStackConfig
from hostforge.core.persistence.state_file import atomic_write_text
from hostforge.core.services.components.databases import DatabaseComponent
from hostforge.core.services.stacks.base import Stack

logger = logging.getLogger(__name__)

BACKUP_SCRIPT = "/usr/local/bin/hostforge-backup-{engine}"
BACKUP_CRON = "/etc/cron.d/hostforge-backup-{engine}"
MYSQL_CLIENT_CNF = "/etc/hostforge/backup-mysql.cnf"
REDIS_CONF = "/etc/redis/redis.conf"

RDB_SNAPSHOTS = "900 1 300 10 60 10000"

# Redis eviction and persistence per usage intent
REDIS_USAGE: dict[str, dict[str, str]] = {
    "cache": {
        "maxmemory-policy": "allkeys-lru",
        "save": '""',
        "appendonly": "no",
    },
    "sessions": {
        "maxmemory-policy": "volatile-lru",
        "save": RDB_SNAPSHOTS,
        "appendonly": "no",
    },
    "queue": {
        "maxmemory-policy": "noeviction",
        "appendonly": "yes",
        "appendfsync": "everysec",
    },
    "general": {
        "maxmemory-policy": "allkeys-lru",
        "save": RDB_SNAPSHOTS,
        "appendonly": "no",
    },
}


def tuning_directives(config: DatabaseStackConfig) -> tuple[dict[str, str], str]:
    """Config directives and key/value separator for the engine."""
    perf = config.performance
    if config.engine == "postgresql":
        return {
            "max_connections": str(perf.max_connections),
            "shared_buffers": f"'{perf.memory_mb}MB'",
        }, " = "
    if config.engine == "mysql":
        return {
            "max_connections": str(perf.max_connections),
            "innodb_buffer_pool_size": f"{perf.memory_mb}M",
        }, " = "
    return {"maxmemory": f"{perf.memory_mb}mb", **REDIS_USAGE[perf.usage]}, " "


class DatabaseStack(Stack):
    kind = "database"

    def _run(self, config: DatabaseStackConfig, issues: IssueLog) -> dict[str, Any]:
        engine = self.registry.database(config.engine)

        self.phase(1, "install and harden")
        connection = self.step(
            f"configure {config.engine}",
            engine.configure,
            issues,
            db_name=config.database_name,
            security=config.security,
        )

        self.phase(2, "performance tuning")
        tuning = self.step("tuning", self.tune, engine, config, issues)

        backup: dict[str, Any] = {"enabled": False}
        if config.backup.enabled:
            self.phase(3, "backup tools")
            if config.backup.tools:
                self.install_components(list(config.backup.tools), issues)
            self.phase(4, "backup schedule")
            backup = self.step("backup schedule", self.schedule_backup, config, issues)

        self.persist(
            {
                "engine": config.engine,
                "database": connection["database"],
                "user": connection["user"],
                "performance": config.performance.model_dump(),
                "tuning": tuning,
                "backup": backup,
            },
            name=f"database-{config.engine}",
        )
        self.completed.append("persist")
        return {
            "engine": config.engine,
            "database": connection["database"],
            "user": connection["user"],
            "connection_string": connection["connection_string"],
        }

    # ── Tuning ──────────────────────────────────────────────────

    def tune(self, engine: DatabaseComponent, config: DatabaseStackConfig, issues: IssueLog) -> dict[str, str]:
        directives, sep = tuning_directives(config)
        path = engine.edit_config(directives, sep)
        if path is None:
            issues.add("tuning", f"no configuration file found for {config.engine}; tuning skipped")
            return {}
        self.say(f"Tuned {path.name}: " + ", ".join(f"{k}={v}" for k, v in directives.items()))
        engine.systemctl("restart")
        return directives

    # ── Backups ─────────────────────────────────────────────────

    def schedule_backup(self, config: DatabaseStackConfig, issues: IssueLog) -> dict[str, Any]:
        engine = config.engine
        script = BACKUP_SCRIPT.format(engine=engine)
        cron = BACKUP_CRON.format(engine=engine)
        context: dict[str, Any] = {
            "engine": engine,
            "database": config.database_name,
            "directory": config.backup.directory,
            "retention": config.backup.retention,
            "script": script,
            "client_cnf": MYSQL_CLIENT_CNF,
            "redis_conf": REDIS_CONF,
        }

        if engine == "mysql":
            self._write_mysql_client_cnf()

        self.ctx.path(config.backup.directory).mkdir(parents=True, exist_ok=True)
        issues.extend(self.ctx.renderer.write(
            f"backup/{engine}", self.ctx.path(script), context, mode=0o750
        ))
        issues.extend(self.ctx.renderer.write(
            "backup/cron", self.ctx.path(cron), context, mode=0o644
        ))
        self.say(f"Backups scheduled daily at 03:00 ({cron})")

        self.say("Running a first backup...")
        issues.attempt("first backup", self.ctx.runner.run, script)
        return {
            "enabled": True,
            "script": script,
            "cron": cron,
            "directory": config.backup.directory,
            "retention": config.backup.retention,
            "tools": list(config.backup.tools),
        }

    def _write_mysql_client_cnf(self) -> None:
        record = self.ctx.credentials.load("mysql")
        lines = ["[client]", "user=root"]
        if record is not None and record.root_secret:
            lines.append(f"password={record.root_secret}")
        path = self.ctx.path(MYSQL_CLIENT_CNF)
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(path, "\n".join(lines) + "\n", mode=0o600)
