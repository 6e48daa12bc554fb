"""
Cleanup engine — nuclear purge of a component's footprint on the host.

A regular ``apt-get purge`` leaves enough behind (dpkg info files,
statoverride entries, the system account, data directories, debconf
answers) that a reinstall picks up stale state. ``CleanupEngine.purge``
removes all of it, one best-effort step at a time.

Every step checks for existence before acting, so purging twice has the
same effect as purging once. Step failures are returned as advisory
issues; a purge never raises.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from hostforge.adapters.accounts import AccountRepository
from hostforge.adapters.shell.command import CommandRunner
from hostforge.core.config.loader import host_path
from hostforge.core.errors import UnknownComponent
from hostforge.core.models.result import Issue, IssueLog

logger = logging.getLogger(__name__)

DPKG_INFO_DIR = "/var/lib/dpkg/info"
DPKG_STATOVERRIDE = "/var/lib/dpkg/statoverride"


# ── Purge profiles ──────────────────────────────────────────────
#
#   services     units stopped before the purge
#   packages     apt patterns handed to ``apt-get purge``
#   prefixes     dpkg info file prefixes and statoverride markers
#   principals   account name prefixes removed from /etc/passwd & co.
#   paths        data, config, runtime and log directories

PURGE_PROFILES: dict[str, dict] = {
    "postgresql": {
        "services": ["postgresql"],
        "packages": ["postgresql*"],
        "prefixes": ["postgresql"],
        "principals": ["postgres"],
        "paths": [
            "/var/lib/postgresql", "/etc/postgresql", "/etc/postgresql-common",
            "/var/run/postgresql", "/var/log/postgresql",
        ],
    },
    "mysql": {
        "services": ["mariadb", "mysql"],
        "packages": ["mysql-*", "mariadb-*", "default-mysql-*", "galera-*"],
        "prefixes": ["mysql", "mariadb"],
        "principals": ["mysql"],
        "paths": [
            "/var/lib/mysql", "/etc/mysql", "/var/run/mysqld", "/var/log/mysql",
        ],
    },
    "redis": {
        "services": ["redis-server"],
        "packages": ["redis-server", "redis-tools"],
        "prefixes": ["redis"],
        "principals": ["redis"],
        "paths": ["/var/lib/redis", "/etc/redis", "/var/run/redis", "/var/log/redis"],
    },
    "postfix": {
        "services": ["postfix"],
        "packages": ["postfix", "postfix-policyd-spf-python"],
        "prefixes": ["postfix"],
        "principals": ["postfix", "postdrop"],
        "paths": ["/etc/postfix", "/var/spool/postfix", "/var/lib/postfix"],
    },
    "dovecot": {
        "services": ["dovecot"],
        "packages": ["dovecot-*"],
        "prefixes": ["dovecot"],
        "principals": ["dovecot", "dovenull"],
        "paths": ["/etc/dovecot", "/var/lib/dovecot", "/var/run/dovecot"],
    },
    "opendkim": {
        "services": ["opendkim"],
        "packages": ["opendkim", "opendkim-tools"],
        "prefixes": ["opendkim"],
        "principals": ["opendkim"],
        "paths": ["/etc/opendkim", "/etc/opendkim.conf", "/var/run/opendkim"],
    },
    "rspamd": {
        "services": ["rspamd"],
        "packages": ["rspamd"],
        "prefixes": ["rspamd"],
        "principals": ["_rspamd"],
        "paths": ["/etc/rspamd", "/var/lib/rspamd", "/var/run/rspamd", "/var/log/rspamd"],
    },
    "clamav": {
        "services": ["clamav-daemon", "clamav-freshclam"],
        "packages": ["clamav*", "libclamav*"],
        "prefixes": ["clamav"],
        "principals": ["clamav"],
        "paths": ["/etc/clamav", "/var/lib/clamav", "/var/run/clamav", "/var/log/clamav"],
    },
    "bind9": {
        "services": ["named"],
        "packages": ["bind9", "bind9utils", "bind9-doc"],
        "prefixes": ["bind9"],
        "principals": ["bind"],
        "paths": ["/etc/bind", "/var/cache/bind", "/var/lib/bind", "/var/run/named"],
    },
}


class CleanupEngine:
    """Deep removal driven by ``PURGE_PROFILES``.

    Args:
        runner: Process collaborator (apt, systemctl, debconf).
        host_root: Root under which every OS path is resolved.
        accounts: Account database editor (defaults to one on ``host_root``).
    """

    def __init__(
        self,
        runner: CommandRunner,
        host_root: Path | str = "/",
        accounts: AccountRepository | None = None,
    ):
        self.runner = runner
        self.host_root = Path(host_root)
        self.accounts = accounts or AccountRepository(self.host_root)

    def _path(self, path: str) -> Path:
        return host_path(self.host_root, path)

    def has_profile(self, component_type: str) -> bool:
        return component_type in PURGE_PROFILES

    def purge(self, component_type: str) -> list[Issue]:
        """Remove every trace of ``component_type``.

        Raises:
            UnknownComponent: when no purge profile exists.

        Returns:
            Advisory issues for steps that failed.
        """
        profile = PURGE_PROFILES.get(component_type)
        if profile is None:
            raise UnknownComponent(component_type, "purge profile")

        issues = IssueLog()
        self.runner.emit(f"Nuclear cleanup of {component_type}...")

        issues.attempt("stop services", self._stop_services, profile["services"])
        issues.attempt("purge packages", self._purge_packages, profile["packages"])
        issues.attempt("dpkg info files", self._remove_dpkg_info, profile["prefixes"])
        issues.attempt("dpkg statoverride", self._strip_statoverride, profile["prefixes"])
        issues.attempt("system accounts", self._delete_principals, profile["principals"])
        issues.attempt("directories", self._remove_paths, profile["paths"])
        issues.attempt("debconf", self._clear_debconf, profile["prefixes"])

        logger.info("Purged %s (%d issue(s))", component_type, len(issues))
        return list(issues)

    # ── Steps ───────────────────────────────────────────────────

    def _stop_services(self, services: list[str]) -> None:
        for unit in services:
            if self.runner.is_active(unit):
                self.runner.run("systemctl", ["stop", unit], check=False)

    def _installed_packages(self, patterns: list[str]) -> list[str]:
        """Resolve apt patterns to packages dpkg still knows about."""
        result = self.runner.run_silent("dpkg-query", ["-W", "-f=${Package} ${Status}\\n", *patterns])
        installed: list[str] = []
        for line in result.stdout.splitlines():
            name, _, status = line.partition(" ")
            # "deinstall ok config-files" still needs a purge
            if name and "not-installed" not in status:
                installed.append(name)
        return installed

    def _purge_packages(self, patterns: list[str]) -> None:
        packages = self._installed_packages(patterns)
        if not packages:
            logger.debug("No packages left for %s", patterns)
            return
        self.runner.run("apt-get", ["purge", "-y", *packages])
        self.runner.run("apt-get", ["autoremove", "-y"], check=False)

    def _remove_dpkg_info(self, prefixes: list[str]) -> None:
        info_dir = self._path(DPKG_INFO_DIR)
        if not info_dir.is_dir():
            return
        for entry in sorted(info_dir.iterdir()):
            if any(entry.name.startswith(p) for p in prefixes):
                entry.unlink(missing_ok=True)
                logger.debug("Removed %s", entry)

    def _strip_statoverride(self, prefixes: list[str]) -> None:
        path = self._path(DPKG_STATOVERRIDE)
        if not path.is_file():
            return
        lines = path.read_text(encoding="utf-8").splitlines()
        kept = [line for line in lines if not any(p in line for p in prefixes)]
        if kept != lines:
            path.write_text("\n".join(kept) + "\n" if kept else "", encoding="utf-8")

    def _delete_principals(self, prefixes: list[str]) -> None:
        for prefix in prefixes:
            for name in self.accounts.find_by_prefix(prefix):
                self.accounts.delete_by_name(name)

    def _remove_paths(self, paths: list[str]) -> None:
        for raw in paths:
            path = self._path(raw)
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            else:
                continue
            self.runner.emit(f"Removed {raw}")

    def _clear_debconf(self, prefixes: list[str]) -> None:
        if not self.runner.exists("debconf-communicate"):
            return
        for prefix in prefixes:
            self.runner.run_silent("debconf-communicate", [prefix], stdin="PURGE\n")
