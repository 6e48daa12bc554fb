"""
Service components — daemons and tools managed on the host.

Most services follow the default apt + systemd flow from ``Component``.
The subclasses below carry the install logic that does not: vendor apt
repositories, Postfix milter wiring, ClamAV definition bootstrap,
prerequisite checks, conflicting packages.
"""

from __future__ import annotations

import logging
import socket
from typing import Any

from hostforge.core.errors import DependencyMissing, ExternalRateLimited, looks_rate_limited
from hostforge.core.models.component import ComponentCategory
from hostforge.core.models.result import IssueLog
from hostforge.core.models.stacks import DnsStackConfig
from hostforge.core.persistence.state_file import atomic_write_text
from hostforge.core.services.components.base import Component
from hostforge.core.services.detection.versions import extract_version

logger = logging.getLogger(__name__)


class ServiceComponent(Component):
    category = ComponentCategory.SERVICE

    def installed_version(self) -> str | None:
        raw = super().installed_version()
        return extract_version(raw) or raw


class EnableOnlyService(ServiceComponent):
    """Installed and enabled, but left stopped until it has a configuration."""

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say(f"Installing {self.descriptor.display_name}...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)
        self.systemctl("enable")
        self.say(f"{self.descriptor.display_name} enabled; configure it before starting")
        return self.installed_version() or "installed"


# ── Postfix helpers ─────────────────────────────────────────────

def postconf_get(component: Component, key: str) -> str:
    result = component.runner.run_silent("postconf", ["-h", key])
    return result.stdout.strip() if result.ok else ""


def postconf_set(component: Component, key: str, value: str) -> None:
    component.runner.run("postconf", ["-e", f"{key} = {value}"])


def add_milter(component: Component, milter: str) -> None:
    """Append ``milter`` to Postfix's milter lists without dropping others."""
    postconf_set(component, "milter_default_action", "accept")
    for key in ("smtpd_milters", "non_smtpd_milters"):
        current = [m.strip() for m in postconf_get(component, key).split(",") if m.strip()]
        if milter not in current:
            current.append(milter)
            postconf_set(component, key, ", ".join(current))


# ── Mail ────────────────────────────────────────────────────────

class PostfixService(ServiceComponent):
    def install(self, issues: IssueLog, **options: Any) -> str:
        hostname = options.get("hostname") or socket.getfqdn()
        self.say(f"Installing Postfix (mailname {hostname})...")
        selections = (
            "postfix postfix/main_mailer_type select Internet Site\n"
            f"postfix postfix/mailname string {hostname}\n"
            f"postfix postfix/destinations string {hostname}, localhost.localdomain, localhost\n"
        )
        self.runner.run("debconf-set-selections", stdin=selections)
        self.apt_update()
        self.apt_install(self.descriptor.packages)
        atomic_write_text(self.ctx.path("/etc/mailname"), hostname + "\n", mode=0o644)
        self.systemctl("enable")
        self.systemctl("restart")
        return self.installed_version() or "installed"


class RspamdService(ServiceComponent):
    KEYRING = "/usr/share/keyrings/rspamd.gpg"
    SOURCES = "/etc/apt/sources.list.d/rspamd.list"
    SOCKET_DIR = "/var/spool/postfix/rspamd"

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Adding the Rspamd apt repository...")
        self.apt_install(["lsb-release", "wget", "gpg"])
        codename = self.runner.run_silent("lsb_release", ["-cs"]).stdout.strip() or "bookworm"
        self.runner.run("wget", ["-qO", "/tmp/rspamd.gpg.key", "https://rspamd.com/apt-stable/gpg.key"])
        self.runner.run("gpg", ["--batch", "--yes", "--dearmor", "-o", self.KEYRING, "/tmp/rspamd.gpg.key"])
        atomic_write_text(
            self.ctx.path(self.SOURCES),
            f"deb [signed-by={self.KEYRING}] http://rspamd.com/apt-stable/ {codename} main\n",
            mode=0o644,
        )

        self.apt_update()
        self.apt_install(self.descriptor.packages)

        socket_path = f"{self.SOCKET_DIR}/rspamd.sock"
        issues.extend(self.ctx.renderer.write(
            "rspamd/worker-proxy.inc",
            self.ctx.path("/etc/rspamd/local.d/worker-proxy.inc"),
            {"socket_path": socket_path},
        ))
        self.ctx.path(self.SOCKET_DIR).mkdir(parents=True, exist_ok=True)
        issues.attempt("rspamd socket dir", self.runner.run, "chown", ["_rspamd:_rspamd", self.SOCKET_DIR])

        if self.runner.exists("postconf"):
            add_milter(self, "unix:/rspamd/rspamd.sock")

        for unit in ("redis-server", "rspamd"):
            self.systemctl("enable", unit)
            self.systemctl("start", unit)
        return self.installed_version() or "installed"


class OpendkimService(ServiceComponent):
    """OpenDKIM milter. Keys and tables are written by the mail stack."""

    MILTER = "inet:localhost:12301"

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing OpenDKIM...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)
        self.ctx.path("/etc/opendkim/keys").mkdir(parents=True, exist_ok=True)

        if self.runner.exists("postconf"):
            postconf_set(self, "milter_protocol", "6")
            add_milter(self, self.MILTER)

        self.systemctl("enable")
        issues.attempt("start opendkim", self.systemctl, "start")
        return self.installed_version() or "installed"


class ClamavService(ServiceComponent):
    DATA_DIR = "/var/lib/clamav"
    SOCKET_DIR = "/var/run/clamav"
    RSPAMD_LOCAL = "/etc/rspamd/local.d"

    def has_definitions(self) -> bool:
        data = self.ctx.path(self.DATA_DIR)
        return any((data / name).exists() for name in ("main.cvd", "daily.cvd", "main.cld", "daily.cld"))

    def install(self, issues: IssueLog, **options: Any) -> str:
        # mirrors.dat carries freshclam's cool-down state
        mirrors = self.ctx.path(f"{self.DATA_DIR}/mirrors.dat")
        if mirrors.exists():
            self.say("Resetting freshclam mirror state...")
            mirrors.unlink()

        self.say("Installing ClamAV...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)

        issues.attempt("stop clamav-freshclam", self.systemctl, "stop", "clamav-freshclam")
        self.say("Updating virus definitions...")
        result = self.runner.run("freshclam", check=False)
        if not result.ok:
            if looks_rate_limited(result.output):
                err = ExternalRateLimited(
                    "ClamAV CDN is rate limiting this host; definitions will be fetched "
                    "later by clamav-freshclam"
                )
                issues.add("freshclam", str(err), code=err.code)
            else:
                issues.add("freshclam", f"freshclam exited with code {result.returncode}")

        issues.extend(self.ctx.renderer.write(
            "clamav/clamd.conf",
            self.ctx.path("/etc/clamav/clamd.conf"),
            {"socket_path": f"{self.SOCKET_DIR}/clamd.ctl"},
        ))
        self.ctx.path(self.SOCKET_DIR).mkdir(parents=True, exist_ok=True)
        issues.attempt("clamav socket dir", self.runner.run, "chown", ["clamav:clamav", self.SOCKET_DIR])

        self.systemctl("enable", "clamav-freshclam")
        self.systemctl("start", "clamav-freshclam")
        self.systemctl("enable")
        if self.has_definitions():
            issues.attempt("start clamav-daemon", self.systemctl, "start")
        else:
            issues.add(
                "clamav-daemon",
                "no virus definitions yet; clamav-daemon will start once freshclam has run",
            )

        self.bridge_rspamd(issues)
        return self.installed_version() or "installed"

    def bridge_rspamd(self, issues: IssueLog) -> None:
        """Point Rspamd's antivirus module at clamd when Rspamd is present."""
        local_d = self.ctx.path(self.RSPAMD_LOCAL)
        if not local_d.is_dir():
            return
        issues.extend(self.ctx.renderer.write(
            "rspamd/antivirus.conf",
            local_d / "antivirus.conf",
            {"socket_path": f"{self.SOCKET_DIR}/clamd.ctl"},
        ))
        if self.runner.is_enabled("rspamd"):
            issues.attempt("reload rspamd", self.systemctl, "reload", "rspamd")


class SpfPolicydService(ServiceComponent):
    """postfix-policyd-spf-python, spawned by Postfix from master.cf."""

    CHECK = "check_policy_service unix:private/policyd-spf"
    DEFAULT_RESTRICTIONS = "permit_sasl_authenticated, permit_mynetworks, reject_unauth_destination"

    def install(self, issues: IssueLog, **options: Any) -> str:
        if not self.runner.exists("postconf"):
            raise DependencyMissing("spf-policyd requires postfix; install postfix first")
        self.say("Installing the SPF policy daemon...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)

        master_cf = self.ctx.path("/etc/postfix/master.cf")
        if master_cf.is_file() and "policyd-spf" not in master_cf.read_text(encoding="utf-8"):
            issues.extend(self.ctx.renderer.write("postfix/master.cf.spf", master_cf, {}, append=True))

        postconf_set(self, "policyd-spf_time_limit", "3600")
        current = postconf_get(self, "smtpd_recipient_restrictions")
        if self.CHECK not in current:
            postconf_set(
                self,
                "smtpd_recipient_restrictions",
                f"{current or self.DEFAULT_RESTRICTIONS}, {self.CHECK}",
            )
        issues.attempt("reload postfix", self.systemctl, "reload", "postfix")
        return "installed"


# ── DNS ─────────────────────────────────────────────────────────

class Bind9Service(ServiceComponent):
    OPTIONS_FILE = "/etc/bind/named.conf.options"

    @staticmethod
    def options_context(config: DnsStackConfig, tsig_key_file: str | None = None) -> dict[str, Any]:
        security = config.security
        return {
            "recursion": config.recursion,
            "allow_recursion": list(security.allow_recursion),
            "forwarders": list(config.forwarders) if config.recursion else [],
            "rrl_enabled": security.rrl_enabled,
            "responses_per_second": security.responses_per_second,
            "rrl_window": security.rrl_window,
            "query_logging": security.query_logging,
            "tsig_enabled": bool(tsig_key_file),
            "tsig_key_file": tsig_key_file or "",
        }

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing BIND 9...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)
        config = options.get("dns_config") or DnsStackConfig()
        issues.extend(self.ctx.renderer.write(
            "bind9/named.conf.options",
            self.ctx.path(self.OPTIONS_FILE),
            self.options_context(config),
            owner="root:bind",
        ))
        self.check_config(issues)
        self.systemctl("enable")
        self.systemctl("restart")
        return self.installed_version() or "installed"

    def check_config(self, issues: IssueLog) -> bool:
        result = self.runner.run("named-checkconf", check=False)
        if not result.ok:
            issues.add("named-checkconf", result.output or f"exited with code {result.returncode}")
        return result.ok


# ── Network / system ────────────────────────────────────────────

class UfwService(ServiceComponent):
    DEFAULT_RULES = [
        ["default", "deny", "incoming"],
        ["default", "allow", "outgoing"],
        ["allow", "ssh"],
        ["allow", "http"],
        ["allow", "https"],
    ]

    def is_running(self) -> bool:
        result = self.runner.run_silent("ufw", ["status"])
        return "Status: active" in result.stdout

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing UFW with default rules (ssh, http, https)...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)
        for rule in self.DEFAULT_RULES:
            self.runner.run("ufw", rule)
        self.runner.run("ufw", ["--force", "enable"])
        return self.installed_version() or "installed"

    def start(self, issues: IssueLog) -> None:
        self.runner.run("ufw", ["--force", "enable"])

    def stop(self, issues: IssueLog) -> None:
        self.runner.run("ufw", ["disable"])


class WireguardService(ServiceComponent):
    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing WireGuard...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)
        conf_dir = self.ctx.path("/etc/wireguard")
        conf_dir.mkdir(parents=True, exist_ok=True)
        conf_dir.chmod(0o700)
        self.say("Create /etc/wireguard/wg0.conf, then start wireguard")
        return self.installed_version() or "installed"


class Fail2banService(ServiceComponent):
    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing Fail2ban with an sshd jail...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)
        issues.extend(self.ctx.renderer.write(
            "fail2ban/jail.local",
            self.ctx.path("/etc/fail2ban/jail.local"),
            {"bantime": "1h", "findtime": "10m", "maxretry": 5, "ssh_maxretry": 3},
        ))
        self.systemctl("enable")
        self.systemctl("restart")
        return self.installed_version() or "installed"


class NfsService(ServiceComponent):
    def _in_container(self) -> bool:
        virt = self.runner.run_silent("systemd-detect-virt", ["-c"], privileged=False)
        if virt.ok and virt.stdout.strip() not in ("", "none"):
            return True
        if self.ctx.path("/run/systemd/container").exists() or self.ctx.path("/.dockerenv").exists():
            return True
        cgroup = self.ctx.path("/proc/1/cgroup")
        if cgroup.is_file():
            text = cgroup.read_text(encoding="utf-8", errors="replace")
            return "lxc" in text or "docker" in text
        return False

    def install(self, issues: IssueLog, **options: Any) -> str:
        if self._in_container():
            raise DependencyMissing(
                "NFS server needs kernel support that containers do not provide; "
                "use a VM or a privileged container"
            )
        self.say("Installing NFS server...")
        self.apt_update()
        self.apt_install(["rpcbind"])
        self.systemctl("enable", "rpcbind")
        self.systemctl("start", "rpcbind")
        self.apt_install(self.descriptor.packages)
        self.systemctl("enable")
        self.systemctl("start")
        return "installed"


# ── Process / monitoring ────────────────────────────────────────

class Pm2Service(ServiceComponent):
    def install(self, issues: IssueLog, **options: Any) -> str:
        if not self.runner.exists("npm"):
            raise DependencyMissing("pm2 requires npm; install the nodejs runtime first")
        self.say("Installing PM2...")
        self.runner.run("npm", ["install", "-g", "pm2"])
        issues.attempt("pm2 startup", self.runner.run, "pm2", ["startup", "systemd", "-u", "root", "--hp", "/root"])
        return self.installed_version() or "installed"

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        old = self.installed_version()
        self.runner.run("npm", ["install", "-g", "pm2@latest"])
        issues.attempt("pm2 update", self.runner.run, "pm2", ["update"])
        return {"old_version": old, "new_version": self.installed_version()}

    def remove(self, issues: IssueLog, purge: bool = False, remove_data: bool = False) -> None:
        issues.attempt("pm2 kill", self.runner.run, "pm2", ["kill"])
        issues.attempt("pm2 unstartup", self.runner.run, "pm2", ["unstartup", "systemd"])
        self.runner.run("npm", ["uninstall", "-g", "pm2"])


class NetdataService(ServiceComponent):
    KICKSTART = "https://get.netdata.cloud/kickstart.sh"

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing Netdata via kickstart...")
        self.runner.run("curl", ["-fsSL", self.KICKSTART, "-o", "/tmp/netdata-kickstart.sh"])
        self.runner.run("sh", ["/tmp/netdata-kickstart.sh", "--non-interactive", "--disable-telemetry"])
        issues.attempt("cleanup kickstart", self.runner.run, "rm", ["-f", "/tmp/netdata-kickstart.sh"])
        return "installed"


class LokiService(ServiceComponent):
    KEYRING = "/etc/apt/keyrings/grafana.gpg"

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Adding the Grafana apt repository...")
        self.ctx.path("/etc/apt/keyrings").mkdir(parents=True, exist_ok=True)
        self.runner.run("wget", ["-qO", "/tmp/grafana.gpg.key", "https://apt.grafana.com/gpg.key"])
        self.runner.run("gpg", ["--batch", "--yes", "--dearmor", "-o", self.KEYRING, "/tmp/grafana.gpg.key"])
        atomic_write_text(
            self.ctx.path("/etc/apt/sources.list.d/grafana.list"),
            f"deb [signed-by={self.KEYRING}] https://apt.grafana.com stable main\n",
            mode=0o644,
        )
        return super().install(issues, **options)


# ── Backup / transfer ───────────────────────────────────────────

class RcloneService(ServiceComponent):
    BINARIES = ("/usr/bin/rclone", "/usr/local/bin/rclone", "/usr/local/share/man/man1/rclone.1")

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing rclone from rclone.org...")
        self.runner.run("curl", ["-fsSL", "https://rclone.org/install.sh", "-o", "/tmp/rclone-install.sh"])
        self.runner.run("bash", ["/tmp/rclone-install.sh"])
        issues.attempt("cleanup installer", self.runner.run, "rm", ["-f", "/tmp/rclone-install.sh"])
        return self.installed_version() or "installed"

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        old = self.installed_version()
        self.runner.run("rclone", ["selfupdate"])
        return {"old_version": old, "new_version": self.installed_version()}

    def remove(self, issues: IssueLog, purge: bool = False, remove_data: bool = False) -> None:
        self.runner.run("rm", ["-f", *self.BINARIES])


class FtpService(ServiceComponent):
    """vsftpd and ProFTPD both bind port 21: installing one removes the other."""

    conflicts: dict[str, str] = {}  # binary -> package

    def install(self, issues: IssueLog, **options: Any) -> str:
        for other, package in self.conflicts.items():
            if self.runner.exists(other):
                self.say(f"Removing conflicting {other}...")
                issues.attempt(f"stop {other}", self.systemctl, "stop", other)
                self.runner.run("apt-get", ["remove", "-y", package])
        return super().install(issues, **options)


class VsftpdService(FtpService):
    conflicts = {"proftpd": "proftpd-basic"}


class ProftpdService(FtpService):
    conflicts = {"vsftpd": "vsftpd"}


SERVICE_CLASSES: dict[str, type[ServiceComponent]] = {
    "haproxy": EnableOnlyService,
    "keepalived": EnableOnlyService,
    "postfix": PostfixService,
    "rspamd": RspamdService,
    "opendkim": OpendkimService,
    "clamav": ClamavService,
    "spf-policyd": SpfPolicydService,
    "bind9": Bind9Service,
    "ufw": UfwService,
    "wireguard": WireguardService,
    "fail2ban": Fail2banService,
    "nfs": NfsService,
    "pm2": Pm2Service,
    "netdata": NetdataService,
    "loki": LokiService,
    "rclone": RcloneService,
    "vsftpd": VsftpdService,
    "proftpd": ProftpdService,
}
