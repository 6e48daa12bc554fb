"""
Component catalog — static data for every runtime, database and service.

Each entry is plain data; the classes in ``runtimes``, ``databases`` and
``services`` read it through ``ComponentDescriptor``. Keys:

    label            Human-readable name
    packages         apt packages installed / upgraded / removed
    service          Managed systemd unit ("" for tools without a process)
    aliases          Other unit names probed when checking "running"
    version          argv of the version probe
    probe            Binary whose presence means "installed"
    prefix           dpkg prefix used by the cleanup engine
    data_dirs        Directories dropped by ``remove(remove_data=True)``
    size             Estimated disk footprint (runtimes only)
    protected        Never removed or stopped
    self_hosted      The runtime the orchestrator itself runs on
"""

from __future__ import annotations

from hostforge.core.models.component import ComponentCategory, ComponentDescriptor

PROTECTED_IDS: frozenset[str] = frozenset({"ssh", "cron", "python"})


# ── Runtimes ────────────────────────────────────────────────────

RUNTIMES: dict[str, dict] = {
    "nodejs": {
        "label": "Node.js",
        "packages": ["nodejs"],
        "version": ["node", "--version"],
        "probe": "node",
        "size": "~100MB",
    },
    "python": {
        "label": "Python 3",
        "packages": ["python3", "python3-pip", "python3-venv", "python3-dev", "build-essential"],
        "version": ["python3", "--version"],
        "probe": "python3",
        "size": "~200MB",
        "protected": True,
        "self_hosted": True,
    },
    "php": {
        "label": "PHP",
        "packages": [
            "php", "php-fpm", "php-cli", "php-common", "php-mysql", "php-pgsql",
            "php-sqlite3", "php-curl", "php-gd", "php-mbstring", "php-xml",
            "php-zip", "php-bcmath", "php-intl", "php-json",
        ],
        "version": ["php", "--version"],
        "probe": "php",
        "size": "~100MB",
    },
    "go": {
        "label": "Go",
        "packages": [],  # upstream tarball into /usr/local/go
        "version": ["go", "version"],
        "probe": "go",
        "size": "~500MB",
    },
    "docker": {
        "label": "Docker",
        "packages": ["docker.io", "docker-compose"],
        "service": "docker",
        "version": ["docker", "--version"],
        "probe": "docker",
        "size": "~500MB",
    },
    "rust": {
        "label": "Rust",
        "packages": [],  # rustup
        "version": ["rustc", "--version"],
        "probe": "rustc",
        "size": "~1GB",
    },
    "ruby": {
        "label": "Ruby",
        "packages": ["ruby", "ruby-dev", "ruby-bundler", "build-essential"],
        "version": ["ruby", "--version"],
        "probe": "ruby",
        "size": "~300MB",
    },
}


# ── Databases ───────────────────────────────────────────────────

DATABASES: dict[str, dict] = {
    "postgresql": {
        "label": "PostgreSQL",
        "packages": ["postgresql", "postgresql-contrib"],
        "service": "postgresql",
        "version": ["psql", "--version"],
        "probe": "psql",
        "prefix": "postgresql",
        "data_dirs": ["/var/lib/postgresql"],
    },
    "mysql": {
        "label": "MariaDB",
        "packages": ["default-mysql-server", "default-mysql-client"],
        "service": "mariadb",
        "aliases": ["mysql"],
        "version": ["mysql", "--version"],
        "probe": "mysql",
        "prefix": "mariadb",
        "data_dirs": ["/var/lib/mysql"],
    },
    "redis": {
        "label": "Redis",
        "packages": ["redis-server"],
        "service": "redis-server",
        "aliases": ["redis"],
        "version": ["redis-server", "--version"],
        "probe": "redis-server",
        "prefix": "redis",
        "data_dirs": ["/var/lib/redis"],
    },
}


# ── Services ────────────────────────────────────────────────────

SERVICES: dict[str, dict] = {
    # Web / network
    "nginx": {
        "label": "Nginx",
        "packages": ["nginx"],
        "remove_packages": ["nginx", "nginx-common"],
        "service": "nginx",
        "version": ["nginx", "-v"],
        "probe": "nginx",
    },
    "haproxy": {
        "label": "HAProxy",
        "packages": ["haproxy"],
        "service": "haproxy",
        "version": ["haproxy", "-v"],
        "probe": "haproxy",
    },
    "keepalived": {
        "label": "Keepalived",
        "packages": ["keepalived"],
        "service": "keepalived",
        "version": ["keepalived", "-v"],
        "probe": "keepalived",
    },
    "certbot": {
        "label": "Certbot",
        "packages": ["certbot", "python3-certbot-nginx"],
        "service": "certbot.timer",
        "version": ["certbot", "--version"],
        "probe": "certbot",
    },
    "fail2ban": {
        "label": "Fail2ban",
        "packages": ["fail2ban"],
        "service": "fail2ban",
        "version": ["fail2ban-client", "--version"],
        "probe": "fail2ban-client",
    },
    "ufw": {
        "label": "UFW firewall",
        "packages": ["ufw"],
        "service": "ufw",
        "probe": "ufw",
    },
    "wireguard": {
        "label": "WireGuard",
        "packages": ["wireguard", "wireguard-tools"],
        "service": "wg-quick@wg0",
        "probe": "wg",
    },
    # Process / monitoring
    "pm2": {
        "label": "PM2",
        "packages": [],  # npm -g
        "service": "pm2-root",
        "version": ["pm2", "--version"],
        "probe": "pm2",
    },
    "netdata": {
        "label": "Netdata",
        "packages": ["netdata"],
        "service": "netdata",
        "probe": "netdata",
    },
    "loki": {
        "label": "Grafana Loki",
        "packages": ["loki"],
        "service": "loki",
        "probe": "loki",
    },
    # DNS
    "bind9": {
        "label": "BIND 9",
        "packages": ["bind9", "bind9utils", "bind9-doc", "dnsutils"],
        "remove_packages": ["bind9", "bind9utils", "bind9-doc"],
        "service": "named",
        "aliases": ["bind9"],
        "version": ["named", "-v"],
        "probe": "named",
        "prefix": "bind9",
    },
    # Mail
    "postfix": {
        "label": "Postfix",
        "packages": ["postfix", "postfix-policyd-spf-python", "libsasl2-modules"],
        "remove_packages": ["postfix", "postfix-policyd-spf-python"],
        "service": "postfix",
        "version": ["postconf", "mail_version"],
        "probe": "postfix",
        "prefix": "postfix",
    },
    "dovecot": {
        "label": "Dovecot",
        "packages": ["dovecot-core", "dovecot-imapd", "dovecot-pop3d", "dovecot-lmtpd", "dovecot-sieve"],
        "remove_packages": ["dovecot-core", "dovecot-imapd", "dovecot-pop3d", "dovecot-lmtpd"],
        "service": "dovecot",
        "version": ["dovecot", "--version"],
        "probe": "dovecot",
        "prefix": "dovecot",
    },
    "rspamd": {
        "label": "Rspamd",
        "packages": ["rspamd", "redis-server"],
        "remove_packages": ["rspamd"],
        "service": "rspamd",
        "version": ["rspamd", "--version"],
        "probe": "rspamd",
        "prefix": "rspamd",
    },
    "opendkim": {
        "label": "OpenDKIM",
        "packages": ["opendkim", "opendkim-tools"],
        "service": "opendkim",
        "probe": "opendkim",
        "prefix": "opendkim",
    },
    "clamav": {
        "label": "ClamAV",
        "packages": ["clamav", "clamav-daemon", "clamav-freshclam"],
        "remove_packages": [
            "clamav", "clamav-daemon", "clamav-freshclam",
            "clamav-base", "clamdscan", "libclamav11",
        ],
        "service": "clamav-daemon",
        "extra_services": ["clamav-freshclam"],
        "probe": "clamscan",
        "prefix": "clamav",
    },
    "spf-policyd": {
        "label": "SPF policy daemon",
        "packages": ["postfix-policyd-spf-python"],
        "probe": "policyd-spf",
    },
    # Backup
    "rsync": {
        "label": "rsync",
        "packages": ["rsync"],
        "version": ["rsync", "--version"],
        "probe": "rsync",
    },
    "rclone": {
        "label": "rclone",
        "packages": [],  # upstream install script
        "version": ["rclone", "--version"],
        "probe": "rclone",
    },
    "restic": {
        "label": "restic",
        "packages": ["restic"],
        "version": ["restic", "version"],
        "probe": "restic",
    },
    # System
    "ssh": {
        "label": "OpenSSH server",
        "packages": ["openssh-server"],
        "service": "ssh",
        "aliases": ["sshd"],
        "probe": "sshd",
        "protected": True,
    },
    "cron": {
        "label": "cron",
        "packages": ["cron"],
        "service": "cron",
        "aliases": ["crond"],
        "probe": "crontab",
        "protected": True,
    },
    # File transfer
    "vsftpd": {
        "label": "vsftpd",
        "packages": ["vsftpd"],
        "service": "vsftpd",
        "version": ["vsftpd", "-v"],
        "probe": "vsftpd",
    },
    "proftpd": {
        "label": "ProFTPD",
        "packages": ["proftpd-basic"],
        "service": "proftpd",
        "version": ["proftpd", "-v"],
        "probe": "proftpd",
    },
    "nfs": {
        "label": "NFS server",
        "packages": ["nfs-kernel-server", "nfs-common"],
        "service": "nfs-kernel-server",
        "probe": "exportfs",
    },
}


_SECTIONS: list[tuple[ComponentCategory, dict[str, dict]]] = [
    (ComponentCategory.RUNTIME, RUNTIMES),
    (ComponentCategory.DATABASE, DATABASES),
    (ComponentCategory.SERVICE, SERVICES),
]


def removal_packages(component_id: str) -> list[str]:
    """Packages removed for ``component_id`` (may differ from installed ones)."""
    for _, section in _SECTIONS:
        if component_id in section:
            entry = section[component_id]
            return list(entry.get("remove_packages", entry.get("packages", [])))
    return []


def build_descriptor(component_id: str, category: ComponentCategory, entry: dict) -> ComponentDescriptor:
    return ComponentDescriptor(
        id=component_id,
        category=category,
        label=entry.get("label", component_id),
        protected=entry.get("protected", component_id in PROTECTED_IDS),
        self_hosted=entry.get("self_hosted", False),
        service_name=entry.get("service", ""),
        extra_services=entry.get("extra_services", []),
        packages=entry.get("packages", []),
        package_prefix=entry.get("prefix", ""),
        version_command=entry.get("version", []),
        probe=entry.get("probe", ""),
        service_aliases=entry.get("aliases", []),
        data_dirs=entry.get("data_dirs", []),
        estimated_size=entry.get("size", ""),
    )


def all_descriptors() -> list[ComponentDescriptor]:
    """Every catalog entry, runtimes first, in declaration order."""
    return [
        build_descriptor(cid, category, entry)
        for category, section in _SECTIONS
        for cid, entry in section.items()
    ]
