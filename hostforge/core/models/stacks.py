"""
Stack configuration models — inputs of the mail, DNS and database stacks.

Loaded from a YAML/JSON file by the CLI (or built directly by callers).
The resolved configuration is persisted under ``<state_dir>/stacks/``;
these models never carry live secrets or private keys.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator

_DOMAIN_RE = re.compile(r"^(?=.{1,253}$)([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$")
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


def _check_domain(value: str) -> str:
    value = value.strip().lower().rstrip(".")
    if not _DOMAIN_RE.match(value):
        raise ValueError(f"invalid domain name: {value!r}")
    return value


# ── Mail ────────────────────────────────────────────────────────


class MailComponents(BaseModel):
    """Which mail sub-components the stack installs."""

    postfix: bool = True
    dovecot: bool = True
    rspamd: bool = True
    opendkim: bool = True
    clamav: bool = False
    spf_policyd: bool = True

    def selected(self) -> list[str]:
        """Component ids in install order."""
        order = [
            ("postfix", self.postfix),
            ("dovecot", self.dovecot),
            ("rspamd", self.rspamd),
            ("opendkim", self.opendkim),
            ("clamav", self.clamav),
            ("spf-policyd", self.spf_policyd),
        ]
        return [cid for cid, enabled in order if enabled]


class DkimOptions(BaseModel):
    enabled: bool = True
    selector: str = "mail"
    key_size: int = Field(default=2048, ge=1024, le=4096)
    force_rotate: bool = False  # regenerate even when a key pair exists

    @field_validator("selector")
    @classmethod
    def _selector(cls, v: str) -> str:
        if not re.match(r"^[a-z0-9][a-z0-9-]*$", v):
            raise ValueError(f"invalid DKIM selector: {v!r}")
        return v


class TlsOptions(BaseModel):
    provider: Literal["letsencrypt", "self-signed"] = "self-signed"
    email: str | None = None


class MailSecurity(BaseModel):
    require_tls: bool = True
    message_size_limit_mb: int = Field(default=25, gt=0)
    spam_reject_score: float = 15.0


class MailStackConfig(BaseModel):
    """Mail server stack input."""

    domain: str
    hostname: str
    additional_domains: list[str] = Field(default_factory=list)
    components: MailComponents = Field(default_factory=MailComponents)
    dkim: DkimOptions = Field(default_factory=DkimOptions)
    tls: TlsOptions = Field(default_factory=TlsOptions)
    security: MailSecurity = Field(default_factory=MailSecurity)

    @field_validator("domain", "hostname")
    @classmethod
    def _domain(cls, v: str) -> str:
        return _check_domain(v)

    @field_validator("additional_domains")
    @classmethod
    def _domains(cls, v: list[str]) -> list[str]:
        return [_check_domain(d) for d in v]

    @property
    def all_domains(self) -> list[str]:
        """Primary domain first, then additional domains, de-duplicated."""
        seen: list[str] = []
        for d in (self.domain, *self.additional_domains):
            if d not in seen:
                seen.append(d)
        return seen


# ── DNS ─────────────────────────────────────────────────────────


class DnsRecord(BaseModel):
    name: str
    type: Literal["A", "AAAA", "CNAME", "MX", "TXT", "NS", "SRV", "CAA"]
    value: str
    ttl: int | None = None
    priority: int | None = None  # MX / SRV


class DnsZone(BaseModel):
    name: str
    nameservers: list[str] = Field(default_factory=list)
    admin_email: str | None = None
    records: list[DnsRecord] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _check_domain(v)

    def ns_hosts(self) -> list[str]:
        return self.nameservers or [f"ns1.{self.name}"]

    def soa_contact(self) -> str:
        """Admin mailbox in SOA RNAME form (``hostmaster.example.com.``)."""
        email = self.admin_email or f"hostmaster@{self.name}"
        local, _, domain = email.partition("@")
        local = local.replace(".", "\\.")
        return f"{local}.{domain}."


class DnsSecurity(BaseModel):
    rrl_enabled: bool = True
    responses_per_second: int = Field(default=10, gt=0)
    rrl_window: int = Field(default=5, gt=0)
    tsig_enabled: bool = False
    query_logging: bool = False
    allow_recursion: list[str] = Field(default_factory=lambda: ["127.0.0.1", "::1"])


class DnsStackConfig(BaseModel):
    """DNS server stack input."""

    architecture: Literal["authoritative", "cache", "hybrid"] = "authoritative"
    zones: list[DnsZone] = Field(default_factory=list)
    host_ipv4: str | None = None
    reverse_zone: bool = False
    forwarders: list[str] = Field(default_factory=lambda: ["1.1.1.1", "9.9.9.9"])
    default_ttl: int = Field(default=3600, gt=0)
    security: DnsSecurity = Field(default_factory=DnsSecurity)

    @field_validator("host_ipv4")
    @classmethod
    def _ipv4(cls, v: str | None) -> str | None:
        if v is None:
            return v
        parts = v.split(".")
        if len(parts) != 4 or not all(p.isdigit() and 0 <= int(p) <= 255 for p in parts):
            raise ValueError(f"invalid IPv4 address: {v!r}")
        return v

    @property
    def recursion(self) -> bool:
        return self.architecture in ("cache", "hybrid")


# ── Database ────────────────────────────────────────────────────


class DbSecurityOptions(BaseModel):
    """Baseline hardening applied when an engine is configured."""

    set_root_secret: bool = True
    remove_anonymous_users: bool = True
    disable_remote_root: bool = True
    remove_test_db: bool = True
    configure_hba: bool = True
    enable_protected_mode: bool = True
    bind_localhost: bool = True


class DbPerformance(BaseModel):
    max_connections: int = Field(default=100, gt=0)
    memory_mb: int = Field(default=256, gt=0)
    usage: Literal["cache", "sessions", "queue", "general"] = "general"


class DbBackup(BaseModel):
    enabled: bool = False
    tools: list[Literal["rsync", "rclone", "restic"]] = Field(default_factory=list)
    retention: int = Field(default=7, gt=0)
    directory: str = "/var/backups/hostforge"


class DatabaseStackConfig(BaseModel):
    """Database stack input."""

    engine: Literal["postgresql", "mysql", "redis"]
    database_name: str = "app"
    security: DbSecurityOptions = Field(default_factory=DbSecurityOptions)
    performance: DbPerformance = Field(default_factory=DbPerformance)
    backup: DbBackup = Field(default_factory=DbBackup)

    @field_validator("database_name")
    @classmethod
    def _db_name(cls, v: str) -> str:
        if not _IDENT_RE.match(v):
            raise ValueError(f"invalid database name: {v!r}")
        return v
