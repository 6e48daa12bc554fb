"""
DNS stack — BIND 9 as authoritative server, caching resolver, or both.

Zone serials follow the ``YYYYMMDDnn`` convention: a zone rewritten on
the day its current serial was issued gets ``nn + 1``, otherwise the
serial restarts at ``<today>01``.
"""

from __future__ import annotations

import base64
import logging
import re
import secrets
import shutil
from datetime import date
from typing import Any, cast

from hostforge.core.models.result import IssueLog
from hostforge.core.models.stacks import DnsRecord, DnsStackConfig, DnsZone
from hostforge.core.persistence.state_file import atomic_write_text
from hostforge.core.services.components.services import Bind9Service
from hostforge.core.services.stacks.base import Stack

logger = logging.getLogger(__name__)

ZONES_DIR = "/etc/bind/zones"
NAMED_CONF_LOCAL = "/etc/bind/named.conf.local"
TSIG_KEY_FILE = "/etc/bind/hostforge-tsig.key"
TSIG_KEY_NAME = "hostforge-tsig"

_SERIAL_RE = re.compile(r"(\d{10})\s*;\s*serial", re.IGNORECASE)


def next_serial(existing: str | None, today: date) -> str:
    """Return the serial to write, given the current zone file content."""
    prefix = today.strftime("%Y%m%d")
    if existing:
        match = _SERIAL_RE.search(existing)
        if match and match.group(1).startswith(prefix):
            counter = int(match.group(1)[8:]) + 1
            if counter <= 99:
                return f"{prefix}{counter:02d}"
            logger.warning("Serial counter exhausted for %s, keeping 99", prefix)
            return f"{prefix}99"
    return f"{prefix}01"


def reverse_zone_name(ipv4: str) -> str:
    """``203.0.113.10`` → ``113.0.203.in-addr.arpa``"""
    o1, o2, o3, _ = ipv4.split(".")
    return f"{o3}.{o2}.{o1}.in-addr.arpa"


def _absolute(name: str) -> str:
    return name if name.endswith(".") else name + "."


def _record_line(record: DnsRecord, default_ttl: int) -> dict[str, Any]:
    value = record.value
    if record.type == "TXT" and not value.startswith('"'):
        value = '"' + value.replace('"', '\\"') + '"'
    if record.priority is not None and record.type in ("MX", "SRV"):
        value = f"{record.priority} {value}"
    return {
        "name": record.name,
        "ttl": record.ttl or default_ttl,
        "type": record.type,
        "value": value,
    }


def zone_context(zone: DnsZone, config: DnsStackConfig, serial: str) -> dict[str, Any]:
    ns_hosts = zone.ns_hosts()
    suffix = "." + zone.name
    glue = []
    if config.host_ipv4:
        # In-zone nameservers need an A record in the zone itself
        for host in ns_hosts:
            bare = host.rstrip(".")
            if bare.endswith(suffix):
                glue.append({"host": bare[: -len(suffix)], "ip": config.host_ipv4})
    return {
        "zone": zone.name,
        "ttl": config.default_ttl,
        "serial": serial,
        "primary_ns": _absolute(ns_hosts[0]),
        "contact": zone.soa_contact(),
        "nameservers": [_absolute(h) for h in ns_hosts],
        "glue": glue,
        "apex_ip": config.host_ipv4 or "",
        "records": [_record_line(r, config.default_ttl) for r in zone.records],
    }


class DnsStack(Stack):
    kind = "dns"

    def _run(self, config: DnsStackConfig, issues: IssueLog) -> dict[str, Any]:
        bind9 = cast(Bind9Service, self.registry.resolve("bind9"))

        self.phase(1, "install")
        self.install_components(["bind9"], issues, dns_config=config)

        self.phase(2, "zones")
        zones: list[dict[str, Any]] = []
        if config.architecture == "cache":
            self.say("Caching resolver: no zone files")
        else:
            zones_dir = self.ctx.path(ZONES_DIR)
            zones_dir.mkdir(parents=True, exist_ok=True)
            for zone in config.zones:
                zones.append(self.step(f"zone {zone.name}", self.write_zone, zone, config, issues))
            if config.reverse_zone and config.host_ipv4 and config.zones:
                zones.append(self.step("reverse zone", self.write_reverse_zone, config, issues))

        self.phase(3, "server configuration")
        tsig_file = None
        if config.security.tsig_enabled:
            tsig_file = self.step("tsig key", self.ensure_tsig_key, issues)
        self.step("named.conf.local", self.write_local_conf, zones, tsig_file is not None, issues)
        issues.extend(self.ctx.renderer.write(
            "bind9/named.conf.options",
            self.ctx.path(Bind9Service.OPTIONS_FILE),
            bind9.options_context(config, tsig_file),
            owner="root:bind",
        ))
        self.completed.append("named.conf.options")

        self.phase(4, "activation")
        bind9.check_config(issues)
        self.step("restart named", bind9.systemctl, "restart")

        document = {
            "architecture": config.architecture,
            "zones": [{"name": z["name"], "file": z["file"], "serial": z["serial"]} for z in zones],
            "forwarders": list(config.forwarders) if config.recursion else [],
            "security": config.security.model_dump(),
            "tsig_key_file": tsig_file,
        }
        self.persist(document)
        self.completed.append("persist")
        return {"zones": document["zones"], "architecture": config.architecture}

    # ── Zones ───────────────────────────────────────────────────

    def _serial_for(self, zone_file: str) -> str:
        path = self.ctx.path(zone_file)
        existing = path.read_text(encoding="utf-8") if path.is_file() else None
        return next_serial(existing, self.clock().date())

    def write_zone(self, zone: DnsZone, config: DnsStackConfig, issues: IssueLog) -> dict[str, Any]:
        zone_file = f"{ZONES_DIR}/db.{zone.name}"
        serial = self._serial_for(zone_file)
        self.say(f"Writing zone {zone.name} (serial {serial})")
        issues.extend(self.ctx.renderer.write(
            "bind9/zone",
            self.ctx.path(zone_file),
            zone_context(zone, config, serial),
            owner="root:bind",
        ))
        return {"name": zone.name, "file": zone_file, "serial": serial}

    def write_reverse_zone(self, config: DnsStackConfig, issues: IssueLog) -> dict[str, Any]:
        name = reverse_zone_name(config.host_ipv4)
        zone_file = f"{ZONES_DIR}/db.{name}"
        serial = self._serial_for(zone_file)
        first = config.zones[0]
        self.say(f"Writing reverse zone {name}")
        issues.extend(self.ctx.renderer.write(
            "bind9/reverse-zone",
            self.ctx.path(zone_file),
            {
                "zone": name,
                "ttl": config.default_ttl,
                "serial": serial,
                "primary_ns": _absolute(first.ns_hosts()[0]),
                "contact": first.soa_contact(),
                "host_octet": config.host_ipv4.split(".")[3],
                "ptr_target": _absolute(first.name),
            },
            owner="root:bind",
        ))
        return {"name": name, "file": zone_file, "serial": serial}

    def write_local_conf(self, zones: list[dict[str, Any]], tsig: bool, issues: IssueLog) -> None:
        issues.extend(self.ctx.renderer.write(
            "bind9/named.conf.local",
            self.ctx.path(NAMED_CONF_LOCAL),
            {
                "zones": zones,
                "allow_transfer": f"key {TSIG_KEY_NAME};" if tsig else "none;",
            },
            owner="root:bind",
        ))

    # ── TSIG ────────────────────────────────────────────────────

    def ensure_tsig_key(self, issues: IssueLog) -> str:
        """Generate the transfer key once; later runs keep it."""
        path = self.ctx.path(TSIG_KEY_FILE)
        if path.is_file():
            self.say("Keeping existing TSIG key")
        else:
            self.say("Generating TSIG key (hmac-sha256)")
            secret = base64.b64encode(secrets.token_bytes(32)).decode("ascii")
            self.ctx.mask(secret)
            content = (
                f'key "{TSIG_KEY_NAME}" {{\n'
                f"\talgorithm hmac-sha256;\n"
                f'\tsecret "{secret}";\n'
                f"}};\n"
            )
            atomic_write_text(path, content, mode=0o640)
        try:
            shutil.chown(path, user="root", group="bind")
        except (LookupError, OSError) as e:
            issues.add(f"chown {TSIG_KEY_FILE}", f"could not set owner root:bind: {e}")
        return TSIG_KEY_FILE
