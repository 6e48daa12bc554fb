"""
Mail stack — Postfix, Dovecot, Rspamd, OpenDKIM, ClamAV, SPF policy.

Phases:
    1. Install    selected sub-components, in order
    2. Keys       DKIM key pair per domain; TLS certificate
    3. Config     main.cf, local.conf, OpenDKIM tables, clamd/Rspamd bridge
    4. Activate   restart each managed process, persist ``stacks/mail.json``

DKIM private keys are written to ``/etc/opendkim/keys/<domain>/`` with
mode 600 and never leave the host: the stack document only carries the
public TXT records.
"""

from __future__ import annotations

import base64
import logging
import shutil
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from hostforge.adapters.shell.command import CommandError
from hostforge.core.models.result import IssueLog
from hostforge.core.models.stacks import MailStackConfig
from hostforge.core.persistence.state_file import atomic_write_text
from hostforge.core.services.stacks.base import Stack

logger = logging.getLogger(__name__)

DKIM_KEYS_DIR = "/etc/opendkim/keys"
LETSENCRYPT_LIVE = "/etc/letsencrypt/live"
SNAKEOIL_CERT = "/etc/ssl/certs/ssl-cert-snakeoil.pem"
SNAKEOIL_KEY = "/etc/ssl/private/ssl-cert-snakeoil.key"

# Units that may hold port 80 during standalone issuance
PORT_80_UNITS = ("nginx", "apache2", "haproxy")

MILTERS = {
    "rspamd": "unix:/rspamd/rspamd.sock",
    "opendkim": "inet:localhost:12301",
}


# ── DKIM ────────────────────────────────────────────────────────

def dkim_txt_value(public_key: rsa.RSAPublicKey) -> str:
    der = public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return f"v=DKIM1; h=sha256; k=rsa; p={base64.b64encode(der).decode('ascii')}"


def dkim_txt_record(selector: str, domain: str, value: str) -> str:
    """BIND-style TXT record, split into 250-char strings."""
    chunks = [value[i:i + 250] for i in range(0, len(value), 250)]
    quoted = "\n\t".join(f'"{c}"' for c in chunks)
    return f"{selector}._domainkey\tIN\tTXT\t( {quoted} )  ; ----- DKIM key {selector} for {domain}\n"


class MailStack(Stack):
    kind = "mail"

    def _run(self, config: MailStackConfig, issues: IssueLog) -> dict[str, Any]:
        selected = config.components.selected()
        domains = config.all_domains

        # ── Phase 1 ──
        self.phase(1, "install")
        self.install_components(
            selected,
            issues,
            domain=config.domain,
            hostname=config.hostname,
            additional_domains=list(config.additional_domains),
            selector=config.dkim.selector,
            tls_provider=config.tls.provider,
        )

        # ── Phase 2 ──
        self.phase(2, "keys and certificates")
        dkim_records: dict[str, dict[str, str]] = {}
        dkim_active = "opendkim" in selected and config.dkim.enabled
        if dkim_active:
            for domain in domains:
                dkim_records[domain] = self.step(
                    f"dkim {domain}", self.ensure_dkim_key, domain, config, issues
                )
        tls = self.resolve_tls(config, issues)
        self.completed.append("tls")

        # ── Phase 3 ──
        self.phase(3, "configuration")
        context = self.build_context(config, selected, tls, dkim_active)
        self.step("write configuration", self.write_configuration, context, selected, dkim_active, issues)

        # ── Phase 4 ──
        self.phase(4, "activation")
        for cid in selected:
            component = self.registry.resolve(cid)
            if not component.descriptor.has_service:
                continue
            if cid == "clamav":
                # No definitions yet: the daemon would refuse to start
                issues.attempt("restart clamav-daemon", component.systemctl, "restart")
                continue
            self.step(f"restart {component.service_name}", component.systemctl, "restart")

        document = {
            "domain": config.domain,
            "hostname": config.hostname,
            "domains": domains,
            "components": selected,
            "dkim": {
                "enabled": dkim_active,
                "selector": config.dkim.selector,
                "key_size": config.dkim.key_size,
                "records": dkim_records,
            },
            "tls": tls,
            "security": config.security.model_dump(),
        }
        self.persist(document)
        self.completed.append("persist")
        return {"domains": domains, "dkim": dkim_records, "tls": tls}

    # ── DKIM ────────────────────────────────────────────────────

    def ensure_dkim_key(self, domain: str, config: MailStackConfig, issues: IssueLog) -> dict[str, str]:
        """Create (or reuse) the key pair for ``domain``; returns its public record."""
        selector = config.dkim.selector
        key_dir = self.ctx.path(f"{DKIM_KEYS_DIR}/{domain}")
        private_path = key_dir / f"{selector}.private"

        if private_path.is_file() and not config.dkim.force_rotate:
            self.say(f"Reusing DKIM key {selector} for {domain}")
            key = serialization.load_pem_private_key(private_path.read_bytes(), password=None)
        else:
            if private_path.is_file():
                self.say(f"Rotating DKIM key {selector} for {domain}")
            else:
                self.say(f"Generating {config.dkim.key_size}-bit DKIM key {selector} for {domain}")
            key = rsa.generate_private_key(public_exponent=65537, key_size=config.dkim.key_size)
            pem = key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.TraditionalOpenSSL,
                serialization.NoEncryption(),
            )
            key_dir.mkdir(parents=True, exist_ok=True)
            atomic_write_text(private_path, pem.decode("ascii"), mode=0o600)

        value = dkim_txt_value(key.public_key())
        atomic_write_text(key_dir / f"{selector}.txt", dkim_txt_record(selector, domain, value), mode=0o644)

        for path in (key_dir, private_path):
            try:
                shutil.chown(path, user="opendkim", group="opendkim")
            except (LookupError, OSError) as e:
                issues.add(f"chown {path}", f"could not set owner opendkim: {e}")

        return {"name": f"{selector}._domainkey.{domain}", "type": "TXT", "value": value}

    # ── TLS ─────────────────────────────────────────────────────

    def certificate_names(self, config: MailStackConfig) -> list[str]:
        names = [config.hostname]
        for domain in config.all_domains:
            name = f"mail.{domain}"
            if name not in names:
                names.append(name)
        return names

    def resolve_tls(self, config: MailStackConfig, issues: IssueLog) -> dict[str, Any]:
        """Certificate paths to configure; degrades to snakeoil on any failure."""
        if config.tls.provider == "letsencrypt":
            try:
                paths = self._letsencrypt(config, issues)
            except (CommandError, OSError) as e:
                issues.add("letsencrypt", f"certificate issuance failed ({e}); using self-signed certificate")
            else:
                return {"provider": "letsencrypt", **paths, "names": self.certificate_names(config)}
        self._ensure_snakeoil(issues)
        return {"provider": "self-signed", "cert": SNAKEOIL_CERT, "key": SNAKEOIL_KEY, "names": []}

    def _letsencrypt(self, config: MailStackConfig, issues: IssueLog) -> dict[str, str]:
        runner = self.ctx.runner
        if not runner.exists("certbot"):
            self.registry.resolve("certbot").install(issues)

        live = f"{LETSENCRYPT_LIVE}/{config.hostname}"
        cert, key = f"{live}/fullchain.pem", f"{live}/privkey.pem"

        if self.ctx.path(cert).is_file():
            self.say(f"Renewing certificate for {config.hostname}...")
            result = runner.run(
                "certbot", ["renew", "--cert-name", config.hostname, "--non-interactive"], check=False
            )
            if result.ok:
                return {"cert": cert, "key": key}
            self.say("Renewal failed, requesting a new certificate...")

        args = ["certonly", "--standalone", "--non-interactive", "--agree-tos",
                "--cert-name", config.hostname]
        if config.tls.email:
            args += ["-m", config.tls.email]
        else:
            args.append("--register-unsafely-without-email")
        for name in self.certificate_names(config):
            args += ["-d", name]

        stopped = [unit for unit in PORT_80_UNITS if runner.is_active(unit)]
        for unit in stopped:
            self.say(f"Stopping {unit} to free port 80...")
            runner.run("systemctl", ["stop", unit])
        try:
            runner.run("certbot", args)
        finally:
            for unit in stopped:
                issues.attempt(f"restart {unit}", runner.run, "systemctl", ["start", unit])
        return {"cert": cert, "key": key}

    def _ensure_snakeoil(self, issues: IssueLog) -> None:
        if self.ctx.path(SNAKEOIL_CERT).is_file():
            return
        issues.attempt(
            "snakeoil certificate",
            self.ctx.runner.run,
            "make-ssl-cert",
            ["generate-default-snakeoil", "--force-overwrite"],
        )

    # ── Configuration ───────────────────────────────────────────

    def build_context(
        self,
        config: MailStackConfig,
        selected: list[str],
        tls: dict[str, Any],
        dkim_active: bool,
    ) -> dict[str, Any]:
        domains = config.all_domains
        selector = config.dkim.selector
        milters = [MILTERS[cid] for cid in ("rspamd", "opendkim") if cid in selected]
        return {
            "domain": config.domain,
            "hostname": config.hostname,
            "domains": domains,
            "domain_list": ", ".join(domains),
            "tls_cert": tls["cert"],
            "tls_key": tls["key"],
            "require_tls": config.security.require_tls,
            "message_size_limit": config.security.message_size_limit_mb * 1024 * 1024,
            "spam_reject_score": config.security.spam_reject_score,
            "milters": ", ".join(milters),
            "spf_policyd": "spf-policyd" in selected,
            "dkim_enabled": dkim_active,
            "dkim_selector": selector,
            "dkim_entries": [
                {
                    "domain": d,
                    "selector": selector,
                    "key_path": f"{DKIM_KEYS_DIR}/{d}/{selector}.private",
                }
                for d in domains
            ],
            "trusted_hosts": ["127.0.0.1", "localhost", config.hostname, *[f"*.{d}" for d in domains]],
            "clamav": "clamav" in selected,
            "clamd_socket": "/var/run/clamav/clamd.ctl",
            "socket_path": "/var/run/clamav/clamd.ctl",
        }

    def write_configuration(
        self,
        context: dict[str, Any],
        selected: list[str],
        dkim_active: bool,
        issues: IssueLog,
    ) -> None:
        renderer = self.ctx.renderer
        path = self.ctx.path
        writes: list[tuple[str, Path, dict[str, Any]]] = []

        if "postfix" in selected:
            writes.append(("postfix/main.cf", path("/etc/postfix/main.cf"), {}))
        if "dovecot" in selected:
            writes.append(("dovecot/local.conf", path("/etc/dovecot/local.conf"), {}))
        if dkim_active:
            owned = {"owner": "opendkim:opendkim"}
            writes += [
                ("opendkim/opendkim.conf", path("/etc/opendkim.conf"), {}),
                ("opendkim/KeyTable", path("/etc/opendkim/KeyTable"), owned),
                ("opendkim/SigningTable", path("/etc/opendkim/SigningTable"), owned),
                ("opendkim/TrustedHosts", path("/etc/opendkim/TrustedHosts"), owned),
            ]
        if "clamav" in selected:
            writes.append(("clamav/clamd.conf", path("/etc/clamav/clamd.conf"), {}))
            if "rspamd" in selected:
                writes.append(("rspamd/antivirus.conf", path("/etc/rspamd/local.d/antivirus.conf"), {}))

        for name, target, options in writes:
            self.say(f"Writing {target}")
            issues.extend(renderer.write(name, target, context, **options))
