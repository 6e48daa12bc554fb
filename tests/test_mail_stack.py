"""
Tests for the mail stack — DKIM keys, OpenDKIM tables, TLS fallback,
generated configuration and the persisted stack document.
"""

import json
import stat
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization

from hostforge.adapters.mock import MockRunner
from hostforge.core.models.stacks import MailStackConfig
from hostforge.core.services.stacks.mail import SNAKEOIL_CERT, dkim_txt_record, dkim_txt_value

DOMAINS = ["example.com", "example.org", "example.net"]


@pytest.fixture
def runner() -> MockRunner:
    return MockRunner(available={"postconf"})


def _config(**overrides) -> MailStackConfig:
    data = {
        "domain": "example.com",
        "hostname": "mail.example.com",
        "additional_domains": ["example.org", "example.net"],
        "dkim": {"key_size": 1024},
    }
    data.update(overrides)
    return MailStackConfig.model_validate(data)


def _lines(path: Path) -> list[str]:
    return [line for line in path.read_text().splitlines() if line and not line.startswith("#")]


# ── Config model ────────────────────────────────────────────────


class TestMailStackConfig:
    def test_all_domains_deduplicated(self):
        cfg = _config(additional_domains=["example.org", "EXAMPLE.com", "example.org"])
        assert cfg.all_domains == ["example.com", "example.org"]

    def test_invalid_domain(self):
        with pytest.raises(ValueError):
            _config(domain="not a domain")

    def test_key_size_bounds(self):
        with pytest.raises(ValueError):
            _config(dkim={"key_size": 512})

    def test_component_order(self):
        cfg = _config(components={"clamav": True})
        assert cfg.components.selected() == [
            "postfix", "dovecot", "rspamd", "opendkim", "clamav", "spf-policyd",
        ]


class TestDkimRecord:
    def test_chunked(self):
        record = dkim_txt_record("mail", "example.com", "x" * 600)
        assert record.count('"') == 6
        assert record.startswith("mail._domainkey\tIN\tTXT\t(")
        assert "example.com" in record


# ── End to end ──────────────────────────────────────────────────


class TestMailStack:
    def test_full_run(self, orchestrator, runner: MockRunner, host_root: Path, config):
        report = orchestrator.configure_mail_stack(_config())

        assert report.success, report.error
        assert report.stack == "mail"
        assert report.completed[:5] == [
            "install postfix", "install dovecot", "install rspamd", "install opendkim", "install spf-policyd",
        ]
        for step in ("dkim example.com", "dkim example.org", "dkim example.net", "tls",
                     "write configuration", "restart postfix", "restart opendkim", "persist"):
            assert step in report.completed

    def test_dkim_key_pairs(self, orchestrator, host_root: Path):
        report = orchestrator.configure_mail_stack(_config())
        records = report.data["dkim"]
        assert sorted(records) == sorted(DOMAINS)

        for domain in DOMAINS:
            key_dir = host_root / "etc/opendkim/keys" / domain
            private = key_dir / "mail.private"
            assert stat.S_IMODE(private.stat().st_mode) == 0o600
            assert (key_dir / "mail.txt").is_file()

            key = serialization.load_pem_private_key(private.read_bytes(), password=None)
            assert key.key_size == 1024
            record = records[domain]
            assert record["name"] == f"mail._domainkey.{domain}"
            assert record["type"] == "TXT"
            assert record["value"] == dkim_txt_value(key.public_key())
            assert record["value"].startswith("v=DKIM1; h=sha256; k=rsa; p=")

    def test_opendkim_tables(self, orchestrator, host_root: Path):
        orchestrator.configure_mail_stack(_config())
        etc = host_root / "etc/opendkim"

        assert _lines(etc / "SigningTable") == [f"*@{d} mail._domainkey.{d}" for d in DOMAINS]
        assert _lines(etc / "KeyTable") == [
            f"mail._domainkey.{d} {d}:mail:/etc/opendkim/keys/{d}/mail.private" for d in DOMAINS
        ]
        assert _lines(etc / "TrustedHosts") == [
            "127.0.0.1", "localhost", "mail.example.com",
            "*.example.com", "*.example.org", "*.example.net",
        ]
        assert "Socket                  inet:12301@localhost" in (host_root / "etc/opendkim.conf").read_text()

    def test_postfix_main_cf(self, orchestrator, host_root: Path):
        orchestrator.configure_mail_stack(_config())
        main_cf = (host_root / "etc/postfix/main.cf").read_text()

        assert "myhostname = mail.example.com" in main_cf
        assert "virtual_mailbox_domains = example.com, example.org, example.net" in main_cf
        assert "message_size_limit = 26214400" in main_cf
        assert f"smtpd_tls_cert_file = {SNAKEOIL_CERT}" in main_cf
        assert "smtpd_tls_auth_only = yes" in main_cf
        assert "smtpd_milters = unix:/rspamd/rspamd.sock, inet:localhost:12301" in main_cf
        assert "check_policy_service unix:private/policyd-spf" in main_cf

    def test_tls_optional(self, orchestrator, host_root: Path):
        orchestrator.configure_mail_stack(_config(security={"require_tls": False}))
        assert "smtpd_tls_auth_only" not in (host_root / "etc/postfix/main.cf").read_text()

    def test_document_has_no_private_key(self, orchestrator, config):
        orchestrator.configure_mail_stack(_config())
        path = config.stacks_dir / "mail.json"
        text = path.read_text()
        assert "PRIVATE KEY" not in text
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

        doc = json.loads(text)
        assert doc["domains"] == DOMAINS
        assert doc["dkim"]["selector"] == "mail"
        assert doc["dkim"]["key_size"] == 1024
        assert sorted(doc["dkim"]["records"]) == sorted(DOMAINS)
        assert doc["tls"]["provider"] == "self-signed"
        assert doc["updated_at"] == "2026-03-14T12:00:00+00:00"

    def test_keys_reused_on_rerun(self, orchestrator, host_root: Path):
        orchestrator.configure_mail_stack(_config())
        private = host_root / "etc/opendkim/keys/example.com/mail.private"
        before = private.read_bytes()

        report = orchestrator.configure_mail_stack(_config())
        assert report.success
        assert private.read_bytes() == before

    def test_force_rotate(self, orchestrator, host_root: Path):
        first = orchestrator.configure_mail_stack(_config())
        second = orchestrator.configure_mail_stack(_config(dkim={"key_size": 1024, "force_rotate": True}))
        assert second.success
        assert second.data["dkim"]["example.com"]["value"] != first.data["dkim"]["example.com"]["value"]

    def test_without_opendkim(self, orchestrator, host_root: Path):
        report = orchestrator.configure_mail_stack(_config(components={"opendkim": False}))
        assert report.success
        assert report.data["dkim"] == {}
        assert not (host_root / "etc/opendkim/keys/example.com").exists()
        assert not (host_root / "etc/opendkim.conf").exists()
        assert "smtpd_milters = unix:/rspamd/rspamd.sock\n" in (host_root / "etc/postfix/main.cf").read_text()

    def test_clamav_bridged_to_rspamd(self, orchestrator, host_root: Path, runner: MockRunner):
        report = orchestrator.configure_mail_stack(_config(components={"clamav": True}))
        assert report.success
        assert (host_root / "etc/clamav/clamd.conf").is_file()
        assert (host_root / "etc/rspamd/local.d/antivirus.conf").is_file()


class TestMailTls:
    def test_letsencrypt_issue(self, orchestrator, runner: MockRunner, host_root: Path):
        runner.available.add("certbot")
        runner.active.add("nginx")
        report = orchestrator.configure_mail_stack(
            _config(tls={"provider": "letsencrypt", "email": "admin@example.com"})
        )
        assert report.success
        tls = report.data["tls"]
        assert tls["provider"] == "letsencrypt"
        assert tls["cert"] == "/etc/letsencrypt/live/mail.example.com/fullchain.pem"
        assert tls["names"] == ["mail.example.com", "mail.example.org", "mail.example.net"]

        [issue] = runner.matching("certbot certonly")
        assert "-m admin@example.com" in issue
        assert "-d mail.example.com -d mail.example.org -d mail.example.net" in issue
        # Port 80 freed for the standalone challenge, then given back
        lines = runner.command_lines
        assert lines.index("systemctl stop nginx") < lines.index(issue) < lines.index("systemctl start nginx")
        assert f"smtpd_tls_cert_file = {tls['cert']}" in (host_root / "etc/postfix/main.cf").read_text()

    def test_letsencrypt_renew(self, orchestrator, runner: MockRunner, host_file):
        runner.available.add("certbot")
        host_file("/etc/letsencrypt/live/mail.example.com/fullchain.pem", "cert")
        report = orchestrator.configure_mail_stack(_config(tls={"provider": "letsencrypt"}))
        assert report.data["tls"]["provider"] == "letsencrypt"
        assert runner.called("certbot renew --cert-name mail.example.com")
        assert not runner.called("certbot certonly")

    def test_letsencrypt_failure_falls_back(self, orchestrator, runner: MockRunner, host_root: Path):
        runner.set_failure("certbot certonly", stderr="Challenge failed")
        report = orchestrator.configure_mail_stack(_config(tls={"provider": "letsencrypt"}))

        assert report.success
        assert report.data["tls"]["provider"] == "self-signed"
        assert "letsencrypt" in [w.step for w in report.warnings]
        # certbot was missing, so it was installed first
        assert runner.called("apt-get install -y certbot")
        assert runner.called("make-ssl-cert generate-default-snakeoil")
        assert "--register-unsafely-without-email" in runner.matching("certbot certonly")[0]
        assert f"smtpd_tls_cert_file = {SNAKEOIL_CERT}" in (host_root / "etc/postfix/main.cf").read_text()


class TestMailStackFailure:
    def test_partial_failure_keeps_completed_steps(self, orchestrator, runner: MockRunner, config):
        runner.set_failure("systemctl restart dovecot", stderr="Job for dovecot.service failed")
        report = orchestrator.configure_mail_stack(_config())

        assert not report.success
        assert report.error_code == "partial_failure"
        assert "restart dovecot" in report.error
        assert "write configuration" in report.completed
        assert "restart postfix" in report.completed
        assert "persist" not in report.completed
        assert not (config.stacks_dir / "mail.json").exists()

    def test_install_failure_stops_early(self, orchestrator, runner: MockRunner, host_root: Path):
        runner.set_failure("apt-get install -y dovecot-core")
        report = orchestrator.configure_mail_stack(_config())

        assert report.error_code == "partial_failure"
        assert report.completed == ["install postfix"]
        assert not (host_root / "etc/opendkim/keys").exists()

    def test_stack_log(self, orchestrator):
        orchestrator.configure_mail_stack(_config())
        assert "Phase 2" in orchestrator.logs("mail-stack")
