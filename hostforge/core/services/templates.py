"""
Template renderer — named config templates with a small handlebars syntax.

Templates ship inside the package under ``hostforge/templates/<domain>/``
and can be overridden by a ``templates_dir`` from configuration (searched
first). Supported constructs, processed in this order:

    {{#if X}}...{{else}}...{{/if}}          first branch when X is truthy
    {{#unless X}}...{{else}}...{{/unless}}  first branch when X is falsy
    {{#each X}}...{{/each}}                 body per element; {{prop}}, {{item}}, {{@index}}
    {{X}}  /  {{X | default:V}}             dotted-path lookup with optional default

Conditionals nest and are resolved innermost first; ``{{else}}`` is
optional. Falsy means absent, None, False, 0, "", "0", "false" or an
empty sequence.
``if``/``unless`` blocks inside an ``each`` body are resolved against the
iteration's own context.

A block tag that is alone on its line consumes that line break, so
blocks do not leave blank lines behind.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Any, Mapping

from hostforge.core.errors import TemplateNotFound
from hostforge.core.models.result import Issue
from hostforge.core.persistence.state_file import atomic_write_text

logger = logging.getLogger(__name__)

PACKAGE_TEMPLATES_DIR = Path(__file__).resolve().parent.parent.parent / "templates"

# Logical name → file under the templates directory
TEMPLATE_FILE_MAP: dict[str, str] = {
    # Mail
    "postfix/main.cf": "mail/postfix/main.cf.conf",
    "postfix/master.cf.spf": "mail/postfix/master.cf.spf.conf",
    "dovecot/local.conf": "mail/dovecot/local.conf",
    "opendkim/opendkim.conf": "mail/opendkim/opendkim.conf",
    "opendkim/KeyTable": "mail/opendkim/KeyTable.conf",
    "opendkim/SigningTable": "mail/opendkim/SigningTable.conf",
    "opendkim/TrustedHosts": "mail/opendkim/TrustedHosts.conf",
    "clamav/clamd.conf": "mail/clamav/clamd.conf",
    "rspamd/antivirus.conf": "mail/rspamd/antivirus.conf",
    "rspamd/worker-proxy.inc": "mail/rspamd/worker-proxy.inc.conf",
    # DNS
    "bind9/named.conf.options": "dns/bind9/named.conf.options.conf",
    "bind9/named.conf.local": "dns/bind9/named.conf.local.conf",
    "bind9/zone": "dns/bind9/zone.conf",
    "bind9/reverse-zone": "dns/bind9/reverse-zone.conf",
    # Database
    "backup/postgresql": "database/backup/postgresql.sh",
    "backup/mysql": "database/backup/mysql.sh",
    "backup/redis": "database/backup/redis.sh",
    "backup/cron": "database/backup/cron.conf",
    # System
    "fail2ban/jail.local": "system/fail2ban/jail.local.conf",
}

# Innermost if/unless block: the body holds no further opening tag
_BLOCK_RE = re.compile(
    r"\{\{#(if|unless)\s+([\w.@-]+)\s*\}\}((?:(?!\{\{#(?:if|unless)\b).)*?)\{\{/\1\}\}", re.DOTALL
)
_ELSE_TAG = "{{else}}"
_EACH_RE = re.compile(r"\{\{#each\s+([\w.-]+)\s*\}\}(.*?)\{\{/each\}\}", re.DOTALL)
_VAR_RE = re.compile(r"\{\{\s*(@?[\w-]+(?:\.[\w-]+)*)\s*(?:\|\s*default:([^}]*))?\}\}")

# A block tag alone on its line takes the line break with it
_STANDALONE_RE = re.compile(
    r"^[ \t]*(\{\{(?:[#/](?:if|unless|each)\b[^}]*|else)\}\})[ \t]*(?:\r?\n|\Z)", re.MULTILINE
)

_EACH_PLACEHOLDER = "\x00each{}\x00"
_EACH_PLACEHOLDER_RE = re.compile(r"\x00each(\d+)\x00")

_MISSING = object()


def lookup(context: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path; returns None when any segment is missing."""
    current: Any = context
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        else:
            current = getattr(current, part, _MISSING)
        if current is _MISSING or current is None:
            return None
    return current


def is_truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value not in ("", "0", "false")
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class TemplateRenderer:
    """Load, render and write named configuration templates."""

    def __init__(self, templates_dir: Path | str | None = None):
        self.search_path: list[Path] = []
        if templates_dir is not None:
            self.search_path.append(Path(templates_dir))
        self.search_path.append(PACKAGE_TEMPLATES_DIR)

    # ── Resolution ──────────────────────────────────────────────

    def resolve(self, name: str) -> Path:
        """Find the file for a logical or literal template name.

        Raises:
            TemplateNotFound: when no candidate exists on the search path.
        """
        mapped = TEMPLATE_FILE_MAP.get(name, name)
        candidates = [mapped]
        if not mapped.endswith(".conf"):
            candidates.append(mapped + ".conf")

        for base in self.search_path:
            for candidate in candidates:
                path = base / candidate
                if path.is_file():
                    return path
        searched = ", ".join(str(base / mapped) for base in self.search_path)
        raise TemplateNotFound(name, searched)

    def has_template(self, name: str) -> bool:
        try:
            self.resolve(name)
        except TemplateNotFound:
            return False
        return True

    def list_templates(self) -> list[str]:
        """Relative paths of every template file on the search path."""
        found: set[str] = set()
        for base in self.search_path:
            if base.is_dir():
                found.update(
                    p.relative_to(base).as_posix() for p in base.rglob("*") if p.is_file()
                )
        return sorted(found)

    def load(self, name: str) -> str:
        return self.resolve(name).read_text(encoding="utf-8")

    # ── Rendering ───────────────────────────────────────────────

    def render(self, name: str, context: Mapping[str, Any]) -> str:
        """Load the named template and render it with ``context``."""
        return self.render_string(self.load(name), context)

    def render_string(self, template: str, context: Mapping[str, Any]) -> str:
        """Render a template string with ``context``."""
        # Set each-blocks aside so their inner conditionals see iteration context
        blocks: list[tuple[str, str]] = []

        def _stash(match: re.Match) -> str:
            blocks.append((match.group(1), match.group(2)))
            return _EACH_PLACEHOLDER.format(len(blocks) - 1)

        template = _STANDALONE_RE.sub(r"\1", template)
        result = _EACH_RE.sub(_stash, template)
        result = self._conditionals(result, context)

        def _expand(match: re.Match) -> str:
            path, body = blocks[int(match.group(1))]
            return self._each(path, body, context)

        result = _EACH_PLACEHOLDER_RE.sub(_expand, result)
        return self._variables(result, context)

    @staticmethod
    def _conditionals(template: str, context: Mapping[str, Any]) -> str:
        """Resolve if/unless blocks from the innermost outwards."""

        def _resolve(match: re.Match) -> str:
            kind, path, body = match.groups()
            kept, _, otherwise = body.partition(_ELSE_TAG)
            truthy = is_truthy(lookup(context, path))
            return kept if truthy == (kind == "if") else otherwise

        previous = None
        while previous != template:
            previous = template
            template = _BLOCK_RE.sub(_resolve, template)
        return template

    def _each(self, path: str, body: str, context: Mapping[str, Any]) -> str:
        items = lookup(context, path)
        if not isinstance(items, (list, tuple)):
            return ""
        parts: list[str] = []
        for index, item in enumerate(items):
            scope: dict[str, Any] = dict(context)
            if isinstance(item, Mapping):
                scope.update(item)
            scope["item"] = item
            scope["@index"] = index
            rendered = self._conditionals(body, scope)
            parts.append(self._variables(rendered, scope))
        return "".join(parts)

    @staticmethod
    def _variables(template: str, context: Mapping[str, Any]) -> str:
        def _sub(match: re.Match) -> str:
            path, default = match.group(1), match.group(2)
            value = context.get(path) if path.startswith("@") else lookup(context, path)
            if value is not None and value != "":
                return _stringify(value)
            if default is not None:
                return default.strip()
            return ""

        return _VAR_RE.sub(_sub, template)

    # ── Writing ─────────────────────────────────────────────────

    def write(
        self,
        name: str,
        target: Path | str,
        context: Mapping[str, Any],
        *,
        mode: int | None = None,
        append: bool = False,
        create_dirs: bool = True,
        owner: str | None = None,
    ) -> list[Issue]:
        """Render ``name`` into ``target``.

        Line endings are normalized to ``\\n``. Ownership changes are
        best-effort and reported as advisory issues.

        Returns:
            Advisory issues (empty when everything applied).
        """
        content = self.render(name, context)
        content = content.replace("\r\n", "\n").replace("\r", "")
        target = Path(target)

        if append and target.is_file():
            content = target.read_text(encoding="utf-8") + content
        atomic_write_text(target, content, mode=mode, create_dirs=create_dirs)
        logger.debug("Rendered %s -> %s", name, target)

        issues: list[Issue] = []
        if owner:
            user, _, group = owner.partition(":")
            try:
                shutil.chown(target, user=user, group=group or user)
            except (LookupError, PermissionError, OSError) as e:
                issues.append(Issue(step=f"chown {target}", message=f"could not set owner {owner}: {e}"))
        return issues
