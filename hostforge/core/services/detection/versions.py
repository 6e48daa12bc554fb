"""
Version helpers — parse probe output and look up upstream versions.

``extract_version`` turns a probe line (``Python 3.11.2``,
``go version go1.22.0 linux/amd64``, ``v20.11.1``) into ``3.11.2``.
``latest_version`` asks apt (``apt-cache policy``) or the upstream
project for the newest release; any failure yields None.
"""

from __future__ import annotations

import json
import logging
import re

from hostforge.adapters.shell.command import CommandError, CommandRunner

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+\.\d+(?:\.\d+)?)")
_APT_CANDIDATE_RE = re.compile(r"Candidate:\s+(\d+\.\d+(\.\d+)?)")

# Runtime → where its newest release is published
LATEST_SOURCES: dict[str, tuple[str, str]] = {
    "nodejs": ("node-dist", "https://nodejs.org/dist/index.json"),
    "python": ("apt", "python3"),
    "php":    ("apt", "php"),
    "go":     ("url", "https://go.dev/VERSION?m=text"),
    "docker": ("apt", "docker.io"),
    "rust":   ("url", "https://static.rust-lang.org/dist/channel-rust-stable.toml"),
    "ruby":   ("apt", "ruby"),
}

_URL_PATTERNS: dict[str, re.Pattern] = {
    "go": re.compile(r"go(\d+\.\d+(?:\.\d+)?)"),
    "rust": re.compile(r'version\s*=\s*"(\d+\.\d+\.\d+)'),
}


def extract_version(text: str | None) -> str | None:
    """First dotted version number in ``text``."""
    if not text:
        return None
    m = _VERSION_RE.search(text)
    return m.group(1) if m else None


def compare_versions(a: str, b: str) -> int:
    """-1, 0 or 1 comparing dotted numeric versions (missing parts are 0)."""
    pa = [int(p) for p in a.split(".") if p.isdigit()]
    pb = [int(p) for p in b.split(".") if p.isdigit()]
    width = max(len(pa), len(pb))
    pa += [0] * (width - len(pa))
    pb += [0] * (width - len(pb))
    return (pa > pb) - (pa < pb)


def apt_candidate(runner: CommandRunner, package: str) -> str | None:
    """Candidate version apt would install for ``package``."""
    try:
        result = runner.run_silent("apt-cache", ["policy", package], privileged=False)
    except CommandError:
        return None
    m = _APT_CANDIDATE_RE.search(result.stdout)
    return m.group(1) if m else None


def _fetch(runner: CommandRunner, url: str) -> str:
    result = runner.run_silent("curl", ["-fsSL", url], privileged=False)
    return result.stdout if result.ok else ""


def latest_version(runner: CommandRunner, runtime: str) -> str | None:
    """Newest available release of ``runtime``, or None when unknown."""
    source = LATEST_SOURCES.get(runtime)
    if source is None:
        return None
    kind, target = source
    try:
        if kind == "apt":
            return apt_candidate(runner, target)
        body = _fetch(runner, target)
        if not body:
            return None
        if kind == "node-dist":
            releases = json.loads(body)
            lts = next((r for r in releases if r.get("lts")), None)
            return lts["version"].lstrip("v") if lts else None
        m = _URL_PATTERNS[runtime].search(body)
        return m.group(1) if m else None
    except (CommandError, ValueError, KeyError, TypeError) as e:
        logger.debug("Latest version lookup failed for %s: %s", runtime, e)
        return None
