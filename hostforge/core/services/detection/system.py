"""
System facts — OS, CPU count, memory, root disk usage, uptime.

``/etc/os-release``, ``/proc/meminfo`` and ``/proc/uptime`` are read
under ``host_root``; disk usage comes from ``df -h /``.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from hostforge.adapters.shell.command import CommandError, CommandRunner
from hostforge.core.config.loader import host_path
from hostforge.core.models.status import SystemInfo

logger = logging.getLogger(__name__)


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def parse_os_release(text: str) -> tuple[str, str]:
    """(PRETTY_NAME, VERSION_ID) with Linux / "" fallbacks."""
    name = re.search(r'^PRETTY_NAME="?([^"\n]+)"?', text, re.MULTILINE)
    version = re.search(r'^VERSION_ID="?([^"\n]+)"?', text, re.MULTILINE)
    return (name.group(1) if name else "Linux", version.group(1) if version else "")


def parse_meminfo(text: str) -> str:
    m = re.search(r"^MemTotal:\s+(\d+)\s+kB", text, re.MULTILINE)
    if not m:
        return ""
    return f"{round(int(m.group(1)) / (1024 * 1024))}GB"


def parse_df(output: str) -> str:
    """``used / size (use%)`` from ``df -h /`` output."""
    lines = output.strip().splitlines()
    if len(lines) < 2:
        return "Unknown"
    parts = lines[1].split()
    if len(parts) < 5:
        return "Unknown"
    return f"{parts[2]} / {parts[1]} ({parts[4]})"


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    return f"{days}d {hours}h {rest // 60}m"


def detect_system(runner: CommandRunner, host_root: Path | str = "/") -> SystemInfo:
    os_name, os_version = parse_os_release(_read(host_path(host_root, "/etc/os-release")))

    try:
        disk = parse_df(runner.run_silent("df", ["-h", "/"], privileged=False).stdout)
    except CommandError as e:
        logger.debug("df failed: %s", e)
        disk = "Unknown"

    uptime_raw = _read(host_path(host_root, "/proc/uptime")).split()
    uptime = format_uptime(float(uptime_raw[0])) if uptime_raw else ""

    return SystemInfo(
        os=os_name,
        os_version=os_version,
        cpu=os.cpu_count() or 0,
        ram=parse_meminfo(_read(host_path(host_root, "/proc/meminfo"))),
        disk=disk,
        uptime=uptime,
    )
