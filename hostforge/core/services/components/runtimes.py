"""
Runtime components — language toolchains and the container engine.

apt covers php, ruby, docker and python; nodejs comes from the NodeSource
repository, go from the upstream tarball and rust from rustup.
"""

from __future__ import annotations

import os
import platform
import shutil
from typing import Any

from hostforge.core.errors import SelfHostedRuntime
from hostforge.core.models.component import ComponentCategory
from hostforge.core.models.result import IssueLog
from hostforge.core.persistence.state_file import atomic_write_text
from hostforge.core.services.components.base import Component
from hostforge.core.services.detection.versions import extract_version, latest_version


class RuntimeComponent(Component):
    category = ComponentCategory.RUNTIME

    def installed_version(self) -> str | None:
        return extract_version(super().installed_version())


class PythonRuntime(RuntimeComponent):
    """The interpreter hostforge itself runs on."""

    def install(self, issues: IssueLog, **options: Any) -> str:
        raise SelfHostedRuntime(self.id)

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        old = self.installed_version()
        self.apt_update()
        self.runner.run("apt-get", ["install", "--only-upgrade", "-y", "python3", "python3-pip"])
        return {"old_version": old, "new_version": self.installed_version()}


class NodeRuntime(RuntimeComponent):
    SETUP_URL = "https://deb.nodesource.com/setup_lts.x"
    SETUP_SCRIPT = "/tmp/nodesource_setup.sh"

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing Node.js LTS from NodeSource...")
        self.runner.run("curl", ["-fsSL", self.SETUP_URL, "-o", self.SETUP_SCRIPT])
        self.runner.run("bash", [self.SETUP_SCRIPT])
        self.apt_install(self.descriptor.packages)
        issues.attempt("cleanup setup script", self.runner.run, "rm", ["-f", self.SETUP_SCRIPT])
        return self.installed_version() or "installed"

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        old = self.installed_version()
        self.install(issues)
        return {"old_version": old, "new_version": self.installed_version()}


class PhpRuntime(RuntimeComponent):
    def install(self, issues: IssueLog, **options: Any) -> str:
        version = super().install(issues, **options)
        self.say("Installing Composer...")
        issues.attempt("composer", self._install_composer)
        return version

    def _install_composer(self) -> None:
        self.runner.run("curl", ["-sS", "https://getcomposer.org/installer", "-o", "/tmp/composer-setup.php"])
        self.runner.run("php", ["/tmp/composer-setup.php", "--install-dir=/usr/local/bin", "--filename=composer"])
        self.runner.run("rm", ["-f", "/tmp/composer-setup.php"])

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        versions = super().update(issues)
        if self.runner.exists("composer"):
            issues.attempt("composer self-update", self.runner.run, "composer", ["self-update"])
        return versions


class GoRuntime(RuntimeComponent):
    """Go from the upstream tarball, unpacked into ``/usr/local/go``."""

    FALLBACK_VERSION = "1.22.0"
    INSTALL_DIR = "/usr/local/go"
    PROFILE_SCRIPT = "/etc/profile.d/go.sh"

    @staticmethod
    def _arch() -> str:
        return "arm64" if platform.machine() in ("aarch64", "arm64") else "amd64"

    def install(self, issues: IssueLog, **options: Any) -> str:
        version = latest_version(self.runner, "go") or self.FALLBACK_VERSION
        url = f"https://go.dev/dl/go{version}.linux-{self._arch()}.tar.gz"
        self.say(f"Downloading Go {version}...")
        self.runner.run("wget", ["-q", url, "-O", "/tmp/go.tar.gz"])
        self.runner.run("rm", ["-rf", self.INSTALL_DIR])
        self.runner.run("tar", ["-C", "/usr/local", "-xzf", "/tmp/go.tar.gz"])
        issues.attempt("cleanup tarball", self.runner.run, "rm", ["-f", "/tmp/go.tar.gz"])
        atomic_write_text(
            self.ctx.path(self.PROFILE_SCRIPT),
            "export PATH=$PATH:/usr/local/go/bin\n",
            mode=0o644,
        )
        return version

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        old = self.installed_version()
        new = self.install(issues)
        return {"old_version": old, "new_version": new}

    def remove(self, issues: IssueLog, purge: bool = False, remove_data: bool = False) -> None:
        self.say("Removing Go from /usr/local/go...")
        for raw in (self.INSTALL_DIR, self.PROFILE_SCRIPT):
            path = self.ctx.path(raw)
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()


class DockerRuntime(RuntimeComponent):
    def install(self, issues: IssueLog, **options: Any) -> str:
        version = super().install(issues, **options)
        operator = os.environ.get("SUDO_USER")
        if operator and operator != "root":
            issues.attempt("docker group", self.runner.run, "usermod", ["-aG", "docker", operator])
        return version

    def remove(self, issues: IssueLog, purge: bool = False, remove_data: bool = False) -> None:
        if self.runner.exists("docker"):
            containers = self.runner.run_silent("docker", ["ps", "-aq"]).stdout.split()
            if containers:
                self.say(f"Stopping {len(containers)} container(s)...")
                issues.attempt("stop containers", self.runner.run, "docker", ["stop", *containers])
        super().remove(issues, purge=purge, remove_data=remove_data)


class RustRuntime(RuntimeComponent):
    RUSTUP_URL = "https://sh.rustup.rs"

    def install(self, issues: IssueLog, **options: Any) -> str:
        self.say("Installing Rust via rustup...")
        self.runner.run("curl", ["--proto", "=https", "--tlsv1.2", "-sSf", self.RUSTUP_URL, "-o", "/tmp/rustup.sh"])
        self.runner.run("sh", ["/tmp/rustup.sh", "-y", "--default-toolchain", "stable"])
        issues.attempt("cleanup rustup script", self.runner.run, "rm", ["-f", "/tmp/rustup.sh"])
        return self.installed_version() or "installed"

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        old = self.installed_version()
        if self.runner.exists("rustup"):
            self.runner.run("rustup", ["update", "stable"])
        else:
            self.say("rustup not found, reinstalling...")
            self.install(issues)
        return {"old_version": old, "new_version": self.installed_version()}

    def remove(self, issues: IssueLog, purge: bool = False, remove_data: bool = False) -> None:
        if self.runner.exists("rustup"):
            self.runner.run("rustup", ["self", "uninstall", "-y"])
        else:
            self.runner.run("rm", ["-rf", os.path.expanduser("~/.cargo"), os.path.expanduser("~/.rustup")])


class RubyRuntime(RuntimeComponent):
    def install(self, issues: IssueLog, **options: Any) -> str:
        version = super().install(issues, **options)
        issues.attempt("gem install", self.runner.run, "gem", ["install", "bundler", "puma"])
        return version

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        versions = super().update(issues)
        issues.attempt("gem update", self.runner.run, "gem", ["update", "--system"])
        return versions


RUNTIME_CLASSES: dict[str, type[RuntimeComponent]] = {
    "python": PythonRuntime,
    "nodejs": NodeRuntime,
    "php": PhpRuntime,
    "go": GoRuntime,
    "docker": DockerRuntime,
    "rust": RustRuntime,
    "ruby": RubyRuntime,
}
