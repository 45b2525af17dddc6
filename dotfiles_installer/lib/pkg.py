from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from ..errors import InstallerError
from .command import run_cmd, run_shell_script
from .env import HostEnvironment
from .hostdetect import Arch, Platform

logger = logging.getLogger(__name__)

PRIMARY = "primary"
SECONDARY = "secondary"
ROLES = (PRIMARY, SECONDARY)

BREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
# Not piped into bash: the installer needs stdin on the terminal to prompt for sudo.
BREW_INSTALL_SCRIPT = f'/bin/bash -c "$(curl -fsSL {BREW_INSTALL_URL})"'


class Installer(Protocol):
    """A package manager driven through its CLI."""

    name: str
    role: str

    def is_available(self, env: HostEnvironment) -> bool:
        ...

    def bootstrap(self, env: HostEnvironment, *, dry_run: bool = False) -> HostEnvironment:
        ...

    def is_installed(self, package: str, env: HostEnvironment) -> bool:
        ...

    def install(self, package: str, env: HostEnvironment, *, dry_run: bool = False) -> None:
        ...


def _sudo() -> List[str]:
    return [] if os.geteuid() == 0 else ["sudo"]


def brew_prefix(platform: Platform) -> str:
    if platform.is_macos:
        return "/opt/homebrew" if platform.arch is Arch.ARM64 else "/usr/local"
    return "/home/linuxbrew/.linuxbrew"


class AptInstaller:
    """Debian/Ubuntu primary manager.

    apt ships with the OS, so bootstrapping only refreshes the package index,
    and that happens at most once per run, right before the first install.
    """

    name = "apt"

    def __init__(self, role: str = PRIMARY) -> None:
        self.role = role
        self._index_refreshed = False

    def is_available(self, env: HostEnvironment) -> bool:
        return shutil.which("apt-get", path=env.path) is not None

    def bootstrap(self, env: HostEnvironment, *, dry_run: bool = False) -> HostEnvironment:
        if not self.is_available(env):
            raise InstallerError("apt-get not found; only Debian-based Linux distributions are supported")
        self._refresh_index(env, dry_run=dry_run)
        return env

    def _refresh_index(self, env: HostEnvironment, *, dry_run: bool) -> None:
        if self._index_refreshed:
            return
        run_cmd([*_sudo(), "apt-get", "update"], env=env.subprocess_env(), capture=False, dry_run=dry_run)
        self._index_refreshed = True

    def is_installed(self, package: str, env: HostEnvironment) -> bool:
        if shutil.which("dpkg-query", path=env.path) is None:
            return False
        r = run_cmd(
            ["dpkg-query", "-W", "-f=${Status}", package],
            check=False,
            env=env.subprocess_env(),
        )
        return r.returncode == 0 and "install ok installed" in r.stdout

    def install(self, package: str, env: HostEnvironment, *, dry_run: bool = False) -> None:
        self._refresh_index(env, dry_run=dry_run)
        run_cmd(
            [*_sudo(), "apt-get", "install", "-y", package],
            env=dict(env.subprocess_env(), DEBIAN_FRONTEND="noninteractive"),
            capture=False,
            dry_run=dry_run,
        )


class HomebrewInstaller:
    """Homebrew: the primary manager on macOS, the secondary one on Linux."""

    name = "brew"

    def __init__(self, platform: Platform, role: str = PRIMARY) -> None:
        self.platform = platform
        self.role = role

    @property
    def prefix(self) -> str:
        return brew_prefix(self.platform)

    def _brew(self, env: HostEnvironment) -> Optional[str]:
        found = shutil.which("brew", path=env.path)
        if found:
            return found
        # Installed by an earlier run but the login shell has not sourced shellenv yet.
        candidate = Path(self.prefix) / "bin" / "brew"
        if candidate.exists() and os.access(candidate, os.X_OK):
            return str(candidate)
        return None

    def is_available(self, env: HostEnvironment) -> bool:
        return self._brew(env) is not None

    def bootstrap(self, env: HostEnvironment, *, dry_run: bool = False) -> HostEnvironment:
        run_shell_script(BREW_INSTALL_SCRIPT, env=env.subprocess_env(), dry_run=dry_run)
        if self.platform.is_macos:
            self._persist_shellenv(env, dry_run=dry_run)
        logger.info("Homebrew installed at %s", self.prefix)
        return env.with_path_prefix(f"{self.prefix}/bin", f"{self.prefix}/sbin")

    def _persist_shellenv(self, env: HostEnvironment, *, dry_run: bool) -> None:
        line = f'eval "$({self.prefix}/bin/brew shellenv)"'
        zprofile = env.home / ".zprofile"
        existing = zprofile.read_text(encoding="utf-8") if zprofile.exists() else ""
        if line in existing:
            return
        if dry_run:
            logger.info("Would append brew shellenv to %s", zprofile)
            return
        with zprofile.open("a", encoding="utf-8") as f:
            if existing and not existing.endswith("\n"):
                f.write("\n")
            f.write(line + "\n")
        logger.info("Appended brew shellenv to %s", zprofile)

    def is_installed(self, package: str, env: HostEnvironment) -> bool:
        brew = self._brew(env)
        if brew is None:
            return False
        r = run_cmd([brew, "list", "--versions", package], check=False, env=env.subprocess_env())
        return r.returncode == 0 and bool(r.stdout.strip())

    def install(self, package: str, env: HostEnvironment, *, dry_run: bool = False) -> None:
        brew = self._brew(env) or f"{self.prefix}/bin/brew"
        run_cmd([brew, "install", package], env=env.subprocess_env(), dry_run=dry_run)


def installers_for(platform: Platform) -> Dict[str, Installer]:
    """Pick concrete installers per role.

    macOS has no separate OS manager, so Homebrew serves both roles.
    """

    if platform.is_macos:
        brew = HomebrewInstaller(platform, role=PRIMARY)
        return {PRIMARY: brew, SECONDARY: brew}
    if platform.is_linux:
        return {
            PRIMARY: AptInstaller(role=PRIMARY),
            SECONDARY: HomebrewInstaller(platform, role=SECONDARY),
        }
    raise InstallerError(f"No installers for platform {platform.os_family.value}")
