"""
Shared test fixtures: a throwaway home directory, a fake PATH, and in-memory
stand-ins for the package managers and the symlink farm.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from dotfiles_installer.lib.env import HostEnvironment
from dotfiles_installer.lib.hostdetect import Arch, OsFamily, Platform
from dotfiles_installer.lib.pkg import PRIMARY, SECONDARY
from dotfiles_installer.target_config import RepositorySpec, TargetDeclaration

LINUX = Platform(OsFamily.LINUX, Arch.X86_64, "Linux", "x86_64")
MACOS = Platform(OsFamily.MACOS, Arch.ARM64, "Darwin", "arm64")


def make_tool(bin_dir: Path, name: str) -> Path:
    """Write an executable stub so ``shutil.which`` finds ``name``."""
    bin_dir.mkdir(parents=True, exist_ok=True)
    tool = bin_dir / name
    tool.write_text("#!/bin/sh\nexit 0\n")
    tool.chmod(0o755)
    return tool


class FakeInstaller:
    """Package manager that records calls and "installs" by writing stubs."""

    def __init__(
        self,
        name: str,
        role: str,
        bin_dir: Path,
        *,
        available: bool = True,
        installed: Sequence[str] = (),
        fail_on: Sequence[str] = (),
    ) -> None:
        self.name = name
        self.role = role
        self.bin_dir = bin_dir
        self.available = available
        self.installed = set(installed)
        self.fail_on = set(fail_on)
        self.calls: List[str] = []

    def is_available(self, env: HostEnvironment) -> bool:
        return self.available

    def bootstrap(self, env: HostEnvironment, *, dry_run: bool = False) -> HostEnvironment:
        self.calls.append(f"bootstrap:{self.name}")
        if not dry_run:
            self.available = True
        return env

    def is_installed(self, package: str, env: HostEnvironment) -> bool:
        return package in self.installed

    def install(self, package: str, env: HostEnvironment, *, dry_run: bool = False) -> None:
        self.calls.append(f"install:{package}")
        if package in self.fail_on:
            raise RuntimeError(f"{self.name} could not install {package}")
        if not dry_run:
            self.installed.add(package)
            make_tool(self.bin_dir, package)


class FakeFarm:
    """Symlink farm that links every file of each package, refusing to clobber like stow."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []

    def restow(self, repo_dir, packages, target_root, *, env=None, dry_run=False) -> None:
        self.calls.append(list(packages))
        if dry_run:
            return
        for package in packages:
            pkg_dir = Path(repo_dir) / package
            for src in sorted(pkg_dir.rglob("*")):
                if not src.is_file():
                    continue
                dest = Path(target_root) / src.relative_to(pkg_dir)
                if dest.is_symlink():
                    dest.unlink()
                elif dest.exists():
                    raise RuntimeError(f"existing target is not owned by stow: {dest}")
                dest.parent.mkdir(parents=True, exist_ok=True)
                dest.symlink_to(src)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Return an empty home directory."""
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def fake_bin(tmp_path: Path) -> Path:
    """Return the only directory on the test PATH."""
    b = tmp_path / "bin"
    b.mkdir()
    return b


@pytest.fixture
def shells_file(tmp_path: Path) -> str:
    p = tmp_path / "shells"
    p.write_text("/bin/sh\n")
    return str(p)


@pytest.fixture
def env(home: Path, fake_bin: Path) -> HostEnvironment:
    return HostEnvironment(home=home, path=str(fake_bin))


@pytest.fixture
def repo(home: Path) -> Path:
    """A finished dotfiles checkout with a ``zsh`` package."""
    r = home / "dotfiles"
    (r / ".git").mkdir(parents=True)
    (r / "zsh").mkdir()
    (r / "zsh" / ".zshrc").write_text("# managed zshrc\n")
    return r


@pytest.fixture
def installers(fake_bin: Path) -> Dict[str, FakeInstaller]:
    return {
        PRIMARY: FakeInstaller("apt", PRIMARY, fake_bin),
        SECONDARY: FakeInstaller("brew", SECONDARY, fake_bin),
    }


@pytest.fixture
def farm() -> FakeFarm:
    return FakeFarm()


@pytest.fixture
def declare(home: Path) -> Callable[..., TargetDeclaration]:
    """Build a TargetDeclaration rooted in the test home directory."""

    def _declare(
        *,
        dest: Optional[Path] = None,
        pull: bool = False,
        **fields,
    ) -> TargetDeclaration:
        fields.setdefault("bin_dir", home / ".local" / "bin")
        fields.setdefault("target_root", home)
        return TargetDeclaration(
            repository=RepositorySpec(
                url="https://example.invalid/dotfiles.git",
                dest=dest or home / "dotfiles",
                pull=pull,
            ),
            **fields,
        )

    return _declare

