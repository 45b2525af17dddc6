from __future__ import annotations

import logging
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .env import HostEnvironment

if TYPE_CHECKING:
    from .pkg import Installer

logger = logging.getLogger(__name__)

DEFAULT_SHELLS_FILE = "/etc/shells"


class PathKind(str, Enum):
    MISSING = "missing"
    REGULAR_FILE = "regular_file"
    SYMLINK = "symlink"
    DIRECTORY = "directory"


class Prober:
    """Read-only questions about the host.

    Nothing is cached: every call looks at the live filesystem and the PATH
    of the environment the prober was built with. Build a new prober when an
    action hands back a changed environment.
    """

    def __init__(self, env: HostEnvironment, *, shells_file: str = DEFAULT_SHELLS_FILE) -> None:
        self.env = env
        self.shells_file = shells_file

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name, path=self.env.path)

    def tool_present(self, name: str) -> bool:
        return self.which(name) is not None

    def package_installed(self, installer: "Installer", name: str) -> bool:
        return installer.is_installed(name, self.env)

    def path_kind(self, path: str | Path) -> PathKind:
        p = Path(path)
        # is_symlink first: exists()/is_dir() follow links.
        if p.is_symlink():
            return PathKind.SYMLINK
        if p.is_dir():
            return PathKind.DIRECTORY
        if p.exists():
            return PathKind.REGULAR_FILE
        return PathKind.MISSING

    def is_login_shell(self, candidate: str) -> bool:
        if not self.env.login_shell or not candidate:
            return False
        return os.path.realpath(self.env.login_shell) == os.path.realpath(candidate)

    def plugin_present(self, plugin_dir: str | Path) -> bool:
        return self.path_kind(plugin_dir) is PathKind.DIRECTORY

    def repository_present(self, repo_dir: str | Path) -> bool:
        # Clones land via rename, so a .git directory means a finished clone.
        return self.path_kind(Path(repo_dir) / ".git") is PathKind.DIRECTORY

    def resolves_into(self, target: str | Path, root: str | Path) -> bool:
        """True when ``target`` exists and, following links, lives under ``root``.

        Covers both a direct symlink and a file reached through a folded
        parent-directory link.
        """
        p = Path(target)
        if not p.exists():
            return False
        resolved = p.resolve()
        try:
            resolved.relative_to(Path(root).resolve())
        except ValueError:
            return False
        return True

    def shell_registered(self, shell_path: str) -> bool:
        try:
            lines = Path(self.shells_file).read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return False
        return shell_path in {ln.strip() for ln in lines}
