from __future__ import annotations

import os
import pwd
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional


@dataclass(frozen=True)
class HostEnvironment:
    """Process-level facts the engine depends on, captured once at the boundary.

    Core code never reads ``os.environ``; actions that change these facts
    (PATH after a package-manager bootstrap, the login shell after ``chsh``)
    return an updated copy instead.
    """

    home: Path
    path: str
    login_shell: str = ""
    zsh_custom: Optional[Path] = None
    dotfiles_dir: Optional[Path] = None

    @classmethod
    def from_process(cls) -> "HostEnvironment":
        home = Path(os.environ.get("HOME") or Path.home())
        zsh_custom = os.environ.get("ZSH_CUSTOM")
        dotfiles_dir = os.environ.get("DOTFILES_DIR")
        return cls(
            home=home,
            path=os.environ.get("PATH", os.defpath),
            login_shell=_passwd_shell() or os.environ.get("SHELL", ""),
            zsh_custom=Path(zsh_custom).expanduser() if zsh_custom else None,
            dotfiles_dir=Path(dotfiles_dir).expanduser() if dotfiles_dir else None,
        )

    def expand(self, p: str | Path) -> Path:
        s = str(p)
        if s == "~" or s.startswith("~/"):
            return self.home / s[2:]
        return Path(s)

    def with_path_prefix(self, *dirs: str) -> "HostEnvironment":
        current = [d for d in self.path.split(os.pathsep) if d]
        new = [d for d in dirs if d not in current]
        if not new:
            return self
        return replace(self, path=os.pathsep.join([*new, *current]))

    def with_login_shell(self, shell: str) -> "HostEnvironment":
        return replace(self, login_shell=shell)

    def subprocess_env(self) -> Dict[str, str]:
        return {"HOME": str(self.home), "PATH": self.path}


def _passwd_shell() -> str:
    # $SHELL keeps the old value until the next login, the passwd entry does not.
    try:
        return pwd.getpwuid(os.getuid()).pw_shell
    except KeyError:
        return ""
