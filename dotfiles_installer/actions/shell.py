from __future__ import annotations

import logging
import shlex
import shutil
from pathlib import Path

from ..errors import MissingPrerequisiteError
from ..lib.command import run_shell_script
from ..lib.env import HostEnvironment
from ..lib.git import clone_atomic, partial_path
from ..lib.probe import PathKind, Prober
from ..lib.shell import change_login_shell, register_shell
from ..pipeline import ActionContext
from ..target_config import PromptSpec, ShellFrameworkSpec

logger = logging.getLogger(__name__)


class SetDefaultShellAction:
    action_id = "set_default_shell"
    kind = "set_default_shell"

    def __init__(self, shell: str) -> None:
        self.shell = shell

    def is_satisfied(self, prober: Prober) -> bool:
        path = prober.which(self.shell)
        return path is not None and prober.is_login_shell(path)

    def run(self, ctx: ActionContext) -> HostEnvironment:
        prober = ctx.prober()
        path = prober.which(self.shell)
        if path is None:
            if ctx.dry_run:
                logger.info("Would set %s as the default shell", self.shell)
                return ctx.env
            raise MissingPrerequisiteError([self.shell])

        logger.info("Setting %s as the default shell", path)
        if not prober.shell_registered(path):
            register_shell(path, shells_file=ctx.shells_file, env=ctx.env.subprocess_env(), dry_run=ctx.dry_run)
        change_login_shell(path, env=ctx.env.subprocess_env(), dry_run=ctx.dry_run)
        if ctx.dry_run:
            return ctx.env
        return ctx.env.with_login_shell(path)

    def verify(self, prober: Prober) -> bool:
        return self.is_satisfied(prober)


class InstallShellFrameworkAction:
    """Run the framework's self-installer into a scratch directory, then rename it into place."""

    kind = "install_framework"

    def __init__(self, spec: ShellFrameworkSpec) -> None:
        self.spec = spec
        self.action_id = f"install_framework:{spec.name}"

    def is_satisfied(self, prober: Prober) -> bool:
        return prober.path_kind(self.spec.dir) is PathKind.DIRECTORY

    def run(self, ctx: ActionContext) -> HostEnvironment:
        tmp = partial_path(self.spec.dir)
        if tmp.exists() and not ctx.dry_run:
            logger.warning("Removing leftover partial install %s", tmp)
            shutil.rmtree(tmp)

        logger.info("Installing %s", self.spec.name)
        # --keep-zshrc: the linked .zshrc from the dotfiles repo stays in charge.
        script = f"curl -fsSL {shlex.quote(self.spec.installer_url)} | sh -s -- --unattended --keep-zshrc"
        env = dict(ctx.env.subprocess_env(), ZSH=str(tmp), RUNZSH="no", CHSH="no")
        run_shell_script(script, env=env, dry_run=ctx.dry_run)

        if not ctx.dry_run:
            tmp.rename(self.spec.dir)
            self._repoint_zshrc(ctx.env.home, tmp)
        return ctx.env

    def _repoint_zshrc(self, home: Path, tmp: Path) -> None:
        """Fix the ``ZSH=`` path in a .zshrc the installer generated against the partial dir."""

        zshrc = home / ".zshrc"
        # A linked .zshrc belongs to the dotfiles repository and was kept as is.
        if zshrc.is_symlink() or not zshrc.is_file():
            return
        text = zshrc.read_text(encoding="utf-8")
        replacements = [(str(tmp), str(self.spec.dir))]
        if self.spec.dir.is_relative_to(home):
            # The installer abbreviates paths under the home directory to $HOME/...
            replacements.append(
                (f"$HOME/{tmp.relative_to(home).as_posix()}", f"$HOME/{self.spec.dir.relative_to(home).as_posix()}")
            )
        fixed = text
        for old, new in replacements:
            fixed = fixed.replace(old, new)
        if fixed != text:
            zshrc.write_text(fixed, encoding="utf-8")
            logger.info("Pointed ZSH in %s at %s", zshrc, self.spec.dir)

    def verify(self, prober: Prober) -> bool:
        return self.is_satisfied(prober)


class InstallPluginAction:
    kind = "install_plugin"

    def __init__(self, name: str, url: str, plugin_dir: Path) -> None:
        self.name = name
        self.url = url
        self.plugin_dir = plugin_dir
        self.action_id = f"install_plugin:{name}"

    def is_satisfied(self, prober: Prober) -> bool:
        return prober.plugin_present(self.plugin_dir)

    def run(self, ctx: ActionContext) -> HostEnvironment:
        logger.info("Installing %s plugin", self.name)
        clone_atomic(self.url, self.plugin_dir, env=ctx.env.subprocess_env(), dry_run=ctx.dry_run)
        return ctx.env

    def verify(self, prober: Prober) -> bool:
        return self.is_satisfied(prober)


class InstallPromptAction:
    kind = "install_prompt"

    def __init__(self, spec: PromptSpec) -> None:
        self.spec = spec
        self.action_id = f"install_prompt:{spec.name}"

    def is_satisfied(self, prober: Prober) -> bool:
        return prober.tool_present(self.spec.name)

    def run(self, ctx: ActionContext) -> HostEnvironment:
        logger.info("Installing %s", self.spec.name)
        script = f"curl -sS {shlex.quote(self.spec.installer_url)} | sh -s -- --yes"
        run_shell_script(script, env=ctx.env.subprocess_env(), dry_run=ctx.dry_run)
        return ctx.env

    def verify(self, prober: Prober) -> bool:
        return prober.tool_present(self.spec.name)
