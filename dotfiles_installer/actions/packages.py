from __future__ import annotations

import logging

from ..lib.command import run_cmd
from ..lib.env import HostEnvironment
from ..lib.pkg import Installer, brew_prefix
from ..lib.probe import Prober
from ..pipeline import ActionContext
from ..target_config import PackageSpec

logger = logging.getLogger(__name__)


class BootstrapManagerAction:
    def __init__(self, installer: Installer) -> None:
        self.installer = installer
        self.action_id = f"bootstrap_{installer.name}"
        self.kind = f"bootstrap_{installer.role}"

    def is_satisfied(self, prober: Prober) -> bool:
        return self.installer.is_available(prober.env)

    def run(self, ctx: ActionContext) -> HostEnvironment:
        logger.info("%s not found. Installing it...", self.installer.name)
        return self.installer.bootstrap(ctx.env, dry_run=ctx.dry_run)

    def verify(self, prober: Prober) -> bool:
        return self.installer.is_available(prober.env)


class InstallPackageAction:
    def __init__(self, spec: PackageSpec, installer: Installer) -> None:
        self.spec = spec
        self.installer = installer
        self.action_id = f"install_{installer.name}:{spec.name}"
        self.kind = f"install_{spec.manager}"

    def is_satisfied(self, prober: Prober) -> bool:
        if self.spec.binary and prober.tool_present(self.spec.binary):
            return True
        return prober.package_installed(self.installer, self.spec.name)

    def run(self, ctx: ActionContext) -> HostEnvironment:
        self.installer.install(self.spec.name, ctx.env, dry_run=ctx.dry_run)
        if self.spec.post_install:
            prefix = brew_prefix(ctx.platform)
            argv = [a.format(brew_prefix=prefix) for a in self.spec.post_install]
            logger.info("Configuring %s", self.spec.name)
            run_cmd(argv, env=ctx.env.subprocess_env(), capture=False, dry_run=ctx.dry_run)
        return ctx.env

    def verify(self, prober: Prober) -> bool:
        if self.spec.binary:
            return prober.tool_present(self.spec.binary)
        return True
