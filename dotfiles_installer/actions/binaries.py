"""Executables that land in the user's bin directory rather than via a package manager."""

from __future__ import annotations

import logging
from pathlib import Path

from ..errors import InstallerError
from ..lib.env import HostEnvironment
from ..lib.hostdetect import Platform
from ..lib.net import install_release_binary
from ..lib.probe import PathKind, Prober
from ..pipeline import ActionContext
from ..target_config import AliasSpec, ReleaseBinarySpec

logger = logging.getLogger(__name__)


class LinkAliasAction:
    kind = "link_alias"

    def __init__(self, spec: AliasSpec, bin_dir: Path) -> None:
        self.spec = spec
        self.bin_dir = bin_dir
        self.action_id = f"link_alias:{spec.name}"

    @property
    def link_path(self) -> Path:
        return self.bin_dir / self.spec.name

    def is_satisfied(self, prober: Prober) -> bool:
        return prober.tool_present(self.spec.name) or prober.path_kind(self.link_path) is PathKind.SYMLINK

    def run(self, ctx: ActionContext) -> HostEnvironment:
        prober = ctx.prober()
        target = prober.which(self.spec.target)
        if target is None:
            if ctx.dry_run:
                logger.info("Would link %s -> %s", self.link_path, self.spec.target)
                return ctx.env
            raise InstallerError(f"Cannot alias {self.spec.name}: {self.spec.target} is not on PATH")
        if prober.path_kind(self.link_path) not in (PathKind.MISSING, PathKind.SYMLINK):
            raise InstallerError(f"{self.link_path} exists and is not a symlink; refusing to replace it")

        if ctx.dry_run:
            logger.info("Would link %s -> %s", self.link_path, target)
            return ctx.env

        self.bin_dir.mkdir(parents=True, exist_ok=True)
        if self.link_path.is_symlink():
            self.link_path.unlink()
        self.link_path.symlink_to(target)
        logger.info("Created '%s' symlink for '%s'", self.spec.name, target)
        return ctx.env

    def verify(self, prober: Prober) -> bool:
        return prober.tool_present(self.spec.name)


class InstallReleaseAction:
    kind = "install_release"

    def __init__(self, spec: ReleaseBinarySpec, bin_dir: Path, platform: Platform) -> None:
        self.spec = spec
        self.bin_dir = bin_dir
        self.platform = platform
        self.action_id = f"install_release:{spec.name}"

    def is_satisfied(self, prober: Prober) -> bool:
        if prober.tool_present(self.spec.name):
            return True
        return prober.path_kind(self.bin_dir / self.spec.name) in (PathKind.REGULAR_FILE, PathKind.SYMLINK)

    def run(self, ctx: ActionContext) -> HostEnvironment:
        url = self.spec.url_for(self.platform)
        logger.info("Installing %s from %s", self.spec.name, url)
        install_release_binary(
            url,
            self.spec.member,
            self.bin_dir,
            env=ctx.env.subprocess_env(),
            dry_run=ctx.dry_run,
        )
        return ctx.env

    def verify(self, prober: Prober) -> bool:
        return prober.tool_present(self.spec.name)
