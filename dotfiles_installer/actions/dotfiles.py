from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Tuple

from ..lib.env import HostEnvironment
from ..lib.linker import link_packages, managed_targets, missing_packages
from ..lib.probe import Prober
from ..pipeline import ActionContext

logger = logging.getLogger(__name__)


class LinkDotfilesAction:
    action_id = "link_dotfiles"
    kind = "link_dotfiles"

    def __init__(self, repo_dir: Path, managed_files: Mapping[str, Tuple[str, ...]], target_root: Path) -> None:
        self.repo_dir = repo_dir
        self.managed_files = dict(managed_files)
        self.target_root = target_root

    def is_satisfied(self, prober: Prober) -> bool:
        if not prober.repository_present(self.repo_dir):
            return False
        if missing_packages(self.repo_dir, self.managed_files):
            return False
        # Computed fresh each time: the file list may come from the checkout itself.
        targets = managed_targets(self.repo_dir, self.managed_files, self.target_root)
        return all(prober.resolves_into(t, self.repo_dir) for paths in targets.values() for t in paths)

    def run(self, ctx: ActionContext) -> HostEnvironment:
        if ctx.dry_run and not self.repo_dir.is_dir():
            logger.info("Would link %s from %s", ", ".join(self.managed_files), self.repo_dir)
            return ctx.env
        records = link_packages(
            self.repo_dir,
            self.managed_files,
            self.target_root,
            prober=ctx.prober(),
            farm=ctx.farm,
            env=ctx.env.subprocess_env(),
            dry_run=ctx.dry_run,
        )
        ctx.backups.extend(records)
        logger.info("Dotfiles linked (%d backup(s))", len(records))
        return ctx.env

    def verify(self, prober: Prober) -> bool:
        return self.is_satisfied(prober)
