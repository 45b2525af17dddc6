from __future__ import annotations

import logging

from ..errors import InstallerError
from ..lib.env import HostEnvironment
from ..lib.git import clone_atomic, pull
from ..lib.probe import PathKind, Prober
from ..pipeline import ActionContext
from ..target_config import RepositorySpec

logger = logging.getLogger(__name__)


class CloneRepositoryAction:
    action_id = "clone_repository"
    kind = "clone_repository"

    def __init__(self, repo: RepositorySpec) -> None:
        self.repo = repo

    def is_satisfied(self, prober: Prober) -> bool:
        return prober.repository_present(self.repo.dest)

    def run(self, ctx: ActionContext) -> HostEnvironment:
        if ctx.prober().path_kind(self.repo.dest) is not PathKind.MISSING:
            raise InstallerError(f"{self.repo.dest} exists but is not a git checkout; move it aside and re-run")
        logger.info("Cloning dotfiles repository into %s", self.repo.dest)
        clone_atomic(
            self.repo.url,
            self.repo.dest,
            branch=self.repo.branch,
            env=ctx.env.subprocess_env(),
            dry_run=ctx.dry_run,
        )
        return ctx.env

    def verify(self, prober: Prober) -> bool:
        return self.is_satisfied(prober)


class PullRepositoryAction:
    """Fast-forward an existing checkout. Opt-in: it is never "satisfied"."""

    action_id = "pull_repository"
    kind = "pull_repository"

    def __init__(self, repo: RepositorySpec) -> None:
        self.repo = repo

    def is_satisfied(self, prober: Prober) -> bool:
        return False

    def run(self, ctx: ActionContext) -> HostEnvironment:
        logger.info("Pulling latest changes in %s", self.repo.dest)
        pull(self.repo.dest, branch=self.repo.branch, env=ctx.env.subprocess_env(), dry_run=ctx.dry_run)
        return ctx.env
