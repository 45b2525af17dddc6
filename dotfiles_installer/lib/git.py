from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Mapping, Optional

from .command import run_cmd

logger = logging.getLogger(__name__)


def partial_path(dest: str | Path) -> Path:
    """Sibling scratch directory a clone is written to before it is renamed into place."""
    d = Path(dest)
    return d.parent / f".{d.name}.partial"


def clone_atomic(
    url: str,
    dest: str | Path,
    *,
    branch: Optional[str] = None,
    env: Mapping[str, str] | None = None,
    dry_run: bool = False,
) -> None:
    """Clone ``url`` into ``dest`` so that ``dest`` only ever appears complete.

    An interrupted clone leaves the partial directory behind, never a
    half-populated ``dest``; the next run deletes the leftover and starts over.
    """

    d = Path(dest)
    tmp = partial_path(d)

    if dry_run:
        logger.info("Would clone %s -> %s", url, d)
        return

    if tmp.exists():
        logger.warning("Removing leftover partial clone %s", tmp)
        shutil.rmtree(tmp)
    d.parent.mkdir(parents=True, exist_ok=True)

    argv = ["git", "clone"]
    if branch:
        argv += ["--branch", branch]
    argv += [url, str(tmp)]
    run_cmd(argv, env=env)

    tmp.rename(d)
    logger.info("Cloned %s -> %s", url, d)


def pull(dest: str | Path, *, branch: str = "main", env: Mapping[str, str] | None = None, dry_run: bool = False) -> None:
    run_cmd(["git", "-C", str(dest), "pull", "origin", branch], env=env, dry_run=dry_run)
