from __future__ import annotations

import logging
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Mapping

from .command import run_cmd

logger = logging.getLogger(__name__)


def download(url: str, dest: str | Path, *, env: Mapping[str, str] | None = None, dry_run: bool = False) -> None:
    run_cmd(["curl", "-fsSL", "-o", str(dest), url], env=env, dry_run=dry_run)


def install_release_binary(
    url: str,
    member: str,
    bin_dir: str | Path,
    *,
    env: Mapping[str, str] | None = None,
    dry_run: bool = False,
) -> Path:
    """Fetch a release tarball and extract a single executable into ``bin_dir``."""

    out_dir = Path(bin_dir)
    target = out_dir / Path(member).name

    if dry_run:
        logger.info("Would install %s from %s -> %s", member, url, target)
        return target

    out_dir.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix="dotfiles-installer-") as tmp:
        archive = Path(tmp) / "release.tar.gz"
        download(url, archive, env=env)
        run_cmd(["tar", "-xzf", str(archive), "-C", tmp, member], env=env)
        # Move into place last so a failed extraction leaves no stub binary behind.
        extracted = Path(tmp) / member
        extracted.chmod(extracted.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        shutil.move(str(extracted), str(target))

    logger.info("Installed %s", target)
    return target
