from __future__ import annotations

import logging
import os
from typing import Mapping

from .command import run_cmd

logger = logging.getLogger(__name__)


def register_shell(shell_path: str, *, shells_file: str, env: Mapping[str, str] | None = None, dry_run: bool = False) -> None:
    """Append ``shell_path`` to the system shells list; chsh rejects unlisted shells."""

    sudo = [] if os.geteuid() == 0 else ["sudo"]
    run_cmd(
        [*sudo, "tee", "-a", shells_file],
        input_text=shell_path + "\n",
        env=env,
        dry_run=dry_run,
    )
    logger.info("Added %s to %s", shell_path, shells_file)


def change_login_shell(shell_path: str, *, env: Mapping[str, str] | None = None, dry_run: bool = False) -> None:
    # chsh may prompt for a password, so it keeps the terminal.
    run_cmd(["chsh", "-s", shell_path], env=env, capture=False, dry_run=dry_run)
    logger.info("Default shell changed to %s. Restart your terminal to pick it up.", shell_path)
