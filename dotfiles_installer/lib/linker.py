"""Conflict-safe symlinking of dotfile packages into the home directory.

The symlink farm tool (GNU stow) refuses to link over real files, and a naive
``--adopt`` or ``rm`` would throw the user's own config away. Before the farm
runs, every managed target that is a real file is renamed to a backup name
that is guaranteed not to exist yet. Backups are never deleted or reused.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

from .command import run_cmd
from .probe import PathKind, Prober

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"

# GNU stow's built-in ignore list; these are never linked.
_STOW_IGNORE = re.compile(r"^(RCS|.+,v|CVS|\.#.+|\.cvsignore|\.svn|_darcs|\.hg|\.git|\.gitignore|\.gitmodules|.+~|#.*#)$")
_STOW_IGNORE_TOP = re.compile(r"^(README.*|LICENSE.*|COPYING)$")


class SymlinkFarm(Protocol):
    def restow(
        self,
        repo_dir: Path,
        packages: Sequence[str],
        target_root: Path,
        *,
        env: Optional[Mapping[str, str]] = None,
        dry_run: bool = False,
    ) -> None:
        ...


class StowFarm:
    """GNU stow."""

    def restow(
        self,
        repo_dir: Path,
        packages: Sequence[str],
        target_root: Path,
        *,
        env: Optional[Mapping[str, str]] = None,
        dry_run: bool = False,
    ) -> None:
        # --restow removes and recreates links, correcting drift from earlier runs.
        run_cmd(
            ["stow", "--restow", "--dir", str(repo_dir), "--target", str(target_root), *packages],
            env=env,
            dry_run=dry_run,
        )


@dataclass(frozen=True)
class BackupRecord:
    original: Path
    backup: Path


def discover_package_files(repo_dir: Path, package: str) -> List[str]:
    """Every file the farm links for a package, relative to the package directory.

    Walks the whole package, so configs nested under ``.config/`` count too.
    """

    pkg_dir = repo_dir / package
    if not pkg_dir.is_dir():
        return []
    out: List[str] = []
    for p in sorted(pkg_dir.rglob("*")):
        rel = p.relative_to(pkg_dir)
        if any(_STOW_IGNORE.match(part) for part in rel.parts):
            continue
        if len(rel.parts) == 1 and _STOW_IGNORE_TOP.match(rel.name):
            continue
        if p.is_dir() and not p.is_symlink():
            continue
        out.append(rel.as_posix())
    return out


def missing_packages(repo_dir: Path, managed_files: Mapping[str, Sequence[str]]) -> List[str]:
    return [package for package in managed_files if not (repo_dir / package).is_dir()]


def managed_targets(
    repo_dir: Path,
    managed_files: Mapping[str, Sequence[str]],
    target_root: Path,
) -> Dict[str, List[Path]]:
    """Map each package to the target paths it will own under ``target_root``.

    A package with no listed files is expanded from the repository, so this
    must be re-evaluated after the repository has been cloned.
    """

    out: Dict[str, List[Path]] = {}
    for package, rel_paths in managed_files.items():
        rels = list(rel_paths) or discover_package_files(repo_dir, package)
        out[package] = [target_root / rel for rel in rels]
    return out


def backup_path_for(target: Path, *, now: Optional[datetime] = None) -> Path:
    """First free backup name: ``<path>.bak``, then a UTC timestamp, then a counter."""

    plain = target.with_name(target.name + BACKUP_SUFFIX)
    if not _lexists(plain):
        return plain

    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    stamped = target.with_name(f"{target.name}{BACKUP_SUFFIX}.{stamp}")
    candidate = stamped
    n = 1
    while _lexists(candidate):
        candidate = stamped.with_name(f"{stamped.name}-{n}")
        n += 1
    return candidate


def backup_conflicts(
    targets: Sequence[Path],
    prober: Prober,
    *,
    repo_dir: Path,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> List[BackupRecord]:
    records: List[BackupRecord] = []
    for target in targets:
        kind = prober.path_kind(target)
        if kind is PathKind.REGULAR_FILE:
            if prober.resolves_into(target, repo_dir):
                # Reached through a folded directory link: already ours.
                continue
            backup = backup_path_for(target, now=now)
            if dry_run:
                logger.info("Would back up %s -> %s", target, backup)
            else:
                target.rename(backup)
                logger.info("Backed up existing %s -> %s", target, backup)
            records.append(BackupRecord(original=target, backup=backup))
        elif kind is PathKind.DIRECTORY:
            logger.warning("%s is a directory; leaving it in place", target)
    return records


def link_packages(
    repo_dir: Path,
    managed_files: Mapping[str, Sequence[str]],
    target_root: Path,
    *,
    prober: Prober,
    farm: SymlinkFarm,
    env: Optional[Mapping[str, str]] = None,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> List[BackupRecord]:
    """Back up conflicting real files, then restow every package in one farm call."""

    if not repo_dir.is_dir():
        raise FileNotFoundError(f"Dotfiles directory not found at {repo_dir}")
    missing = missing_packages(repo_dir, managed_files)
    if missing:
        raise FileNotFoundError(f"Package(s) {', '.join(missing)} not found in {repo_dir}")

    targets = managed_targets(repo_dir, managed_files, target_root)
    records: List[BackupRecord] = []
    for package, paths in targets.items():
        logger.info("Checking for conflicts for '%s'", package)
        records.extend(backup_conflicts(paths, prober, repo_dir=repo_dir, dry_run=dry_run, now=now))

    packages = list(managed_files.keys())
    logger.info("Linking packages: %s", " ".join(packages))
    farm.restow(repo_dir, packages, target_root, env=env, dry_run=dry_run)
    return records


def _lexists(p: Path) -> bool:
    return p.is_symlink() or p.exists()
