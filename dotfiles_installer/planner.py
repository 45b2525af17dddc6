"""Turn a target declaration plus live probes into an ordered list of actions.

Ordering is data, not call order: ``ORDERING_RULES`` lists which action kinds
must run before which. The planner sorts topologically over that table and,
between unconstrained actions, keeps the declaration's order, so identical
input always yields an identical plan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Mapping, Set, Tuple

from .actions import (
    BootstrapManagerAction,
    CloneRepositoryAction,
    InstallPackageAction,
    InstallPluginAction,
    InstallPromptAction,
    InstallReleaseAction,
    InstallShellFrameworkAction,
    LinkAliasAction,
    LinkDotfilesAction,
    PullRepositoryAction,
    SetDefaultShellAction,
)
from .errors import ConfigError
from .lib.hostdetect import Platform
from .lib.pkg import PRIMARY, SECONDARY, Installer
from .lib.probe import Prober
from .pipeline import Action
from .target_config import TargetDeclaration

logger = logging.getLogger(__name__)


ORDERING_RULES: Tuple[Tuple[str, str], ...] = (
    # package managers exist before anything is installed with them
    ("bootstrap_primary", "install_primary"),
    ("bootstrap_primary", "install_secondary"),
    ("bootstrap_secondary", "install_secondary"),
    # Homebrew on Linux needs curl and a compiler from the OS manager
    ("install_primary", "bootstrap_secondary"),
    ("clone_repository", "pull_repository"),
    # the symlink tool is itself a package, and links point into the checkout
    ("install_primary", "link_dotfiles"),
    ("install_secondary", "link_dotfiles"),
    ("clone_repository", "link_dotfiles"),
    ("pull_repository", "link_dotfiles"),
    ("install_primary", "link_alias"),
    ("install_secondary", "link_alias"),
    ("install_primary", "install_release"),
    # linked config may reference the framework and its plugins
    ("link_dotfiles", "install_framework"),
    ("link_dotfiles", "install_plugin"),
    ("install_framework", "install_plugin"),
    # the shell must be installed before it can become the login shell
    ("install_primary", "set_default_shell"),
    ("install_secondary", "set_default_shell"),
    ("link_dotfiles", "set_default_shell"),
    ("install_primary", "install_prompt"),
    ("link_dotfiles", "install_prompt"),
)


def _closure(rules: Iterable[Tuple[str, str]]) -> FrozenSet[Tuple[str, str]]:
    """Transitive closure, so constraints survive when an intermediate kind is absent."""

    edges: Set[Tuple[str, str]] = set(rules)
    changed = True
    while changed:
        changed = False
        for a, b in list(edges):
            for c, d in list(edges):
                if b == c and (a, d) not in edges:
                    edges.add((a, d))
                    changed = True
    for a, b in edges:
        if a == b:
            raise ValueError(f"Ordering rules contain a cycle through {a}")
    return frozenset(edges)


_PRECEDES = _closure(ORDERING_RULES)


def must_precede(earlier_kind: str, later_kind: str) -> bool:
    return (earlier_kind, later_kind) in _PRECEDES


@dataclass(frozen=True)
class Plan:
    actions: List[Action]
    satisfied: List[str] = field(default_factory=list)

    @property
    def action_ids(self) -> List[str]:
        return [a.action_id for a in self.actions]

    def __bool__(self) -> bool:
        return bool(self.actions)


def candidate_actions(
    declaration: TargetDeclaration,
    platform: Platform,
    installers: Mapping[str, Installer],
    *,
    pull: bool = False,
) -> List[Action]:
    """Every action the declaration implies on this platform, in declaration order."""

    actions: List[Action] = []
    repo = declaration.repository

    actions.append(CloneRepositoryAction(repo))
    if pull or repo.pull:
        actions.append(PullRepositoryAction(repo))

    packages = declaration.packages_for(platform)
    used_roles = {p.manager for p in packages}
    seen_installers: List[Installer] = []
    for role in (PRIMARY, SECONDARY):
        if role not in used_roles:
            continue
        installer = installers.get(role)
        if installer is None:
            raise ConfigError(f"No {role} package manager on {platform.os_family.value}")
        # macOS: one Homebrew serves both roles and is bootstrapped once.
        if any(installer is s for s in seen_installers):
            continue
        seen_installers.append(installer)
        actions.append(BootstrapManagerAction(installer))

    for spec in packages:
        actions.append(InstallPackageAction(spec, installers[spec.manager]))

    for alias in declaration.aliases_for(platform):
        actions.append(LinkAliasAction(alias, declaration.bin_dir))

    for release in declaration.release_binaries_for(platform):
        actions.append(InstallReleaseAction(release, declaration.bin_dir, platform))

    if declaration.managed_files:
        actions.append(LinkDotfilesAction(repo.dest, declaration.managed_files_map, declaration.target_root))

    if declaration.shell_framework is not None:
        actions.append(InstallShellFrameworkAction(declaration.shell_framework))

    for name, url in declaration.shell_plugins:
        actions.append(InstallPluginAction(name, url, declaration.plugin_dir(name)))

    if declaration.default_shell:
        actions.append(SetDefaultShellAction(declaration.default_shell))

    if declaration.prompt is not None:
        actions.append(InstallPromptAction(declaration.prompt))

    return actions


def order_actions(actions: List[Action]) -> List[Action]:
    """Stable topological sort: the earliest-declared ready action always goes next."""

    remaining = list(range(len(actions)))
    ordered: List[Action] = []
    while remaining:
        for pos, i in enumerate(remaining):
            kind = actions[i].kind
            blocked = any(must_precede(actions[j].kind, kind) for j in remaining if j != i)
            if not blocked:
                ordered.append(actions[i])
                del remaining[pos]
                break
        else:  # pragma: no cover - _closure rejects cycles up front
            raise ValueError("No orderable action left; ordering rules are cyclic")
    return ordered


def plan(
    declaration: TargetDeclaration,
    platform: Platform,
    prober: Prober,
    installers: Mapping[str, Installer],
    *,
    pull: bool = False,
) -> Plan:
    """Minimal ordered action list: already-satisfied actions are left out entirely."""

    needed: List[Action] = []
    satisfied: List[str] = []
    for action in candidate_actions(declaration, platform, installers, pull=pull):
        if action.is_satisfied(prober):
            logger.debug("Already satisfied: %s", action.action_id)
            satisfied.append(action.action_id)
        else:
            needed.append(action)

    ordered = order_actions(needed)
    logger.info("Planned %d action(s): %s", len(ordered), ", ".join(a.action_id for a in ordered) or "none")
    return Plan(actions=ordered, satisfied=satisfied)

