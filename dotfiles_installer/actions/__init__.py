from .binaries import InstallReleaseAction, LinkAliasAction
from .dotfiles import LinkDotfilesAction
from .packages import BootstrapManagerAction, InstallPackageAction
from .repository import CloneRepositoryAction, PullRepositoryAction
from .shell import (
    InstallPluginAction,
    InstallPromptAction,
    InstallShellFrameworkAction,
    SetDefaultShellAction,
)

__all__ = [
    "CloneRepositoryAction",
    "PullRepositoryAction",
    "BootstrapManagerAction",
    "InstallPackageAction",
    "LinkAliasAction",
    "InstallReleaseAction",
    "LinkDotfilesAction",
    "InstallShellFrameworkAction",
    "InstallPluginAction",
    "SetDefaultShellAction",
    "InstallPromptAction",
]
