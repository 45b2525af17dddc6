from __future__ import annotations

import logging
import platform
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class OsFamily(str, Enum):
    MACOS = "macos"
    LINUX = "linux"
    UNSUPPORTED = "unsupported"


class Arch(str, Enum):
    X86_64 = "x86_64"
    ARM64 = "arm64"


_ARCH_MAP = {
    "x86_64": Arch.X86_64,
    "amd64": Arch.X86_64,
    "aarch64": Arch.ARM64,
    "arm64": Arch.ARM64,
}

_OS_MAP = {
    "darwin": OsFamily.MACOS,
    "linux": OsFamily.LINUX,
}


@dataclass(frozen=True)
class Platform:
    os_family: OsFamily
    arch: Optional[Arch]
    system: str = ""
    machine: str = ""

    @property
    def supported(self) -> bool:
        return self.os_family is not OsFamily.UNSUPPORTED and self.arch is not None

    @property
    def is_macos(self) -> bool:
        return self.os_family is OsFamily.MACOS

    @property
    def is_linux(self) -> bool:
        return self.os_family is OsFamily.LINUX

    def matches(self, platforms: tuple[str, ...]) -> bool:
        """True when a platform filter (empty means "everywhere") includes this host."""
        if not platforms:
            return True
        return self.os_family.value in platforms


def normalize_arch(machine: str) -> Optional[Arch]:
    return _ARCH_MAP.get(machine.lower())


def detect_platform(system: Optional[str] = None, machine: Optional[str] = None) -> Platform:
    """Detect the host OS family and CPU architecture.

    Never raises: anything we cannot handle comes back as UNSUPPORTED, and the
    caller decides that this is fatal. ``system``/``machine`` override the
    live values for tests.
    """

    system = system if system is not None else platform.system()
    machine = machine if machine is not None else platform.machine()

    os_family = _OS_MAP.get(system.lower(), OsFamily.UNSUPPORTED)
    arch = normalize_arch(machine)
    if arch is None:
        os_family = OsFamily.UNSUPPORTED

    p = Platform(os_family=os_family, arch=arch, system=system, machine=machine)
    logger.info("Platform: os=%s arch=%s (%s/%s)", os_family.value, arch.value if arch else None, system, machine)
    return p
