from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigError
from .lib.env import HostEnvironment
from .lib.hostdetect import OsFamily, Platform
from .lib.pkg import PRIMARY, ROLES

DEFAULT_DECLARATION = Path(__file__).resolve().parent / "manifests" / "default.yaml"


@dataclass(frozen=True)
class RepositorySpec:
    url: str
    dest: Path
    branch: str = "main"
    pull: bool = False


@dataclass(frozen=True)
class PackageSpec:
    name: str
    manager: str = PRIMARY
    # Executable the package provides; lets the probe skip the manager query.
    binary: Optional[str] = None
    platforms: Tuple[str, ...] = ()
    post_install: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AliasSpec:
    name: str
    target: str
    platforms: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ReleaseBinarySpec:
    name: str
    url: str
    member: str
    platforms: Tuple[str, ...] = ()

    def url_for(self, platform: Platform) -> str:
        arch = platform.arch.value if platform.arch else ""
        return self.url.format(arch=arch, os=platform.os_family.value)


@dataclass(frozen=True)
class ShellFrameworkSpec:
    name: str
    dir: Path
    installer_url: str


@dataclass(frozen=True)
class PromptSpec:
    name: str
    installer_url: str


@dataclass(frozen=True)
class TargetDeclaration:
    """Desired end state for one run. Frozen: the engine never edits it."""

    repository: RepositorySpec
    # Where managed files are linked; the home directory of the run.
    target_root: Path
    bin_dir: Path
    prerequisites: Tuple[str, ...] = ()
    packages: Tuple[PackageSpec, ...] = ()
    aliases: Tuple[AliasSpec, ...] = ()
    release_binaries: Tuple[ReleaseBinarySpec, ...] = ()
    managed_files: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    shell_framework: Optional[ShellFrameworkSpec] = None
    shell_plugins: Tuple[Tuple[str, str], ...] = ()
    plugin_root: Optional[Path] = None
    default_shell: Optional[str] = None
    prompt: Optional[PromptSpec] = None

    @property
    def managed_files_map(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self.managed_files)

    def packages_for(self, platform: Platform) -> List[PackageSpec]:
        return [p for p in self.packages if platform.matches(p.platforms)]

    def aliases_for(self, platform: Platform) -> List[AliasSpec]:
        return [a for a in self.aliases if platform.matches(a.platforms)]

    def release_binaries_for(self, platform: Platform) -> List[ReleaseBinarySpec]:
        return [r for r in self.release_binaries if platform.matches(r.platforms)]

    def plugin_dir(self, name: str) -> Path:
        if self.plugin_root is None:
            raise ConfigError("shell_plugins require a shell_framework or ZSH_CUSTOM")
        return self.plugin_root / "plugins" / name


def _mapping(raw: Any, where: str) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be a mapping")
    return raw


def _list(raw: Any, where: str) -> List[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"{where} must be a list")
    return raw


def _required(obj: Dict[str, Any], key: str, where: str) -> str:
    value = obj.get(key)
    if not value:
        raise ConfigError(f"{where}.{key} is required")
    return str(value)


def _platforms(obj: Dict[str, Any]) -> Tuple[str, ...]:
    platforms = tuple(str(p).lower() for p in _list(obj.get("platforms"), "platforms"))
    known = {OsFamily.MACOS.value, OsFamily.LINUX.value}
    unknown = [p for p in platforms if p not in known]
    if unknown:
        raise ConfigError(f"Unknown platform(s) {', '.join(unknown)}; expected macos or linux")
    return platforms


def _parse_package(raw: Any, i: int) -> PackageSpec:
    where = f"packages[{i}]"
    if isinstance(raw, str):
        return PackageSpec(name=raw)
    obj = _mapping(raw, where)
    manager = str(obj.get("manager") or PRIMARY)
    if manager not in ROLES:
        raise ConfigError(f"{where}.manager must be one of {', '.join(ROLES)}, got {manager!r}")
    return PackageSpec(
        name=_required(obj, "name", where),
        manager=manager,
        binary=str(obj["binary"]) if obj.get("binary") else None,
        platforms=_platforms(obj),
        post_install=tuple(str(a) for a in _list(obj.get("post_install"), f"{where}.post_install")),
    )


def parse_declaration(raw: Dict[str, Any], env: HostEnvironment) -> TargetDeclaration:
    if not isinstance(raw, dict):
        raise ConfigError("Target declaration must contain a mapping/object")

    repo = _mapping(raw.get("repository"), "repository")
    dest = env.dotfiles_dir or env.expand(repo.get("dest") or "~/dotfiles")
    repository = RepositorySpec(
        url=_required(repo, "url", "repository"),
        dest=dest,
        branch=str(repo.get("branch") or "main"),
        pull=bool(repo.get("pull", False)),
    )

    packages = tuple(_parse_package(p, i) for i, p in enumerate(_list(raw.get("packages"), "packages")))

    aliases = []
    for i, a in enumerate(_list(raw.get("aliases"), "aliases")):
        obj = _mapping(a, f"aliases[{i}]")
        aliases.append(
            AliasSpec(
                name=_required(obj, "name", f"aliases[{i}]"),
                target=_required(obj, "target", f"aliases[{i}]"),
                platforms=_platforms(obj),
            )
        )

    releases = []
    for i, r in enumerate(_list(raw.get("release_binaries"), "release_binaries")):
        where = f"release_binaries[{i}]"
        obj = _mapping(r, where)
        name = _required(obj, "name", where)
        releases.append(
            ReleaseBinarySpec(
                name=name,
                url=_required(obj, "url", where),
                member=str(obj.get("member") or name),
                platforms=_platforms(obj),
            )
        )

    managed = []
    for package, files in _mapping(raw.get("managed_files"), "managed_files").items():
        managed.append((str(package), tuple(str(f) for f in _list(files, f"managed_files.{package}"))))

    framework = None
    fw = raw.get("shell_framework")
    if fw:
        obj = _mapping(fw, "shell_framework")
        framework = ShellFrameworkSpec(
            name=_required(obj, "name", "shell_framework"),
            dir=env.expand(_required(obj, "dir", "shell_framework")),
            installer_url=_required(obj, "installer_url", "shell_framework"),
        )

    plugins = tuple(
        (str(name), str(url)) for name, url in _mapping(raw.get("shell_plugins"), "shell_plugins").items()
    )
    if env.zsh_custom is not None:
        plugin_root: Optional[Path] = env.zsh_custom
    elif framework is not None:
        plugin_root = framework.dir / "custom"
    else:
        plugin_root = None

    prompt = None
    pr = raw.get("prompt")
    if pr:
        obj = _mapping(pr, "prompt")
        prompt = PromptSpec(
            name=_required(obj, "name", "prompt"),
            installer_url=_required(obj, "installer_url", "prompt"),
        )

    return TargetDeclaration(
        repository=repository,
        prerequisites=tuple(str(t) for t in _list(raw.get("prerequisites"), "prerequisites")),
        packages=packages,
        aliases=tuple(aliases),
        release_binaries=tuple(releases),
        managed_files=tuple(managed),
        shell_framework=framework,
        shell_plugins=plugins,
        plugin_root=plugin_root,
        default_shell=str(raw["default_shell"]) if raw.get("default_shell") else None,
        prompt=prompt,
        bin_dir=env.expand(raw.get("bin_dir") or "~/.local/bin"),
        target_root=env.home,
    )


def load_declaration(path: str | Path, env: HostEnvironment) -> TargetDeclaration:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Target declaration not found: {p}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("Target declaration must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the target declaration") from e

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e

    return parse_declaration(raw, env)
