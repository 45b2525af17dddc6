"""
Tests for the conflict-safe linker: user files are moved aside, never destroyed.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from dotfiles_installer.lib import linker
from dotfiles_installer.lib.env import HostEnvironment
from dotfiles_installer.lib.linker import (
    StowFarm,
    backup_conflicts,
    backup_path_for,
    discover_package_files,
    link_packages,
    managed_targets,
    missing_packages,
)
from dotfiles_installer.lib.probe import Prober

NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


# ── Backup naming ────────────────────────────────────────────────────


class TestBackupPathFor:
    def test_plain_bak_first(self, home: Path):
        assert backup_path_for(home / ".zshrc", now=NOW) == home / ".zshrc.bak"

    def test_timestamp_when_bak_taken(self, home: Path):
        (home / ".zshrc.bak").write_text("older backup")
        assert backup_path_for(home / ".zshrc", now=NOW) == home / ".zshrc.bak.20240102T030405Z"

    def test_counter_when_timestamp_taken(self, home: Path):
        (home / ".zshrc.bak").write_text("1")
        (home / ".zshrc.bak.20240102T030405Z").write_text("2")
        assert backup_path_for(home / ".zshrc", now=NOW) == home / ".zshrc.bak.20240102T030405Z-1"

    def test_dangling_symlink_counts_as_taken(self, home: Path):
        (home / ".zshrc.bak").symlink_to(home / "gone")
        assert backup_path_for(home / ".zshrc", now=NOW) != home / ".zshrc.bak"


# ── Conflict backup ──────────────────────────────────────────────────


class TestBackupConflicts:
    def test_regular_file_moved_aside(self, home: Path, repo: Path, env: HostEnvironment):
        (home / ".zshrc").write_text("hello")
        records = backup_conflicts([home / ".zshrc"], Prober(env), repo_dir=repo, now=NOW)
        assert [(r.original, r.backup) for r in records] == [(home / ".zshrc", home / ".zshrc.bak")]
        assert not (home / ".zshrc").exists()
        assert (home / ".zshrc.bak").read_text() == "hello"

    def test_existing_backup_never_overwritten(self, home: Path, repo: Path, env: HostEnvironment):
        (home / ".zshrc.bak").write_text("first")
        (home / ".zshrc").write_text("second")
        backup_conflicts([home / ".zshrc"], Prober(env), repo_dir=repo, now=NOW)
        assert (home / ".zshrc.bak").read_text() == "first"
        assert (home / ".zshrc.bak.20240102T030405Z").read_text() == "second"

    def test_symlinks_and_missing_left_alone(self, home: Path, repo: Path, env: HostEnvironment):
        (home / ".zshrc").symlink_to(repo / "zsh" / ".zshrc")
        records = backup_conflicts(
            [home / ".zshrc", home / ".gitconfig"], Prober(env), repo_dir=repo, now=NOW
        )
        assert records == []
        assert (home / ".zshrc").is_symlink()

    def test_directory_left_alone(self, home: Path, repo: Path, env: HostEnvironment):
        (home / ".config").mkdir()
        assert backup_conflicts([home / ".config"], Prober(env), repo_dir=repo) == []
        assert (home / ".config").is_dir()

    def test_file_inside_folded_directory_skipped(self, home: Path, repo: Path, env: HostEnvironment):
        """A file reached through a directory link into the repo is the repo's own file."""
        (repo / "starship" / ".config").mkdir(parents=True)
        owned = repo / "starship" / ".config" / "starship.toml"
        owned.write_text("format = '$all'")
        (home / ".config").symlink_to(repo / "starship" / ".config")

        records = backup_conflicts([home / ".config" / "starship.toml"], Prober(env), repo_dir=repo)
        assert records == []
        assert owned.read_text() == "format = '$all'"

    def test_dry_run_records_without_moving(self, home: Path, repo: Path, env: HostEnvironment):
        (home / ".zshrc").write_text("hello")
        records = backup_conflicts([home / ".zshrc"], Prober(env), repo_dir=repo, dry_run=True)
        assert len(records) == 1
        assert (home / ".zshrc").read_text() == "hello"
        assert not (home / ".zshrc.bak").exists()


# ── Target discovery ─────────────────────────────────────────────────


class TestManagedTargets:
    def test_listed_files(self, home: Path, repo: Path):
        targets = managed_targets(repo, {"git": (".gitconfig", ".gitignore_global")}, home)
        assert targets == {"git": [home / ".gitconfig", home / ".gitignore_global"]}

    def test_empty_list_discovers_dotfiles(self, home: Path, repo: Path):
        (repo / "zsh" / ".zprofile").write_text("")
        (repo / "zsh" / "README.md").write_text("")
        (repo / "zsh" / ".oh-my-zsh-custom").mkdir()
        assert managed_targets(repo, {"zsh": ()}, home) == {"zsh": [home / ".zprofile", home / ".zshrc"]}

    def test_nested_files_discovered(self, home: Path, repo: Path):
        (repo / "starship" / ".config").mkdir(parents=True)
        (repo / "starship" / ".config" / "starship.toml").write_text("")
        assert managed_targets(repo, {"starship": ()}, home) == {"starship": [home / ".config" / "starship.toml"]}

    def test_stow_ignore_list_respected(self, repo: Path):
        (repo / "git").mkdir()
        (repo / "git" / ".gitconfig").write_text("")
        (repo / "git" / ".gitignore").write_text("")
        (repo / "git" / "LICENSE.txt").write_text("")
        (repo / "git" / ".gitconfig~").write_text("")
        assert discover_package_files(repo, "git") == [".gitconfig"]

    def test_missing_package_dir(self, repo: Path):
        assert discover_package_files(repo, "nope") == []
        assert missing_packages(repo, {"zsh": (), "nope": ()}) == ["nope"]


# ── Linking ──────────────────────────────────────────────────────────


class TestLinkPackages:
    def test_existing_zshrc_backed_up_and_linked(self, home: Path, repo: Path, env: HostEnvironment, farm):
        (home / ".zshrc").write_text("hello")

        records = link_packages(repo, {"zsh": ()}, home, prober=Prober(env), farm=farm, now=NOW)

        assert (home / ".zshrc.bak").read_text() == "hello"
        assert (home / ".zshrc").is_symlink()
        assert (home / ".zshrc").resolve() == (repo / "zsh" / ".zshrc").resolve()
        assert [r.backup for r in records] == [home / ".zshrc.bak"]
        assert farm.calls == [["zsh"]]

    def test_one_farm_call_for_all_packages(self, home: Path, repo: Path, env: HostEnvironment, farm):
        (repo / "git").mkdir()
        (repo / "git" / ".gitconfig").write_text("")
        link_packages(repo, {"zsh": (), "git": ()}, home, prober=Prober(env), farm=farm)
        assert farm.calls == [["zsh", "git"]]

    def test_missing_repository(self, home: Path, env: HostEnvironment, farm):
        with pytest.raises(FileNotFoundError, match="Dotfiles directory not found"):
            link_packages(home / "dotfiles", {"zsh": ()}, home, prober=Prober(env), farm=farm)
        assert farm.calls == []

    def test_missing_package(self, home: Path, repo: Path, env: HostEnvironment, farm):
        with pytest.raises(FileNotFoundError, match="starship"):
            link_packages(repo, {"zsh": (), "starship": ()}, home, prober=Prober(env), farm=farm)
        assert farm.calls == []

    def test_nested_conflict_backed_up(self, home: Path, repo: Path, env: HostEnvironment, farm):
        (repo / "starship" / ".config").mkdir(parents=True)
        (repo / "starship" / ".config" / "starship.toml").write_text("managed")
        (home / ".config").mkdir()
        (home / ".config" / "starship.toml").write_text("mine")

        link_packages(repo, {"starship": ()}, home, prober=Prober(env), farm=farm, now=NOW)

        assert (home / ".config" / "starship.toml.bak").read_text() == "mine"
        assert (home / ".config" / "starship.toml").read_text() == "managed"


class TestStowFarm:
    def test_restow_argv(self, monkeypatch: pytest.MonkeyPatch, home: Path, repo: Path):
        calls = []
        monkeypatch.setattr(linker, "run_cmd", lambda argv, **kw: calls.append((argv, kw)))

        StowFarm().restow(repo, ["zsh", "git"], home, env={"PATH": "/x"}, dry_run=True)

        argv, kw = calls[0]
        assert argv == ["stow", "--restow", "--dir", str(repo), "--target", str(home), "zsh", "git"]
        assert kw == {"env": {"PATH": "/x"}, "dry_run": True}
