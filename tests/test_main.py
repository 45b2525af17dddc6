"""
End-to-end convergence and CLI exit codes.
"""

import textwrap
from pathlib import Path

import pytest

from conftest import LINUX, FakeInstaller, make_tool

from dotfiles_installer import main as main_mod
from dotfiles_installer.errors import ActionFailedError, MissingPrerequisiteError, UnsupportedPlatformError
from dotfiles_installer.lib.env import HostEnvironment
from dotfiles_installer.lib.hostdetect import detect_platform
from dotfiles_installer.main import ConvergeResult, converge, main
from dotfiles_installer.pipeline import ActionRecord, ActionStatus
from dotfiles_installer.planner import Plan
from dotfiles_installer.run_report import load_report
from dotfiles_installer.target_config import PackageSpec

UNSUPPORTED = detect_platform("Windows", "AMD64")


# ── converge() ───────────────────────────────────────────────────────


class TestConverge:
    def test_unsupported_platform_changes_nothing(self, declare, env: HostEnvironment, home: Path, installers, farm):
        (home / ".zshrc").write_text("hello")
        d = declare(packages=(PackageSpec("tree"),), managed_files=(("zsh", ()),))

        with pytest.raises(UnsupportedPlatformError):
            converge(declaration=d, platform=UNSUPPORTED, env=env, installers=installers, farm=farm)

        assert installers["primary"].calls == []
        assert farm.calls == []
        assert sorted(p.name for p in home.iterdir()) == [".zshrc"]

    def test_missing_prerequisite_changes_nothing(self, declare, env: HostEnvironment, installers, farm):
        d = declare(prerequisites=("git", "curl"), packages=(PackageSpec("tree"),))

        with pytest.raises(MissingPrerequisiteError) as excinfo:
            converge(declaration=d, platform=LINUX, env=env, installers=installers, farm=farm)

        assert excinfo.value.tools == ["git", "curl"]
        assert installers["primary"].calls == []

    def test_converges_then_is_idempotent(
        self, declare, env: HostEnvironment, fake_bin: Path, home: Path, repo: Path, installers, farm, shells_file
    ):
        make_tool(fake_bin, "X")
        (home / ".zshrc").write_text("hello")
        d = declare(
            packages=(PackageSpec("X", binary="X"), PackageSpec("Y", binary="Y")),
            managed_files=(("zsh", ()),),
        )
        report: dict = {}

        first = converge(
            declaration=d, platform=LINUX, env=env, installers=installers, farm=farm,
            shells_file=shells_file, report=report,
        )

        assert first.plan.action_ids == ["install_apt:Y", "link_dotfiles"]
        assert [r.status for r in first.records] == [ActionStatus.SUCCEEDED, ActionStatus.SUCCEEDED]
        assert installers["primary"].calls == ["install:Y"]
        assert (home / ".zshrc.bak").read_text() == "hello"
        assert (home / ".zshrc").resolve() == (repo / "zsh" / ".zshrc").resolve()
        assert [b.backup for b in first.backups] == [home / ".zshrc.bak"]
        assert report["planned"] == ["install_apt:Y", "link_dotfiles"]
        assert report["backups"][0]["backup"] == str(home / ".zshrc.bak")

        second = converge(
            declaration=d, platform=LINUX, env=env, installers=installers, farm=farm, shells_file=shells_file,
        )

        assert not second.plan
        assert second.records == []
        assert installers["primary"].calls == ["install:Y"]
        assert farm.calls == [["zsh"]]
        assert sorted(p.name for p in home.iterdir() if p.name.startswith(".zshrc")) == [".zshrc", ".zshrc.bak"]

    def test_failure_recorded_in_report(self, declare, env: HostEnvironment, fake_bin: Path, repo: Path, farm):
        apt = FakeInstaller("apt", "primary", fake_bin, fail_on=("b",))
        d = declare(packages=(PackageSpec("a"), PackageSpec("b"), PackageSpec("c")))
        report: dict = {}

        with pytest.raises(ActionFailedError) as excinfo:
            converge(declaration=d, platform=LINUX, env=env, installers={"primary": apt}, farm=farm, report=report)

        assert excinfo.value.action_id == "install_apt:b"
        assert apt.calls == ["install:a", "install:b"]
        assert [a["status"] for a in report["actions"]] == ["succeeded", "failed", "pending"]

    def test_plan_only_runs_nothing(self, declare, env: HostEnvironment, repo: Path, installers, farm):
        d = declare(packages=(PackageSpec("tree"),))
        result = converge(declaration=d, platform=LINUX, env=env, installers=installers, farm=farm, plan_only=True)
        assert result.plan.action_ids == ["install_apt:tree"]
        assert installers["primary"].calls == []


# ── main() ───────────────────────────────────────────────────────────


@pytest.fixture
def cli_args(tmp_path: Path):
    return ["--log", str(tmp_path / "install.log"), "--report", str(tmp_path / "last-run.json")]


@pytest.fixture
def target_yml(tmp_path: Path) -> Path:
    path = tmp_path / "target.yaml"
    path.write_text(
        textwrap.dedent("""\
            repository:
              url: https://example.invalid/dotfiles.git
            packages:
              - tree
        """)
    )
    return path


class TestMain:
    def test_unsupported_platform_exit_1(self, monkeypatch, env: HostEnvironment, cli_args, target_yml, tmp_path):
        monkeypatch.setattr(main_mod, "detect_platform", lambda: UNSUPPORTED)
        monkeypatch.setattr(HostEnvironment, "from_process", classmethod(lambda cls: env))

        assert main(["--config", str(target_yml), *cli_args]) == 1

        report = load_report(str(tmp_path / "last-run.json"))
        assert report["error"]["type"] == "UnsupportedPlatformError"
        assert report["actions"] == []
        assert report["exit_code"] == 1

    def test_bad_config_exit_1(self, monkeypatch, env: HostEnvironment, cli_args, tmp_path):
        monkeypatch.setattr(main_mod, "detect_platform", lambda: LINUX)
        monkeypatch.setattr(HostEnvironment, "from_process", classmethod(lambda cls: env))
        assert main(["--config", str(tmp_path / "missing.yaml"), *cli_args]) == 1

    def test_plan_prints_action_ids(self, monkeypatch, env: HostEnvironment, cli_args, target_yml, tmp_path, capsys):
        monkeypatch.setattr(main_mod, "detect_platform", lambda: LINUX)
        monkeypatch.setattr(HostEnvironment, "from_process", classmethod(lambda cls: env))

        assert main(["--config", str(target_yml), "--plan", *cli_args]) == 0

        out = capsys.readouterr().out.split()
        assert out == ["clone_repository", "bootstrap_apt", "install_apt:tree"]
        assert not (tmp_path / "last-run.json").exists()

    def _fake_run(self, monkeypatch, *, warning=None, error=None):
        def _run(**kwargs):
            if error is not None:
                raise error
            rec = ActionRecord("install_apt:tree", "install_primary", ActionStatus.SUCCEEDED, warning=warning)
            return ConvergeResult(plan=Plan(actions=[]), records=[rec])

        monkeypatch.setattr(main_mod, "run", _run)

    def test_success_exit_0(self, monkeypatch):
        self._fake_run(monkeypatch)
        assert main([]) == 0

    def test_warning_is_success_unless_strict(self, monkeypatch):
        self._fake_run(monkeypatch, warning="tree completed but its post-check did not pass")
        assert main([]) == 0
        assert main(["--strict"]) == 2

    def test_action_failure_exit_1(self, monkeypatch):
        self._fake_run(monkeypatch, error=ActionFailedError("install_apt:tree", "exit 100"))
        assert main([]) == 1

    def test_interrupt_exit_130(self, monkeypatch):
        self._fake_run(monkeypatch, error=KeyboardInterrupt())
        assert main([]) == 130
