from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import ActionFailedError, InstallerError, MissingPrerequisiteError, UnsupportedPlatformError
from .lib.env import HostEnvironment
from .lib.hostdetect import Platform, detect_platform
from .lib.linker import BackupRecord, StowFarm, SymlinkFarm
from .lib.pkg import Installer, installers_for
from .lib.probe import DEFAULT_SHELLS_FILE, Prober
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import ActionContext, ActionRecord, Executor
from .planner import Plan, plan
from .run_report import (
    DEFAULT_REPORT_PATH,
    new_report,
    record_actions,
    record_backups,
    record_error,
    save_report,
)
from .target_config import DEFAULT_DECLARATION, TargetDeclaration, load_declaration

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_UNVERIFIED = 2
EXIT_INTERRUPTED = 130


@dataclass
class ConvergeResult:
    plan: Plan
    records: List[ActionRecord] = field(default_factory=list)
    backups: List[BackupRecord] = field(default_factory=list)
    env: Optional[HostEnvironment] = None

    @property
    def warnings(self) -> List[str]:
        return [r.warning for r in self.records if r.warning]


def check_prerequisites(declaration: TargetDeclaration, prober: Prober) -> None:
    missing = [t for t in declaration.prerequisites if not prober.tool_present(t)]
    if missing:
        raise MissingPrerequisiteError(missing)


def converge(
    *,
    declaration: TargetDeclaration,
    platform: Platform,
    env: HostEnvironment,
    installers: Optional[Mapping[str, Installer]] = None,
    farm: Optional[SymlinkFarm] = None,
    dry_run: bool = False,
    pull: bool = False,
    plan_only: bool = False,
    stop_after: Optional[str] = None,
    shells_file: str = DEFAULT_SHELLS_FILE,
    report: Optional[Dict[str, Any]] = None,
) -> ConvergeResult:
    """Probe, plan and apply. Nothing is changed before both pre-checks pass."""

    if not platform.supported:
        raise UnsupportedPlatformError(platform.system, platform.machine)

    if installers is None:
        installers = installers_for(platform)
    prober = Prober(env, shells_file=shells_file)
    check_prerequisites(declaration, prober)

    the_plan = plan(declaration, platform, prober, installers, pull=pull)
    if report is not None:
        report["planned"] = the_plan.action_ids
        report["satisfied"] = list(the_plan.satisfied)

    result = ConvergeResult(plan=the_plan, env=env)
    if plan_only or not the_plan:
        if not the_plan:
            logger.info("Nothing to do: host already matches the target")
        return result

    ctx = ActionContext(
        platform=platform,
        env=env,
        declaration=declaration,
        installers=installers,
        farm=farm if farm is not None else StowFarm(),
        dry_run=dry_run,
        shells_file=shells_file,
    )
    executor = Executor(ctx, stop_after=stop_after)
    try:
        executor.run(the_plan.actions)
    finally:
        result.records = executor.records
        result.backups = list(ctx.backups)
        result.env = ctx.env
        if report is not None:
            record_actions(report, executor.records)
            record_backups(report, ctx.backups)
    return result


def run(
    *,
    config_path: Optional[str] = None,
    log_path: str = DEFAULT_LOG_PATH,
    report_path: Optional[str] = DEFAULT_REPORT_PATH,
    dry_run: bool = False,
    pull: bool = False,
    plan_only: bool = False,
    stop_after: Optional[str] = None,
    verbose: bool = False,
    platform: Optional[Platform] = None,
    env: Optional[HostEnvironment] = None,
) -> ConvergeResult:
    """Run one convergence, writing a run report whatever the outcome."""

    configure_logging(log_path=log_path, level=logging.DEBUG if verbose else logging.INFO)

    # The only place the live process environment and host are read.
    if env is None:
        env = HostEnvironment.from_process()
    if platform is None:
        platform = detect_platform()

    report = new_report(platform, dry_run=dry_run)
    try:
        declaration = load_declaration(config_path or DEFAULT_DECLARATION, env)
        result = converge(
            declaration=declaration,
            platform=platform,
            env=env,
            dry_run=dry_run,
            pull=pull,
            plan_only=plan_only,
            stop_after=stop_after,
            report=report,
        )
        report["exit_code"] = EXIT_OK
        return result
    except InstallerError as e:
        record_error(report, e, action_id=e.action_id if isinstance(e, ActionFailedError) else None)
        report["exit_code"] = EXIT_FATAL
        raise
    except KeyboardInterrupt as e:
        record_error(report, e)
        report["exit_code"] = EXIT_INTERRUPTED
        raise
    finally:
        if report_path and not plan_only:
            save_report(report_path, report)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dotfiles-installer",
        description="Converge this machine onto the dotfiles target: install what is missing, link what is not linked.",
    )
    p.add_argument("--config", default=None, help=f"Target declaration YAML (default: {DEFAULT_DECLARATION.name})")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("--report", default=DEFAULT_REPORT_PATH, help="Path to run report (json|yaml)")
    p.add_argument("--dry-run", action="store_true", help="Log what would be done without changing anything")
    p.add_argument("--plan", action="store_true", help="Print the planned actions and exit")
    p.add_argument("--pull", action="store_true", help="Pull the dotfiles repository even if already cloned")
    p.add_argument("--stop-after", default=None, help="Stop after action_id (e.g. link_dotfiles)")
    p.add_argument("--strict", action="store_true", help="Exit 2 when an action's post-check did not pass")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        result = run(
            config_path=args.config,
            log_path=args.log,
            report_path=args.report,
            dry_run=bool(args.dry_run),
            pull=bool(args.pull),
            plan_only=bool(args.plan),
            stop_after=args.stop_after,
            verbose=bool(args.verbose),
        )
    except ActionFailedError as e:
        logger.error("Setup stopped at %s: %s", e.action_id, e.reason)
        logger.error("Fix the problem and re-run; completed steps will be skipped.")
        return EXIT_FATAL
    except InstallerError as e:
        logger.error("Setup aborted: %s", e)
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.warning("Interrupted. Re-run to resume.")
        return EXIT_INTERRUPTED

    if args.plan:
        for action_id in result.plan.action_ids:
            print(action_id)
        return EXIT_OK

    for b in result.backups:
        logger.info("Your previous %s is saved as %s", b.original, b.backup)
    if result.warnings:
        for w in result.warnings:
            logger.warning("Unverified: %s", w)
        if args.strict:
            return EXIT_UNVERIFIED

    logger.info("Dotfiles setup complete.")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
