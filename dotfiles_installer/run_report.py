"""Machine-readable record of one convergence run.

Host state is never persisted: each run probes afresh. The report only
records what a run decided and did, for the operator (or a wrapper script)
to inspect afterwards.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .lib.hostdetect import Platform
from .lib.linker import BackupRecord
from .pipeline import ActionRecord

logger = logging.getLogger(__name__)

DEFAULT_REPORT_PATH = "~/.local/state/dotfiles-installer/last-run.json"


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def new_report(platform: Platform, *, dry_run: bool) -> Dict[str, Any]:
    return {
        "started_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "platform": {
            "os_family": platform.os_family.value,
            "arch": platform.arch.value if platform.arch else None,
            "system": platform.system,
            "machine": platform.machine,
        },
        "dry_run": dry_run,
        "planned": [],
        "satisfied": [],
        "actions": [],
        "backups": [],
        "warnings": [],
        "error": None,
        "exit_code": None,
    }


def record_actions(report: Dict[str, Any], records: Iterable[ActionRecord]) -> None:
    records = list(records)
    report["actions"] = [r.as_dict() for r in records]
    report["warnings"] = [r.warning for r in records if r.warning]


def record_backups(report: Dict[str, Any], backups: Iterable[BackupRecord]) -> None:
    report["backups"] = [{"original": str(b.original), "backup": str(b.backup)} for b in backups]


def record_error(report: Dict[str, Any], error: BaseException, *, action_id: Optional[str] = None) -> None:
    report["error"] = {"type": type(error).__name__, "message": str(error)}
    if action_id:
        report["error"]["action_id"] = action_id


def save_report(path: str, report: Dict[str, Any]) -> None:
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)

    report.setdefault("finished_at", datetime.now(timezone.utc).isoformat(timespec="seconds"))

    fmt = _detect_format(p)
    if fmt in {"yaml", "yml"}:
        import yaml  # type: ignore

        p.write_text(yaml.safe_dump(report, sort_keys=False), encoding="utf-8")
    else:
        p.write_text(json.dumps(report, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    logger.debug("Run report written to %s", p)


def load_report(path: str) -> Dict[str, Any]:
    p = Path(path).expanduser()
    if not p.exists():
        return {}

    if _detect_format(p) in {"yaml", "yml"}:
        import yaml  # type: ignore

        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    else:
        data = json.loads(p.read_text(encoding="utf-8"))

    if not isinstance(data, dict):
        raise ValueError(f"Run report must be an object/dict, got {type(data)}")
    return data
