from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional, Protocol, Sequence

from .errors import ActionFailedError
from .lib.env import HostEnvironment
from .lib.hostdetect import Platform
from .lib.linker import BackupRecord, SymlinkFarm
from .lib.pkg import Installer
from .lib.probe import DEFAULT_SHELLS_FILE, Prober
from .target_config import TargetDeclaration

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    """Everything an action may touch. ``env`` is replaced as actions change it."""

    platform: Platform
    env: HostEnvironment
    declaration: TargetDeclaration
    installers: Mapping[str, Installer]
    farm: SymlinkFarm
    dry_run: bool = False
    shells_file: str = DEFAULT_SHELLS_FILE
    backups: List[BackupRecord] = field(default_factory=list)

    def prober(self) -> Prober:
        return Prober(self.env, shells_file=self.shells_file)


class Action(Protocol):
    """A single idempotent unit of work.

    Actions may also define ``verify(prober) -> bool``, a post-check whose
    failure is reported as a warning rather than failing the run.
    """

    action_id: str
    kind: str

    def is_satisfied(self, prober: Prober) -> bool:
        ...

    def run(self, ctx: ActionContext) -> HostEnvironment:
        ...


class ActionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    # Planned, but an earlier action already brought it about.
    SKIPPED = "skipped"


@dataclass
class ActionRecord:
    action_id: str
    kind: str
    status: ActionStatus = ActionStatus.PENDING
    error: Optional[str] = None
    warning: Optional[str] = None

    def as_dict(self) -> dict:
        d = {"action_id": self.action_id, "kind": self.kind, "status": self.status.value}
        if self.error:
            d["error"] = self.error
        if self.warning:
            d["warning"] = self.warning
        return d


class Executor:
    """Run planned actions one at a time, stopping at the first failure.

    There is no retry: every action is idempotent, so re-running the whole
    convergence resumes where a failed run stopped.
    """

    def __init__(self, ctx: ActionContext, *, stop_after: Optional[str] = None) -> None:
        self.ctx = ctx
        self.stop_after = stop_after
        self.records: List[ActionRecord] = []
        self.current: Optional[int] = None

    @property
    def warnings(self) -> List[str]:
        return [r.warning for r in self.records if r.warning]

    def run(self, actions: Sequence[Action]) -> List[ActionRecord]:
        self.records = [ActionRecord(action_id=a.action_id, kind=a.kind) for a in actions]

        for i, action in enumerate(actions):
            self.current = i
            rec = self.records[i]

            # Re-validate: an earlier action may have satisfied this one already.
            if action.is_satisfied(self.ctx.prober()):
                logger.info("Skipping %s (already satisfied)", action.action_id)
                rec.status = ActionStatus.SKIPPED
            else:
                self._run_one(action, rec)

            if self.stop_after is not None and action.action_id == self.stop_after:
                logger.info("Stopping after %s", self.stop_after)
                break

        self.current = None
        return self.records

    def _run_one(self, action: Action, rec: ActionRecord) -> None:
        logger.info("Running %s", action.action_id)
        rec.status = ActionStatus.RUNNING
        try:
            self.ctx.env = action.run(self.ctx)
        except Exception as e:
            rec.status = ActionStatus.FAILED
            rec.error = str(e)
            logger.error("Action %s failed: %s", action.action_id, e)
            raise ActionFailedError(action.action_id, str(e)) from e
        rec.status = ActionStatus.SUCCEEDED

        verify = getattr(action, "verify", None)
        if verify is None or self.ctx.dry_run:
            return
        if not verify(self.ctx.prober()):
            rec.warning = f"{action.action_id} completed but its post-check did not pass"
            logger.warning("%s; the new tool may need a fresh shell or a PATH update", rec.warning)
