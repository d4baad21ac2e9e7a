import logging
import posixpath
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Sequence

from ..config import Config
from ..engine.matcher import EmailResolver, record_email
from ..engine.models import Action, StudentRecord, SyncSummary
from ..engine.naming import derive_email
from ..engine.paths import OrgPathDeriver
from ..engine.planner import ActionPlanner, count_by_type
from ..engine.validator import RosterValidator
from .backup import write_snapshot
from .executor import PlanExecutor
from .gate import Confirm, DeactivationGate, interactive_confirm

logger = logging.getLogger(__name__)

DETAIL_LIMIT = 20


def email_resolver(config: Config) -> EmailResolver:
    """Record email, or a derived one when ``generateMissingEmails`` is on."""
    if not config.generate_missing_emails:
        return record_email

    def resolve(student: StudentRecord) -> Optional[str]:
        if student.email:
            return student.email
        return derive_email(
            student.first_name,
            student.last_name,
            student.graduation_year,
            config.domain,
            config.email_format,
        )

    return resolve


@dataclass
class RunContext:
    """Everything one run needs besides its inputs."""

    config: Config
    deriver: Optional[OrgPathDeriver] = None
    as_of: date = field(default_factory=date.today)
    confirm: Confirm = interactive_confirm

    def __post_init__(self):
        if self.deriver is None:
            self.deriver = OrgPathDeriver(self.config.ou_root)

    def planner(self) -> ActionPlanner:
        return ActionPlanner(
            self.deriver,
            mode=self.config.mode,
            email_for=email_resolver(self.config),
            backfill_external_ids=self.config.backfill_external_ids,
        )


def check_roster(roster: Sequence[StudentRecord], as_of: Optional[date] = None) -> None:
    errors = RosterValidator().validate(list(roster), as_of)
    blocking = [e for e in errors if e.severity == "error"]
    if blocking:
        for err in blocking:
            logger.error(str(err))
        raise RuntimeError(
            f"Roster validation failed with {len(blocking)} error(s). "
            "Fix them before proceeding."
        )
    for warn in [e for e in errors if e.severity == "warning"]:
        logger.warning(str(warn))


def log_plan(actions: Sequence[Action]) -> None:
    counts = count_by_type(actions)
    logger.info(f"Planned {len(actions)} action(s)")
    for action_type, count in counts.items():
        if count:
            logger.info(f"  {action_type.value}: {count}")
    if len(actions) <= DETAIL_LIMIT:
        for action in actions:
            logger.info(
                f"  - {action.type.value.upper()}: {action.student.label} -> "
                f"{action.target_path} ({action.reason})"
            )


def log_summary(summary: SyncSummary) -> None:
    if summary.cancelled:
        logger.warning(f"Run {summary.run_id} cancelled: {summary.planned} action(s) not applied")
        return

    counts = ", ".join(f"{t.value} {n}" for t, n in summary.counts.items())
    logger.info(
        f"Run {summary.run_id} complete in {summary.duration_seconds}s: "
        f"{summary.total_processed} processed, {summary.error_count} failed ({counts})"
    )
    for result in summary.failures:
        action = result.action
        logger.error(f"  FAILED {action.type.value} {action.student.label}: {result.error_message}")
    for error in summary.org_node_errors:
        logger.error(f"  FAILED org unit: {error}")


class SyncPipeline:
    """Full run: snapshot the directory, plan, gate, apply."""

    def __init__(self, directory, roster: Sequence[StudentRecord], context: RunContext):
        self._directory = directory
        self._roster = list(roster)
        self._context = context

    def run(self) -> SyncSummary:
        config = self._context.config
        deriver = self._context.deriver
        as_of = self._context.as_of
        summary = SyncSummary(run_id=str(uuid.uuid4())[:8], start_time=datetime.now())

        check_roster(self._roster, as_of)

        # Step 1: Snapshot the directory
        logger.info(f"Fetching accounts under {deriver.root}...")
        accounts = self._directory.list_accounts(deriver.root)
        serials = [s.device_serial for s in self._roster if s.device_serial]
        devices = self._directory.find_devices(serials) if serials else {}

        # Step 2: Backup
        if config.enable_backup:
            write_snapshot(config.backup_dir, summary.run_id, accounts, devices.values())

        # Step 3: Org units the roster needs
        if not config.dry_run:
            summary.org_node_errors = self.ensure_org_nodes()

        # Step 4: Plan
        actions = self._context.planner().plan(self._roster, accounts, devices, as_of)
        summary.planned = len(actions)
        log_plan(actions)

        if config.dry_run:
            logger.info("Dry run: no changes applied")
            summary.end_time = datetime.now()
            return summary

        # Step 5: Bulk-deactivation gate
        gate = DeactivationGate(config.confirmation_threshold, self._context.confirm)
        if not gate.check(actions):
            summary.cancelled = True
            summary.end_time = datetime.now()
            log_summary(summary)
            return summary

        # Step 6: Apply
        logger.info(f"Starting run {summary.run_id}: {len(actions)} action(s)")
        executor = PlanExecutor(
            self._directory,
            password_strategy=config.effective_password_strategy,
            email_for=email_resolver(config),
            concurrency_limit=config.max_concurrent_requests,
        )
        summary.results = executor.run(actions)
        summary.end_time = datetime.now()
        log_summary(summary)
        return summary

    def ensure_org_nodes(self) -> List[str]:
        """Create missing org units for the active roster, parents first.

        Returns one message per org unit that could not be created.
        """
        deriver = self._context.deriver
        required = deriver.required_paths(self._roster, self._context.as_of)
        try:
            nodes = self._directory.list_org_nodes(deriver.root)
        except Exception as e:
            # Unknown directory state; leave creation to the next run
            logger.error(f"Failed to list org units under {deriver.root}: {e}")
            return [f"{deriver.root}: listing failed: {e}"]
        existing = {n.org_unit_path for n in nodes}
        existing.add(deriver.root)

        errors: List[str] = []
        failed: List[str] = []
        for path in sorted(required - existing, key=lambda p: (p.count("/"), p)):
            parent, name = posixpath.split(path)
            if any(parent == f or parent.startswith(f + "/") for f in failed):
                errors.append(f"{path}: parent {parent} could not be created")
                failed.append(path)
                continue
            try:
                self._directory.create_org_node(name, parent)
            except Exception as e:
                logger.error(f"Failed to create org unit {path}: {e}")
                errors.append(f"{path}: {e}")
                failed.append(path)
        return errors


class OfflinePipeline:
    """Dry run that needs no directory access.

    Plans every roster record as if the directory were empty.
    """

    def __init__(self, roster: Sequence[StudentRecord], context: RunContext):
        self._roster = list(roster)
        self._context = context

    def run(self) -> SyncSummary:
        summary = SyncSummary(run_id=str(uuid.uuid4())[:8], start_time=datetime.now())
        check_roster(self._roster, self._context.as_of)

        actions = self._context.planner().simulate(self._roster, self._context.as_of)
        summary.planned = len(actions)
        log_plan(actions)
        logger.info("Offline dry run: no directory credentials, no changes applied")
        summary.end_time = datetime.now()
        return summary
