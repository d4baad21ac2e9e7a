import logging
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .matcher import EmailResolver, IdentityMatcher, record_email
from .models import (
    Action,
    ActionType,
    DirectoryAccount,
    DirectoryDevice,
    PlanMode,
    StudentRecord,
    StudentStatus,
)
from .paths import OrgPathDeriver, student_status

logger = logging.getLogger(__name__)

NOT_IN_ROSTER = "not found in roster"
NEW_STUDENT = "new student"


class ActionPlanner:
    """Diffs the roster against a directory snapshot and derives the actions to apply.

    The planner is pure: it never calls the directory and never mutates its
    inputs, so planning twice against the same snapshots gives the same plan.
    Actions come out in pass order (accounts, roster, devices) and the mode
    filter runs last.
    """

    def __init__(
        self,
        deriver: OrgPathDeriver,
        mode: PlanMode = PlanMode.ALL,
        email_for: Optional[EmailResolver] = None,
        backfill_external_ids: bool = False,
    ):
        self._deriver = deriver
        self._mode = mode
        self._email_for = email_for or record_email
        self._backfill_external_ids = backfill_external_ids

    def plan(
        self,
        roster: Sequence[StudentRecord],
        accounts: Iterable[DirectoryAccount],
        devices: Mapping[str, DirectoryDevice],
        as_of: Optional[date] = None,
    ) -> List[Action]:
        as_of = as_of or date.today()
        matcher = IdentityMatcher(roster, email_for=self._email_for)
        processed_emails: Set[str] = set()

        actions = self._plan_accounts(accounts, matcher, processed_emails, as_of)
        actions.extend(self._plan_creates(roster, processed_emails, as_of))
        actions.extend(self._plan_devices(roster, devices, as_of))
        return self._apply_mode(actions)

    def simulate(
        self, roster: Sequence[StudentRecord], as_of: Optional[date] = None
    ) -> List[Action]:
        """Plan against an empty directory, for dry runs without credentials."""
        as_of = as_of or date.today()
        actions: List[Action] = []
        for student in roster:
            status = student_status(student, as_of)
            target = self._deriver.student_path(student, as_of)
            if status == StudentStatus.ACTIVE:
                actions.append(
                    Action(ActionType.CREATE, student, target, f"{NEW_STUDENT} (simulated)")
                )
                if student.device_serial:
                    actions.append(
                        Action(
                            ActionType.MOVE_DEVICE,
                            student,
                            target,
                            f"Move device {student.device_serial} to student path (simulated)",
                        )
                    )
            else:
                actions.append(
                    Action(ActionType.DEACTIVATE, student, target, f"{status.value} (simulated)")
                )
        return self._apply_mode(actions)

    def _plan_accounts(
        self,
        accounts: Iterable[DirectoryAccount],
        matcher: IdentityMatcher,
        processed_emails: Set[str],
        as_of: date,
    ) -> List[Action]:
        actions: List[Action] = []
        for account in accounts:
            processed_emails.add(account.primary_email.lower())
            student = matcher.match(account)

            if student is None:
                if self._deriver.is_active_student_path(account.org_unit_path) and not account.suspended:
                    actions.append(
                        Action(
                            ActionType.DEACTIVATE,
                            StudentRecord.placeholder_for(account),
                            account.org_unit_path,
                            NOT_IN_ROSTER,
                            account=account,
                        )
                    )
                continue

            # Matched by external id under another address; not a new student
            email = self._email_for(student)
            if email:
                processed_emails.add(email.lower())

            status = student_status(student, as_of)
            if status != StudentStatus.ACTIVE:
                if not account.suspended:
                    actions.append(
                        Action(
                            ActionType.DEACTIVATE,
                            student,
                            account.org_unit_path,
                            status.value,
                            account=account,
                        )
                    )
                continue

            target = self._deriver.student_path(student, as_of)
            if account.org_unit_path != target:
                actions.append(
                    Action(
                        ActionType.MOVE,
                        student,
                        target,
                        f"Move from {account.org_unit_path or 'unknown'} to {target}",
                        account=account,
                    )
                )
            if self._backfill_external_ids and student.student_id not in account.student_ids():
                actions.append(
                    Action(
                        ActionType.UPDATE,
                        student,
                        target,
                        "missing student_id external id",
                        account=account,
                    )
                )
        return actions

    def _plan_creates(
        self,
        roster: Sequence[StudentRecord],
        processed_emails: Set[str],
        as_of: date,
    ) -> List[Action]:
        actions: List[Action] = []
        for student in roster:
            if student_status(student, as_of) != StudentStatus.ACTIVE:
                continue
            email = self._email_for(student)
            if not email or email.lower() in processed_emails:
                continue
            actions.append(
                Action(
                    ActionType.CREATE,
                    student,
                    self._deriver.student_path(student, as_of),
                    NEW_STUDENT,
                )
            )
        return actions

    def _plan_devices(
        self,
        roster: Sequence[StudentRecord],
        devices: Mapping[str, DirectoryDevice],
        as_of: date,
    ) -> List[Action]:
        actions: List[Action] = []
        for student in roster:
            if not student.device_serial:
                continue

            device = devices.get(student.device_serial)
            if device is None:
                logger.warning(
                    f"Device {student.device_serial} not found for student {student.student_id}"
                )
                continue

            if student_status(student, as_of) != StudentStatus.ACTIVE:
                continue

            target = self._deriver.student_path(student, as_of)
            if device.org_unit_path != target:
                actions.append(
                    Action(
                        ActionType.MOVE_DEVICE,
                        student,
                        target,
                        f"Move device from {device.org_unit_path or 'unknown'} to {target}",
                        device=device,
                    )
                )
        return actions

    def _apply_mode(self, actions: List[Action]) -> List[Action]:
        wanted = self._mode.action_type
        if wanted is None:
            return actions
        return [a for a in actions if a.type == wanted]


def count_by_type(actions: Iterable[Action]) -> Dict[ActionType, int]:
    counts = {t: 0 for t in ActionType}
    for action in actions:
        counts[action.type] += 1
    return counts
