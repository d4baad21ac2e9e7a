import asyncio
import logging
import time
from datetime import date
from typing import Callable, List, Optional, Sequence

from ..config import PasswordStrategy
from ..engine.matcher import EmailResolver, record_email
from ..engine.models import Action, ActionResult, ActionType, ExternalId, StudentRecord
from ..engine.passwords import generate_password

logger = logging.getLogger(__name__)


class ActionError(RuntimeError):
    pass


class PlanExecutor:
    """Applies a plan against the directory in fixed-size concurrent batches.

    Each batch runs concurrently and the next batch starts only after the
    whole batch has finished. A failing action is recorded in its own
    ActionResult; it never cancels the other actions.
    """

    def __init__(
        self,
        directory,
        password_strategy: Optional[PasswordStrategy] = None,
        email_for: Optional[EmailResolver] = None,
        concurrency_limit: int = 10,
        today: Callable[[], date] = date.today,
    ):
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self._directory = directory
        self._password_strategy = password_strategy
        self._email_for = email_for or record_email
        self._concurrency_limit = concurrency_limit
        self._today = today
        self._handlers = {
            ActionType.CREATE: self._create,
            ActionType.MOVE: self._move,
            ActionType.DEACTIVATE: self._deactivate,
            ActionType.UPDATE: self._update,
            ActionType.MOVE_DEVICE: self._move_device,
        }

    def run(self, actions: Sequence[Action]) -> List[ActionResult]:
        return asyncio.run(self.execute(actions))

    async def execute(self, actions: Sequence[Action]) -> List[ActionResult]:
        results: List[ActionResult] = []
        size = self._concurrency_limit
        for start in range(0, len(actions), size):
            batch = actions[start:start + size]
            logger.debug(f"Executing actions {start + 1}-{start + len(batch)} of {len(actions)}")
            results.extend(await asyncio.gather(*(self._execute_one(a) for a in batch)))
        return results

    async def _execute_one(self, action: Action) -> ActionResult:
        start = time.monotonic()
        logger.info(f"Executing {action.type.value} for {action.student.label}")
        try:
            await asyncio.to_thread(self._handlers[action.type], action)
        except Exception as e:
            logger.error(f"Failed to {action.type.value} {action.student.label}: {e}")
            return ActionResult(
                action=action,
                success=False,
                error=e,
                duration_seconds=round(time.monotonic() - start, 2),
            )
        return ActionResult(
            action=action,
            success=True,
            duration_seconds=round(time.monotonic() - start, 2),
        )

    def new_account_draft(self, student: StudentRecord, target_path: str) -> dict:
        email = self._email_for(student)
        if not email:
            raise ActionError(f"No email address for student {student.student_id}")
        return {
            "primaryEmail": email,
            "name": {"givenName": student.first_name, "familyName": student.last_name},
            "password": generate_password(student, self._password_strategy),
            "changePasswordAtNextLogin": True,
            "orgUnitPath": target_path,
            "externalIds": [ExternalId.for_student(student.student_id).to_api()],
            "customSchemas": {
                "student_info": {
                    "graduation_year": str(student.graduation_year),
                    "enrollment_date": student.enrollment_date or self._today().isoformat(),
                    "parent_email": student.parent_email or "",
                }
            },
        }

    def _create(self, action: Action) -> None:
        self._directory.create_account(self.new_account_draft(action.student, action.target_path))

    def _move(self, action: Action) -> None:
        if action.account is None:
            raise ActionError("Current account not provided for move action")
        self._directory.move_account(action.account.primary_email, action.target_path)

    def _deactivate(self, action: Action) -> None:
        if action.account is None:
            raise ActionError("Current account not provided for deactivate action")
        self._directory.suspend_account(action.account.primary_email)

    def _update(self, action: Action) -> None:
        if action.account is None:
            raise ActionError("Current account not provided for update action")
        external_ids = [e for e in action.account.external_ids if not e.is_student_id]
        external_ids.append(ExternalId.for_student(action.student.student_id))
        self._directory.update_account(
            action.account.primary_email,
            {"externalIds": [e.to_api() for e in external_ids]},
        )

    def _move_device(self, action: Action) -> None:
        if action.device is None or not action.device.device_id:
            raise ActionError("Current device or device ID not provided for move device action")
        self._directory.move_device(action.device.device_id, action.target_path)
