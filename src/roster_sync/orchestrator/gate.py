import logging
import sys
from typing import Callable, Iterable

from ..engine.models import Action, ActionType

logger = logging.getLogger(__name__)

Confirm = Callable[[int], bool]


def interactive_confirm(count: int) -> bool:
    """Ask on the terminal; refuses when stdin is not a TTY."""
    if not sys.stdin.isatty():
        logger.warning("No terminal available to confirm bulk deactivation")
        return False
    try:
        answer = input(f'Type "yes" to confirm deactivation of {count} users: ')
    except EOFError:
        return False
    return answer.strip().lower() == "yes"


def always_confirm(count: int) -> bool:
    return True


def never_confirm(count: int) -> bool:
    return False


class DeactivationGate:
    """Holds back a plan whose deactivation count exceeds the threshold until confirmed."""

    def __init__(self, threshold: int, confirm: Confirm = interactive_confirm):
        self._threshold = threshold
        self._confirm = confirm

    def check(self, actions: Iterable[Action]) -> bool:
        count = sum(1 for a in actions if a.type == ActionType.DEACTIVATE)
        if count <= self._threshold:
            return True

        logger.warning(f"About to deactivate {count} users (threshold {self._threshold})")
        logger.warning("This action requires manual confirmation")
        confirmed = self._confirm(count)
        if not confirmed:
            logger.info("Bulk deactivation cancelled")
        return confirmed
