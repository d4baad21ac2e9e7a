from typing import Callable, Dict, Iterable, Optional

from .models import DirectoryAccount, StudentRecord

EmailResolver = Callable[[StudentRecord], Optional[str]]


def record_email(student: StudentRecord) -> Optional[str]:
    return student.email


class IdentityMatcher:
    """Matches directory accounts to roster records.

    Primary key is the primary email (case-insensitive); accounts that do
    not match by email fall back to their ``student_id`` external id.
    """

    def __init__(
        self,
        roster: Iterable[StudentRecord],
        email_for: Optional[EmailResolver] = None,
    ):
        email_for = email_for or record_email
        self._by_email: Dict[str, StudentRecord] = {}
        self._by_student_id: Dict[str, StudentRecord] = {}
        for student in roster:
            email = email_for(student)
            if email:
                self._by_email[email.lower()] = student
            self._by_student_id[student.student_id] = student

    def match(self, account: DirectoryAccount) -> Optional[StudentRecord]:
        student = self._by_email.get(account.primary_email.lower())
        if student is not None:
            return student
        for student_id in account.student_ids():
            student = self._by_student_id.get(student_id)
            if student is not None:
                return student
        return None
