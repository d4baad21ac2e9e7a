from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from .models import StudentRecord
from .naming import normalize_name
from .paths import GRADE_TABLE, graduation_year_for_grade


@dataclass
class ValidationError:
    severity: str  # "error" or "warning"
    message: str

    def __repr__(self) -> str:
        return f"[{self.severity.upper()}] {self.message}"


class RosterValidator:
    """Cross-record checks that a row-level parser cannot make."""

    def validate(
        self, students: List[StudentRecord], as_of: Optional[date] = None
    ) -> List[ValidationError]:
        errors: List[ValidationError] = []

        # Duplicate student ids would make id-based matching ambiguous
        seen = set()
        for student in students:
            if student.student_id in seen:
                errors.append(
                    ValidationError("error", f"Duplicate Student ID: {student.student_id}")
                )
            seen.add(student.student_id)

        seen_emails: Dict[str, str] = {}
        for student in students:
            if not student.email:
                continue
            key = student.email.lower()
            if key in seen_emails:
                errors.append(
                    ValidationError(
                        "error",
                        f"Email {student.email} used by {seen_emails[key]} and {student.student_id}",
                    )
                )
            else:
                seen_emails[key] = student.student_id

        # Students sharing a name and class land on the same org path
        by_leaf: Dict[tuple, List[str]] = defaultdict(list)
        for student in students:
            leaf = normalize_name(student.first_name, student.last_name)
            by_leaf[(student.graduation_year, leaf)].append(student.student_id)
        for (year, leaf), ids in by_leaf.items():
            if len(ids) > 1:
                errors.append(
                    ValidationError(
                        "warning",
                        f"Students {', '.join(ids)} share the org path leaf {year}/{leaf}",
                    )
                )

        for student in students:
            grade = student.grade.strip().upper()
            if grade == "UNKNOWN":
                continue
            if grade not in GRADE_TABLE:
                errors.append(
                    ValidationError(
                        "warning", f"Student {student.student_id} has unknown grade {student.grade}"
                    )
                )
                continue
            expected = graduation_year_for_grade(grade, as_of)
            if expected != student.graduation_year:
                errors.append(
                    ValidationError(
                        "warning",
                        f"Student {student.student_id} is in grade {student.grade} "
                        f"(graduates {expected}) but has graduation year {student.graduation_year}",
                    )
                )

        return errors
