"""Org path derivation for student accounts and devices.

Paths have the shape ``{root}/{school level}/{graduation year}/{first.last}``.
The container paths above the leaf are valid org nodes in their own right.
"""

from datetime import date
from typing import Dict, Iterable, Optional, Set, Tuple

from .models import ParsedPath, SchoolLevel, StudentRecord, StudentStatus
from .naming import normalize_name

DEFAULT_ROOT = "/org/student"

# The school year rolls over in June.
SCHOOL_YEAR_END_MONTH = 6

INACTIVE_BRANCHES = ("hidden_aliases", "archived", "suspended")

GRADE_TABLE: Dict[str, Tuple[SchoolLevel, int]] = {
    "4K": (SchoolLevel.ELEMENTARY, -1),
    "K": (SchoolLevel.ELEMENTARY, 0),
    "1": (SchoolLevel.ELEMENTARY, 1),
    "2": (SchoolLevel.ELEMENTARY, 2),
    "3": (SchoolLevel.ELEMENTARY, 3),
    "4": (SchoolLevel.ELEMENTARY, 4),
    "5": (SchoolLevel.ELEMENTARY, 5),
    "6": (SchoolLevel.MIDDLE, 6),
    "7": (SchoolLevel.MIDDLE, 7),
    "8": (SchoolLevel.MIDDLE, 8),
    "9": (SchoolLevel.HIGH, 9),
    "10": (SchoolLevel.HIGH, 10),
    "11": (SchoolLevel.HIGH, 11),
    "12": (SchoolLevel.HIGH, 12),
}


class InvalidGradeError(ValueError):
    pass


def current_school_year(as_of: Optional[date] = None) -> int:
    as_of = as_of or date.today()
    if as_of.month < SCHOOL_YEAR_END_MONTH:
        return as_of.year - 1
    return as_of.year


def derive_school_level(graduation_year: int, as_of: Optional[date] = None) -> SchoolLevel:
    years_left = graduation_year - current_school_year(as_of)
    if years_left <= 4:
        return SchoolLevel.HIGH
    if years_left <= 7:
        return SchoolLevel.MIDDLE
    return SchoolLevel.ELEMENTARY


def _grade_entry(grade: str) -> Tuple[SchoolLevel, int]:
    entry = GRADE_TABLE.get(grade.strip().upper())
    if entry is None:
        raise InvalidGradeError(f"Invalid grade: {grade}")
    return entry


def school_level_for_grade(grade: str) -> SchoolLevel:
    return _grade_entry(grade)[0]


def grade_number(grade: str) -> int:
    return _grade_entry(grade)[1]


def graduation_year_for_grade(grade: str, as_of: Optional[date] = None) -> int:
    return current_school_year(as_of) + (12 - grade_number(grade)) + 1


def student_status(student: StudentRecord, as_of: Optional[date] = None) -> StudentStatus:
    """Explicit roster status wins; otherwise graduated once June of the graduation year arrives."""
    if student.status is not None:
        return student.status
    as_of = as_of or date.today()
    graduated = student.graduation_year < as_of.year or (
        student.graduation_year == as_of.year and as_of.month >= SCHOOL_YEAR_END_MONTH
    )
    return StudentStatus.GRADUATED if graduated else StudentStatus.ACTIVE


class OrgPathDeriver:
    """Builds and parses org paths under a configurable root."""

    def __init__(self, root: str = DEFAULT_ROOT):
        self.root = "/" + root.strip("/") if root.strip("/") else ""

    def school_level_path(self, level: SchoolLevel) -> str:
        return f"{self.root}/{level.value}"

    def graduation_year_path(self, level: SchoolLevel, graduation_year: int) -> str:
        return f"{self.school_level_path(level)}/{graduation_year}"

    def student_path(self, student: StudentRecord, as_of: Optional[date] = None) -> str:
        level = derive_school_level(student.graduation_year, as_of)
        leaf = normalize_name(student.first_name, student.last_name)
        return f"{self.graduation_year_path(level, student.graduation_year)}/{leaf}"

    def parse(self, path: str) -> ParsedPath:
        if not self.is_student_path(path):
            return ParsedPath()

        parts = [p for p in path[len(self.root):].split("/") if p]
        level = None
        year = None
        leaf = None
        if parts:
            try:
                level = SchoolLevel(parts[0])
            except ValueError:
                level = None
        if len(parts) >= 2 and parts[1].isdigit():
            year = int(parts[1])
        if len(parts) >= 3:
            leaf = parts[2]
        return ParsedPath(school_level=level, graduation_year=year, leaf=leaf)

    def is_student_path(self, path: str) -> bool:
        if not path:
            return False
        return path == self.root or path.startswith(self.root + "/")

    def is_active_student_path(self, path: str) -> bool:
        if not self.is_student_path(path):
            return False
        return not any(branch in path for branch in INACTIVE_BRANCHES)

    def required_paths(
        self, students: Iterable[StudentRecord], as_of: Optional[date] = None
    ) -> Set[str]:
        """Every container and leaf path the active part of the roster needs."""
        required: Set[str] = set()
        for student in students:
            if student_status(student, as_of) != StudentStatus.ACTIVE:
                continue
            level = derive_school_level(student.graduation_year, as_of)
            required.add(self.school_level_path(level))
            required.add(self.graduation_year_path(level, student.graduation_year))
            required.add(self.student_path(student, as_of))
        return required
