"""Parses the student information system export into StudentRecords."""

import csv
import io
import logging
import re
from datetime import date
from enum import IntEnum
from pathlib import Path
from typing import List, Optional

from .models import StudentRecord, StudentStatus

logger = logging.getLogger(__name__)

EXPECTED_COLUMNS = 12
MAX_YEARS_AHEAD = 15

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TRUTHY = {"true", "yes", "1"}


class Column(IntEnum):
    CUR_SCHOOL_NAME = 0
    STU_LEGAL_FIRST = 1
    STU_LEGAL_LAST = 2
    CUR_SCHOOL_NAME_DUPLICATE = 3
    CUR_SCHOOL_CODE = 4
    ENTITY_ID = 5
    STUDENT_ID = 6
    SCHL_EMAIL_ADDR = 7
    GRADUATED = 8
    STUDENT_GRADE = 9
    PROP_GRAD_DATE = 10
    STU_GRAD_YR = 11
    DEVICE_SERIAL = 12


HEADERS = [
    "Cur School Name",
    "Stu Legal First",
    "Stu Legal Last",
    "Cur School Name",
    "Cur School Code",
    "Entity ID",
    "Student ID",
    "Schl Email Addr",
    "Graduated",
    "Student Grade",
    "Prop Grad Date",
    "Stu Grad Yr",
    "Device Serial",
]


class RosterError(ValueError):
    pass


class RosterParser:
    def __init__(self, has_headers: bool = True, today: Optional[date] = None):
        self._has_headers = has_headers
        self._today = today

    def parse_file(self, path: Path) -> List[StudentRecord]:
        try:
            text = path.read_text(encoding="utf-8-sig")
        except FileNotFoundError:
            raise RosterError(f"CSV file not found: {path}") from None
        students = self.parse_text(text)
        logger.info(f"Loaded {len(students)} student(s) from {path}")
        return students

    def parse_text(self, text: str) -> List[StudentRecord]:
        rows = [r for r in csv.reader(io.StringIO(text.strip())) if any(c.strip() for c in r)]
        if not rows:
            raise RosterError("CSV file is empty")

        data_rows = rows[1:] if self._has_headers else rows
        if not data_rows:
            raise RosterError("No data rows found in CSV")

        first_row = 2 if self._has_headers else 1
        students = []
        for offset, row in enumerate(data_rows):
            row_number = first_row + offset
            try:
                students.append(self._to_record(row))
            except ValueError as e:
                raise RosterError(f"Error parsing row {row_number}: {e}") from e
        return students

    def _to_record(self, row: List[str]) -> StudentRecord:
        if len(row) < EXPECTED_COLUMNS:
            raise ValueError(f"Expected {EXPECTED_COLUMNS} columns, got {len(row)}")
        cells = [c.strip() for c in row]

        def cell(column: Column) -> str:
            return cells[column] if column < len(cells) else ""

        status = None
        if cell(Column.GRADUATED).lower() in _TRUTHY:
            status = StudentStatus.GRADUATED

        email = cell(Column.SCHL_EMAIL_ADDR)
        return StudentRecord(
            student_id=_required(cell(Column.STUDENT_ID), "Student ID"),
            first_name=_required(cell(Column.STU_LEGAL_FIRST), "Stu Legal First"),
            last_name=_required(cell(Column.STU_LEGAL_LAST), "Stu Legal Last"),
            grade=cell(Column.STUDENT_GRADE) or "unknown",
            graduation_year=self._graduation_year(cell(Column.STU_GRAD_YR)),
            email=_email(email) if email else None,
            enrollment_date=cell(Column.PROP_GRAD_DATE) or None,
            status=status,
            device_serial=cell(Column.DEVICE_SERIAL) or None,
        )

    def _graduation_year(self, raw: str) -> int:
        try:
            year = int(raw)
        except ValueError:
            raise ValueError(f"Invalid graduation year: {raw}") from None

        current = (self._today or date.today()).year
        if not current <= year <= current + MAX_YEARS_AHEAD:
            raise ValueError(
                f"Graduation year {year} is out of range ({current}-{current + MAX_YEARS_AHEAD})"
            )
        return year


def _required(value: str, field_name: str) -> str:
    if not value:
        raise ValueError(f"{field_name} is required")
    return value


def _email(value: str) -> str:
    email = value.lower()
    if not _EMAIL_RE.match(email):
        raise ValueError(f"Invalid email format: {value}")
    return email


def sample_roster() -> str:
    rows = [
        HEADERS,
        ["Example High", "John", "Doe", "Example High", "EH01", "ENT001", "STU001",
         "john.doe2028@school.edu", "false", "9", "2028-06-15", "2028", "CHR001234567"],
        ["Example Middle", "Jane", "Smith", "Example Middle", "EM01", "ENT002", "STU002",
         "jane.smith2031@school.edu", "false", "6", "2031-06-15", "2031", "CHR002345678"],
        ["Example High", "Bob", "Johnson", "Example High", "EH01", "ENT003", "STU003",
         "bob.johnson2027@school.edu", "false", "11", "2027-06-15", "2027", "CHR003456789"],
        ["Example Elementary", "Alice", "Williams", "Example Elementary", "EE01", "ENT004",
         "STU004", "", "false", "4K", "2039-06-15", "2039", ""],
    ]
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerows(rows)
    return buf.getvalue()
