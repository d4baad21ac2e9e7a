from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SchoolLevel(Enum):
    ELEMENTARY = "elementary"
    MIDDLE = "middle"
    HIGH = "high"


class StudentStatus(Enum):
    ACTIVE = "active"
    GRADUATED = "graduated"
    TRANSFERRED = "transferred"


class ActionType(Enum):
    CREATE = "create"
    MOVE = "move"
    DEACTIVATE = "deactivate"
    UPDATE = "update"
    MOVE_DEVICE = "move_device"


STUDENT_ID_TYPE = "custom"
STUDENT_ID_CUSTOM_TYPE = "student_id"


@dataclass(frozen=True)
class StudentRecord:
    """One row of the enrollment roster, already validated by ingestion."""

    student_id: str
    first_name: str
    last_name: str
    graduation_year: int
    grade: str = "unknown"
    email: Optional[str] = None
    enrollment_date: Optional[str] = None
    parent_email: Optional[str] = None
    status: Optional[StudentStatus] = None
    device_serial: Optional[str] = None

    @property
    def label(self) -> str:
        return self.email or self.student_id

    @classmethod
    def placeholder_for(cls, account: "DirectoryAccount") -> "StudentRecord":
        """Stand-in record for a directory account the roster does not know."""
        return cls(
            student_id=account.id or "unknown",
            first_name=account.given_name,
            last_name=account.family_name,
            graduation_year=0,
            email=account.primary_email,
        )


@dataclass(frozen=True)
class ExternalId:
    value: str
    type: str
    custom_type: Optional[str] = None

    @property
    def is_student_id(self) -> bool:
        return self.type == STUDENT_ID_TYPE and self.custom_type == STUDENT_ID_CUSTOM_TYPE

    def to_api(self) -> dict:
        data = {"value": self.value, "type": self.type}
        if self.custom_type:
            data["customType"] = self.custom_type
        return data

    @classmethod
    def for_student(cls, student_id: str) -> "ExternalId":
        return cls(value=student_id, type=STUDENT_ID_TYPE, custom_type=STUDENT_ID_CUSTOM_TYPE)


@dataclass(frozen=True)
class DirectoryAccount:
    """Maps the fields of an Admin SDK user resource the sync cares about."""

    primary_email: str
    given_name: str = ""
    family_name: str = ""
    org_unit_path: str = ""
    suspended: bool = False
    external_ids: List[ExternalId] = field(default_factory=list)
    custom_schemas: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    id: Optional[str] = None

    def student_ids(self) -> List[str]:
        return [e.value for e in self.external_ids if e.is_student_id]


@dataclass(frozen=True)
class DirectoryDevice:
    serial_number: str
    org_unit_path: str = ""
    device_id: Optional[str] = None


@dataclass(frozen=True)
class OrgNode:
    name: str
    org_unit_path: str
    parent_org_unit_path: str = ""


@dataclass(frozen=True)
class ParsedPath:
    """Pieces recovered from an org path; all empty for paths outside the root."""

    school_level: Optional[SchoolLevel] = None
    graduation_year: Optional[int] = None
    leaf: Optional[str] = None


@dataclass(frozen=True)
class Action:
    type: ActionType
    student: StudentRecord
    target_path: str
    reason: str
    account: Optional[DirectoryAccount] = None
    device: Optional[DirectoryDevice] = None


@dataclass
class ActionResult:
    """Outcome of executing a single action."""

    action: Action
    success: bool
    error: Optional[BaseException] = None
    duration_seconds: float = 0.0

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


@dataclass
class SyncSummary:
    run_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    results: List[ActionResult] = field(default_factory=list)
    planned: int = 0
    cancelled: bool = False
    org_node_errors: List[str] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.results)

    @property
    def counts(self) -> Dict[ActionType, int]:
        """Successful actions per type; every type is present."""
        counts = {t: 0 for t in ActionType}
        for r in self.results:
            if r.success:
                counts[r.action.type] += 1
        return counts

    @property
    def failures(self) -> List[ActionResult]:
        return [r for r in self.results if not r.success]

    @property
    def error_count(self) -> int:
        return len(self.failures)

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return round((self.end_time - self.start_time).total_seconds(), 2)


class PlanMode(Enum):
    ALL = "all"
    CREATE_ONLY = "create-only"
    MOVE_ONLY = "move-only"
    DEACTIVATE_ONLY = "deactivate-only"

    @property
    def action_type(self) -> Optional[ActionType]:
        return {
            PlanMode.CREATE_ONLY: ActionType.CREATE,
            PlanMode.MOVE_ONLY: ActionType.MOVE,
            PlanMode.DEACTIVATE_ONLY: ActionType.DEACTIVATE,
        }.get(self)
