import re
import secrets
import string
from typing import Optional

from ..config import (
    LEGACY_PASSWORD_PREFIX,
    ConfigError,
    PasswordStrategy,
    PrefixStudentIdPassword,
    RandomPassword,
    TemplatePassword,
)
from .models import StudentRecord

SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

_NON_DIGIT = re.compile(r"\D")


def prefixed_student_id(student_id: str, prefix: str = LEGACY_PASSWORD_PREFIX) -> str:
    """``prefix`` + last four digits of the id, zero padded (``STU001`` -> ``lh000001``)."""
    digits = _NON_DIGIT.sub("", student_id)
    return f"{prefix}{digits[-4:].zfill(4)}"


def random_password(strategy: RandomPassword) -> str:
    strategy.validate()
    chars = ""
    if strategy.include_uppercase:
        chars += string.ascii_uppercase
    if strategy.include_lowercase:
        chars += string.ascii_lowercase
    if strategy.include_numbers:
        chars += string.digits
    if strategy.include_symbols:
        chars += SYMBOLS
    return "".join(secrets.choice(chars) for _ in range(strategy.length))


def templated_password(student: StudentRecord, pattern: str) -> str:
    if not pattern:
        raise ConfigError("Custom pattern not provided for custom_function password type")
    values = {
        "{firstName}": student.first_name.lower(),
        "{lastName}": student.last_name.lower(),
        "{studentId}": student.student_id,
        "{graduationYear}": str(student.graduation_year),
        "{firstInitial}": student.first_name[:1].lower(),
        "{lastInitial}": student.last_name[:1].lower(),
    }
    password = pattern
    for placeholder, value in values.items():
        password = password.replace(placeholder, value)
    return password


def generate_password(
    student: StudentRecord, strategy: Optional[PasswordStrategy] = None
) -> str:
    if strategy is None:
        strategy = PrefixStudentIdPassword()

    if isinstance(strategy, PrefixStudentIdPassword):
        return prefixed_student_id(student.student_id, strategy.prefix or LEGACY_PASSWORD_PREFIX)
    if isinstance(strategy, RandomPassword):
        return random_password(strategy)
    if isinstance(strategy, TemplatePassword):
        return templated_password(student, strategy.pattern)
    raise TypeError(f"Unsupported password strategy: {type(strategy).__name__}")
