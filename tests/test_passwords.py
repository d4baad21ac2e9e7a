import string

import pytest

from conftest import make_student
from roster_sync.config import (
    ConfigError,
    PrefixStudentIdPassword,
    RandomPassword,
    TemplatePassword,
)
from roster_sync.engine.passwords import SYMBOLS, generate_password


class TestPrefixPassword:
    @pytest.mark.parametrize(
        "student_id, expected",
        [
            ("STU0001", "lh000001"),
            ("12345", "lh002345"),
            ("NO_NUMBERS", "lh000000"),
            ("7", "lh000007"),
        ],
    )
    def test_default_prefix(self, student_id, expected):
        assert generate_password(make_student(student_id=student_id)) == expected

    def test_is_deterministic(self):
        student = make_student(student_id="STU0042")
        strategy = PrefixStudentIdPassword()
        assert generate_password(student, strategy) == generate_password(student, strategy)

    def test_custom_prefix(self):
        password = generate_password(make_student(student_id="A1234"), PrefixStudentIdPassword("Go!"))
        assert password == "Go!1234"


class TestRandomPassword:
    def test_length_and_character_set(self):
        strategy = RandomPassword(length=20, include_uppercase=False, include_numbers=False)
        password = generate_password(make_student(), strategy)
        assert len(password) == 20
        assert set(password) <= set(string.ascii_lowercase)

    def test_symbols_only(self):
        strategy = RandomPassword(
            include_uppercase=False, include_lowercase=False, include_numbers=False, include_symbols=True
        )
        assert set(generate_password(make_student(), strategy)) <= set(SYMBOLS)

    def test_zero_length_is_config_error(self):
        with pytest.raises(ConfigError, match="must be positive"):
            generate_password(make_student(), RandomPassword(length=0))

    def test_no_character_sets_is_config_error(self):
        strategy = RandomPassword(
            include_uppercase=False, include_lowercase=False, include_numbers=False
        )
        with pytest.raises(ConfigError):
            generate_password(make_student(), strategy)


class TestTemplatePassword:
    def test_substitutes_placeholders(self):
        student = make_student(student_id="STU001", first_name="John", last_name="Doe")
        strategy = TemplatePassword("{firstInitial}{lastName}{graduationYear}-{studentId}")
        assert generate_password(student, strategy) == "jdoe2028-STU001"

    def test_empty_pattern_is_config_error(self):
        with pytest.raises(ConfigError):
            generate_password(make_student(), TemplatePassword(""))
