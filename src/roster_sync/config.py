import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .engine.models import PlanMode

DEFAULT_OU_ROOT = "/org/student"
LEGACY_PASSWORD_PREFIX = "lh00"

CONFIG_FILE_CANDIDATES = (Path("config/config.json"), Path("config.json"))


class ConfigError(ValueError):
    pass


class YearFormat(Enum):
    TWO_DIGIT = "two-digit"
    FOUR_DIGIT = "four-digit"


@dataclass(frozen=True)
class EmailFormat:
    year_format: YearFormat = YearFormat.FOUR_DIGIT
    separator: str = ""


@dataclass(frozen=True)
class PrefixStudentIdPassword:
    prefix: str = LEGACY_PASSWORD_PREFIX


@dataclass(frozen=True)
class RandomPassword:
    length: int = 12
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = False

    def validate(self) -> None:
        if self.length < 1:
            raise ConfigError(f"Random password length must be positive, got {self.length}")
        if not (
            self.include_uppercase
            or self.include_lowercase
            or self.include_numbers
            or self.include_symbols
        ):
            raise ConfigError("No character sets enabled for random password generation")


@dataclass(frozen=True)
class TemplatePassword:
    pattern: str


PasswordStrategy = Union[PrefixStudentIdPassword, RandomPassword, TemplatePassword]


def password_strategy_from_dict(data: dict) -> PasswordStrategy:
    """Parse the ``passwordConfig`` block of config.json."""
    kind = data.get("type")
    if kind == "prefix_studentid":
        return PrefixStudentIdPassword(prefix=data.get("prefix") or LEGACY_PASSWORD_PREFIX)
    if kind == "random":
        raw_length = data.get("length") or 12
        try:
            length = int(raw_length)
        except (TypeError, ValueError):
            raise ConfigError(f"Random password length must be an integer, got {raw_length!r}") from None
        strategy = RandomPassword(
            length=length,
            include_uppercase=data.get("includeUppercase", True) is not False,
            include_lowercase=data.get("includeLowercase", True) is not False,
            include_numbers=data.get("includeNumbers", True) is not False,
            include_symbols=bool(data.get("includeSymbols", False)),
        )
        strategy.validate()
        return strategy
    if kind == "custom_function":
        pattern = data.get("customPattern")
        if not pattern:
            raise ConfigError("Custom pattern not provided for custom_function password type")
        return TemplatePassword(pattern=pattern)
    raise ConfigError(f"Unknown password type: {kind!r}")


def email_format_from_dict(data: dict) -> EmailFormat:
    raw = data.get("graduationYearFormat", YearFormat.FOUR_DIGIT.value)
    try:
        year_format = YearFormat(raw)
    except ValueError:
        raise ConfigError(f"Unknown graduation year format: {raw!r}") from None
    return EmailFormat(year_format=year_format, separator=data.get("separator") or "")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def load_config_file(candidates: Sequence[Path] = CONFIG_FILE_CANDIDATES) -> dict:
    """Return the first readable JSON config file, or an empty dict."""
    for path in candidates:
        if not path.is_file():
            continue
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Top-level JSON in {path} must be an object")
        return data
    return {}


@dataclass
class Config:
    # Google Workspace service account with domain-wide delegation
    service_account_key_file: str = ""
    domain: str = ""
    delegated_user: str = ""

    # Roster input
    roster_file: Path = field(default_factory=lambda: Path("students.csv"))

    # Run behaviour
    dry_run: bool = False
    log_level: str = "info"
    mode: PlanMode = PlanMode.ALL
    max_concurrent_requests: int = 10
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    confirmation_threshold: int = 10
    enable_backup: bool = False
    backup_dir: Path = field(default_factory=lambda: Path("./backups"))

    # Naming and credentials for new accounts
    ou_root: str = DEFAULT_OU_ROOT
    password_prefix: Optional[str] = None
    password_strategy: Optional[PasswordStrategy] = None
    email_format: EmailFormat = field(default_factory=EmailFormat)
    generate_missing_emails: bool = False
    backfill_external_ids: bool = False

    @classmethod
    def from_env(cls, config_file: Optional[dict] = None) -> "Config":
        extra = load_config_file() if config_file is None else config_file

        password_strategy = None
        if extra.get("passwordConfig"):
            password_strategy = password_strategy_from_dict(extra["passwordConfig"])
        email_format = EmailFormat()
        if extra.get("emailConfig"):
            email_format = email_format_from_dict(extra["emailConfig"])

        return cls(
            service_account_key_file=os.environ.get("GOOGLE_SERVICE_ACCOUNT_KEY_FILE", ""),
            domain=os.environ.get("GOOGLE_DOMAIN", ""),
            delegated_user=os.environ.get("GOOGLE_DELEGATED_USER", ""),
            roster_file=Path(os.environ.get("STUDENT_CSV_FILE", "students.csv")),
            dry_run=_env_bool("DRY_RUN"),
            log_level=os.environ.get("LOG_LEVEL", "info"),
            max_concurrent_requests=_env_int("MAX_CONCURRENT_REQUESTS", 10),
            retry_attempts=_env_int("RETRY_ATTEMPTS", 3),
            retry_delay_ms=_env_int("RETRY_DELAY_MS", 1000),
            confirmation_threshold=_env_int("REQUIRE_CONFIRMATION_THRESHOLD", 10),
            enable_backup=_env_bool("ENABLE_BACKUP"),
            backup_dir=Path(os.environ.get("BACKUP_DIR", "./backups")),
            ou_root=extra.get("ouRoot") or DEFAULT_OU_ROOT,
            password_prefix=os.environ.get("PASSWORD_PREFIX") or None,
            password_strategy=password_strategy,
            email_format=email_format,
            generate_missing_emails=bool(extra.get("generateMissingEmails", False)),
            backfill_external_ids=bool(extra.get("backfillExternalIds", False)),
        )

    @property
    def effective_password_strategy(self) -> PasswordStrategy:
        if self.password_strategy is not None:
            return self.password_strategy
        return PrefixStudentIdPassword(prefix=self.password_prefix or LEGACY_PASSWORD_PREFIX)

    def missing_credentials(self) -> List[str]:
        missing = []
        if not self.service_account_key_file:
            missing.append("GOOGLE_SERVICE_ACCOUNT_KEY_FILE")
        if not self.domain:
            missing.append("GOOGLE_DOMAIN")
        if not self.delegated_user:
            missing.append("GOOGLE_DELEGATED_USER")
        return missing

    def validate(self) -> None:
        """Raise ConfigError for settings that would fail mid-run."""
        if self.max_concurrent_requests < 1:
            raise ConfigError("MAX_CONCURRENT_REQUESTS must be at least 1")
        if self.confirmation_threshold < 0:
            raise ConfigError("REQUIRE_CONFIRMATION_THRESHOLD must not be negative")
        if isinstance(self.password_strategy, RandomPassword):
            self.password_strategy.validate()
        if self.generate_missing_emails and not self.domain:
            raise ConfigError("generateMissingEmails requires GOOGLE_DOMAIN")

    def redacted(self) -> dict:
        """Settings safe to write to the log."""
        return {
            "service_account_key_file": "***" if self.service_account_key_file else "",
            "domain": self.domain,
            "delegated_user": self.delegated_user,
            "roster_file": str(self.roster_file),
            "dry_run": self.dry_run,
            "mode": self.mode.value,
            "max_concurrent_requests": self.max_concurrent_requests,
            "retry_attempts": self.retry_attempts,
            "confirmation_threshold": self.confirmation_threshold,
            "enable_backup": self.enable_backup,
            "ou_root": self.ou_root,
            "password_strategy": type(self.effective_password_strategy).__name__,
            "email_format": self.email_format.year_format.value,
        }
