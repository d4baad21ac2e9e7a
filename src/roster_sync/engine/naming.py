import re
from typing import Optional

from ..config import EmailFormat, YearFormat

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_NON_ALPHA = re.compile(r"[^a-z]")


def normalize_name(first_name: str, last_name: str) -> str:
    """Leaf segment of a student's org path, e.g. ``Mary-Jane O'Brien`` -> ``maryjane.obrien``."""
    first = _NON_ALNUM.sub("", first_name.lower())
    last = _NON_ALNUM.sub("", last_name.lower())
    return f"{first}.{last}"


def derive_email(
    first_name: str,
    last_name: str,
    graduation_year: int,
    domain: str,
    email_format: Optional[EmailFormat] = None,
) -> str:
    email_format = email_format or EmailFormat()
    first = _NON_ALPHA.sub("", first_name.lower())
    last = _NON_ALPHA.sub("", last_name.lower())

    year = str(graduation_year)
    if email_format.year_format == YearFormat.TWO_DIGIT:
        year = year[-2:]

    return f"{first}.{last}{email_format.separator}{year}@{domain}"
