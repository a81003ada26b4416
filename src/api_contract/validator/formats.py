"""Validators for the ``format`` tag of scalar schemas.

Unknown formats are accepted without a check, as OpenAPI formats are an
open set.
"""

import re
import uuid
from datetime import date, datetime, time
from typing import Any, Callable
from urllib.parse import urlparse

FormatChecker = Callable[[Any], bool]

_DATE_TIME = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

INT32_RANGE = (-(2**31), 2**31 - 1)
INT64_RANGE = (-(2**63), 2**63 - 1)


def _parses(parser: Callable[[str], Any], value: str) -> bool:
    try:
        parser(value)
    except ValueError:
        return False
    return True


def is_date_time(value: Any) -> bool:
    """RFC 3339 timestamp; a timezone designator is mandatory."""
    if not isinstance(value, str) or not _DATE_TIME.match(value):
        return False
    normalized = value.replace(" ", "T").replace("t", "T")
    if normalized[-1] in "Zz":
        normalized = normalized[:-1] + "+00:00"
    return _parses(datetime.fromisoformat, normalized)


def is_date(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 10 and _parses(date.fromisoformat, value)


def is_time(value: Any) -> bool:
    return isinstance(value, str) and _parses(time.fromisoformat, value.rstrip("Zz"))


def is_email(value: Any) -> bool:
    return isinstance(value, str) and bool(_EMAIL.match(value))


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and _parses(uuid.UUID, value)


def is_uri(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return bool(parsed.scheme and (parsed.netloc or parsed.path))


def _in_range(bounds: tuple[int, int]) -> FormatChecker:
    low, high = bounds
    return lambda value: isinstance(value, int) and low <= value <= high


FORMAT_CHECKERS: dict[str, FormatChecker] = {
    "date-time": is_date_time,
    "date": is_date,
    "time": is_time,
    "email": is_email,
    "uuid": is_uuid,
    "uri": is_uri,
    "int32": _in_range(INT32_RANGE),
    "int64": _in_range(INT64_RANGE),
}


def register_format(name: str, checker: FormatChecker) -> None:
    """Add or replace the validator for a format tag."""
    FORMAT_CHECKERS[name] = checker


def check_format(name: str, value: Any) -> bool:
    checker = FORMAT_CHECKERS.get(name)
    return checker is None or checker(value)
