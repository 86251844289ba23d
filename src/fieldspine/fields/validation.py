"""
Field value validation.

Manifesto:
    Validation failures are data, not exceptions.  A field validates a
    candidate value into an ordered list of human-readable messages that
    a form can display as-is; an empty list means valid.

Order of checks:
    1. required + empty           → ``["{name} is required"]``, stop
    2. empty (not required)       → ``[]``, stop
    3. type check                 (email, url, integer, number, date, datetime)
    4. declared rules, in order   (min, max, minLength, maxLength, pattern,
                                   regex, in, notIn; unknown rules warn)
    5. settings constraints       (max_length, min_length, max, min, pattern)
    6. cardinality                (too many values for a multi-valued field)

    Steps 3 to 6 accumulate: every check runs and appends its messages.
    For list values steps 3 to 5 run once per item; a message already
    reported for an earlier item is not repeated.

Examples:
    >>> validate_value("Email", FieldType.EMAIL, None, required=True)
    ['Email is required']
    >>> validate_value("Email", FieldType.EMAIL, "not-an-email", required=True)
    ['Please enter a valid email address']
    >>> validate_value("Age", FieldType.INTEGER, "7", rules={"min": 18})
    ['Value must be at least 18']

Tags:
    validation, fields, forms, fieldspine
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from fieldspine.core.logging import get_logger
from fieldspine.core.timestamps import parse_date, parse_datetime
from fieldspine.fields.types import FieldType
from fieldspine.fields.values import is_empty

logger = get_logger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one or more values."""

    errors: tuple[str, ...] = ()

    @classmethod
    def success(cls) -> ValidationResult:
        return cls()

    @classmethod
    def failure(cls, errors: str | Iterable[str]) -> ValidationResult:
        return cls((errors,) if isinstance(errors, str) else tuple(errors))

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def merge(self, other: ValidationResult) -> ValidationResult:
        return ValidationResult(self.errors + other.errors)

    def __bool__(self) -> bool:
        return self.is_valid


# ── Primitive checks ─────────────────────────────────────────────────────


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(_EMAIL_RE.match(value))


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


def compile_regex(expression: str) -> re.Pattern[str]:
    """Compile a pattern, accepting ``/body/flags`` delimited notation."""
    if len(expression) >= 2 and expression[0] == "/" and expression.rfind("/") > 0:
        end = expression.rfind("/")
        body, modifiers = expression[1:end], expression[end + 1 :]
        flags = 0
        for modifier in modifiers:
            flags |= _REGEX_FLAGS.get(modifier, 0)
        return re.compile(body, flags)
    return re.compile(expression)


def _matches(expression: str, value: str) -> bool | None:
    try:
        return compile_regex(expression).search(value) is not None
    except re.error as exc:
        logger.warning("validation.invalid_pattern", pattern=expression, error=str(exc))
        return None


def _type_errors(field_type: FieldType, value: Any) -> list[str]:
    match field_type:
        case FieldType.EMAIL:
            return [] if is_valid_email(value) else ["Please enter a valid email address"]
        case FieldType.URL:
            return [] if is_valid_url(value) else ["Please enter a valid URL"]
        case FieldType.INTEGER:
            number = _number(value)
            return [] if number is not None and number.is_integer() else ["Please enter a valid integer"]
        case FieldType.FLOAT | FieldType.DECIMAL:
            return [] if _number(value) is not None else ["Please enter a valid number"]
        case FieldType.DATE:
            return [] if parse_date(value) is not None else ["Please enter a valid date"]
        case FieldType.DATETIME:
            return [] if parse_datetime(value) is not None else ["Please enter a valid date and time"]
        case _:
            return []


def _below(value: Any, bound: Any) -> bool:
    number, limit = _number(value), _number(bound)
    return number is not None and limit is not None and number < limit


def _above(value: Any, bound: Any) -> bool:
    number, limit = _number(value), _number(bound)
    return number is not None and limit is not None and number > limit


# ── Declared rules ───────────────────────────────────────────────────────


def apply_rule(rule: str, param: Any, value: Any) -> list[str]:
    """Messages produced by one declared validation rule."""
    match rule:
        case "min":
            return [f"Value must be at least {param}"] if _below(value, param) else []
        case "max":
            return [f"Value must be at most {param}"] if _above(value, param) else []
        case "minLength":
            return [f"Minimum length is {param} characters"] if isinstance(value, str) and len(value) < int(param) else []
        case "maxLength":
            return [f"Maximum length is {param} characters"] if isinstance(value, str) and len(value) > int(param) else []
        case "pattern":
            if isinstance(value, str) and _matches(str(param), value) is False:
                return ["Value does not match the required pattern"]
            return []
        case "regex":
            if isinstance(value, str) and _matches(str(param), value) is False:
                return ["Value does not match the required format"]
            return []
        case "in":
            if isinstance(param, list | tuple | set) and value not in param:
                return ["Value must be one of: " + ", ".join(str(p) for p in param)]
            return []
        case "notIn":
            if isinstance(param, list | tuple | set) and value in param:
                return ["Value is not allowed"]
            return []
        case _:
            logger.warning("validation.unknown_rule", rule=rule)
            return []


def _settings_errors(settings: Mapping[str, Any], value: Any) -> list[str]:
    errors: list[str] = []
    max_length = settings.get("max_length")
    if max_length is not None and isinstance(value, str) and len(value) > int(max_length):
        errors.append(f"Maximum length is {max_length} characters")
    min_length = settings.get("min_length")
    if min_length is not None and isinstance(value, str) and len(value) < int(min_length):
        errors.append(f"Minimum length is {min_length} characters")
    maximum = settings.get("max")
    if maximum is not None and _above(value, maximum):
        errors.append(f"Value must be at most {maximum}")
    minimum = settings.get("min")
    if minimum is not None and _below(value, minimum):
        errors.append(f"Value must be at least {minimum}")
    pattern = settings.get("pattern")
    if pattern is not None and isinstance(value, str) and _matches(str(pattern), value) is False:
        errors.append("Value does not match the required pattern")
    return errors


def validate_value(
    name: str,
    field_type: FieldType,
    value: Any,
    *,
    required: bool = False,
    rules: Mapping[str, Any] | None = None,
    settings: Mapping[str, Any] | None = None,
    max_values: int | None = None,
) -> list[str]:
    """Validate *value* for a field; returns messages in check order."""
    if is_empty(value):
        return [f"{name} is required"] if required else []

    items = list(value) if isinstance(value, list | tuple) else [value]
    errors: list[str] = []
    for item in items:
        if is_empty(item):
            continue
        found = _type_errors(field_type, item)
        for rule, param in (rules or {}).items():
            found.extend(apply_rule(rule, param, item))
        found.extend(_settings_errors(settings or {}, item))
        # repeats within one item stay; later items only add new messages
        reported = set(errors)
        errors.extend(message for message in found if message not in reported)
    if max_values is not None and isinstance(value, list | tuple) and len(value) > max_values:
        errors.append(f"At most {max_values} values are allowed")
    return errors


__all__ = [
    "ValidationResult",
    "apply_rule",
    "compile_regex",
    "is_valid_email",
    "is_valid_url",
    "validate_value",
]
