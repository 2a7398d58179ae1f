"""Value coercion shared by the expression evaluator, builtins and conditions."""

import json
import re
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from smartform.errors import OperandTypeError

_NUMERIC = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")
_INTEGER = re.compile(r"^\s*[+-]?\d+\s*$")

DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%d %b %Y",
    "%b %d, %Y",
    "%a, %d %b %Y %H:%M:%S %Z",
]


def is_number(value: Any) -> bool:
    """True for int/float/Decimal values (booleans excluded)."""
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def is_numeric_string(value: Any) -> bool:
    return isinstance(value, str) and bool(_NUMERIC.match(value))


def to_number(value: Any) -> int | float:
    """Coerce a number or numeric string.

    Raises:
        OperandTypeError: If the value has no numeric interpretation
    """
    if is_number(value):
        return float(value) if isinstance(value, Decimal) else value
    if isinstance(value, bool):
        return int(value)
    if is_numeric_string(value):
        if _INTEGER.match(value):
            return int(value)
        return float(value)
    raise OperandTypeError(f"Cannot convert {type_name(value)} {value!r} to a number")


def to_datetime(value: Any) -> datetime | None:
    """Interpret a value as a point in time, or None when it is not one."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if is_number(value):
        # Epoch seconds
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def truthy(value: Any) -> bool:
    """JavaScript-like truthiness.

    None, False, 0, empty strings and empty collections are false; every
    other value is true.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) > 0
    return True


def is_empty(value: Any) -> bool:
    """None, or a zero-length string, sequence or mapping."""
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) == 0
    return False


def values_equal(left: Any, right: Any, case_sensitive: bool = True) -> bool:
    """Structural equality with number and date coercion."""
    if left is None or right is None:
        return left is None and right is None

    # Booleans only equal booleans, never 1 or 0
    if isinstance(left, bool) != isinstance(right, bool):
        return False

    if is_number(left) and is_number(right):
        return float(left) == float(right)

    # Form inputs often carry numbers as text
    if (is_number(left) and is_numeric_string(right)) or (
        is_numeric_string(left) and is_number(right)
    ):
        return float(to_number(left)) == float(to_number(right))

    if isinstance(left, (date, datetime)) and isinstance(right, (date, datetime)):
        return _comparable(to_datetime(left)) == _comparable(to_datetime(right))

    if isinstance(left, str) and isinstance(right, str) and not case_sensitive:
        return left.casefold() == right.casefold()

    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(
            values_equal(a, b, case_sensitive) for a, b in zip(left, right)
        )

    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(
            values_equal(left[k], right[k], case_sensitive) for k in left
        )

    return left == right


def compare(left: Any, right: Any, allow_strings: bool = True) -> int:
    """Order two values, returning -1, 0 or 1.

    Numbers (and numeric strings) compare numerically; otherwise both sides
    are tried as points in time; otherwise two strings compare lexically when
    allow_strings is set.

    Raises:
        OperandTypeError: If the values have no common ordering
    """
    if _is_numeric_like(left) and _is_numeric_like(right):
        return _sign(float(to_number(left)) - float(to_number(right)))

    left_time = to_datetime(left)
    right_time = to_datetime(right)
    if left_time is not None and right_time is not None:
        a, b = _comparable(left_time), _comparable(right_time)
        return (a > b) - (a < b)

    if allow_strings and isinstance(left, str) and isinstance(right, str):
        return (left > right) - (left < right)

    raise OperandTypeError(
        f"Cannot compare {type_name(left)} {left!r} and {type_name(right)} {right!r}"
    )


def to_display(value: Any) -> str:
    """String form used when a fragment is embedded in surrounding text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def type_name(value: Any) -> str:
    """Expression-language name for a value's type."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _is_numeric_like(value: Any) -> bool:
    return is_number(value) or is_numeric_string(value)


def _comparable(value: datetime | None) -> datetime | None:
    # Naive values are taken as UTC so they order against aware ones
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _sign(diff: float) -> int:
    if diff < 0:
        return -1
    if diff > 0:
        return 1
    return 0
