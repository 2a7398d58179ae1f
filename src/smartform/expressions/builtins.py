"""Built-in functions for the expression language.

Every new Registry registers these unless built with include_builtins=False.

Categories:
- Logic: if, eq, ne, gt, gte, lt, lte, and, or, not
- Math: add, subtract, multiply, divide, mod, round, abs, min, max
- String: concat, format, length, substring, toLower, toUpper, trim,
  startsWith, endsWith, contains, matches, split, replace
- Collection: join, first, last, count
- Conversion: toString, toNumber, toBool
- Null handling: default, coalesce, isEmpty
- Date: now, today, formatDate, addDays, daysBetween

`if` and `forEach` are evaluated lazily by the Evaluator; their entries here
document them and let `if` be called like any other function.
"""

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from smartform.errors import OperandTypeError
from smartform.expressions.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionParameter,
)
from smartform.expressions.values import (
    compare,
    is_empty,
    to_datetime,
    to_display,
    to_number,
    truthy,
    values_equal,
)

if TYPE_CHECKING:
    from smartform.expressions.registry import Registry


def register_builtins(registry: "Registry") -> None:
    """Register all built-in functions on a registry."""
    for definitions in (
        _logic_functions(),
        _math_functions(),
        _string_functions(),
        _collection_functions(),
        _conversion_functions(),
        _null_functions(),
        _date_functions(),
    ):
        for definition in definitions:
            registry.register_definition(definition)


def _param(name: str, type_: str, description: str = "", **kwargs: Any) -> FunctionParameter:
    return FunctionParameter(name, type_, description, **kwargs)


# -----------------------------------------------------------------------------
# Logic Functions
# -----------------------------------------------------------------------------


def _if(condition: Any, then: Any, otherwise: Any = None) -> Any:
    return then if truthy(condition) else otherwise


def _for_each(*args: Any) -> Any:
    raise OperandTypeError("forEach must be written inline in an expression")


def _and(*args: Any) -> bool:
    return all(truthy(a) for a in args)


def _or(*args: Any) -> bool:
    return any(truthy(a) for a in args)


def _logic_functions() -> list[FunctionDefinition]:
    pair = [_param("left", "any", "First value"), _param("right", "any", "Second value")]
    return [
        FunctionDefinition(
            name="if",
            implementation=_if,
            description="Returns the second argument when the first is truthy, else the third",
            category=FunctionCategory.LOGIC,
            parameters=[
                _param("condition", "boolean", "Value tested for truthiness"),
                _param("then", "any", "Result when truthy"),
                _param("else", "any", "Result when falsy", required=False),
            ],
            examples=['${if(age >= 18, "adult", "minor")}'],
        ),
        FunctionDefinition(
            name="forEach",
            implementation=_for_each,
            description="Evaluates body for each item of a list (or key/value of an object) and concatenates the results",
            category=FunctionCategory.LOGIC,
            parameters=[
                _param("item", "name", "Loop variable"),
                _param("index", "name", "Index variable", required=False),
                _param("collection", "array|object", "Items to iterate"),
                _param("body", "any", "Expression evaluated per item"),
            ],
            return_type="string",
            examples=['${forEach(item, items, concat(item.name, ", "))}'],
        ),
        FunctionDefinition(
            name="eq",
            implementation=values_equal,
            description="Tests two values for equality",
            category=FunctionCategory.LOGIC,
            parameters=pair,
            return_type="boolean",
            examples=['${eq(status, "active")}'],
        ),
        FunctionDefinition(
            name="ne",
            implementation=lambda a, b: not values_equal(a, b),
            description="Tests two values for inequality",
            category=FunctionCategory.LOGIC,
            parameters=pair,
            return_type="boolean",
        ),
        FunctionDefinition(
            name="gt",
            implementation=lambda a, b: compare(a, b) > 0,
            description="Tests whether the first value is greater than the second",
            category=FunctionCategory.LOGIC,
            parameters=pair,
            return_type="boolean",
            examples=["${gt(age, 17)}"],
        ),
        FunctionDefinition(
            name="gte",
            implementation=lambda a, b: compare(a, b) >= 0,
            description="Tests whether the first value is greater than or equal to the second",
            category=FunctionCategory.LOGIC,
            parameters=pair,
            return_type="boolean",
        ),
        FunctionDefinition(
            name="lt",
            implementation=lambda a, b: compare(a, b) < 0,
            description="Tests whether the first value is less than the second",
            category=FunctionCategory.LOGIC,
            parameters=pair,
            return_type="boolean",
        ),
        FunctionDefinition(
            name="lte",
            implementation=lambda a, b: compare(a, b) <= 0,
            description="Tests whether the first value is less than or equal to the second",
            category=FunctionCategory.LOGIC,
            parameters=pair,
            return_type="boolean",
        ),
        FunctionDefinition(
            name="and",
            implementation=_and,
            description="True when every argument is truthy",
            category=FunctionCategory.LOGIC,
            parameters=[_param("values", "any", "Values to test", variadic=True)],
            return_type="boolean",
        ),
        FunctionDefinition(
            name="or",
            implementation=_or,
            description="True when any argument is truthy",
            category=FunctionCategory.LOGIC,
            parameters=[_param("values", "any", "Values to test", variadic=True)],
            return_type="boolean",
        ),
        FunctionDefinition(
            name="not",
            implementation=lambda value: not truthy(value),
            description="Negates the truthiness of a value",
            category=FunctionCategory.LOGIC,
            parameters=[_param("value", "any", "Value to negate")],
            return_type="boolean",
        ),
    ]


# -----------------------------------------------------------------------------
# Math Functions
# -----------------------------------------------------------------------------


def _add(*args: Any) -> int | float:
    return sum(to_number(a) for a in args)


def _subtract(left: Any, right: Any) -> int | float:
    return to_number(left) - to_number(right)


def _multiply(*args: Any) -> int | float:
    result: int | float = 1
    for a in args:
        result *= to_number(a)
    return result


def _divide(left: Any, right: Any) -> float:
    divisor = to_number(right)
    if divisor == 0:
        raise OperandTypeError("Division by zero")
    return to_number(left) / divisor


def _mod(left: Any, right: Any) -> int | float:
    divisor = to_number(right)
    if divisor == 0:
        raise OperandTypeError("Modulo by zero")
    return to_number(left) % divisor


def _round(value: Any, decimals: Any = 0) -> int | float:
    """Round half away from zero."""
    number = to_number(value)
    places = int(to_number(decimals))
    shift = 10 ** places
    rounded = math.floor(abs(number) * shift + 0.5) / shift
    rounded = math.copysign(rounded, number)
    return int(rounded) if places <= 0 else rounded


def _math_functions() -> list[FunctionDefinition]:
    pair = [_param("left", "number"), _param("right", "number")]
    numbers = [_param("values", "number", "Numbers", variadic=True)]
    return [
        FunctionDefinition(
            name="add",
            implementation=_add,
            description="Sums its arguments",
            category=FunctionCategory.MATH,
            parameters=numbers,
            return_type="number",
            examples=["${add(price, shipping)}"],
        ),
        FunctionDefinition(
            name="subtract",
            implementation=_subtract,
            description="Subtracts the second number from the first",
            category=FunctionCategory.MATH,
            parameters=pair,
            return_type="number",
        ),
        FunctionDefinition(
            name="multiply",
            implementation=_multiply,
            description="Multiplies its arguments",
            category=FunctionCategory.MATH,
            parameters=numbers,
            return_type="number",
            examples=["${multiply(quantity, unitPrice)}"],
        ),
        FunctionDefinition(
            name="divide",
            implementation=_divide,
            description="Divides the first number by the second",
            category=FunctionCategory.MATH,
            parameters=pair,
            return_type="number",
        ),
        FunctionDefinition(
            name="mod",
            implementation=_mod,
            description="Remainder of dividing the first number by the second",
            category=FunctionCategory.MATH,
            parameters=pair,
            return_type="number",
        ),
        FunctionDefinition(
            name="round",
            implementation=_round,
            description="Rounds a number to the given number of decimals",
            category=FunctionCategory.MATH,
            parameters=[
                _param("value", "number", "Number to round"),
                _param("decimals", "number", "Decimal places", required=False),
            ],
            return_type="number",
            examples=["${round(total * 1.15, 2)}"],
        ),
        FunctionDefinition(
            name="abs",
            implementation=lambda value: abs(to_number(value)),
            description="Absolute value",
            category=FunctionCategory.MATH,
            parameters=[_param("value", "number")],
            return_type="number",
        ),
        FunctionDefinition(
            name="min",
            implementation=lambda *args: min(to_number(a) for a in args),
            description="Smallest of its arguments",
            category=FunctionCategory.MATH,
            parameters=numbers,
            return_type="number",
        ),
        FunctionDefinition(
            name="max",
            implementation=lambda *args: max(to_number(a) for a in args),
            description="Largest of its arguments",
            category=FunctionCategory.MATH,
            parameters=numbers,
            return_type="number",
        ),
    ]


# -----------------------------------------------------------------------------
# String Functions
# -----------------------------------------------------------------------------


def _concat(*args: Any) -> str:
    return "".join(to_display(a) for a in args)


def _format(template: Any, *args: Any) -> str:
    """printf-style formatting; %d accepts floats by truncating them."""
    if not isinstance(template, str):
        raise OperandTypeError("format requires a string as its first argument")
    if "%d" in template:
        args = tuple(int(a) if isinstance(a, float) else a for a in args)
    return template % args if args else template


def _length(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    raise OperandTypeError(f"Cannot get length of {type(value).__name__}")


def _substring(value: Any, start: Any, length: Any = None) -> str:
    text = to_display(value)
    begin = max(int(to_number(start)), 0)
    if begin >= len(text):
        return ""
    if length is None:
        return text[begin:]
    return text[begin:begin + max(int(to_number(length)), 0)]


def _matches(value: Any, pattern: str) -> bool:
    if value is None:
        return False
    try:
        return re.search(pattern, to_display(value)) is not None
    except re.error as e:
        raise OperandTypeError(f"Invalid pattern {pattern!r}: {e}")


def _string_functions() -> list[FunctionDefinition]:
    text = [_param("value", "string", "Input string")]
    return [
        FunctionDefinition(
            name="concat",
            implementation=_concat,
            description="Concatenates all arguments as strings",
            category=FunctionCategory.STRING,
            parameters=[_param("values", "any", "Values to join", variadic=True)],
            return_type="string",
            examples=['${concat(firstName, " ", lastName)}'],
        ),
        FunctionDefinition(
            name="format",
            implementation=_format,
            description="printf-style formatting",
            category=FunctionCategory.STRING,
            parameters=[
                _param("template", "string", "Format string"),
                _param("values", "any", "Values to substitute", variadic=True),
            ],
            return_type="string",
            examples=['${format("%s has %d items", name, count)}'],
        ),
        FunctionDefinition(
            name="length",
            implementation=_length,
            description="Length of a string, list or object",
            category=FunctionCategory.STRING,
            parameters=[_param("value", "string|array|object")],
            return_type="number",
        ),
        FunctionDefinition(
            name="substring",
            implementation=_substring,
            description="Part of a string from start, optionally limited to length characters",
            category=FunctionCategory.STRING,
            parameters=[
                _param("value", "string"),
                _param("start", "number"),
                _param("length", "number", required=False),
            ],
            return_type="string",
        ),
        FunctionDefinition(
            name="toLower",
            implementation=lambda value: to_display(value).lower(),
            description="Converts a string to lowercase",
            category=FunctionCategory.STRING,
            parameters=text,
            return_type="string",
        ),
        FunctionDefinition(
            name="toUpper",
            implementation=lambda value: to_display(value).upper(),
            description="Converts a string to uppercase",
            category=FunctionCategory.STRING,
            parameters=text,
            return_type="string",
        ),
        FunctionDefinition(
            name="trim",
            implementation=lambda value: to_display(value).strip(),
            description="Removes whitespace from both ends of a string",
            category=FunctionCategory.STRING,
            parameters=text,
            return_type="string",
        ),
        FunctionDefinition(
            name="startsWith",
            implementation=lambda value, prefix: to_display(value).startswith(to_display(prefix)),
            description="Tests if a string starts with a prefix",
            category=FunctionCategory.STRING,
            parameters=[_param("value", "string"), _param("prefix", "string")],
            return_type="boolean",
        ),
        FunctionDefinition(
            name="endsWith",
            implementation=lambda value, suffix: to_display(value).endswith(to_display(suffix)),
            description="Tests if a string ends with a suffix",
            category=FunctionCategory.STRING,
            parameters=[_param("value", "string"), _param("suffix", "string")],
            return_type="boolean",
        ),
        FunctionDefinition(
            name="contains",
            implementation=lambda value, part: to_display(part) in to_display(value),
            description="Tests if a string contains a substring",
            category=FunctionCategory.STRING,
            parameters=[_param("value", "string"), _param("part", "string")],
            return_type="boolean",
        ),
        FunctionDefinition(
            name="matches",
            implementation=_matches,
            description="Tests if a string matches a regular expression",
            category=FunctionCategory.STRING,
            parameters=[_param("value", "string"), _param("pattern", "string")],
            return_type="boolean",
            examples=['${matches(zip, "^[0-9]{5}$")}'],
        ),
        FunctionDefinition(
            name="split",
            implementation=lambda value, separator: to_display(value).split(to_display(separator)),
            description="Splits a string on a separator",
            category=FunctionCategory.STRING,
            parameters=[_param("value", "string"), _param("separator", "string")],
            return_type="array<string>",
        ),
        FunctionDefinition(
            name="replace",
            implementation=lambda value, old, new: to_display(value).replace(
                to_display(old), to_display(new)
            ),
            description="Replaces every occurrence of a substring",
            category=FunctionCategory.STRING,
            parameters=[
                _param("value", "string"),
                _param("old", "string"),
                _param("new", "string"),
            ],
            return_type="string",
        ),
    ]


# -----------------------------------------------------------------------------
# Collection Functions
# -----------------------------------------------------------------------------


def _as_list(value: Any, function: str) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    raise OperandTypeError(f"{function} requires an array")


def _join(values: Any, separator: Any = ", ") -> str:
    return to_display(separator).join(to_display(v) for v in _as_list(values, "join"))


def _first(values: Any) -> Any:
    items = _as_list(values, "first")
    return items[0] if items else None


def _last(values: Any) -> Any:
    items = _as_list(values, "last")
    return items[-1] if items else None


def _collection_functions() -> list[FunctionDefinition]:
    array = [_param("values", "array")]
    return [
        FunctionDefinition(
            name="join",
            implementation=_join,
            description="Joins list items with a separator",
            category=FunctionCategory.COLLECTION,
            parameters=[_param("values", "array"), _param("separator", "string", required=False)],
            return_type="string",
            examples=['${join(tags, ", ")}'],
        ),
        FunctionDefinition(
            name="first",
            implementation=_first,
            description="First item of a list, or null when empty",
            category=FunctionCategory.COLLECTION,
            parameters=array,
        ),
        FunctionDefinition(
            name="last",
            implementation=_last,
            description="Last item of a list, or null when empty",
            category=FunctionCategory.COLLECTION,
            parameters=array,
        ),
        FunctionDefinition(
            name="count",
            implementation=lambda values: len(_as_list(values, "count")),
            description="Number of items in a list",
            category=FunctionCategory.COLLECTION,
            parameters=array,
            return_type="number",
        ),
    ]


# -----------------------------------------------------------------------------
# Conversion Functions
# -----------------------------------------------------------------------------


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return truthy(value)


def _conversion_functions() -> list[FunctionDefinition]:
    value = [_param("value", "any")]
    return [
        FunctionDefinition(
            name="toString",
            implementation=to_display,
            description="String form of a value",
            category=FunctionCategory.CONVERSION,
            parameters=value,
            return_type="string",
        ),
        FunctionDefinition(
            name="toNumber",
            implementation=to_number,
            description="Converts a numeric string to a number",
            category=FunctionCategory.CONVERSION,
            parameters=value,
            return_type="number",
        ),
        FunctionDefinition(
            name="toBool",
            implementation=_to_bool,
            description='Converts to boolean; strings are true for "true", "yes" and "1"',
            category=FunctionCategory.CONVERSION,
            parameters=value,
            return_type="boolean",
        ),
    ]


# -----------------------------------------------------------------------------
# Null Handling Functions
# -----------------------------------------------------------------------------


def _default(value: Any, fallback: Any) -> Any:
    if value is None or value == "":
        return fallback
    return value


def _coalesce(*args: Any) -> Any:
    for arg in args:
        if arg is not None and arg != "":
            return arg
    return None


def _null_functions() -> list[FunctionDefinition]:
    return [
        FunctionDefinition(
            name="default",
            implementation=_default,
            description="The value, or the fallback when the value is null, missing or empty",
            category=FunctionCategory.NULL,
            parameters=[_param("value", "any"), _param("fallback", "any")],
            examples=['${default(user.nickname, user.name)}'],
            null_safe=True,
        ),
        FunctionDefinition(
            name="coalesce",
            implementation=_coalesce,
            description="First argument that is neither null, missing nor empty",
            category=FunctionCategory.NULL,
            parameters=[_param("values", "any", variadic=True)],
            null_safe=True,
        ),
        FunctionDefinition(
            name="isEmpty",
            implementation=is_empty,
            description="True for null, missing, empty strings and empty collections",
            category=FunctionCategory.NULL,
            parameters=[_param("value", "any")],
            return_type="boolean",
            null_safe=True,
        ),
    ]


# -----------------------------------------------------------------------------
# Date Functions
# -----------------------------------------------------------------------------


def _as_datetime(value: Any, function: str) -> datetime:
    result = to_datetime(value)
    if result is None:
        raise OperandTypeError(f"{function} requires a date, got {value!r}")
    return result


def _format_date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    return _as_datetime(value, "formatDate").strftime(fmt)


def _add_days(value: Any, days: Any) -> date | datetime:
    delta = timedelta(days=to_number(days))
    if isinstance(value, (date, datetime)):
        return value + delta
    return _as_datetime(value, "addDays") + delta


def _days_between(start: Any, end: Any) -> int:
    first = _as_datetime(start, "daysBetween").date()
    second = _as_datetime(end, "daysBetween").date()
    return (second - first).days


def _date_functions() -> list[FunctionDefinition]:
    return [
        FunctionDefinition(
            name="now",
            implementation=lambda: datetime.now(timezone.utc),
            description="Current datetime in UTC",
            category=FunctionCategory.DATE,
            return_type="date",
        ),
        FunctionDefinition(
            name="today",
            implementation=date.today,
            description="Current date",
            category=FunctionCategory.DATE,
            return_type="date",
        ),
        FunctionDefinition(
            name="formatDate",
            implementation=_format_date,
            description="Formats a date with a strftime pattern (default %Y-%m-%d)",
            category=FunctionCategory.DATE,
            parameters=[
                _param("value", "date"),
                _param("format", "string", required=False),
            ],
            return_type="string",
            examples=['${formatDate(startDate, "%d/%m/%Y")}'],
        ),
        FunctionDefinition(
            name="addDays",
            implementation=_add_days,
            description="Adds a number of days to a date",
            category=FunctionCategory.DATE,
            parameters=[_param("value", "date"), _param("days", "number")],
            return_type="date",
        ),
        FunctionDefinition(
            name="daysBetween",
            implementation=_days_between,
            description="Whole days from the first date to the second",
            category=FunctionCategory.DATE,
            parameters=[_param("start", "date"), _param("end", "date")],
            return_type="number",
        ),
    ]
