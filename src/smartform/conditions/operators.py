"""Simple-condition operators and their accepted spellings."""

from enum import Enum


class Operator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"
    IN = "in"
    NOT_IN = "not_in"
    EMPTY = "empty"
    NOT_EMPTY = "not_empty"
    EXISTS = "exists"


ALIASES: dict[str, Operator] = {
    "eq": Operator.EQ,
    "equals": Operator.EQ,
    "==": Operator.EQ,
    "neq": Operator.NEQ,
    "ne": Operator.NEQ,
    "not_eq": Operator.NEQ,
    "not_equals": Operator.NEQ,
    "!=": Operator.NEQ,
    "gt": Operator.GT,
    ">": Operator.GT,
    "gte": Operator.GTE,
    ">=": Operator.GTE,
    "lt": Operator.LT,
    "<": Operator.LT,
    "lte": Operator.LTE,
    "<=": Operator.LTE,
    "contains": Operator.CONTAINS,
    "starts_with": Operator.STARTS_WITH,
    "startswith": Operator.STARTS_WITH,
    "ends_with": Operator.ENDS_WITH,
    "endswith": Operator.ENDS_WITH,
    "regex": Operator.REGEX,
    "matches": Operator.REGEX,
    "in": Operator.IN,
    "not_in": Operator.NOT_IN,
    "empty": Operator.EMPTY,
    "is_empty": Operator.EMPTY,
    "not_empty": Operator.NOT_EMPTY,
    "exists": Operator.EXISTS,
}

# Result when the field has no value at all
MISSING_RESULTS = {
    Operator.NEQ: True,
    Operator.NOT_IN: True,
    Operator.EMPTY: True,
}


def normalize_operator(name: str) -> Operator | None:
    """Canonical operator for a spelling, or None if unknown."""
    return ALIASES.get(name.strip().lower()) if isinstance(name, str) else None
