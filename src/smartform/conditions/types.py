"""Condition tree types.

A condition is one of a closed set of variants, tagged by ConditionType:
simple(field, operator, value), and(children), or(children), not(child),
exists(field) and expression(text). The boundary shape used in schema files
is `{type, field?, operator?, value?, conditions?, expression?}`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from smartform.errors import StructuralError, StructuralIssue


class ConditionType(str, Enum):
    SIMPLE = "simple"
    AND = "and"
    OR = "or"
    NOT = "not"
    EXISTS = "exists"
    EXPRESSION = "expression"


@dataclass(frozen=True)
class Condition:
    """Base class for condition variants."""

    type: ClassVar[ConditionType]

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def from_dict(data: Any, path: str = "") -> Condition:
        return condition_from_dict(data, path)


@dataclass(frozen=True)
class SimpleCondition(Condition):
    """Compare a field (or `${}` expression) with a value using an operator."""

    type: ClassVar[ConditionType] = ConditionType.SIMPLE

    field: str
    operator: str = "eq"
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "field": self.field,
            "operator": self.operator,
            "value": self.value,
        }


@dataclass(frozen=True)
class AndCondition(Condition):
    type: ClassVar[ConditionType] = ConditionType.AND

    conditions: tuple[Condition, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass(frozen=True)
class OrCondition(Condition):
    type: ClassVar[ConditionType] = ConditionType.OR

    conditions: tuple[Condition, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass(frozen=True)
class NotCondition(Condition):
    """Negation; well-formed only with exactly one child."""

    type: ClassVar[ConditionType] = ConditionType.NOT

    conditions: tuple[Condition, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, condition: Condition) -> NotCondition:
        return cls((condition,))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass(frozen=True)
class ExistsCondition(Condition):
    """True when the field is present and non-empty."""

    type: ClassVar[ConditionType] = ConditionType.EXISTS

    field: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "field": self.field}


@dataclass(frozen=True)
class ExpressionCondition(Condition):
    """Truthiness of an expression (wrapped in `${}` when bare)."""

    type: ClassVar[ConditionType] = ConditionType.EXPRESSION

    expression: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "expression": self.expression}


def condition_from_dict(data: Any, path: str = "") -> Condition:
    """Build a condition tree from its boundary shape.

    A bare string is shorthand for an expression condition. A mapping without
    `type` is a simple condition when it names a field, an expression
    condition when it has `expression`.

    Raises:
        StructuralError: Unknown type, or a value that is not a mapping
    """
    if isinstance(data, Condition):
        return data
    if isinstance(data, str):
        return ExpressionCondition(data)
    if not isinstance(data, dict):
        raise StructuralError(
            "Invalid condition",
            [StructuralIssue(path, f"expected a mapping, got {type(data).__name__}")],
        )

    raw_type = data.get("type")
    if raw_type is None:
        raw_type = "expression" if "expression" in data and "field" not in data else "simple"

    try:
        kind = ConditionType(str(raw_type).lower())
    except ValueError:
        raise StructuralError(
            "Invalid condition",
            [StructuralIssue(_join(path, "type"), f"unknown condition type '{raw_type}'")],
        )

    if kind == ConditionType.SIMPLE:
        return SimpleCondition(
            field=str(data.get("field") or ""),
            operator=str(data.get("operator") or ""),
            value=data.get("value"),
        )
    if kind == ConditionType.EXISTS:
        return ExistsCondition(field=str(data.get("field") or ""))
    if kind == ConditionType.EXPRESSION:
        return ExpressionCondition(expression=str(data.get("expression") or ""))

    raw_children = data.get("conditions") or []
    if not isinstance(raw_children, list):
        raise StructuralError(
            "Invalid condition",
            [StructuralIssue(_join(path, "conditions"), "expected a list")],
        )
    children = tuple(
        condition_from_dict(child, f"{_join(path, 'conditions')}[{i}]")
        for i, child in enumerate(raw_children)
    )
    if kind == ConditionType.AND:
        return AndCondition(children)
    if kind == ConditionType.OR:
        return OrCondition(children)
    return NotCondition(children)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name
