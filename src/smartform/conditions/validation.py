"""Structural validation of condition trees (no evaluation)."""

from typing import Any

from smartform.conditions.operators import normalize_operator
from smartform.conditions.types import (
    AndCondition,
    Condition,
    ExistsCondition,
    ExpressionCondition,
    NotCondition,
    OrCondition,
    SimpleCondition,
)
from smartform.errors import ExpressionSyntaxError, StructuralError, StructuralIssue
from smartform.expressions.template import parse_template, wrap_expression


def condition_issues(
    condition: Condition | dict | str,
    path: str = "",
    allow_empty_groups: bool = False,
) -> list[StructuralIssue]:
    """Collect every structural problem in a condition tree.

    Checks: simple needs a field and a known operator; exists needs a field;
    expression needs text that parses; and/or need at least one child unless
    allow_empty_groups; not needs exactly one child. Children are checked
    recursively and issues carry their location (e.g. "conditions[1].field").
    """
    if not isinstance(condition, Condition):
        try:
            condition = Condition.from_dict(condition, path)
        except StructuralError as e:
            return list(e.issues)

    issues: list[StructuralIssue] = []

    if isinstance(condition, SimpleCondition):
        if not condition.field:
            issues.append(StructuralIssue(_join(path, "field"), "simple condition requires a field"))
        elif "${" in condition.field:
            issues.extend(_expression_issues(condition.field, _join(path, "field")))
        if not condition.operator:
            issues.append(
                StructuralIssue(_join(path, "operator"), "simple condition requires an operator")
            )
        elif normalize_operator(condition.operator) is None:
            issues.append(
                StructuralIssue(
                    _join(path, "operator"), f"unknown operator '{condition.operator}'"
                )
            )
        if isinstance(condition.value, str) and "${" in condition.value:
            issues.extend(_expression_issues(condition.value, _join(path, "value")))

    elif isinstance(condition, ExistsCondition):
        if not condition.field:
            issues.append(StructuralIssue(_join(path, "field"), "exists condition requires a field"))

    elif isinstance(condition, ExpressionCondition):
        if not condition.expression.strip():
            issues.append(
                StructuralIssue(_join(path, "expression"), "expression condition requires an expression")
            )
        else:
            issues.extend(
                _expression_issues(wrap_expression(condition.expression), _join(path, "expression"))
            )

    elif isinstance(condition, (AndCondition, OrCondition)):
        if not condition.conditions and not allow_empty_groups:
            issues.append(
                StructuralIssue(
                    _join(path, "conditions"),
                    f"{condition.type.value} condition requires at least one child",
                )
            )

    elif isinstance(condition, NotCondition):
        if len(condition.conditions) != 1:
            issues.append(
                StructuralIssue(
                    _join(path, "conditions"),
                    f"not condition requires exactly one child, found {len(condition.conditions)}",
                )
            )

    for index, child in enumerate(getattr(condition, "conditions", ())):
        issues.extend(
            condition_issues(child, f"{_join(path, 'conditions')}[{index}]", allow_empty_groups)
        )

    return issues


def validate_condition(
    condition: Condition | dict | str,
    allow_empty_groups: bool = False,
    path: str = "",
) -> None:
    """Raise StructuralError listing every issue in a condition tree."""
    issues = condition_issues(condition, path, allow_empty_groups)
    if issues:
        raise StructuralError("Invalid condition", issues)


def _expression_issues(text: Any, path: str) -> list[StructuralIssue]:
    try:
        parse_template(text)
    except ExpressionSyntaxError as e:
        return [StructuralIssue(path, str(e))]
    return []


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name
