"""Condition tree evaluation.

One evaluator method per ConditionType. Group semantics:
- AND: empty is true; stops at the first false; the first error propagates
- OR: empty is false; stops at the first true; branch errors are remembered
  and the last one propagates only when no branch is true
- NOT: exactly one child
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from smartform.conditions.operators import MISSING_RESULTS, Operator, normalize_operator
from smartform.conditions.types import (
    AndCondition,
    Condition,
    ConditionType,
    ExistsCondition,
    ExpressionCondition,
    NotCondition,
    OrCondition,
    SimpleCondition,
)
from smartform.errors import (
    ConditionError,
    ExpressionSyntaxError,
    OperandTypeError,
    ResolutionError,
    SmartFormError,
    StructuralError,
    StructuralIssue,
)
from smartform.expressions.evaluator import ExpressionEngine
from smartform.expressions.registry import Registry, RegistrySnapshot
from smartform.expressions.template import contains_expression
from smartform.expressions.values import compare, is_empty, type_name, values_equal
from smartform.paths import MISSING, get_path

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """Evaluates condition trees against form values.

    Usage:
        evaluator = ConditionEvaluator(registry)
        evaluator.evaluate(SimpleCondition("role", "eq", "admin"), {"role": "user"})  # False
        evaluator.check(condition, values)  # (result, error) without raising
    """

    def __init__(
        self,
        registry: Registry | None = None,
        engine: ExpressionEngine | None = None,
        case_sensitive: bool = True,
    ):
        if engine is None:
            engine = ExpressionEngine(registry)
        self.engine = engine
        self.case_sensitive = case_sensitive
        self._dispatch = {
            ConditionType.SIMPLE: self._evaluate_simple,
            ConditionType.AND: self._evaluate_and,
            ConditionType.OR: self._evaluate_or,
            ConditionType.NOT: self._evaluate_not,
            ConditionType.EXISTS: self._evaluate_exists,
            ConditionType.EXPRESSION: self._evaluate_expression,
        }

    @property
    def registry(self) -> Registry:
        return self.engine.registry

    def evaluate(
        self,
        condition: Condition | dict | str | None,
        values: Mapping[str, Any] | None = None,
        snapshot: RegistrySnapshot | None = None,
    ) -> bool:
        """Evaluate a condition; None means "no constraint" and is true.

        Raises:
            StructuralError: Ill-formed NOT, empty field or expression
            OperandTypeError: Operator applied to incompatible values
            ResolutionError: Expression references an unknown name
            ConditionError: An error inside an AND/OR/NOT child
        """
        if condition is None:
            return True
        if not isinstance(condition, Condition):
            condition = Condition.from_dict(condition)
        if snapshot is None:
            snapshot = self.registry.snapshot()
        return self._evaluate(condition, values or {}, snapshot)

    def check(
        self,
        condition: Condition | dict | str | None,
        values: Mapping[str, Any] | None = None,
        snapshot: RegistrySnapshot | None = None,
    ) -> tuple[bool, SmartFormError | None]:
        """Evaluate without raising; returns (result, error)."""
        try:
            return self.evaluate(condition, values, snapshot), None
        except SmartFormError as e:
            return False, e

    def _evaluate(
        self, condition: Condition, values: Mapping[str, Any], snapshot: RegistrySnapshot
    ) -> bool:
        handler = self._dispatch.get(condition.type)
        if handler is None:
            raise StructuralError(f"Unknown condition type: {condition.type}")
        return handler(condition, values, snapshot)

    # -------------------------------------------------------------------------
    # Variants
    # -------------------------------------------------------------------------

    def _evaluate_simple(
        self, condition: SimpleCondition, values: Mapping[str, Any], snapshot: RegistrySnapshot
    ) -> bool:
        if not condition.operator:
            raise StructuralError("Simple condition requires an operator")
        operator = normalize_operator(condition.operator)
        if operator is None:
            raise StructuralError(f"Unknown operator '{condition.operator}'")
        if not condition.field:
            raise StructuralError("Simple condition requires a field")

        left = self._resolve_field(condition.field, values, snapshot)
        if left is MISSING:
            return MISSING_RESULTS.get(operator, False)

        right = condition.value
        if contains_expression(right):
            right = self.engine.evaluate(right, values, snapshot)

        return apply_operator(operator, left, right, self.case_sensitive)

    def _evaluate_and(
        self, condition: AndCondition, values: Mapping[str, Any], snapshot: RegistrySnapshot
    ) -> bool:
        for index, child in enumerate(condition.conditions):
            try:
                result = self._evaluate(child, values, snapshot)
            except SmartFormError as e:
                raise ConditionError(f"conditions[{index}]", e) from e
            if not result:
                return False
        return True

    def _evaluate_or(
        self, condition: OrCondition, values: Mapping[str, Any], snapshot: RegistrySnapshot
    ) -> bool:
        last_error: ConditionError | None = None
        for index, child in enumerate(condition.conditions):
            try:
                if self._evaluate(child, values, snapshot):
                    return True
            except SmartFormError as e:
                logger.debug("OR branch %d failed: %s", index, e)
                last_error = ConditionError(f"conditions[{index}]", e)
                last_error.__cause__ = e
        if last_error is not None:
            raise last_error
        return False

    def _evaluate_not(
        self, condition: NotCondition, values: Mapping[str, Any], snapshot: RegistrySnapshot
    ) -> bool:
        if len(condition.conditions) != 1:
            raise StructuralError(
                "NOT condition requires exactly one child",
                [StructuralIssue("conditions", f"found {len(condition.conditions)}")],
            )
        try:
            return not self._evaluate(condition.conditions[0], values, snapshot)
        except SmartFormError as e:
            raise ConditionError("conditions[0]", e) from e

    def _evaluate_exists(
        self, condition: ExistsCondition, values: Mapping[str, Any], snapshot: RegistrySnapshot
    ) -> bool:
        if not condition.field:
            raise StructuralError("Exists condition requires a field")
        value = self._resolve_field(condition.field, values, snapshot)
        return value is not MISSING and not is_empty(value)

    def _evaluate_expression(
        self, condition: ExpressionCondition, values: Mapping[str, Any], snapshot: RegistrySnapshot
    ) -> bool:
        if not condition.expression.strip():
            raise StructuralError("Expression condition requires an expression")
        return self.engine.evaluate_bool(condition.expression, values, snapshot)

    # -------------------------------------------------------------------------
    # Operand resolution
    # -------------------------------------------------------------------------

    def _resolve_field(
        self, field: str, values: Mapping[str, Any], snapshot: RegistrySnapshot
    ) -> Any:
        """Value of the left operand, or MISSING when nothing supplies it.

        A field containing `${` is evaluated as a template. Otherwise the path
        is looked up in the form values, then retried as a registry variable
        reference.
        """
        if contains_expression(field):
            return self.engine.evaluate(field, values, snapshot)

        value = get_path(values, field)
        if value is not MISSING:
            return value

        try:
            return self.engine.evaluate_expression(field, {}, snapshot)
        except (ResolutionError, ExpressionSyntaxError):
            return MISSING


def apply_operator(operator: Operator, left: Any, right: Any, case_sensitive: bool = True) -> bool:
    """Apply a simple-condition operator to two present values.

    Raises:
        OperandTypeError: Operands unsuitable for the operator
    """
    if operator == Operator.EQ:
        return values_equal(left, right, case_sensitive)
    if operator == Operator.NEQ:
        return not values_equal(left, right, case_sensitive)

    if operator in (Operator.GT, Operator.GTE, Operator.LT, Operator.LTE):
        result = compare(left, right, allow_strings=False)
        if operator == Operator.GT:
            return result > 0
        if operator == Operator.GTE:
            return result >= 0
        if operator == Operator.LT:
            return result < 0
        return result <= 0

    if operator in (Operator.CONTAINS, Operator.STARTS_WITH, Operator.ENDS_WITH):
        text, part = _require_strings(operator, left, right)
        if not case_sensitive:
            text, part = text.casefold(), part.casefold()
        if operator == Operator.CONTAINS:
            return part in text
        if operator == Operator.STARTS_WITH:
            return text.startswith(part)
        return text.endswith(part)

    if operator == Operator.REGEX:
        text, pattern = _require_strings(operator, left, right)
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            return re.search(pattern, text, flags) is not None
        except re.error as e:
            raise OperandTypeError(f"Invalid regex {pattern!r}: {e}")

    if operator in (Operator.IN, Operator.NOT_IN):
        if not isinstance(right, (list, tuple, set, frozenset)):
            raise OperandTypeError(
                f"'{operator.value}' requires a list value, got {type_name(right)}"
            )
        found = any(values_equal(left, item, case_sensitive) for item in right)
        return found if operator == Operator.IN else not found

    if operator == Operator.EMPTY:
        return is_empty(left)
    if operator in (Operator.NOT_EMPTY, Operator.EXISTS):
        return not is_empty(left)

    raise StructuralError(f"Unknown operator '{operator}'")


def _require_strings(operator: Operator, left: Any, right: Any) -> tuple[str, str]:
    if not isinstance(left, str) or not isinstance(right, str):
        raise OperandTypeError(
            f"'{operator.value}' requires strings, got {type_name(left)} and {type_name(right)}"
        )
    return left, right


def evaluate_condition(
    condition: Condition | dict | str | None,
    values: Mapping[str, Any] | None = None,
    registry: Registry | None = None,
) -> bool:
    """Evaluate a condition with a throwaway evaluator.

    Example:
        evaluate_condition({"type": "exists", "field": "email"}, {"email": ""})  # False
    """
    return ConditionEvaluator(registry).evaluate(condition, values)
