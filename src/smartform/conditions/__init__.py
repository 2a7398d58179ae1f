"""Boolean condition trees controlling visibility, enablement and requirement."""

from smartform.conditions.evaluator import (
    ConditionEvaluator,
    apply_operator,
    evaluate_condition,
)
from smartform.conditions.operators import Operator, normalize_operator
from smartform.conditions.types import (
    AndCondition,
    Condition,
    ConditionType,
    ExistsCondition,
    ExpressionCondition,
    NotCondition,
    OrCondition,
    SimpleCondition,
    condition_from_dict,
)
from smartform.conditions.validation import condition_issues, validate_condition

__all__ = [
    "AndCondition",
    "Condition",
    "ConditionEvaluator",
    "ConditionType",
    "ExistsCondition",
    "ExpressionCondition",
    "NotCondition",
    "Operator",
    "OrCondition",
    "SimpleCondition",
    "apply_operator",
    "condition_from_dict",
    "condition_issues",
    "evaluate_condition",
    "normalize_operator",
    "validate_condition",
]
