"""SmartForm: reactive form-definition engine.

Forms are declared as data (YAML or dicts); field labels, defaults and
options may embed `${...}` expressions, and visibility, enablement and
requirement are driven by condition trees over the current form values.
"""

from smartform.config import EngineConfig
from smartform.conditions import ConditionEvaluator, condition_from_dict
from smartform.dynamic import DynamicFieldConfig, DynamicFunctionService
from smartform.engine import FieldState, FormEngine
from smartform.errors import (
    ConditionError,
    CycleError,
    ExpressionSyntaxError,
    FunctionError,
    OperandTypeError,
    ResolutionDepthError,
    ResolutionError,
    SmartFormError,
    StructuralError,
)
from smartform.expressions import ExpressionEngine, Registry, evaluate, suggest
from smartform.graph import DependencyGraph
from smartform.resolver import ResolutionOptions, ResolutionResult, TemplateResolver
from smartform.schema import FieldSpec, FormSchema
from smartform.schema.loader import load_form, load_form_string
from smartform.validation import FormValidator, ValidationError, ValidationResult

__all__ = [
    # Engine
    "EngineConfig",
    "FieldState",
    "FormEngine",
    # Components
    "ConditionEvaluator",
    "DependencyGraph",
    "DynamicFieldConfig",
    "DynamicFunctionService",
    "ExpressionEngine",
    "FormValidator",
    "Registry",
    "ResolutionOptions",
    "ResolutionResult",
    "TemplateResolver",
    "condition_from_dict",
    "evaluate",
    "suggest",
    # Schema
    "FieldSpec",
    "FormSchema",
    "load_form",
    "load_form_string",
    # Results and errors
    "ValidationError",
    "ValidationResult",
    "ConditionError",
    "CycleError",
    "ExpressionSyntaxError",
    "FunctionError",
    "OperandTypeError",
    "ResolutionDepthError",
    "ResolutionError",
    "SmartFormError",
    "StructuralError",
]
