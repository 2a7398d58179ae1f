"""Field constraint validation.

Checks a field's current value against its declared validation rules:

- required / requiredIf: the value must be non-empty
- minLength / maxLength: string (or list) length bounds
- min / max: numeric bounds
- pattern: regex match
- email / url: format checks
- oneOf: value must be one of the allowed values
- dependency: another field must be non-empty when this one is set

Rules take their argument from `parameters`, either directly
(`{type: minLength, parameters: 3}`) or under `value`
(`{type: minLength, parameters: {value: 3}}`). Custom messages may contain
expressions; they are resolved leniently with `value` and `field` in scope.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from smartform.errors import OperandTypeError, SmartFormError
from smartform.expressions.values import is_empty, to_number, values_equal
from smartform.paths import get_path
from smartform.resolver import ResolutionOptions, TemplateResolver
from smartform.schema.types import ValidationRule

if TYPE_CHECKING:
    from smartform.engine import FieldState

logger = logging.getLogger(__name__)


# =============================================================================
# Format Patterns
# =============================================================================

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

URL_PATTERN = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ValidationError:
    """A single failed rule.

    Attributes:
        field: Dotted path of the field
        message: Human-readable message
        rule: Rule type that failed (e.g. "minLength")
    """

    field: str
    message: str
    rule: str

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "message": self.message, "rule": self.rule}


@dataclass
class ValidationResult:
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)

    def errors_for(self, path: str) -> list[ValidationError]:
        return [e for e in self.errors if e.field == path]

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": [e.to_dict() for e in self.errors]}


# =============================================================================
# Validator
# =============================================================================


class FormValidator:
    """Validates field values against their rules.

    Usage:
        validator = FormValidator(resolver)
        errors = validator.validate_field(state, spec.validation_rules, value, values)
    """

    def __init__(self, resolver: TemplateResolver | None = None):
        self.resolver = resolver or TemplateResolver()
        self._message_options = ResolutionOptions(strict=False)
        self._checks = {
            "minLength": self._check_min_length,
            "maxLength": self._check_max_length,
            "min": self._check_min,
            "max": self._check_max,
            "pattern": self._check_pattern,
            "email": self._check_email,
            "url": self._check_url,
            "oneOf": self._check_one_of,
            "dependency": self._check_dependency,
        }

    def validate_field(
        self,
        state: FieldState,
        rules: Iterable[ValidationRule],
        value: Any,
        values: Mapping[str, Any] | None = None,
    ) -> list[ValidationError]:
        """Errors for one field; an empty required field reports only that."""
        values = values or {}
        rules = list(rules)
        label = state.label or state.path

        required_rule = self._required_rule(state, rules, values)
        if is_empty(value):
            if required_rule is not None:
                return [
                    self._error(
                        state.path,
                        required_rule,
                        f"{label} is required",
                        value,
                        label,
                        values,
                    )
                ]
            return []

        errors: list[ValidationError] = []
        for rule in rules:
            if rule.type in ("required", "requiredIf"):
                continue
            check = self._checks.get(rule.type)
            if check is None:
                logger.warning("Unknown validation rule '%s' on %s", rule.type, state.path)
                continue
            message = check(rule, value, label, values)
            if message is not None:
                errors.append(self._error(state.path, rule, message, value, label, values))
        return errors

    def validate(
        self,
        states: Mapping[str, FieldState],
        rules: Mapping[str, Iterable[ValidationRule]],
        values: Mapping[str, Any] | None = None,
    ) -> ValidationResult:
        """Validate every visible, enabled field.

        Args:
            states: path -> evaluated field state
            rules: path -> validation rules of that field
            values: Form values (for requiredIf and dependency rules)
        """
        errors: list[ValidationError] = []
        for path, state in states.items():
            if not (state.visible and state.enabled):
                continue
            errors.extend(self.validate_field(state, rules.get(path, ()), state.value, values))
        return ValidationResult(valid=not errors, errors=errors)

    # -------------------------------------------------------------------------
    # Required
    # -------------------------------------------------------------------------

    def _required_rule(
        self, state: FieldState, rules: list[ValidationRule], values: Mapping[str, Any]
    ) -> ValidationRule | None:
        """The rule that makes the field required right now, if any."""
        for rule in rules:
            if rule.type == "required":
                return rule
            if rule.type == "requiredIf" and rule.parameters is not None:
                try:
                    if self.resolver.resolve_condition(rule.parameters, values):
                        return rule
                except SmartFormError as e:
                    logger.warning("Skipping requiredIf rule on %s: %s", state.path, e)
        if state.required:
            return ValidationRule(type="required")
        return None

    # -------------------------------------------------------------------------
    # Checks (each returns a default message or None)
    # -------------------------------------------------------------------------

    def _check_min_length(self, rule, value, label, values) -> str | None:
        limit = _int_parameter(rule)
        if limit is not None and _length(value) is not None and _length(value) < limit:
            return f"{label} must be at least {limit} characters"
        return None

    def _check_max_length(self, rule, value, label, values) -> str | None:
        limit = _int_parameter(rule)
        if limit is not None and _length(value) is not None and _length(value) > limit:
            return f"{label} must be at most {limit} characters"
        return None

    def _check_min(self, rule, value, label, values) -> str | None:
        return self._check_bound(rule, value, label, lambda n, limit: n < limit, "at least")

    def _check_max(self, rule, value, label, values) -> str | None:
        return self._check_bound(rule, value, label, lambda n, limit: n > limit, "at most")

    def _check_bound(self, rule, value, label, fails, wording: str) -> str | None:
        limit = _parameter(rule)
        if limit is None:
            return None
        try:
            number = to_number(value)
            bound = to_number(limit)
        except OperandTypeError:
            return f"{label} must be a number"
        if fails(number, bound):
            return f"{label} must be {wording} {limit}"
        return None

    def _check_pattern(self, rule, value, label, values) -> str | None:
        pattern = _parameter(rule)
        if not isinstance(pattern, str) or not isinstance(value, str):
            return None
        try:
            if not re.match(pattern, value):
                return f"{label} format is invalid"
        except re.error as e:
            logger.warning("Invalid pattern %r for %s: %s", pattern, label, e)
        return None

    def _check_email(self, rule, value, label, values) -> str | None:
        if not isinstance(value, str) or not EMAIL_PATTERN.match(value):
            return f"{label} must be a valid email address"
        return None

    def _check_url(self, rule, value, label, values) -> str | None:
        if not isinstance(value, str) or not URL_PATTERN.match(value):
            return f"{label} must be a valid URL"
        return None

    def _check_one_of(self, rule, value, label, values) -> str | None:
        allowed = _parameter(rule)
        if not isinstance(allowed, (list, tuple)):
            return None
        chosen = value if isinstance(value, list) else [value]
        for item in chosen:
            if not any(values_equal(item, candidate) for candidate in allowed):
                return f"'{item}' is not a valid option for {label}"
        return None

    def _check_dependency(self, rule, value, label, values) -> str | None:
        other = _parameter(rule, "field")
        if not isinstance(other, str) or not other:
            return None
        if is_empty(get_path(values, other, None)):
            return f"{label} requires {other}"
        return None

    def _error(
        self,
        path: str,
        rule: ValidationRule,
        default: str,
        value: Any,
        label: str,
        values: Mapping[str, Any],
    ) -> ValidationError:
        message = default
        if rule.message:
            context = dict(values)
            context.update(value=value, field=label)
            message = str(self.resolver.resolve(rule.message, context, self._message_options))
        return ValidationError(field=path, message=message, rule=rule.type)


def validate_field(
    state: FieldState,
    rules: Iterable[ValidationRule],
    value: Any,
    values: Mapping[str, Any] | None = None,
    resolver: TemplateResolver | None = None,
) -> list[ValidationError]:
    """Validate one field with a throwaway validator."""
    return FormValidator(resolver).validate_field(state, rules, value, values)


def _parameter(rule: ValidationRule, key: str = "value") -> Any:
    if isinstance(rule.parameters, Mapping):
        return rule.parameters.get(key)
    return rule.parameters


def _int_parameter(rule: ValidationRule) -> int | None:
    value = _parameter(rule)
    if isinstance(value, bool):
        return None
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _length(value: Any) -> int | None:
    if isinstance(value, (str, list, tuple)):
        return len(value)
    return None
