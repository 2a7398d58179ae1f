"""Recursive template resolution over form data and field configuration.

The resolver walks dicts, lists and strings, evaluating every `${...}`
fragment against a context assembled per call. Context precedence, lowest to
highest:

1. form data values that are not themselves templates
2. field-local context (`currentField`, `fieldType`)
3. registry variables
4. global variables given to the resolver

Conditions use a different order: live form values come first so a field is
never shadowed by a variable of the same name.

Each public call takes one registry snapshot and uses it throughout, so
registrations made during a pass are not observed by it.
"""

import logging
from collections import ChainMap
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from smartform.conditions.evaluator import ConditionEvaluator
from smartform.conditions.types import Condition
from smartform.errors import ResolutionDepthError, SmartFormError
from smartform.expressions.evaluator import ExpressionEngine
from smartform.expressions.registry import Registry, RegistrySnapshot
from smartform.expressions.template import contains_expression, parse_template
from smartform.expressions.values import to_display
from smartform.schema.types import FieldSpec, FormSchema

logger = logging.getLogger(__name__)


@dataclass
class ResolutionOptions:
    """How failures and nesting are handled.

    Attributes:
        strict: Unresolvable templates raise instead of falling back
        default_on_error: Fallback value for an unresolvable template
        max_depth: Maximum nesting (containers plus recursive re-resolution)
        preserve_nulls: An unresolvable single fragment falls back to None
            rather than its original text
        enable_recursion: Re-resolve results that still contain `${`
    """

    strict: bool = False
    default_on_error: Any = None
    max_depth: int = 10
    preserve_nulls: bool = False
    enable_recursion: bool = False


@dataclass
class ResolutionResult:
    value: Any
    resolved: bool = True
    error: SmartFormError | None = None


@dataclass
class _Pass:
    """State of one resolution call."""

    context: Mapping[str, Any]
    options: ResolutionOptions
    snapshot: RegistrySnapshot
    active: set[str]


class TemplateResolver:
    """Resolves templates in values, form data and field configuration.

    Usage:
        resolver = TemplateResolver(schema, registry)
        resolver.resolve("Hello ${user.name}!", {"user": {"name": "Ann"}})  # "Hello Ann!"
        resolver.resolve_default_values({"country": "NZ"})
    """

    def __init__(
        self,
        schema: FormSchema | None = None,
        registry: Registry | None = None,
        options: ResolutionOptions | None = None,
        global_variables: Mapping[str, Any] | None = None,
        case_sensitive: bool = True,
    ):
        self.schema = schema
        self.engine = ExpressionEngine(registry)
        self.conditions = ConditionEvaluator(engine=self.engine, case_sensitive=case_sensitive)
        self.options = options or ResolutionOptions()
        self.global_variables: dict[str, Any] = dict(global_variables or {})

    @property
    def registry(self) -> Registry:
        return self.engine.registry

    def set_global(self, name: str, value: Any) -> None:
        self.global_variables[name] = value

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    def build_context(
        self,
        form_data: Mapping[str, Any] | None = None,
        field: FieldSpec | None = None,
        path: str | None = None,
        snapshot: RegistrySnapshot | None = None,
    ) -> ChainMap:
        """Assemble the evaluation context for one call.

        Registry variables are layered in as a lazy view: a provider is only
        called when a fragment reads its name.
        """
        if snapshot is None:
            snapshot = self.registry.snapshot()

        data = {
            key: value
            for key, value in (form_data or {}).items()
            if not contains_expression(value)
        }
        return ChainMap(
            self.global_variables, snapshot.values(), _field_locals(field, path), data
        )

    def condition_context(
        self,
        form_data: Mapping[str, Any] | None = None,
        field: FieldSpec | None = None,
        path: str | None = None,
    ) -> ChainMap:
        """Context for condition evaluation.

        Form values shadow every other name so a condition always sees the
        live value of a field; registry variables are reached through the
        evaluator's fallback for names the form does not supply.
        """
        return ChainMap(dict(form_data or {}), _field_locals(field, path), self.global_variables)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def resolve(
        self,
        value: Any,
        context: Mapping[str, Any] | None = None,
        options: ResolutionOptions | None = None,
    ) -> Any:
        """Resolve every template inside value; the input is never mutated.

        Raises:
            SmartFormError: In strict mode, the first resolution failure
        """
        snapshot = self.registry.snapshot()
        state = _Pass(
            self.build_context(context, snapshot=snapshot),
            options or self.options,
            snapshot,
            set(),
        )
        return self._resolve(value, state, 0)

    def resolve_form_data(
        self, data: Mapping[str, Any], options: ResolutionOptions | None = None
    ) -> dict[str, Any]:
        """Resolve every value of the data using the data itself as context."""
        return self.resolve(dict(data), data, options)

    def resolve_field_value(
        self,
        field_id: str,
        value: Any,
        form_data: Mapping[str, Any] | None = None,
        options: ResolutionOptions | None = None,
    ) -> ResolutionResult:
        """Resolve one field's value, reporting failure instead of raising."""
        options = options or self.options
        snapshot = self.registry.snapshot()
        spec = self._field(field_id)
        state = _Pass(
            self.build_context(form_data, spec, field_id, snapshot),
            replace(options, strict=True),
            snapshot,
            set(),
        )
        try:
            return ResolutionResult(self._resolve(value, state, 0))
        except SmartFormError as e:
            fallback = value if options.strict else self._fallback(value, options)
            return ResolutionResult(fallback, False, e)

    def resolve_field_configuration(
        self,
        field: FieldSpec,
        form_data: Mapping[str, Any] | None = None,
        options: ResolutionOptions | None = None,
        path: str | None = None,
    ) -> FieldSpec:
        """Copy of a field with label, help text, placeholder, default value
        and properties resolved.

        Text attributes keep their original text when resolution fails and
        are stringified otherwise.
        """
        options = options or self.options
        snapshot = self.registry.snapshot()
        context = self.build_context(form_data, field, path, snapshot)

        def text(attribute: str, value: str) -> str:
            if not contains_expression(value):
                return value
            state = _Pass(context, replace(options, strict=True), snapshot, set())
            try:
                return to_display(self._resolve(value, state, 0))
            except SmartFormError as e:
                if options.strict:
                    raise
                logger.warning("Could not resolve %s of %s: %s", attribute, path or field.id, e)
                return value

        state = _Pass(context, options, snapshot, set())
        return replace(
            field,
            label=text("label", field.label),
            placeholder=text("placeholder", field.placeholder),
            help_text=text("helpText", field.help_text),
            default_value=self._resolve(field.default_value, state, 0),
            properties=self._resolve(field.properties, state, 0),
        )

    def resolve_default_values(
        self,
        form_data: Mapping[str, Any] | None = None,
        options: ResolutionOptions | None = None,
    ) -> dict[str, Any]:
        """Default for every field that has one, keyed by dotted path.

        The first defaultWhen entry whose condition holds wins, in declaration
        order; otherwise the static default applies. Fields with neither are
        omitted.
        """
        if self.schema is None:
            return {}
        snapshot = self.registry.snapshot()
        defaults: dict[str, Any] = {}
        for path, spec in self.schema.iter_fields():
            found, value = self._default_for(spec, path, form_data or {}, options or self.options, snapshot)
            if found:
                defaults[path] = value
        return defaults

    def resolve_default(
        self,
        field: FieldSpec,
        form_data: Mapping[str, Any] | None = None,
        path: str | None = None,
        options: ResolutionOptions | None = None,
    ) -> tuple[bool, Any]:
        """(found, value) of one field's default."""
        return self._default_for(
            field, path or field.id, form_data or {}, options or self.options, self.registry.snapshot()
        )

    def resolve_condition(
        self,
        condition: Condition | dict | str | None,
        form_data: Mapping[str, Any] | None = None,
        field: FieldSpec | None = None,
        path: str | None = None,
    ) -> bool:
        """Evaluate a condition against the form values and field context.

        Raises:
            SmartFormError: The condition could not be evaluated
        """
        snapshot = self.registry.snapshot()
        context = self.condition_context(form_data, field, path)
        return self.conditions.evaluate(condition, context, snapshot)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _default_for(
        self,
        spec: FieldSpec,
        path: str,
        form_data: Mapping[str, Any],
        options: ResolutionOptions,
        snapshot: RegistrySnapshot,
    ) -> tuple[bool, Any]:
        context = self.build_context(form_data, spec, path, snapshot)
        state = _Pass(context, options, snapshot, set())
        condition_context = self.condition_context(form_data, spec, path)

        for index, entry in enumerate(spec.default_when):
            matched, error = self.conditions.check(entry.condition, condition_context, snapshot)
            if error is not None:
                logger.warning(
                    "Skipping defaultWhen[%d] of %s: condition failed: %s", index, path, error
                )
                continue
            if matched:
                return True, self._resolve(entry.value, state, 0)

        if spec.default_value is not None:
            return True, self._resolve(spec.default_value, state, 0)
        return False, None

    def _resolve(self, value: Any, state: _Pass, depth: int) -> Any:
        if depth > state.options.max_depth:
            if state.options.strict:
                raise ResolutionDepthError(
                    f"Maximum resolution depth {state.options.max_depth} exceeded"
                )
            logger.warning("Maximum resolution depth %d exceeded", state.options.max_depth)
            return value

        if isinstance(value, str):
            return self._resolve_string(value, state, depth)
        if isinstance(value, Mapping):
            return {key: self._resolve(item, state, depth + 1) for key, item in value.items()}
        if isinstance(value, list):
            return [self._resolve(item, state, depth + 1) for item in value]
        if isinstance(value, tuple):
            return tuple(self._resolve(item, state, depth + 1) for item in value)
        return value

    def _resolve_string(self, text: str, state: _Pass, depth: int) -> Any:
        if not contains_expression(text):
            return text

        try:
            result = self.engine.evaluate(text, state.context, state.snapshot)
        except SmartFormError as e:
            if state.options.strict:
                raise
            logger.warning("Could not resolve %r: %s", text, e)
            return self._fallback(text, state.options)

        if not (state.options.enable_recursion and contains_expression(result)):
            return result

        key = f"recursive:{result}"
        if result == text or key in state.active:
            logger.debug("Stopping self-referential resolution of %r", text)
            return result

        state.active.add(key)
        try:
            return self._resolve(result, state, depth + 1)
        finally:
            state.active.discard(key)

    def _fallback(self, value: Any, options: ResolutionOptions) -> Any:
        if options.default_on_error is not None:
            return options.default_on_error
        if options.preserve_nulls and isinstance(value, str) and _is_single_fragment(value):
            return None
        return value

    def _field(self, path: str) -> FieldSpec | None:
        if self.schema is None or not self.schema.has_field(path):
            return None
        return self.schema.get_field(path)


def _is_single_fragment(text: str) -> bool:
    try:
        return parse_template(text).single_expression is not None
    except SmartFormError:
        return False


def _field_locals(field: FieldSpec | None, path: str | None) -> dict[str, Any]:
    if field is None:
        return {}
    return {"currentField": path or field.id, "fieldType": field.type.value}
