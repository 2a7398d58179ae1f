"""Form engine: the per-schema context that binds the components together.

One FormEngine owns the registry, template resolver, condition evaluator,
dependency graph, dynamic function service and validator for a schema.
Nothing is shared between engines unless passed in explicitly.

Usage:
    engine = FormEngine(load_form(Path("signup.yaml")))
    states = engine.evaluate({"country": "NZ"})
    changed = engine.on_change(["country"], values)
    result = engine.validate(values)
"""

import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from smartform.config import EngineConfig
from smartform.conditions.types import Condition
from smartform.dynamic import (
    DynamicFieldConfig,
    DynamicFunctionService,
    options_from_result,
    search_and_sort,
)
from smartform.errors import SmartFormError
from smartform.expressions.registry import Registry, RegistrySnapshot
from smartform.expressions.template import wrap_expression
from smartform.expressions.values import is_empty, to_display
from smartform.graph import DependencyGraph
from smartform.paths import MISSING, get_path, set_path
from smartform.resolver import TemplateResolver
from smartform.schema.loader import load_form
from smartform.schema.types import FieldSpec, FormSchema, Option, OptionsType
from smartform.validation import FormValidator, ValidationResult

logger = logging.getLogger(__name__)

SEARCH_PARAMETERS = ("search", "filters", "sort", "sortDir", "offset", "limit")


@dataclass
class FieldState:
    """Evaluated state of one field for a set of form values.

    Attributes:
        errors: Condition or option failures scoped to this field; the
            state holds the fallback values used in their place
    """

    path: str
    visible: bool = True
    enabled: bool = True
    required: bool = False
    value: Any = None
    label: str = ""
    help_text: str = ""
    placeholder: str = ""
    properties: dict[str, Any] = field(default_factory=dict)
    options: list[Option] = field(default_factory=list)
    errors: list[SmartFormError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "path": self.path,
            "visible": self.visible,
            "enabled": self.enabled,
            "required": self.required,
            "value": self.value,
            "label": self.label,
        }
        if self.help_text:
            result["helpText"] = self.help_text
        if self.placeholder:
            result["placeholder"] = self.placeholder
        if self.properties:
            result["properties"] = self.properties
        if self.options:
            result["options"] = [o.to_dict() for o in self.options]
        if self.errors:
            result["errors"] = [str(e) for e in self.errors]
        return result


class FormEngine:
    """Evaluates a schema against form values."""

    def __init__(
        self,
        schema: FormSchema,
        registry: Registry | None = None,
        dynamic_service: DynamicFunctionService | None = None,
        config: EngineConfig | None = None,
    ):
        self.schema = schema
        self.config = config or EngineConfig()
        self.registry = registry if registry is not None else Registry()
        for name, value in schema.variables.items():
            if not self.registry.has_variable(name):
                self.registry.register_variable(name, value)

        self.resolver = TemplateResolver(
            schema,
            self.registry,
            self.config.resolution_options(),
            case_sensitive=self.config.case_sensitive,
        )
        self.conditions = self.resolver.conditions
        self.graph = DependencyGraph(schema)
        self.dynamic = dynamic_service or DynamicFunctionService(
            ttl=self.config.cache_ttl, engine=self.resolver.engine
        )
        self.validator = FormValidator(self.resolver)

        for cycle in self.graph.to_dict()["cycles"]:
            logger.warning("Form %s has a dependency cycle: %s", schema.id, " -> ".join(cycle))

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> "FormEngine":
        config = kwargs.get("config") or EngineConfig()
        return cls(load_form(path, allow_empty_groups=config.allow_empty_groups), **kwargs)

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def with_defaults(self, values: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Copy of values with resolved defaults filled into empty fields."""
        result = copy.deepcopy(dict(values or {}))
        for path, default in self.resolver.resolve_default_values(result).items():
            current = get_path(result, path)
            if current is MISSING or is_empty(current):
                set_path(result, path, default)
        return result

    # -------------------------------------------------------------------------
    # Field state
    # -------------------------------------------------------------------------

    def field_state(self, path: str, values: Mapping[str, Any] | None = None) -> FieldState:
        """Evaluate one field.

        Raises:
            KeyError: Unknown field path
            SmartFormError: A condition failed and the engine is strict
        """
        return self._field_state(path, self.schema.get_field(path), values or {}, self.registry.snapshot())

    def evaluate(self, values: Mapping[str, Any] | None = None) -> dict[str, FieldState]:
        """State of every field, in evaluation order."""
        values = self.with_defaults(values)
        snapshot = self.registry.snapshot()
        states = {
            path: self._field_state(path, self.schema.get_field(path), values, snapshot)
            for path in self.graph.evaluation_order()
        }
        self._hide_children(states, values, snapshot)
        return states

    def on_change(
        self, changed: Iterable[str], values: Mapping[str, Any] | None = None
    ) -> dict[str, FieldState]:
        """Re-evaluate only the fields affected by the changed ids."""
        changed = list(changed)
        paths = self.graph.order_for(changed)
        logger.debug("Change to %s affects %d fields", changed, len(paths))
        values = self.with_defaults(values)
        snapshot = self.registry.snapshot()
        states = {
            path: self._field_state(path, self.schema.get_field(path), values, snapshot)
            for path in paths
        }
        self._hide_children(states, values, snapshot)
        return states

    def _field_state(
        self,
        path: str,
        spec: FieldSpec,
        values: Mapping[str, Any],
        snapshot: RegistrySnapshot,
    ) -> FieldState:
        context = self.resolver.condition_context(values, spec, path)
        errors: list[SmartFormError] = []

        def condition(name: str, condition: Condition | None, fallback: bool) -> bool:
            result, error = self.conditions.check(condition, context, snapshot)
            if error is None:
                return result
            if self.config.strict:
                raise error
            logger.warning("%s condition of %s failed, using %s: %s", name, path, fallback, error)
            errors.append(error)
            return fallback

        visible = condition("visible", spec.visible, True)
        enabled = condition("enabled", spec.enabled, True)
        required = spec.required
        if spec.required_if is not None:
            required = condition("requiredIf", spec.required_if, spec.required)

        resolved = self.resolver.resolve_field_configuration(spec, values, path=path)

        options: list[Option] = []
        if spec.options is not None:
            try:
                options = self._options(path, spec, values)
            except SmartFormError as e:
                if self.config.strict:
                    raise
                logger.warning("Could not load options for %s: %s", path, e)
                errors.append(e)

        value = get_path(values, path)
        return FieldState(
            path=path,
            visible=visible,
            enabled=enabled,
            required=required,
            value=None if value is MISSING else value,
            label=resolved.label,
            help_text=resolved.help_text,
            placeholder=resolved.placeholder,
            properties=resolved.properties,
            options=options,
            errors=errors,
        )

    def _hide_children(
        self,
        states: dict[str, FieldState],
        values: Mapping[str, Any],
        snapshot: RegistrySnapshot,
    ) -> None:
        for path, state in states.items():
            parent = self.schema.parent_of(path)
            while parent is not None and state.visible:
                parent_state = states.get(parent)
                if parent_state is None:
                    parent_state = self._field_state(
                        parent, self.schema.get_field(parent), values, snapshot
                    )
                if not parent_state.visible:
                    state.visible = False
                parent = self.schema.parent_of(parent)

    # -------------------------------------------------------------------------
    # Options
    # -------------------------------------------------------------------------

    def resolve_options(self, path: str, values: Mapping[str, Any] | None = None) -> list[Option]:
        """Current options of a field.

        Raises:
            KeyError: Unknown field path
            SmartFormError: A dependency expression or dynamic function failed
        """
        return self._options(path, self.schema.get_field(path), values or {})

    def _options(self, path: str, spec: FieldSpec, values: Mapping[str, Any]) -> list[Option]:
        config = spec.options
        if config is None:
            return []

        if config.type == OptionsType.DEPENDENT and config.dependency is not None:
            dependency = config.dependency
            if dependency.expression:
                context = self.resolver.build_context(values, spec, path)
                result = self.resolver.engine.evaluate(wrap_expression(dependency.expression), context)
                return options_from_result(result)
            key = get_path(values, dependency.field, None)
            if key is None:
                return []
            return list(dependency.value_map.get(to_display(key), ()))

        if config.type == OptionsType.DYNAMIC and config.dynamic_source is not None:
            source = config.dynamic_source
            if source.type != "function" or not source.function_name:
                logger.warning("Options source '%s' of %s is not a function, using static options", source.type, path)
                return list(config.static)

            arguments = {k: v for k, v in source.parameters.items() if k not in SEARCH_PARAMETERS}
            search = {k: v for k, v in source.parameters.items() if k in SEARCH_PARAMETERS}
            call = DynamicFieldConfig(
                function_name=source.function_name,
                arguments=arguments,
                transformer_name=source.function_config.get("transformerName", ""),
                transformer_params=dict(source.function_config.get("transformerParams") or {}),
            )
            options = options_from_result(call.execute_with_form_state(self.dynamic, values))
            return search_and_sort(options, self.dynamic.resolve_arguments(search, values))

        return list(config.static)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self, values: Mapping[str, Any] | None = None) -> ValidationResult:
        """Validate every visible, enabled field."""
        values = self.with_defaults(values)
        states = self.evaluate(values)
        rules = {path: spec.validation_rules for path, spec in self.schema.iter_fields()}
        return self.validator.validate(states, rules, values)
