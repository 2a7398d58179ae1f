"""Form schema model.

Field specifications and conditions are immutable after construction. Keys in
the dict form use the camelCase spelling of schema files (`helpText`,
`defaultWhen`, `requiredIf`, ...).
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any

from smartform.conditions.types import Condition, ExpressionCondition, condition_from_dict
from smartform.errors import StructuralError, StructuralIssue
from smartform.paths import join_path


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    SELECT = "select"
    MULTISELECT = "multiselect"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    EMAIL = "email"
    PASSWORD = "password"
    FILE = "file"
    IMAGE = "image"
    GROUP = "group"
    ARRAY = "array"
    ONE_OF = "oneOf"
    ANY_OF = "anyOf"
    SWITCH = "switch"
    SLIDER = "slider"
    RATING = "rating"
    OBJECT = "object"
    RICHTEXT = "richtext"
    COLOR = "color"
    HIDDEN = "hidden"
    SECTION = "section"
    CUSTOM = "custom"
    API = "api"
    AUTH = "auth"
    BRANCH = "branch"


class OptionsType(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"
    DEPENDENT = "dependent"


@dataclass(frozen=True)
class Option:
    value: Any
    label: str = ""
    icon: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Option:
        if isinstance(data, Option):
            return data
        if not isinstance(data, dict):
            return cls(value=data, label=str(data))
        label = data.get("label", data.get("name", data.get("title")))
        return cls(
            value=data.get("value"),
            label=str(label) if label is not None else str(data.get("value", "")),
            icon=data.get("icon"),
        )

    def to_dict(self) -> dict[str, Any]:
        result = {"value": self.value, "label": self.label}
        if self.icon:
            result["icon"] = self.icon
        return result


@dataclass(frozen=True)
class DynamicSource:
    """Where dynamic options come from.

    Attributes:
        type: "function" or "api"
        function_name: Function registered with the dynamic function service
        parameters: Arguments for the function (may hold `${field}` references)
        refresh_on: Fields whose change should reload the options
        endpoint/method/headers/value_path/label_path: API source description
        function_config: Extra settings passed through to the function
    """

    type: str = "function"
    function_name: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    refresh_on: tuple[str, ...] = ()
    endpoint: str = ""
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    value_path: str = ""
    label_path: str = ""
    function_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DynamicSource:
        refresh_on = data.get("refreshOn") or ()
        if isinstance(refresh_on, str):
            refresh_on = (refresh_on,)
        return cls(
            type=data.get("type", "function"),
            function_name=data.get("functionName", ""),
            parameters=dict(data.get("parameters") or {}),
            refresh_on=tuple(refresh_on),
            endpoint=data.get("endpoint", ""),
            method=data.get("method", "GET"),
            headers=dict(data.get("headers") or {}),
            value_path=data.get("valuePath", ""),
            label_path=data.get("labelPath", ""),
            function_config=dict(data.get("functionConfig") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type}
        if self.function_name:
            result["functionName"] = self.function_name
        if self.parameters:
            result["parameters"] = self.parameters
        if self.refresh_on:
            result["refreshOn"] = list(self.refresh_on)
        if self.endpoint:
            result.update(endpoint=self.endpoint, method=self.method)
        if self.headers:
            result["headers"] = self.headers
        if self.value_path:
            result["valuePath"] = self.value_path
        if self.label_path:
            result["labelPath"] = self.label_path
        if self.function_config:
            result["functionConfig"] = self.function_config
        return result


@dataclass(frozen=True)
class OptionsDependency:
    """Options chosen by another field's value.

    Either value_map (value of `field` -> options) or an expression whose
    result is turned into options.
    """

    field: str
    value_map: dict[str, tuple[Option, ...]] = field(default_factory=dict)
    expression: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OptionsDependency:
        value_map = {
            str(key): tuple(Option.from_dict(o) for o in options or [])
            for key, options in (data.get("valueMap") or {}).items()
        }
        return cls(
            field=data.get("field", ""),
            value_map=value_map,
            expression=data.get("expression"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"field": self.field}
        if self.value_map:
            result["valueMap"] = {
                key: [o.to_dict() for o in options] for key, options in self.value_map.items()
            }
        if self.expression:
            result["expression"] = self.expression
        return result


@dataclass(frozen=True)
class OptionsConfig:
    type: OptionsType = OptionsType.STATIC
    static: tuple[Option, ...] = ()
    dynamic_source: DynamicSource | None = None
    dependency: OptionsDependency | None = None

    @classmethod
    def from_dict(cls, data: Any, path: str = "options") -> OptionsConfig:
        if isinstance(data, list):
            return cls(static=tuple(Option.from_dict(o) for o in data))
        try:
            kind = OptionsType(data.get("type", "static"))
        except ValueError:
            raise StructuralError(
                "Invalid options",
                [StructuralIssue(path, f"unknown options type '{data.get('type')}'")],
            )
        source = data.get("dynamicSource")
        dependency = data.get("dependency")
        return cls(
            type=kind,
            static=tuple(Option.from_dict(o) for o in data.get("static") or []),
            dynamic_source=DynamicSource.from_dict(source) if source else None,
            dependency=OptionsDependency.from_dict(dependency) if dependency else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type.value}
        if self.static:
            result["static"] = [o.to_dict() for o in self.static]
        if self.dynamic_source:
            result["dynamicSource"] = self.dynamic_source.to_dict()
        if self.dependency:
            result["dependency"] = self.dependency.to_dict()
        return result


@dataclass(frozen=True)
class DefaultWhen:
    """A conditional default; the first matching entry of a field wins."""

    condition: Condition
    value: Any

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str = "") -> DefaultWhen:
        return cls(
            condition=condition_from_dict(data.get("condition"), join_path(path, "condition")),
            value=data.get("value"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"condition": self.condition.to_dict(), "value": self.value}


@dataclass(frozen=True)
class ValidationRule:
    """A field constraint, e.g. {type: minLength, parameters: 3}."""

    type: str
    message: str = ""
    parameters: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationRule:
        return cls(
            type=data.get("type", ""),
            message=data.get("message", ""),
            parameters=data.get("parameters"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type}
        if self.message:
            result["message"] = self.message
        if self.parameters is not None:
            result["parameters"] = self.parameters
        return result


@dataclass(frozen=True)
class FieldSpec:
    """Declarative description of one form field."""

    id: str
    type: FieldType = FieldType.TEXT
    label: str = ""
    required: bool = False
    required_if: Condition | None = None
    visible: Condition | None = None
    enabled: Condition | None = None
    default_value: Any = None
    default_when: tuple[DefaultWhen, ...] = ()
    placeholder: str = ""
    help_text: str = ""
    validation_rules: tuple[ValidationRule, ...] = ()
    properties: dict[str, Any] = field(default_factory=dict)
    order: int = 0
    options: OptionsConfig | None = None
    nested: tuple[FieldSpec, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str = "") -> FieldSpec:
        """Build a field from its schema-file form.

        Raises:
            StructuralError: Missing id, unknown type, or ill-formed
                condition/options
        """
        field_id = data.get("id")
        location = join_path(path, str(field_id or "?"))
        if not field_id or not isinstance(field_id, str):
            raise StructuralError("Invalid field", [StructuralIssue(location, "field requires an id")])

        raw_type = data.get("type", FieldType.TEXT.value)
        try:
            field_type = FieldType(raw_type)
        except ValueError:
            raise StructuralError(
                "Invalid field",
                [StructuralIssue(join_path(location, "type"), f"unknown field type '{raw_type}'")],
            )

        options = data.get("options")
        nested = data.get("nested") or data.get("fields") or []

        return cls(
            id=field_id,
            type=field_type,
            label=data.get("label", ""),
            required=bool(data.get("required", False)),
            required_if=_condition(data.get("requiredIf"), join_path(location, "requiredIf")),
            visible=_condition(data.get("visible"), join_path(location, "visible")),
            enabled=_condition(data.get("enabled"), join_path(location, "enabled")),
            default_value=data.get("defaultValue"),
            default_when=tuple(
                DefaultWhen.from_dict(entry, f"{join_path(location, 'defaultWhen')}[{i}]")
                for i, entry in enumerate(data.get("defaultWhen") or [])
            ),
            placeholder=data.get("placeholder", ""),
            help_text=data.get("helpText", ""),
            validation_rules=tuple(
                ValidationRule.from_dict(rule) for rule in data.get("validationRules") or []
            ),
            properties=dict(data.get("properties") or {}),
            order=int(data.get("order", 0)),
            options=OptionsConfig.from_dict(options, join_path(location, "options"))
            if options
            else None,
            nested=tuple(FieldSpec.from_dict(child, location) for child in nested),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "type": self.type.value}
        if self.label:
            result["label"] = self.label
        if self.required:
            result["required"] = True
        for key, condition in (
            ("requiredIf", self.required_if),
            ("visible", self.visible),
            ("enabled", self.enabled),
        ):
            if condition is not None:
                result[key] = condition.to_dict()
        if self.default_value is not None:
            result["defaultValue"] = self.default_value
        if self.default_when:
            result["defaultWhen"] = [d.to_dict() for d in self.default_when]
        if self.placeholder:
            result["placeholder"] = self.placeholder
        if self.help_text:
            result["helpText"] = self.help_text
        if self.validation_rules:
            result["validationRules"] = [r.to_dict() for r in self.validation_rules]
        if self.properties:
            result["properties"] = self.properties
        if self.order:
            result["order"] = self.order
        if self.options is not None:
            result["options"] = self.options.to_dict()
        if self.nested:
            result["nested"] = [child.to_dict() for child in self.nested]
        return result


@dataclass(frozen=True)
class FormSchema:
    """A form: ordered top-level fields plus schema-level variables.

    Sibling ids must be unique; nested ids flatten to dotted paths
    (`address.city`).
    """

    id: str
    fields: tuple[FieldSpec, ...] = ()
    title: str = ""
    description: str = ""
    variables: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        issues = _duplicate_issues(self.fields, "")
        if issues:
            raise StructuralError("Duplicate field ids", issues)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FormSchema:
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            variables=dict(data.get("variables") or {}),
            fields=tuple(FieldSpec.from_dict(f) for f in data.get("fields") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "title": self.title}
        if self.description:
            result["description"] = self.description
        if self.variables:
            result["variables"] = self.variables
        result["fields"] = [f.to_dict() for f in self.fields]
        return result

    def iter_fields(self) -> Iterator[tuple[str, FieldSpec]]:
        """Depth-first (path, field) pairs in declaration order."""
        yield from _walk(self.fields, "")

    @cached_property
    def field_map(self) -> dict[str, FieldSpec]:
        return dict(self.iter_fields())

    def field_paths(self) -> list[str]:
        return list(self.field_map)

    def get_field(self, path: str) -> FieldSpec:
        """Field at a dotted path.

        Raises:
            KeyError: If no field has that path
        """
        try:
            return self.field_map[path]
        except KeyError:
            raise KeyError(f"Unknown field: {path}")

    def has_field(self, path: str) -> bool:
        return path in self.field_map

    def parent_of(self, path: str) -> str | None:
        """Path of the enclosing field, or None for top-level fields."""
        parent = path.rpartition(".")[0]
        return parent if parent in self.field_map else None


def _walk(fields: tuple[FieldSpec, ...], prefix: str) -> Iterator[tuple[str, FieldSpec]]:
    for spec in fields:
        path = join_path(prefix, spec.id)
        yield path, spec
        yield from _walk(spec.nested, path)


def _duplicate_issues(fields: tuple[FieldSpec, ...], prefix: str) -> list[StructuralIssue]:
    issues: list[StructuralIssue] = []
    seen: set[str] = set()
    for spec in fields:
        path = join_path(prefix, spec.id)
        if spec.id in seen:
            issues.append(StructuralIssue(path, f"duplicate field id '{spec.id}'"))
        seen.add(spec.id)
        issues.extend(_duplicate_issues(spec.nested, path))
    return issues


def _condition(data: Any, path: str) -> Condition | None:
    # `visible: true` means no constraint; `visible: false` always fails
    if data is None or data is True:
        return None
    if data is False:
        return ExpressionCondition("false")
    return condition_from_dict(data, path)
