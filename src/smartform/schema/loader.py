"""Load form schemas from YAML and validate them.

Validation runs in two passes, both eager:
1. The document is checked against the bundled JSON Schema
   (schemas/form.schema.json, sharing definitions from _defs.schema.json).
2. The built FormSchema is checked structurally: sibling id uniqueness,
   condition tree shape and expression syntax in every template string.

Any error blocks acceptance; `load_form` raises StructuralError listing the
issues, `validate_form_file` returns them.

Usage:
    schema = load_form(Path("forms/signup.yaml"))
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from smartform.conditions.validation import condition_issues
from smartform.errors import ExpressionSyntaxError, StructuralError, StructuralIssue
from smartform.expressions.template import contains_expression, parse_template
from smartform.paths import join_path
from smartform.schema.types import FieldSpec, FormSchema

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"
_SCHEMA_FILES = ["_defs.schema.json", "form.schema.json"]


@dataclass
class ValidationIssue:
    """A single finding for a form definition file."""

    source: str
    message: str
    path: str = ""
    severity: str = "error"  # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.source}{loc}: {self.message}"


# ---------------------------------------------------------------------------
# JSON Schema pass
# ---------------------------------------------------------------------------


def _load_schema(name: str) -> dict[str, Any]:
    with (_SCHEMAS_DIR / name).open() as fh:
        return json.load(fh)


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    resources = []
    for name in _SCHEMA_FILES:
        schema = _load_schema(name)
        resources.append((schema["$id"], Resource(contents=schema, specification=DRAFT202012)))
    registry = Registry().with_resources(resources)
    return Draft202012Validator(_load_schema("form.schema.json"), registry=registry)


def _json_path(error: ValidationError) -> str:
    parts = []
    for p in error.absolute_path:
        parts.append(f"[{p}]" if isinstance(p, int) else str(p))
    return "/".join(parts).replace("/[", "[")


def document_issues(document: Any, source: str = "<document>") -> list[ValidationIssue]:
    """Check a parsed YAML document against the form JSON Schema."""
    if document is None:
        return [ValidationIssue(source, "File is empty or contains only whitespace")]
    return [
        ValidationIssue(source, error.message, _json_path(error))
        for error in sorted(_validator().iter_errors(document), key=lambda e: list(e.path))
    ]


# ---------------------------------------------------------------------------
# Structural pass
# ---------------------------------------------------------------------------


def schema_issues(schema: FormSchema, allow_empty_groups: bool = False) -> list[StructuralIssue]:
    """Structural problems in a built schema (conditions and expressions)."""
    issues: list[StructuralIssue] = []
    for path, spec in schema.iter_fields():
        issues.extend(field_issues(spec, path, allow_empty_groups))
    return issues


def field_issues(
    spec: FieldSpec, path: str, allow_empty_groups: bool = False
) -> list[StructuralIssue]:
    issues: list[StructuralIssue] = []

    for key, condition in (
        ("visible", spec.visible),
        ("enabled", spec.enabled),
        ("requiredIf", spec.required_if),
    ):
        if condition is not None:
            issues.extend(condition_issues(condition, join_path(path, key), allow_empty_groups))

    for index, entry in enumerate(spec.default_when):
        location = f"{join_path(path, 'defaultWhen')}[{index}]"
        issues.extend(
            condition_issues(entry.condition, join_path(location, "condition"), allow_empty_groups)
        )
        issues.extend(_template_issues(entry.value, join_path(location, "value")))

    for key, value in (
        ("label", spec.label),
        ("placeholder", spec.placeholder),
        ("helpText", spec.help_text),
        ("defaultValue", spec.default_value),
        ("properties", spec.properties),
    ):
        issues.extend(_template_issues(value, join_path(path, key)))

    for index, rule in enumerate(spec.validation_rules):
        location = f"{join_path(path, 'validationRules')}[{index}]"
        if rule.type == "requiredIf" and rule.parameters is not None:
            issues.extend(
                condition_issues(rule.parameters, join_path(location, "parameters"), allow_empty_groups)
            )
        issues.extend(_template_issues(rule.message, join_path(location, "message")))

    return issues


def _template_issues(value: Any, path: str) -> list[StructuralIssue]:
    """Syntax errors in every template string inside a value."""
    if contains_expression(value):
        try:
            parse_template(value)
        except ExpressionSyntaxError as e:
            return [StructuralIssue(path, str(e))]
        return []
    if isinstance(value, dict):
        return [
            issue
            for key, item in value.items()
            for issue in _template_issues(item, join_path(path, str(key)))
        ]
    if isinstance(value, list):
        return [
            issue
            for index, item in enumerate(value)
            for issue in _template_issues(item, f"{path}[{index}]")
        ]
    return []


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_schema(
    document: dict[str, Any],
    allow_empty_groups: bool = False,
    source: str = "<document>",
) -> FormSchema:
    """Validate a parsed document and build its FormSchema.

    Raises:
        StructuralError: JSON Schema or structural issues were found
    """
    problems = document_issues(document, source)
    if problems:
        raise StructuralError(
            f"Invalid form definition {source}",
            [StructuralIssue(p.path, p.message) for p in problems],
        )

    schema = FormSchema.from_dict(document["form"])
    issues = schema_issues(schema, allow_empty_groups)
    if issues:
        raise StructuralError(f"Invalid form definition {source}", issues)

    logger.debug("Loaded form %s with %d fields", schema.id, len(schema.field_map))
    return schema


def load_form_string(text: str, allow_empty_groups: bool = False, source: str = "<string>") -> FormSchema:
    """Parse YAML text into a validated FormSchema."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise StructuralError(f"YAML parse error in {source}: {e}")
    return build_schema(document, allow_empty_groups, source)


def load_form(path: Path, allow_empty_groups: bool = False) -> FormSchema:
    """Load and validate a form definition file.

    Raises:
        StructuralError: The file does not parse or is not a valid form
    """
    with Path(path).open() as fh:
        text = fh.read()
    return load_form_string(text, allow_empty_groups, str(path))


def validate_form_file(path: Path, allow_empty_groups: bool = False) -> list[ValidationIssue]:
    """Collect every issue in a form definition file without raising.

    Returns:
        A list of ValidationIssue (empty when the file is valid)
    """
    source = str(path)
    try:
        with Path(path).open() as fh:
            document = yaml.safe_load(fh)
    except yaml.YAMLError as e:
        return [ValidationIssue(source, f"YAML parse error: {e}")]

    issues = document_issues(document, source)
    if issues:
        return issues

    try:
        schema = FormSchema.from_dict(document["form"])
    except StructuralError as e:
        return [ValidationIssue(source, issue.message, issue.path) for issue in e.issues] or [
            ValidationIssue(source, str(e))
        ]

    return [
        ValidationIssue(source, issue.message, issue.path)
        for issue in schema_issues(schema, allow_empty_groups)
    ]
