"""Autosuggest for partially typed expressions.

Suggestions are derived from a registry snapshot: every variable, its nested
object properties and first array element (`items[0]`), plus every function.
They are informational only and never affect evaluation.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from smartform.errors import SmartFormError
from smartform.expressions.evaluator import EvaluationContext, Evaluator
from smartform.expressions.parser import parse
from smartform.expressions.registry import Registry, RegistrySnapshot
from smartform.expressions.values import type_name

MAX_NESTING = 5
SAMPLE_LENGTH = 20

_ELEMENT_PROPERTY = re.compile(r"^(.*\[\d+\])\.(\w*)$")


@dataclass
class ArrayInfo:
    item_type: str
    sample_access: str

    def to_dict(self) -> dict[str, Any]:
        return {"itemType": self.item_type, "sampleAccess": self.sample_access}


@dataclass
class Suggestion:
    """A completion candidate.

    Attributes:
        expr: Text to insert (e.g. "customer.address.city")
        type: Value type ("string", "number", "object", "array<object>", "function", ...)
        description: Human-readable description
        value: Truncated sample of the current value
        children: Direct property names, for objects
        is_nested: The expression is below a root variable
        array_info: Item type and sample access, for arrays
        is_function: The suggestion is a function
        signature: Call signature, for functions
    """

    expr: str
    type: str
    description: str = ""
    value: Any = None
    children: list[str] = field(default_factory=list)
    is_nested: bool = False
    array_info: ArrayInfo | None = None
    is_function: bool = False
    signature: str = ""

    @property
    def depth(self) -> int:
        return self.expr.count(".") + self.expr.count("[")

    def to_dict(self) -> dict[str, Any]:
        return {
            "expr": self.expr,
            "type": self.type,
            "description": self.description,
            "value": self.value,
            "children": self.children,
            "isNested": self.is_nested,
            "arrayInfo": self.array_info.to_dict() if self.array_info else None,
            "isFunction": self.is_function,
            "signature": self.signature,
        }


def value_type(value: Any) -> str:
    """Type label for a suggestion; arrays carry their first item's type."""
    if isinstance(value, (list, tuple)):
        return f"array<{value_type(value[0])}>" if value else "array"
    return type_name(value)


def sample_value(value: Any) -> Any:
    """Shortened preview of a value."""
    if isinstance(value, str):
        return value if len(value) <= SAMPLE_LENGTH else value[:SAMPLE_LENGTH] + "..."
    if isinstance(value, (list, tuple)):
        return [sample_value(value[0]), "..."] if value else []
    if isinstance(value, Mapping):
        return {k: sample_value(v) for k, v in list(value.items())[:3]}
    return value


def describe_value(expr: str, value: Any, description: str = "", nested: bool = False) -> Suggestion:
    """Build the suggestion for one path, filling children and array info."""
    suggestion = Suggestion(
        expr=expr,
        type=value_type(value),
        description=description,
        value=sample_value(value),
        is_nested=nested,
    )
    if isinstance(value, Mapping):
        suggestion.children = sorted(str(k) for k in value)
    elif isinstance(value, (list, tuple)) and value:
        suggestion.array_info = ArrayInfo(value_type(value[0]), f"{expr}[0]")
    return suggestion


def generate_suggestions(snapshot: RegistrySnapshot) -> list[Suggestion]:
    """Every variable (with nested paths) and every function in a snapshot."""
    suggestions: list[Suggestion] = []

    for name in sorted(snapshot.variables):
        entry = snapshot.variables[name]
        try:
            value = entry.resolve()
        except SmartFormError:
            value = None
        suggestions.append(
            describe_value(name, value, entry.description or f"{name} variable")
        )
        suggestions.extend(_nested_suggestions(name, value, 1))

    for name in sorted(snapshot.functions):
        definition = snapshot.functions[name]
        suggestions.append(
            Suggestion(
                expr=name,
                type="function",
                description=definition.description,
                is_function=True,
                signature=definition.signature,
            )
        )

    return suggestions


def _nested_suggestions(prefix: str, value: Any, level: int) -> list[Suggestion]:
    if level > MAX_NESTING:
        return []

    suggestions: list[Suggestion] = []
    if isinstance(value, Mapping):
        for key in sorted(value, key=str):
            expr = f"{prefix}.{key}"
            suggestions.append(
                describe_value(expr, value[key], f"Property of {prefix}", nested=True)
            )
            suggestions.extend(_nested_suggestions(expr, value[key], level + 1))
    elif isinstance(value, (list, tuple)) and value:
        expr = f"{prefix}[0]"
        suggestions.append(
            describe_value(expr, value[0], f"First element of {prefix}", nested=True)
        )
        suggestions.extend(_nested_suggestions(expr, value[0], level + 1))
    return suggestions


def suggest(
    partial: str,
    registry: Registry | RegistrySnapshot,
    limit: int | None = None,
) -> list[Suggestion]:
    """Ranked completions for a partially typed expression.

    Handles a leading `${`, the current argument of an open function call,
    properties of an indexed array element (`items[0].`), children of an
    object (`user.`), and otherwise prefix matching.

    Args:
        partial: Text typed so far
        registry: Registry (or snapshot) to draw names from
        limit: Maximum number of suggestions

    Returns:
        Suggestions, best first
    """
    snapshot = registry.snapshot() if isinstance(registry, Registry) else registry
    text = partial.strip()
    if text.startswith("${"):
        text = text[2:]
    if text.endswith("}"):
        text = text[:-1]
    text = text.lstrip()

    argument = _current_argument(text)
    if argument is not None:
        if argument == "":
            results = [
                s for s in generate_suggestions(snapshot) if not s.is_function
            ]
            results.sort(key=lambda s: (s.depth, s.expr))
            return results[:limit] if limit else results
        text = argument

    element = _ELEMENT_PROPERTY.match(text)
    if element:
        results = _children_of(element.group(1), element.group(2), snapshot)
    elif text.endswith("."):
        results = _children_of(text[:-1], "", snapshot)
    else:
        results = _rank(text, generate_suggestions(snapshot))

    return results[:limit] if limit else results


def _current_argument(text: str) -> str | None:
    """Text of the argument being typed inside an open call, if any."""
    depth = 0
    quote: str | None = None
    start: int | None = None
    for index, char in enumerate(text):
        if quote:
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
            start = index + 1
        elif char == ")":
            depth -= 1
            start = None
        elif char == "," and depth > 0:
            start = index + 1

    if depth <= 0 or start is None:
        return None
    return text[start:].strip()


def _children_of(path: str, prefix: str, snapshot: RegistrySnapshot) -> list[Suggestion]:
    try:
        value = Evaluator(EvaluationContext({}, snapshot)).evaluate(parse(path))
    except SmartFormError:
        return []

    results: list[Suggestion] = []
    if isinstance(value, Mapping):
        for key in sorted(value, key=str):
            if str(key).lower().startswith(prefix.lower()):
                results.append(
                    describe_value(f"{path}.{key}", value[key], f"Property of {path}", True)
                )
    elif isinstance(value, (list, tuple)) and value and not prefix:
        results.append(
            describe_value(f"{path}[0]", value[0], f"First element of {path}", True)
        )
    return results


def _rank(text: str, candidates: list[Suggestion]) -> list[Suggestion]:
    """Exact match, then prefix matches, then case-insensitive substrings."""
    needle = text.lower()
    scored: list[tuple[tuple, Suggestion]] = []

    for suggestion in candidates:
        expr = suggestion.expr
        if expr == text:
            tier = 0
        elif expr.startswith(text):
            tier = 1
        elif expr.lower().startswith(needle):
            tier = 2
        elif needle and needle in expr.lower():
            tier = 3
        else:
            continue
        scored.append(
            ((tier, suggestion.depth, suggestion.is_function, expr), suggestion)
        )

    scored.sort(key=lambda item: item[0])
    return [suggestion for _, suggestion in scored]
