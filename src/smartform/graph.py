"""Field dependency graph.

Built once per schema by statically scanning every place a field can read
another field (conditions, templates, options and validation rules) without
evaluating anything. References bind to the longest field path that prefixes
them (`address.city.name` -> `address.city`); references that match no field
are registry variables and are kept in `external_references`.

Cycles are never assumed away: traversal uses visited sets, and
evaluation_order() reports each cycle (logged and recorded in `cycles`)
instead of raising.
"""

import logging
import re
from collections import deque
from collections.abc import Iterable, Iterator
from typing import Any

from smartform.conditions.types import (
    Condition,
    ExistsCondition,
    ExpressionCondition,
    SimpleCondition,
    condition_from_dict,
)
from smartform.errors import CycleError, ExpressionSyntaxError, StructuralError
from smartform.expressions.template import (
    contains_expression,
    parse_template,
    wrap_expression,
)
from smartform.schema.types import FieldSpec, FormSchema

logger = logging.getLogger(__name__)

_INDEX = re.compile(r"\[\d+\]")


class DependencyGraph:
    """Which fields read which.

    Attributes:
        dependencies: path -> paths it reads
        dependents: path -> paths that read it
        external_references: path -> names it reads that are not fields
        cycles: Cycles found while ordering, as CycleError records
    """

    def __init__(self, schema: FormSchema):
        self.schema = schema
        paths = schema.field_paths()
        self.dependencies: dict[str, set[str]] = {path: set() for path in paths}
        self.dependents: dict[str, set[str]] = {path: set() for path in paths}
        self.external_references: dict[str, set[str]] = {}
        self.cycles: list[CycleError] = []
        self._order: list[str] | None = None

        for path, spec in schema.iter_fields():
            for reference in field_references(spec):
                self._add_reference(path, reference)

    @classmethod
    def build(cls, schema: FormSchema) -> "DependencyGraph":
        return cls(schema)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def dependencies_of(self, path: str) -> set[str]:
        return set(self.dependencies.get(path, ()))

    def dependents_of(self, path: str) -> set[str]:
        return set(self.dependents.get(path, ()))

    def affected_by(self, changed: Iterable[str]) -> set[str]:
        """The changed ids plus every field that transitively reads them.

        A changed value path (`items[0].name`) counts as a change of the
        field it belongs to, and a changed group also changes its nested
        fields.
        """
        affected: set[str] = set()
        queue: deque[str] = deque()

        for changed_id in changed:
            affected.add(changed_id)
            for path in self._changed_fields(changed_id):
                queue.append(path)

        visited: set[str] = set()
        while queue:
            path = queue.popleft()
            if path in visited:
                continue
            visited.add(path)
            affected.add(path)
            queue.extend(self.dependents.get(path, ()))

        return affected

    def evaluation_order(self) -> list[str]:
        """Every field, dependencies before dependents.

        Declaration order breaks ties. A dependency that would close a cycle
        is skipped; the cycle is logged and recorded in `cycles`.
        """
        if self._order is not None:
            return list(self._order)

        order: list[str] = []
        visited: set[str] = set()
        in_progress: list[str] = []
        cycles: list[CycleError] = []

        def visit(path: str) -> None:
            if path in visited:
                return
            if path in in_progress:
                cycle = in_progress[in_progress.index(path):] + [path]
                logger.warning("Dependency cycle detected: %s", " -> ".join(cycle))
                cycles.append(CycleError(cycle))
                return
            in_progress.append(path)
            for dependency in self._ordered(self.dependencies[path]):
                visit(dependency)
            in_progress.pop()
            visited.add(path)
            order.append(path)

        for path in self.dependencies:
            visit(path)

        self._order = order
        self.cycles = cycles
        return list(order)

    def order_for(self, changed: Iterable[str]) -> list[str]:
        """Fields affected by a change, in evaluation order."""
        affected = self.affected_by(changed)
        return [path for path in self.evaluation_order() if path in affected]

    @property
    def has_cycles(self) -> bool:
        self.evaluation_order()
        return bool(self.cycles)

    def to_dict(self) -> dict[str, Any]:
        order = self.evaluation_order()
        return {
            "fields": {
                path: {
                    "dependsOn": sorted(self.dependencies[path]),
                    "dependents": sorted(self.dependents[path]),
                }
                for path in self.dependencies
            },
            "order": order,
            "cycles": [cycle.cycle for cycle in self.cycles],
            "external": {
                path: sorted(names) for path, names in self.external_references.items()
            },
        }

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    def _add_reference(self, path: str, reference: str) -> None:
        target = self.bind(reference)
        if target is None:
            self.external_references.setdefault(path, set()).add(reference)
            return
        if target == path:
            return
        self.dependencies[path].add(target)
        self.dependents[target].add(path)

    def bind(self, reference: str) -> str | None:
        """Field path a reference reads, or None for non-field names."""
        segments = _INDEX.sub("", reference).split(".")
        for end in range(len(segments), 0, -1):
            candidate = ".".join(segments[:end])
            if candidate in self.dependencies:
                return candidate
        return None

    def _changed_fields(self, changed_id: str) -> list[str]:
        target = self.bind(changed_id)
        if target is None:
            return []
        prefix = target + "."
        return [target] + [p for p in self.dependencies if p.startswith(prefix)]

    def _ordered(self, paths: set[str]) -> list[str]:
        position = {path: index for index, path in enumerate(self.dependencies)}
        return sorted(paths, key=lambda p: position[p])


# -----------------------------------------------------------------------------
# Reference extraction
# -----------------------------------------------------------------------------


def field_references(spec: FieldSpec) -> list[str]:
    """Every name a field reads, in a stable order, without duplicates."""
    seen: dict[str, None] = {}
    for reference in _iter_field_references(spec):
        seen.setdefault(reference, None)
    return list(seen)


def _iter_field_references(spec: FieldSpec) -> Iterator[str]:
    for condition in (spec.visible, spec.enabled, spec.required_if):
        if condition is not None:
            yield from condition_references(condition)

    for entry in spec.default_when:
        yield from condition_references(entry.condition)
        yield from value_references(entry.value)

    for value in (spec.label, spec.help_text, spec.placeholder, spec.default_value, spec.properties):
        yield from value_references(value)

    if spec.options is not None:
        dependency = spec.options.dependency
        if dependency is not None:
            if dependency.field:
                yield dependency.field
            if dependency.expression:
                yield from value_references(wrap_expression(dependency.expression))
        source = spec.options.dynamic_source
        if source is not None:
            yield from source.refresh_on
            yield from value_references(source.parameters)

    for rule in spec.validation_rules:
        if rule.type == "requiredIf" and rule.parameters:
            try:
                yield from condition_references(condition_from_dict(rule.parameters))
            except StructuralError as e:
                logger.warning("Skipping requiredIf rule on %s: %s", spec.id, e)
        elif rule.type == "dependency":
            parameters = rule.parameters
            if isinstance(parameters, dict):
                parameters = parameters.get("field")
            if isinstance(parameters, str) and parameters:
                yield parameters


def condition_references(condition: Condition) -> Iterator[str]:
    """Names read by a condition tree."""
    if isinstance(condition, SimpleCondition):
        if contains_expression(condition.field):
            yield from value_references(condition.field)
        elif condition.field:
            yield condition.field
        yield from value_references(condition.value)
    elif isinstance(condition, ExistsCondition):
        if condition.field:
            yield condition.field
    elif isinstance(condition, ExpressionCondition):
        if condition.expression.strip():
            yield from value_references(wrap_expression(condition.expression))
    else:
        for child in getattr(condition, "conditions", ()):
            yield from condition_references(child)


def value_references(value: Any) -> Iterator[str]:
    """Names read by template strings anywhere inside a value."""
    if contains_expression(value):
        try:
            yield from parse_template(value).references()
        except ExpressionSyntaxError as e:
            logger.warning("Skipping unparseable template %r: %s", value, e)
    elif isinstance(value, dict):
        for item in value.values():
            yield from value_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from value_references(item)
