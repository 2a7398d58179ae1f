"""Variable and function registry for expression evaluation.

A Registry is created per schema (or per engine) and passed explicitly to
the components that evaluate expressions; there is no process-wide instance.

Writes are copy-on-write: each registration builds new mappings under a lock
and swaps in a fresh immutable RegistrySnapshot. Readers call snapshot() once
per evaluation pass and work on that frozen view without locking, so a
registration made during a pass is only seen by later passes.
"""

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from smartform.errors import FunctionError, ResolutionError
from smartform.expressions.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionParameter,
)


@dataclass(frozen=True)
class VariableEntry:
    """A registered variable.

    Attributes:
        name: Root name used in expressions
        value: Static value, or a zero-argument callable when provider is True
        description: Human-readable description for autosuggest
        provider: The value is computed on each read by calling it
    """

    name: str
    value: Any
    description: str = ""
    provider: bool = False

    def resolve(self) -> Any:
        """Current value of the variable."""
        if not self.provider:
            return self.value
        try:
            return self.value()
        except Exception as e:
            raise FunctionError(self.name, str(e)) from e


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable view of a registry at one point in time."""

    variables: Mapping[str, VariableEntry] = field(
        default_factory=lambda: MappingProxyType({})
    )
    functions: Mapping[str, FunctionDefinition] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def has_variable(self, name: str) -> bool:
        return name in self.variables

    def variable(self, name: str) -> Any:
        """Resolve a root variable by name.

        Raises:
            ResolutionError: If the variable is not registered
        """
        entry = self.variables.get(name)
        if entry is None:
            raise ResolutionError(f"Variable not found: {name}", name)
        return entry.resolve()

    def function(self, name: str) -> FunctionDefinition:
        """Look up a function definition.

        Raises:
            ResolutionError: If the function is not registered
        """
        definition = self.functions.get(name)
        if definition is None:
            raise ResolutionError(f"Unknown function: {name}", name)
        return definition

    def values(self) -> Mapping[str, Any]:
        """Read-only view of the variables, each resolved when it is read."""
        return VariableValues(self.variables)


class VariableValues(Mapping):
    """Variable names to values, resolved lazily on access.

    Membership and iteration never call providers, so a failing provider only
    affects the expressions that read it.
    """

    def __init__(self, variables: Mapping[str, VariableEntry]):
        self._variables = variables

    def __getitem__(self, name: str) -> Any:
        return self._variables[name].resolve()

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __iter__(self):
        return iter(self._variables)

    def __len__(self) -> int:
        return len(self._variables)


class Registry:
    """Store of named variables and functions usable by expressions.

    Example:
        registry = Registry()
        registry.register_variable("user", {"name": "Ann", "age": 30})
        registry.register_function("greet", lambda name: f"Hi {name}")

        @registry.function("double", category=FunctionCategory.MATH)
        def double(x):
            return x * 2
    """

    def __init__(self, include_builtins: bool = True):
        self._lock = threading.Lock()
        self._snapshot = RegistrySnapshot()
        if include_builtins:
            from smartform.expressions.builtins import register_builtins

            register_builtins(self)

    def snapshot(self) -> RegistrySnapshot:
        """Current immutable view; take one per evaluation pass."""
        return self._snapshot

    # -------------------------------------------------------------------------
    # Variables
    # -------------------------------------------------------------------------

    def register_variable(self, name: str, value: Any, description: str = "") -> None:
        """Register (or replace) a variable with a static value."""
        self._put_variable(VariableEntry(name, value, description))

    def register_provider(
        self, name: str, provider: Callable[[], Any], description: str = ""
    ) -> None:
        """Register a variable whose value is computed on each read."""
        self._put_variable(VariableEntry(name, provider, description, provider=True))

    def register_variables(self, values: Mapping[str, Any]) -> None:
        """Register several static variables in one swap."""
        with self._lock:
            variables = dict(self._snapshot.variables)
            for name, value in values.items():
                _check_name(name)
                variables[name] = VariableEntry(name, value)
            self._replace(variables=variables)

    def unregister_variable(self, name: str) -> None:
        with self._lock:
            if name not in self._snapshot.variables:
                return
            variables = dict(self._snapshot.variables)
            del variables[name]
            self._replace(variables=variables)

    def has_variable(self, name: str) -> bool:
        return name in self._snapshot.variables

    def get_variable(self, name: str) -> Any:
        """Resolve a root variable by name.

        Raises:
            ResolutionError: If the variable is not registered
        """
        return self._snapshot.variable(name)

    def list_variables(self) -> list[str]:
        return sorted(self._snapshot.variables)

    # -------------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------------

    def register_function(
        self,
        name: str,
        implementation: Callable[..., Any],
        description: str = "",
        category: FunctionCategory = FunctionCategory.CUSTOM,
        parameters: list[FunctionParameter] | None = None,
        return_type: str = "any",
        examples: list[str] | None = None,
        null_safe: bool = False,
    ) -> None:
        """Register (or replace) a function callable from expressions."""
        self.register_definition(
            FunctionDefinition(
                name=name,
                implementation=implementation,
                description=description,
                category=category,
                parameters=parameters or [],
                return_type=return_type,
                examples=examples or [],
                null_safe=null_safe,
            )
        )

    def register_definition(self, definition: FunctionDefinition) -> None:
        _check_name(definition.name)
        with self._lock:
            functions = dict(self._snapshot.functions)
            functions[definition.name] = definition
            self._replace(functions=functions)

    def function(self, name: str, **metadata: Any) -> Callable:
        """Decorator registering the decorated callable under name."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.register_function(name, fn, **metadata)
            return fn

        return decorator

    def unregister_function(self, name: str) -> None:
        with self._lock:
            if name not in self._snapshot.functions:
                return
            functions = dict(self._snapshot.functions)
            del functions[name]
            self._replace(functions=functions)

    def has_function(self, name: str) -> bool:
        return name in self._snapshot.functions

    def get_function(self, name: str) -> FunctionDefinition:
        return self._snapshot.function(name)

    def list_functions(self) -> list[FunctionDefinition]:
        return sorted(self._snapshot.functions.values(), key=lambda f: f.name)

    def list_by_category(self, category: FunctionCategory) -> list[FunctionDefinition]:
        return [f for f in self.list_functions() if f.category == category]

    def export_documentation(self) -> dict[str, Any]:
        """Export function and variable metadata.

        Returns:
            Dict with function definitions keyed by name, grouped by
            category, and the registered variable names with descriptions
        """
        by_category: dict[str, list[dict[str, Any]]] = {}
        for definition in self.list_functions():
            by_category.setdefault(definition.category.value, []).append(
                definition.to_dict()
            )

        return {
            "functions": {f.name: f.to_dict() for f in self.list_functions()},
            "byCategory": by_category,
            "variables": {
                name: entry.description
                for name, entry in sorted(self._snapshot.variables.items())
            },
        }

    def clear(self) -> None:
        """Remove every variable and function, builtins included."""
        with self._lock:
            self._snapshot = RegistrySnapshot()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _put_variable(self, entry: VariableEntry) -> None:
        _check_name(entry.name)
        with self._lock:
            variables = dict(self._snapshot.variables)
            variables[entry.name] = entry
            self._replace(variables=variables)

    def _replace(
        self,
        variables: dict[str, VariableEntry] | None = None,
        functions: dict[str, FunctionDefinition] | None = None,
    ) -> None:
        # Caller holds the lock
        current = self._snapshot
        self._snapshot = RegistrySnapshot(
            variables=MappingProxyType(variables)
            if variables is not None
            else current.variables,
            functions=MappingProxyType(functions)
            if functions is not None
            else current.functions,
        )


def _check_name(name: str) -> None:
    if not name or not isinstance(name, str):
        raise ValueError("Registry names must be non-empty strings")
