"""Error taxonomy for the SmartForm engine.

Every error raised by the engine derives from SmartFormError so callers can
catch the whole family at one boundary:

- ExpressionSyntaxError: malformed `${...}` text (LexerError, ParseError)
- ResolutionError: unknown identifier or function, depth exceeded
- OperandTypeError: operator applied to incompatible values
- StructuralError: ill-formed condition tree or schema
- CycleError: dependency cycle record (reported, not raised, by the graph)
- FunctionError: a registered callable raised
- ConditionError: adds tree location to an error raised inside a group
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class SmartFormError(Exception):
    """Base class for all engine errors."""


class ExpressionSyntaxError(SmartFormError):
    """Malformed expression text."""

    def __init__(self, message: str, position: int | None = None):
        self.position = position
        self.message = message
        if position is not None:
            message = f"{message} at position {position}"
        super().__init__(message)


class ResolutionError(SmartFormError):
    """An identifier, path segment or function could not be resolved."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class ResolutionDepthError(ResolutionError):
    """Template resolution exceeded the configured maximum depth."""


class OperandTypeError(SmartFormError):
    """An operator was applied to values of incompatible types."""


@dataclass
class StructuralIssue:
    """A single structural problem found while validating a definition.

    Attributes:
        path: Location within the definition (e.g. "conditions[1].field")
        message: Human-readable description
    """

    path: str
    message: str

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "message": self.message}


class StructuralError(SmartFormError):
    """An ill-formed condition or schema."""

    def __init__(self, message: str, issues: list[StructuralIssue] | None = None):
        self.issues = issues or []
        if self.issues:
            details = "; ".join(str(issue) for issue in self.issues)
            message = f"{message}: {details}"
        super().__init__(message)


class CycleError(SmartFormError):
    """A dependency cycle between fields."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle: {' -> '.join(cycle)}")


class FunctionError(SmartFormError):
    """A registered function or transformer raised during execution."""

    def __init__(self, function: str, message: str):
        self.function = function
        super().__init__(f"Error calling {function}: {message}")


class ConditionError(SmartFormError):
    """Wraps an error raised by a child of an AND/OR/NOT condition."""

    def __init__(self, location: str, cause: Exception):
        self.location = location
        self.cause = cause
        super().__init__(f"{location}: {cause}")
