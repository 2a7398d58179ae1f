"""Function metadata for the expression language.

Functions are callable from fragments (e.g. `${toUpper(user.name)}`). Each
function carries metadata used for documentation and autosuggest.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class FunctionCategory(Enum):
    """Categories for organizing functions in documentation."""

    LOGIC = "logic"
    MATH = "math"
    STRING = "string"
    COLLECTION = "collection"
    CONVERSION = "conversion"
    NULL = "null"
    DATE = "date"
    CUSTOM = "custom"


@dataclass
class FunctionParameter:
    """Definition of a function parameter.

    Attributes:
        name: Parameter name
        type: Expected type ("string", "number", "date", "any", "array", etc.)
        description: Human-readable description
        required: Whether this parameter is required
        variadic: If True, this parameter accepts multiple values
    """

    name: str
    type: str
    description: str = ""
    required: bool = True
    variadic: bool = False


@dataclass
class FunctionDefinition:
    """Complete definition of an expression function.

    Attributes:
        name: Function name as used in expressions
        implementation: The Python callable, invoked with positional arguments
        description: Human-readable description
        category: Category for documentation organization
        parameters: Parameter definitions
        return_type: Type of the return value
        examples: Example expressions using this function
        null_safe: Unresolvable arguments are passed as None instead of failing
    """

    name: str
    implementation: Callable[..., Any]
    description: str = ""
    category: FunctionCategory = FunctionCategory.CUSTOM
    parameters: list[FunctionParameter] = field(default_factory=list)
    return_type: str = "any"
    examples: list[str] = field(default_factory=list)
    null_safe: bool = False

    @property
    def signature(self) -> str:
        """Call signature, e.g. `substring(value, start, length?)`."""
        params = []
        for p in self.parameters:
            label = f"...{p.name}" if p.variadic else p.name
            if not p.required and not p.variadic:
                label += "?"
            params.append(label)
        return f"{self.name}({', '.join(params)})"

    def to_dict(self) -> dict[str, Any]:
        """Export for documentation output."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "signature": self.signature,
            "parameters": [
                {
                    "name": p.name,
                    "type": p.type,
                    "description": p.description,
                    "required": p.required,
                    "variadic": p.variadic,
                }
                for p in self.parameters
            ],
            "returnType": self.return_type,
            "examples": self.examples,
        }
