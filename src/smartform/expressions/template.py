"""Splitting text into literal text and `${...}` expression fragments.

A fragment body may itself contain braces and quoted strings, e.g.
`${ {"a": 1}.a }` or `${concat("}", name)}`; the scanner tracks brace depth
and skips over quoted text so those close at the right `}`.
"""

from dataclasses import dataclass, field
from functools import lru_cache

from smartform.errors import ExpressionSyntaxError
from smartform.expressions.parser import ASTNode, iter_references, parse

MARKER = "${"


@dataclass(frozen=True)
class TextPart:
    """Literal text between fragments."""

    text: str


@dataclass(frozen=True)
class ExpressionPart:
    """A parsed `${...}` fragment.

    Attributes:
        source: Fragment body (without delimiters)
        ast: Parsed body
        position: Offset of the `${` in the template text
    """

    source: str
    ast: ASTNode = field(compare=False, repr=False)
    position: int = 0


Part = TextPart | ExpressionPart


@dataclass(frozen=True)
class Template:
    """Parsed form of a template string."""

    text: str
    parts: tuple[Part, ...]

    @property
    def has_expressions(self) -> bool:
        return any(isinstance(part, ExpressionPart) for part in self.parts)

    @property
    def single_expression(self) -> ExpressionPart | None:
        """The fragment, when the whole text is exactly one fragment."""
        if len(self.parts) == 1 and isinstance(self.parts[0], ExpressionPart):
            return self.parts[0]
        return None

    def references(self) -> list[str]:
        """Variable paths read by any fragment, in order of appearance."""
        paths: list[str] = []
        for part in self.parts:
            if isinstance(part, ExpressionPart):
                for path in iter_references(part.ast):
                    if path not in paths:
                        paths.append(path)
        return paths


def contains_expression(value: object) -> bool:
    """True when value is a string holding at least one `${` marker."""
    return isinstance(value, str) and MARKER in value


@lru_cache(maxsize=1024)
def parse_template(text: str) -> Template:
    """Parse text into literal parts and expression fragments.

    Results are cached by text, so repeated resolution of the same schema
    strings does not re-tokenize them.

    Raises:
        ExpressionSyntaxError: Unterminated or empty fragment, or a body that
            does not parse
    """
    parts: list[Part] = []
    position = 0

    while True:
        start = text.find(MARKER, position)
        if start < 0:
            if position < len(text):
                parts.append(TextPart(text[position:]))
            break

        if start > position:
            parts.append(TextPart(text[position:start]))

        end = _find_fragment_end(text, start + len(MARKER))
        body = text[start + len(MARKER):end].strip()
        if not body:
            raise ExpressionSyntaxError("Empty expression", start)
        parts.append(ExpressionPart(body, _parse_body(body, start), start))
        position = end + 1

    return Template(text, tuple(parts))


def wrap_expression(text: str) -> str:
    """Wrap a bare expression in `${}` unless it already has delimiters."""
    stripped = text.strip()
    if MARKER in stripped:
        return stripped
    return f"{MARKER}{stripped}}}"


def _find_fragment_end(text: str, offset: int) -> int:
    """Index of the `}` closing a fragment whose body starts at offset."""
    depth = 0
    quote: str | None = None
    index = offset

    while index < len(text):
        char = text[index]
        if quote:
            if char == "\\":
                index += 1
            elif char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            if depth == 0:
                return index
            depth -= 1
        index += 1

    raise ExpressionSyntaxError("Unterminated '${' in template", offset - len(MARKER))


def _parse_body(body: str, offset: int) -> ASTNode:
    try:
        return parse(body)
    except ExpressionSyntaxError as e:
        inner = e.position or 0
        raise ExpressionSyntaxError(
            f"Invalid expression '{body}': {e.message}",
            offset + len(MARKER) + inner,
        ) from e
