"""Tokenizer for the body of `${...}` expression fragments.

Token types:
- Literals: NUMBER, STRING, BOOLEAN, NULL
- Identifiers: IDENTIFIER (variable paths, function names)
- Operators: comparison, logical, arithmetic, membership, ternary, coalesce
- Punctuation: parentheses, brackets, braces, COMMA, DOT, COLON
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator

from smartform.errors import ExpressionSyntaxError


class TokenType(Enum):
    """Types of tokens in a fragment body."""

    # Literals
    NUMBER = auto()
    STRING = auto()
    BOOLEAN = auto()
    NULL = auto()

    IDENTIFIER = auto()

    # Comparison
    EQ = auto()          # ==
    NEQ = auto()         # !=
    LT = auto()          # <
    LTE = auto()         # <=
    GT = auto()          # >
    GTE = auto()         # >=

    # Logical
    AND = auto()         # && or and
    OR = auto()          # || or or
    NOT = auto()         # ! or not

    # Arithmetic
    PLUS = auto()
    MINUS = auto()
    MULTIPLY = auto()
    DIVIDE = auto()
    MODULO = auto()

    # Membership
    IN = auto()
    NOT_IN = auto()

    # Conditional
    QUESTION = auto()    # ?
    COALESCE = auto()    # ??

    # Punctuation
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LBRACE = auto()
    RBRACE = auto()
    COMMA = auto()
    DOT = auto()
    COLON = auto()

    EOF = auto()


@dataclass(frozen=True)
class Token:
    """A single token.

    Attributes:
        type: The token type
        value: Parsed value (number, unquoted string, identifier name, operator text)
        position: Offset of the first character in the source
    """

    type: TokenType
    value: str | int | float | bool | None
    position: int

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, pos={self.position})"


class LexerError(ExpressionSyntaxError):
    """Unrecognised character in a fragment body."""


# Longer operators are listed before their prefixes
TOKEN_PATTERNS = [
    (r"\s+", None),

    (r"\?\?", TokenType.COALESCE),
    (r"==", TokenType.EQ),
    (r"!=", TokenType.NEQ),
    (r"<=", TokenType.LTE),
    (r">=", TokenType.GTE),
    (r"&&", TokenType.AND),
    (r"\|\|", TokenType.OR),

    (r"\?", TokenType.QUESTION),
    (r"<", TokenType.LT),
    (r">", TokenType.GT),
    (r"!", TokenType.NOT),
    (r"\+", TokenType.PLUS),
    (r"-", TokenType.MINUS),
    (r"\*", TokenType.MULTIPLY),
    (r"/", TokenType.DIVIDE),
    (r"%", TokenType.MODULO),

    (r"\(", TokenType.LPAREN),
    (r"\)", TokenType.RPAREN),
    (r"\[", TokenType.LBRACKET),
    (r"\]", TokenType.RBRACKET),
    (r"\{", TokenType.LBRACE),
    (r"\}", TokenType.RBRACE),
    (r",", TokenType.COMMA),
    (r"\.", TokenType.DOT),
    (r":", TokenType.COLON),

    (r"\d+\.\d+", TokenType.NUMBER),
    (r"\d+", TokenType.NUMBER),

    (r'"([^"\\]|\\.)*"', TokenType.STRING),
    (r"'([^'\\]|\\.)*'", TokenType.STRING),

    (r"[a-zA-Z_$][a-zA-Z0-9_$]*", TokenType.IDENTIFIER),
]

_COMPILED_PATTERNS = [(re.compile(pattern), kind) for pattern, kind in TOKEN_PATTERNS]

KEYWORDS = {
    "true": (TokenType.BOOLEAN, True),
    "false": (TokenType.BOOLEAN, False),
    "null": (TokenType.NULL, None),
    "nil": (TokenType.NULL, None),
    "and": (TokenType.AND, "and"),
    "or": (TokenType.OR, "or"),
    "not": (TokenType.NOT, "not"),
    "in": (TokenType.IN, "in"),
}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

_NOT_IN = re.compile(r"\s+in\b")


class Lexer:
    """Splits a fragment body into tokens.

    Usage:
        tokens = Lexer('age >= 18 ? "adult" : "minor"').tokenize()
    """

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self._previous: TokenType | None = None

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                break

    def tokenize(self) -> list[Token]:
        """Tokenize the whole source, ending with an EOF token."""
        return list(self)

    def next_token(self) -> Token:
        """Read the next significant token."""
        token = self._read_token()
        self._previous = token.type
        return token

    def _read_token(self) -> Token:
        while self.position < len(self.source):
            start = self.position
            for pattern, kind in _COMPILED_PATTERNS:
                match = pattern.match(self.source, start)
                if match:
                    break
            else:
                raise LexerError(
                    f"Unexpected character '{self.source[start]}'", start
                )

            text = match.group()
            self.position = match.end()

            if kind is None:
                continue
            if kind == TokenType.NUMBER:
                return Token(kind, float(text) if "." in text else int(text), start)
            if kind == TokenType.STRING:
                return Token(kind, _unescape(text[1:-1]), start)
            if kind == TokenType.IDENTIFIER:
                return self._identifier_or_keyword(text, start)
            return Token(kind, text, start)

        return Token(TokenType.EOF, None, self.position)

    def _identifier_or_keyword(self, text: str, start: int) -> Token:
        if self._previous == TokenType.DOT:
            # Member names are never keywords: meta.null, range.in
            return Token(TokenType.IDENTIFIER, text, start)

        keyword = KEYWORDS.get(text.lower())
        if keyword is None:
            return Token(TokenType.IDENTIFIER, text, start)

        kind, value = keyword
        if kind == TokenType.NOT:
            # "not in" is a single membership operator
            match = _NOT_IN.match(self.source, self.position)
            if match:
                self.position = match.end()
                return Token(TokenType.NOT_IN, "not in", start)
        return Token(kind, value, start)


def _unescape(raw: str) -> str:
    """Resolve backslash escapes inside a quoted string."""
    result = []
    chars = iter(raw)
    for char in chars:
        if char != "\\":
            result.append(char)
            continue
        escaped = next(chars, "\\")
        result.append(_ESCAPES.get(escaped, escaped))
    return "".join(result)
