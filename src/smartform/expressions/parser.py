"""Parser for the body of `${...}` expression fragments.

Recursive descent with operator precedence (lowest to highest):
1. ?: (conditional)
2. ?? (null coalesce)
3. || (or)
4. && (and)
5. == != < <= > >= in not_in
6. + -
7. * / %
8. ! (not) - (unary)
9. . (member access) () (function call) [] (index)
"""

from dataclasses import dataclass
from typing import Any, Iterator

from smartform.errors import ExpressionSyntaxError
from smartform.expressions.lexer import Lexer, Token, TokenType


# -----------------------------------------------------------------------------
# AST Node Types
# -----------------------------------------------------------------------------


@dataclass
class ASTNode:
    """Base class for AST nodes."""
    pass


@dataclass
class Literal(ASTNode):
    value: Any


@dataclass
class Identifier(ASTNode):
    """A variable reference (first segment of a path)."""
    name: str


@dataclass
class MemberAccess(ASTNode):
    """Dot access, e.g. user.name."""
    object: ASTNode
    member: str


@dataclass
class IndexAccess(ASTNode):
    """Bracket access, e.g. items[0] or data["key"]."""
    object: ASTNode
    index: ASTNode


@dataclass
class BinaryOp(ASTNode):
    operator: str
    left: ASTNode
    right: ASTNode


@dataclass
class UnaryOp(ASTNode):
    operator: str
    operand: ASTNode


@dataclass
class Conditional(ASTNode):
    """Ternary `condition ? then : otherwise`."""
    condition: ASTNode
    then: ASTNode
    otherwise: ASTNode


@dataclass
class FunctionCall(ASTNode):
    name: str
    arguments: list[ASTNode]


@dataclass
class ArrayLiteral(ASTNode):
    elements: list[ASTNode]


@dataclass
class ObjectLiteral(ASTNode):
    pairs: dict[str, ASTNode]


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------


class ParseError(ExpressionSyntaxError):
    """Token stream does not form a valid expression."""

    def __init__(self, message: str, token: Token):
        self.token = token
        super().__init__(message, token.position)


_COMPARISON_OPS = {
    TokenType.EQ: "==",
    TokenType.NEQ: "!=",
    TokenType.LT: "<",
    TokenType.LTE: "<=",
    TokenType.GT: ">",
    TokenType.GTE: ">=",
    TokenType.IN: "in",
    TokenType.NOT_IN: "not in",
}

_ADDITIVE_OPS = {TokenType.PLUS: "+", TokenType.MINUS: "-"}

_MULTIPLICATIVE_OPS = {
    TokenType.MULTIPLY: "*",
    TokenType.DIVIDE: "/",
    TokenType.MODULO: "%",
}

# Keywords that double as function names: and(a, b), or(a, b), not(a)
_KEYWORD_FUNCTIONS = {"and", "or", "not"}


class Parser:
    """Recursive descent parser.

    Usage:
        ast = Parser('user.age >= 18 && country == "NZ"').parse()
    """

    def __init__(self, source: str):
        self.source = source
        self.tokens = Lexer(source).tokenize()
        self.position = 0

    def parse(self) -> ASTNode:
        """Parse the source and return the AST root."""
        if self._current().type == TokenType.EOF:
            raise ParseError("Empty expression", self._current())

        ast = self._parse_conditional()

        if self._current().type != TokenType.EOF:
            raise ParseError(
                f"Unexpected token '{self._current().value}'", self._current()
            )
        return ast

    # -------------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------------

    def _current(self) -> Token:
        return self._peek(0)

    def _peek(self, offset: int) -> Token:
        index = self.position + offset
        if index >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[index]

    def _advance(self) -> Token:
        token = self._current()
        self.position += 1
        return token

    def _match(self, *types: TokenType) -> bool:
        return self._current().type in types

    def _consume(self, token_type: TokenType, message: str) -> Token:
        if self._current().type == token_type:
            return self._advance()
        raise ParseError(message, self._current())

    # -------------------------------------------------------------------------
    # Precedence levels
    # -------------------------------------------------------------------------

    def _parse_conditional(self) -> ASTNode:
        condition = self._parse_coalesce()

        if not self._match(TokenType.QUESTION):
            return condition

        self._advance()
        then = self._parse_conditional()
        self._consume(TokenType.COLON, "Expected ':' in conditional expression")
        otherwise = self._parse_conditional()
        return Conditional(condition, then, otherwise)

    def _parse_coalesce(self) -> ASTNode:
        left = self._parse_or()
        while self._match(TokenType.COALESCE):
            self._advance()
            left = BinaryOp("??", left, self._parse_or())
        return left

    def _parse_or(self) -> ASTNode:
        left = self._parse_and()
        while self._match(TokenType.OR):
            self._advance()
            left = BinaryOp("||", left, self._parse_and())
        return left

    def _parse_and(self) -> ASTNode:
        left = self._parse_comparison()
        while self._match(TokenType.AND):
            self._advance()
            left = BinaryOp("&&", left, self._parse_comparison())
        return left

    def _parse_comparison(self) -> ASTNode:
        return self._parse_binary(_COMPARISON_OPS, self._parse_additive)

    def _parse_additive(self) -> ASTNode:
        return self._parse_binary(_ADDITIVE_OPS, self._parse_multiplicative)

    def _parse_multiplicative(self) -> ASTNode:
        return self._parse_binary(_MULTIPLICATIVE_OPS, self._parse_unary)

    def _parse_binary(self, operators: dict[TokenType, str], operand) -> ASTNode:
        left = operand()
        while self._current().type in operators:
            op = operators[self._advance().type]
            left = BinaryOp(op, left, operand())
        return left

    def _parse_unary(self) -> ASTNode:
        if self._match(TokenType.NOT) and not self._is_keyword_call():
            self._advance()
            return UnaryOp("!", self._parse_unary())

        if self._match(TokenType.MINUS):
            self._advance()
            return UnaryOp("-", self._parse_unary())

        return self._parse_postfix()

    def _parse_postfix(self) -> ASTNode:
        expr = self._parse_primary()

        while True:
            if self._match(TokenType.DOT):
                self._advance()
                member = self._consume(
                    TokenType.IDENTIFIER, "Expected identifier after '.'"
                )
                expr = MemberAccess(expr, str(member.value))
            elif self._match(TokenType.LBRACKET):
                self._advance()
                index = self._parse_conditional()
                self._consume(TokenType.RBRACKET, "Expected ']' after index")
                expr = IndexAccess(expr, index)
            else:
                return expr

    def _parse_primary(self) -> ASTNode:
        token = self._current()

        if token.type in (TokenType.NUMBER, TokenType.STRING, TokenType.BOOLEAN):
            self._advance()
            return Literal(token.value)

        if token.type == TokenType.NULL:
            self._advance()
            return Literal(None)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if self._match(TokenType.LPAREN):
                return self._parse_function_call(str(token.value))
            return Identifier(str(token.value))

        if self._is_keyword_call():
            self._advance()
            return self._parse_function_call(str(token.value).lower())

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_conditional()
            self._consume(TokenType.RPAREN, "Expected ')' after expression")
            return expr

        if token.type == TokenType.LBRACKET:
            return self._parse_array_literal()

        if token.type == TokenType.LBRACE:
            return self._parse_object_literal()

        raise ParseError(f"Unexpected token '{token.value}'", token)

    def _is_keyword_call(self) -> bool:
        token = self._current()
        return (
            token.type in (TokenType.AND, TokenType.OR, TokenType.NOT)
            and str(token.value).lower() in _KEYWORD_FUNCTIONS
            and self._peek(1).type == TokenType.LPAREN
        )

    def _parse_function_call(self, name: str) -> FunctionCall:
        self._consume(TokenType.LPAREN, "Expected '(' after function name")
        arguments = self._parse_list(TokenType.RPAREN, "Expected ')' after arguments")
        return FunctionCall(name, arguments)

    def _parse_array_literal(self) -> ArrayLiteral:
        self._consume(TokenType.LBRACKET, "Expected '['")
        elements = self._parse_list(
            TokenType.RBRACKET, "Expected ']' after array elements"
        )
        return ArrayLiteral(elements)

    def _parse_list(self, closing: TokenType, message: str) -> list[ASTNode]:
        items: list[ASTNode] = []
        if not self._match(closing):
            items.append(self._parse_conditional())
            while self._match(TokenType.COMMA):
                self._advance()
                items.append(self._parse_conditional())
        self._consume(closing, message)
        return items

    def _parse_object_literal(self) -> ObjectLiteral:
        self._consume(TokenType.LBRACE, "Expected '{'")
        pairs: dict[str, ASTNode] = {}

        if not self._match(TokenType.RBRACE):
            while True:
                if not self._match(TokenType.STRING, TokenType.IDENTIFIER):
                    raise ParseError(
                        "Expected string or identifier as object key", self._current()
                    )
                key = str(self._advance().value)
                self._consume(TokenType.COLON, "Expected ':' after object key")
                pairs[key] = self._parse_conditional()
                if not self._match(TokenType.COMMA):
                    break
                self._advance()

        self._consume(TokenType.RBRACE, "Expected '}' after object")
        return ObjectLiteral(pairs)


def parse(source: str) -> ASTNode:
    """Parse a fragment body into an AST.

    Args:
        source: Expression text without the `${` `}` delimiters

    Returns:
        The AST root node

    Raises:
        ExpressionSyntaxError: If the text is not a valid expression
    """
    return Parser(source).parse()


# -----------------------------------------------------------------------------
# Static analysis helpers
# -----------------------------------------------------------------------------


def reference_path(node: ASTNode) -> str | None:
    """Return the dotted/indexed path a node reads, if it is a pure path.

    `user.address.city` -> "user.address.city"; `items[0].name` -> "items[0].name".
    Index expressions that are not literals end the path at the array.
    """
    if isinstance(node, Identifier):
        return node.name
    if isinstance(node, MemberAccess):
        base = reference_path(node.object)
        return f"{base}.{node.member}" if base is not None else None
    if isinstance(node, IndexAccess):
        base = reference_path(node.object)
        if base is None:
            return None
        if isinstance(node.index, Literal) and isinstance(node.index.value, int):
            return f"{base}[{node.index.value}]"
        if isinstance(node.index, Literal) and isinstance(node.index.value, str):
            return f"{base}.{node.index.value}"
        return base
    return None


def iter_references(node: ASTNode) -> Iterator[str]:
    """Yield every variable path read by an expression (functions excluded)."""
    path = reference_path(node)
    if path is not None:
        yield path
        if isinstance(node, IndexAccess):
            yield from iter_references(node.index)
        return

    if isinstance(node, MemberAccess):
        yield from iter_references(node.object)
    elif isinstance(node, IndexAccess):
        yield from iter_references(node.object)
        yield from iter_references(node.index)
    elif isinstance(node, BinaryOp):
        yield from iter_references(node.left)
        yield from iter_references(node.right)
    elif isinstance(node, UnaryOp):
        yield from iter_references(node.operand)
    elif isinstance(node, Conditional):
        yield from iter_references(node.condition)
        yield from iter_references(node.then)
        yield from iter_references(node.otherwise)
    elif isinstance(node, FunctionCall):
        for argument in node.arguments:
            yield from iter_references(argument)
    elif isinstance(node, ArrayLiteral):
        for element in node.elements:
            yield from iter_references(element)
    elif isinstance(node, ObjectLiteral):
        for value in node.pairs.values():
            yield from iter_references(value)
