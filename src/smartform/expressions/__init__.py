"""Expression language for SmartForm templates.

This package provides:
- Lexer / Parser: tokenize and parse fragment bodies into an AST
- parse_template: split text into literal text and `${...}` fragments
- Registry: per-schema variables and functions (snapshot per evaluation pass)
- ExpressionEngine / Evaluator: evaluate templates and ASTs
- suggest: autosuggest completions for partial expressions
"""

from smartform.expressions.evaluator import (
    EvaluationContext,
    Evaluator,
    ExpressionEngine,
    evaluate,
)
from smartform.expressions.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionParameter,
)
from smartform.expressions.lexer import Lexer, LexerError, Token, TokenType
from smartform.expressions.parser import (
    ASTNode,
    ArrayLiteral,
    BinaryOp,
    Conditional,
    FunctionCall,
    Identifier,
    IndexAccess,
    Literal,
    MemberAccess,
    ObjectLiteral,
    ParseError,
    Parser,
    UnaryOp,
    iter_references,
    parse,
    reference_path,
)
from smartform.expressions.registry import Registry, RegistrySnapshot, VariableEntry
from smartform.expressions.suggestions import ArrayInfo, Suggestion, suggest
from smartform.expressions.template import (
    ExpressionPart,
    Template,
    TextPart,
    contains_expression,
    parse_template,
    wrap_expression,
)
from smartform.expressions.values import is_empty, truthy

__all__ = [
    # Evaluator
    "EvaluationContext",
    "Evaluator",
    "ExpressionEngine",
    "evaluate",
    # Functions
    "FunctionCategory",
    "FunctionDefinition",
    "FunctionParameter",
    # Lexer
    "Lexer",
    "LexerError",
    "Token",
    "TokenType",
    # Parser
    "ASTNode",
    "ArrayLiteral",
    "BinaryOp",
    "Conditional",
    "FunctionCall",
    "Identifier",
    "IndexAccess",
    "Literal",
    "MemberAccess",
    "ObjectLiteral",
    "ParseError",
    "Parser",
    "UnaryOp",
    "iter_references",
    "parse",
    "reference_path",
    # Registry
    "Registry",
    "RegistrySnapshot",
    "VariableEntry",
    # Suggestions
    "ArrayInfo",
    "Suggestion",
    "suggest",
    # Templates
    "ExpressionPart",
    "Template",
    "TextPart",
    "contains_expression",
    "parse_template",
    "wrap_expression",
    # Values
    "is_empty",
    "truthy",
]
