"""Evaluator for `${...}` expressions.

Walks the AST against an EvaluationContext holding the caller's local values
(form data, field context, overrides) and one immutable registry snapshot.
Names resolve locals first, then registry variables; an unresolvable name is
a ResolutionError, never a silent None.
"""

from collections import ChainMap
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from smartform.errors import (
    FunctionError,
    OperandTypeError,
    ResolutionError,
    SmartFormError,
)
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
    UnaryOp,
    parse,
    reference_path,
)
from smartform.expressions.registry import Registry, RegistrySnapshot
from smartform.expressions.template import (
    MARKER,
    Template,
    TextPart,
    parse_template,
    wrap_expression,
)
from smartform.expressions.values import (
    compare,
    is_number,
    to_display,
    truthy,
    type_name,
    values_equal,
)


@dataclass
class EvaluationContext:
    """Context for one evaluation.

    Attributes:
        values: Local names, consulted before registry variables
        registry: Registry snapshot for the current evaluation pass
    """

    values: Mapping[str, Any] = field(default_factory=dict)
    registry: RegistrySnapshot = field(default_factory=RegistrySnapshot)


class Evaluator:
    """Evaluates an expression AST against a context.

    Usage:
        ctx = EvaluationContext({"user": {"age": 30}}, registry.snapshot())
        Evaluator(ctx).evaluate(parse("user.age + 1"))  # 31
    """

    # Calls whose arguments are evaluated lazily
    SPECIAL_FORMS = ("if", "forEach")

    def __init__(self, context: EvaluationContext):
        self.context = context

    def evaluate(self, node: ASTNode) -> Any:
        method = getattr(self, f"_eval_{type(node).__name__.lower()}", None)
        if method is None:
            raise SmartFormError(f"Unknown node type: {type(node).__name__}")
        return method(node)

    # -------------------------------------------------------------------------
    # Node type evaluators
    # -------------------------------------------------------------------------

    def _eval_literal(self, node: Literal) -> Any:
        return node.value

    def _eval_identifier(self, node: Identifier) -> Any:
        values = self.context.values
        if node.name in values:
            return values[node.name]
        if self.context.registry.has_variable(node.name):
            return self.context.registry.variable(node.name)
        raise ResolutionError(f"Variable not found: {node.name}", node.name)

    def _eval_memberaccess(self, node: MemberAccess) -> Any:
        flat = self._flat_lookup(node)
        if flat is not _MISSING:
            return flat

        obj = self.evaluate(node.object)
        return get_member(obj, node.member, reference_path(node) or node.member)

    def _eval_indexaccess(self, node: IndexAccess) -> Any:
        flat = self._flat_lookup(node)
        if flat is not _MISSING:
            return flat

        obj = self.evaluate(node.object)
        index = self.evaluate(node.index)
        return get_index(obj, index, reference_path(node) or "[index]")

    def _eval_binaryop(self, node: BinaryOp) -> Any:
        op = node.operator

        if op == "??":
            try:
                left = self.evaluate(node.left)
            except ResolutionError:
                left = None
            return self.evaluate(node.right) if left is None else left

        if op == "&&":
            if not truthy(self.evaluate(node.left)):
                return False
            return truthy(self.evaluate(node.right))

        if op == "||":
            if truthy(self.evaluate(node.left)):
                return True
            return truthy(self.evaluate(node.right))

        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        return apply_operator(op, left, right)

    def _eval_unaryop(self, node: UnaryOp) -> Any:
        operand = self.evaluate(node.operand)

        if node.operator == "!":
            return not truthy(operand)

        if node.operator == "-":
            if is_number(operand):
                return -operand
            raise OperandTypeError(f"Cannot negate {type_name(operand)} {operand!r}")

        raise SmartFormError(f"Unknown unary operator: {node.operator}")

    def _eval_conditional(self, node: Conditional) -> Any:
        if truthy(self.evaluate(node.condition)):
            return self.evaluate(node.then)
        return self.evaluate(node.otherwise)

    def _eval_functioncall(self, node: FunctionCall) -> Any:
        if node.name == "if":
            return self._call_if(node)
        if node.name == "forEach":
            return self._call_for_each(node)

        definition = self.context.registry.function(node.name)

        if definition.null_safe:
            args = [self._evaluate_or_none(arg) for arg in node.arguments]
        else:
            args = [self.evaluate(arg) for arg in node.arguments]

        try:
            return definition.implementation(*args)
        except SmartFormError:
            raise
        except Exception as e:
            raise FunctionError(node.name, str(e)) from e

    def _eval_arrayliteral(self, node: ArrayLiteral) -> list[Any]:
        return [self.evaluate(element) for element in node.elements]

    def _eval_objectliteral(self, node: ObjectLiteral) -> dict[str, Any]:
        return {key: self.evaluate(value) for key, value in node.pairs.items()}

    # -------------------------------------------------------------------------
    # Special forms
    # -------------------------------------------------------------------------

    def _call_if(self, node: FunctionCall) -> Any:
        """if(condition, then, else?) evaluating only the chosen branch."""
        args = node.arguments
        if len(args) not in (2, 3):
            raise FunctionError("if", "requires 2 or 3 arguments")
        if truthy(self.evaluate(args[0])):
            return self.evaluate(args[1])
        return self.evaluate(args[2]) if len(args) == 3 else None

    def _call_for_each(self, node: FunctionCall) -> str:
        """forEach(item, [index,] collection, body) concatenating each body."""
        args = node.arguments
        if len(args) not in (3, 4):
            raise FunctionError(
                "forEach", "requires itemVar, optional indexVar, collection and body"
            )
        names = args[:-2]
        if not all(isinstance(name, Identifier) for name in names):
            raise FunctionError("forEach", "loop variables must be plain names")
        item_var = names[0].name
        index_var = names[1].name if len(names) == 2 else None

        collection = self.evaluate(args[-2])
        if isinstance(collection, Mapping):
            items = [{"key": k, "value": v} for k, v in collection.items()]
        elif isinstance(collection, (list, tuple)):
            items = list(collection)
        else:
            return ""

        pieces = []
        for index, item in enumerate(items):
            scope = {item_var: item}
            if index_var:
                scope[index_var] = index
            loop = Evaluator(
                EvaluationContext(ChainMap(scope, self.context.values), self.context.registry)
            )
            result = loop.evaluate(args[-1])
            if result == "":
                continue
            pieces.append(to_display(result))
        return "".join(pieces)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _evaluate_or_none(self, node: ASTNode) -> Any:
        try:
            return self.evaluate(node)
        except ResolutionError:
            return None

    def _flat_lookup(self, node: ASTNode) -> Any:
        """Values keyed by a full dotted path ("address.city") take precedence."""
        path = reference_path(node)
        if path is not None and path in self.context.values:
            return self.context.values[path]
        return _MISSING


_MISSING = object()


def get_member(obj: Any, member: str, path: str) -> Any:
    """Read obj.member the way expressions do."""
    if obj is None:
        raise ResolutionError(f"Cannot read '{member}' of null ({path})", path)
    if isinstance(obj, Mapping):
        if member in obj:
            return obj[member]
        raise ResolutionError(f"Variable not found: {path}", path)
    if isinstance(obj, (list, tuple, str)) and member == "length":
        return len(obj)
    if not member.startswith("_") and hasattr(obj, member):
        return getattr(obj, member)
    raise ResolutionError(f"Variable not found: {path}", path)


def get_index(obj: Any, index: Any, path: str) -> Any:
    """Read obj[index] the way expressions do."""
    if obj is None:
        raise ResolutionError(f"Cannot index null ({path})", path)
    if isinstance(obj, Mapping):
        if index in obj:
            return obj[index]
        raise ResolutionError(f"Variable not found: {path}", path)
    if isinstance(obj, (list, tuple, str)):
        if isinstance(index, bool) or not isinstance(index, int):
            raise OperandTypeError(f"Index must be an integer, got {type_name(index)}")
        if 0 <= index < len(obj):
            return obj[index]
        raise ResolutionError(f"Index {index} out of range ({path})", path)
    raise OperandTypeError(f"Cannot index {type_name(obj)} ({path})")


def apply_operator(op: str, left: Any, right: Any) -> Any:
    """Apply a non-short-circuit binary operator."""
    if op == "==":
        return values_equal(left, right)
    if op == "!=":
        return not values_equal(left, right)
    if op in ("<", "<=", ">", ">="):
        if left is None or right is None:
            raise OperandTypeError(f"Cannot order null with '{op}'")
        result = compare(left, right)
        return {
            "<": result < 0,
            "<=": result <= 0,
            ">": result > 0,
            ">=": result >= 0,
        }[op]
    if op == "in":
        return contains(right, left)
    if op == "not in":
        return not contains(right, left)
    if op == "+":
        if isinstance(left, str) or isinstance(right, str):
            return to_display(left) + to_display(right)
        if isinstance(left, list) and isinstance(right, list):
            return left + right
    if op in ("+", "-", "*", "/", "%"):
        return _arithmetic(op, left, right)
    raise SmartFormError(f"Unknown operator: {op}")


def contains(collection: Any, item: Any) -> bool:
    """Membership test used by `in`."""
    if collection is None:
        return False
    if isinstance(collection, str):
        return item is not None and to_display(item) in collection
    if isinstance(collection, Mapping):
        return item in collection
    if isinstance(collection, (list, tuple, set, frozenset)):
        return any(values_equal(item, element) for element in collection)
    raise OperandTypeError(
        f"'in' requires a collection, got {type_name(collection)}"
    )


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    if not (is_number(left) and is_number(right)):
        raise OperandTypeError(
            f"Cannot apply '{op}' to {type_name(left)} and {type_name(right)}"
        )
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if right == 0:
        raise OperandTypeError("Division by zero")
    if op == "/":
        return left / right
    return left % right


# -----------------------------------------------------------------------------
# Template evaluation
# -----------------------------------------------------------------------------


class ExpressionEngine:
    """Evaluates template strings containing `${...}` fragments.

    - text without a fragment is returned unchanged
    - text that is exactly one fragment yields the fragment's native value
    - mixed text yields a string with each fragment's display form substituted

    Usage:
        engine = ExpressionEngine(registry)
        engine.evaluate("${user.age}", {"user": {"age": 30}})           # 30
        engine.evaluate("Hello ${user.name}!", {"user": {"name": "Ann"}})  # "Hello Ann!"
    """

    def __init__(self, registry: Registry | None = None):
        self.registry = registry if registry is not None else Registry()

    def evaluate(
        self,
        text: Any,
        context: Mapping[str, Any] | None = None,
        snapshot: RegistrySnapshot | None = None,
    ) -> Any:
        """Evaluate a template string.

        Args:
            text: Template text; non-strings are returned unchanged
            context: Local names for this evaluation
            snapshot: Registry snapshot for the current pass (defaults to a
                fresh one)

        Raises:
            ExpressionSyntaxError: Malformed fragment
            ResolutionError: Unknown variable or function
            OperandTypeError: Operator applied to incompatible values
            FunctionError: A registered function raised
        """
        if not isinstance(text, str) or MARKER not in text:
            return text
        return self.render(parse_template(text), context, snapshot)

    def render(
        self,
        template: Template,
        context: Mapping[str, Any] | None = None,
        snapshot: RegistrySnapshot | None = None,
    ) -> Any:
        evaluator = self._evaluator(context, snapshot)

        single = template.single_expression
        if single is not None:
            return evaluator.evaluate(single.ast)

        pieces = []
        for part in template.parts:
            if isinstance(part, TextPart):
                pieces.append(part.text)
            else:
                pieces.append(to_display(evaluator.evaluate(part.ast)))
        return "".join(pieces)

    def evaluate_expression(
        self,
        body: str,
        context: Mapping[str, Any] | None = None,
        snapshot: RegistrySnapshot | None = None,
    ) -> Any:
        """Evaluate a bare expression body (no `${}` delimiters)."""
        return self._evaluator(context, snapshot).evaluate(parse(body))

    def evaluate_bool(
        self,
        text: str,
        context: Mapping[str, Any] | None = None,
        snapshot: RegistrySnapshot | None = None,
    ) -> bool:
        """Evaluate text as a boolean, wrapping it in `${}` when bare."""
        return truthy(self.evaluate(wrap_expression(text), context, snapshot))

    def _evaluator(
        self,
        context: Mapping[str, Any] | None,
        snapshot: RegistrySnapshot | None,
    ) -> Evaluator:
        return Evaluator(
            EvaluationContext(
                values=context if context is not None else {},
                registry=snapshot if snapshot is not None else self.registry.snapshot(),
            )
        )


def evaluate(
    text: Any,
    context: Mapping[str, Any] | None = None,
    registry: Registry | None = None,
) -> Any:
    """Evaluate a template string with a throwaway engine.

    Example:
        evaluate("${user.age}", {"user": {"age": 30}})  # 30
    """
    return ExpressionEngine(registry).evaluate(text, context)
