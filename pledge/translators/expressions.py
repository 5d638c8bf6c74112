"""
Validation and canonical rendering of assertion expressions
"""

import ast
from typing import Optional

from ..core.config import FORBIDDEN_EXPRESSIONS, OLD_MARKER
from ..core.errors import AssertionDefinitionError


def is_old_call(node: ast.AST) -> bool:
    """True for a call to the `old` marker"""
    return (isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == OLD_MARKER)


def contains_old(expression: ast.AST) -> bool:
    return any(is_old_call(node) for node in ast.walk(expression))


def parse_expression(source: str, filename: str = "<assertion>") -> ast.expr:
    """
    Parse a single expression from source text.

    Raises:
        AssertionDefinitionError: If `source` is not exactly one expression
    """
    try:
        tree = ast.parse(source.strip(), filename=filename, mode="eval")
    except SyntaxError as e:
        raise AssertionDefinitionError(
            f"invalid assertion expression {source!r}: {e.msg}", filename, e.lineno
        ) from None
    return tree.body


def render(expression: ast.AST) -> str:
    """Canonical text of an expression, independent of the original formatting"""
    return ast.unparse(expression)


class ExpressionValidator(ast.NodeVisitor):
    """Rejects expressions that cannot serve as a boolean check"""

    def __init__(self, allow_old: bool, filename: Optional[str] = None):
        self.allow_old = allow_old
        self.filename = filename

    def validate(self, expression: ast.AST) -> None:
        if not isinstance(expression, ast.expr):
            self._fail(expression, f"expected an expression, got {type(expression).__name__}")
        if isinstance(expression, ast.Starred):
            self._fail(expression, "starred expressions cannot be asserted")
        if isinstance(expression, ast.Constant) and isinstance(expression.value, str):
            self._fail(expression, f"label {expression.value!r} has no expression to assert")
        self.visit(expression)

    def generic_visit(self, node: ast.AST) -> None:
        description = FORBIDDEN_EXPRESSIONS.get(type(node))
        if description:
            self._fail(node, f"{description} are not allowed in assertions")
        super().generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if is_old_call(node) and not self.allow_old:
            self._fail(node, "old() can only be used in postconditions")
        self.generic_visit(node)

    def _fail(self, node: ast.AST, message: str) -> None:
        raise AssertionDefinitionError(message, self.filename, getattr(node, "lineno", None))


def validate(expression: ast.AST, allow_old: bool, filename: Optional[str] = None) -> None:
    ExpressionValidator(allow_old, filename).validate(expression)
