"""
Building evaluable predicates from assertion expressions
"""

import ast
import copy
from types import CodeType
from typing import Any, Callable, Dict, Sequence

from .. import predicates
from ..core.config import PREDICATE_NAMES, PREDICATES_GLOBAL

EXTRA_BINDINGS = "__pledge_bindings__"


class PredicateNameRewriter(ast.NodeTransformer):
    """Routes free uses of `implies`/`xor` to the predicates module"""

    def __init__(self, bound_names: Sequence[str] = ()):
        self.bound_names = set(bound_names)

    def visit_Name(self, node: ast.Name) -> ast.AST:
        if (node.id in PREDICATE_NAMES
                and node.id not in self.bound_names
                and isinstance(node.ctx, ast.Load)):
            attribute = ast.Attribute(
                value=ast.Name(id=PREDICATES_GLOBAL, ctx=ast.Load()),
                attr=node.id,
                ctx=ast.Load(),
            )
            return ast.copy_location(attribute, node)
        return node


def prepare(expression: ast.expr, bound_names: Sequence[str] = ()) -> ast.expr:
    """Copy of `expression` ready to be spliced into generated code"""
    return PredicateNameRewriter(bound_names).visit(copy.deepcopy(expression))


def build_lambda(expression: ast.expr, parameters: Sequence[str] = ()) -> ast.Lambda:
    """
    Wrap an expression in a lambda over the given parameter names.

    The lambda is the re-evaluable form of an assertion: called with the
    function's bindings as keyword arguments it returns the expression's value.
    Bindings it does not name are accepted and ignored, so a contract can grow
    new snapshots without recompiling existing predicates.

    Args:
        expression: Assertion expression (old() already resolved)
        parameters: Names the expression may refer to

    Returns:
        ast.Lambda positioned at the expression's source location
    """
    arguments = ast.arguments(
        posonlyargs=[],
        args=[ast.arg(arg=name) for name in parameters],
        vararg=None,
        kwonlyargs=[],
        kw_defaults=[],
        kwarg=ast.arg(arg=EXTRA_BINDINGS),
        defaults=[],
    )
    body = prepare(expression, parameters)
    return ast.copy_location(ast.Lambda(args=arguments, body=body), expression)


def compile_predicate(expression: ast.expr,
                      parameters: Sequence[str],
                      namespace: Dict[str, Any],
                      filename: str = "<pledge>") -> Callable[..., Any]:
    """
    Compile an assertion expression into a function over `parameters`.

    Free names resolve in `namespace` (normally the contracted function's
    globals). The predicates module is bound through an enclosing scope so
    `namespace` is never written to.

    Args:
        expression: Assertion expression (old() already resolved)
        parameters: Parameter names of the resulting function
        namespace: Globals for free names
        filename: Filename reported in tracebacks

    Returns:
        A callable taking the parameters as keyword arguments
    """
    inner = build_lambda(expression, parameters)
    factory = ast.Lambda(
        args=ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg=PREDICATES_GLOBAL)],
            vararg=None,
            kwonlyargs=[],
            kw_defaults=[],
            kwarg=None,
            defaults=[],
        ),
        body=inner,
    )
    tree = ast.fix_missing_locations(ast.Expression(body=ast.copy_location(factory, expression)))
    code = compile(tree, filename, "eval")
    return eval(code, namespace)(predicates)


def compile_expression(expression: ast.expr, filename: str = "<pledge>") -> CodeType:
    """Code object evaluating `expression` directly in a globals/locals pair"""
    tree = ast.fix_missing_locations(ast.Expression(body=prepare(expression)))
    return compile(tree, filename, "eval")


class SuperBinder(ast.NodeTransformer):
    """Gives zero-argument super() calls their class and instance explicitly"""

    def __init__(self, instance: str):
        self.instance = instance

    def visit_Call(self, node: ast.Call) -> ast.AST:
        self.generic_visit(node)
        if _is_zero_argument_super(node):
            node.args = [
                ast.Name(id="__class__", ctx=ast.Load()),
                ast.Name(id=self.instance, ctx=ast.Load()),
            ]
        return node


def _is_zero_argument_super(node: ast.AST) -> bool:
    return (isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == "super"
            and not node.args
            and not node.keywords)


def uses_zero_argument_super(expression: ast.expr) -> bool:
    return any(_is_zero_argument_super(node) for node in ast.walk(expression))


def bind_super(expression: ast.expr, instance: str) -> ast.expr:
    """
    Copy of `expression` with `super()` spelled `super(__class__, instance)`.

    A predicate lambda has no arguments of its own, so zero-argument super()
    inside it would fail; the explicit form resolves through the enclosing
    method's `__class__` cell and its first parameter.
    """
    return SuperBinder(instance).visit(copy.deepcopy(expression))
