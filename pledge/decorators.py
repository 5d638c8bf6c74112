"""
pledge decorators and runtime checks

Contracts for functions in modules that are not compiled by pledge. The
expressions are given as strings and compiled against the function's
globals when the decorator is applied.

Usage:
    from pledge import requires, ensures, check

    @requires("n >= 0", "non-negative")
    @ensures("result >= old(n)")
    def count_to(n: int) -> int:
        c = 0
        for _ in range(n):
            c += 1
        check("c == n")
        return c
"""

import ast
import dataclasses
import sys
from typing import Any, Callable, TypeVar

from .core.config import AssertionKind, get_settings
from .core.errors import PledgeError
from .core.evaluator import evaluate, frame_bindings, frame_namespace
from .core.models import Assertion, Label, Site
from .core.weaver import extend
from .translators.statements import compile_expression

F = TypeVar('F', bound=Callable)


def requires(expression: str, label: Label = None) -> Callable[[F], F]:
    """
    Specify a precondition that must hold when the function is called.

    Examples:
        @requires("n >= 0")
        @requires("implies(strict, n > 0)", "positive when strict")

    Args:
        expression: Python expression over the function's parameters
        label: Optional text or enum member identifying the assertion

    Returns:
        Decorator weaving the precondition into the function

    Raises:
        AssertionDefinitionError: If the expression or label is malformed
    """
    assertion = Assertion.new(AssertionKind.PRECONDITION, expression, label,
                              _declaration_site(sys._getframe(1)))

    def decorator(func: F) -> F:
        return extend(func, preconditions=[assertion])
    return decorator


def ensures(expression: str, label: Label = None) -> Callable[[F], F]:
    """
    Specify a postcondition that must hold when the function returns.

    The expression may name `result` and capture entry values with `old(...)`.

    Examples:
        @ensures("result == n")
        @ensures("len(items) == old(len(items)) + 1")

    Args:
        expression: Python expression over the parameters, `result` and `old(...)`
        label: Optional text or enum member identifying the assertion

    Returns:
        Decorator weaving the postcondition into the function
    """
    assertion = Assertion.new(AssertionKind.POSTCONDITION, expression, label,
                              _declaration_site(sys._getframe(1)))

    def decorator(func: F) -> F:
        return extend(func, postconditions=[assertion])
    return decorator


def check(expression: Any, label: Label = None) -> Any:
    """
    Assert a condition inline.

    A string is evaluated as an expression in the caller's frame; any other
    value is checked for truthiness. In modules compiled by pledge, `check(...)`
    calls are rewritten at import and take a bare expression instead.

    Returns:
        The checked value

    Raises:
        CheckError: If the value is falsy or the expression raised
    """
    settings = get_settings()
    if not (settings.enabled and settings.checks):
        return True

    frame = sys._getframe(1)
    site = Site.of_frame(frame)

    if isinstance(expression, str):
        assertion = Assertion.new(AssertionKind.CHECK, expression, label, site)
        code = compile_expression(assertion.expression, site.file or "<pledge>")

        def predicate():
            return eval(code, frame_namespace(frame))
    else:
        value = expression
        assertion = dataclasses.replace(
            Assertion.new(AssertionKind.CHECK, ast.Constant(value=True), label, site),
            text=repr(value),
        )

        def predicate():
            return value

    return evaluate(assertion, call_site=site, binding=lambda: frame_bindings(frame), predicate=predicate)


def _declaration_site(frame) -> Site:
    return Site(module=frame.f_globals.get("__name__"), file=frame.f_code.co_filename, line=frame.f_lineno)


def _compiled_only(name: str) -> Callable[..., Any]:
    def declaration(*args, **kwargs):
        raise PledgeError(
            f"{name}() only takes effect in modules compiled by pledge; "
            f"import them with pledge.load_module() or pledge.install()"
        )
    declaration.__name__ = declaration.__qualname__ = name
    declaration.__doc__ = "Declaration marker, rewritten away in modules compiled by pledge"
    return declaration


pre = _compiled_only("pre")
post = _compiled_only("post")
doc = _compiled_only("doc")
old = _compiled_only("old")
