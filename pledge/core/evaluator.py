"""
Runtime evaluation of assertions

During the evaluation of an assertion, calls to contracted functions run
without evaluating their own assertions. The flag recording this lives in a
ContextVar, so every thread and every asyncio task has its own.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, Union

from .. import predicates
from .config import PREDICATES_GLOBAL
from .errors import ContractViolation
from .models import Assertion, Site

logger = logging.getLogger(__name__)

_evaluating: ContextVar[bool] = ContextVar("pledge_evaluating_assertions", default=False)

Lazy = Union[Any, Callable[[], Any]]


def evaluating() -> bool:
    """True while an assertion is being evaluated in the current context"""
    return _evaluating.get()


@contextmanager
def guard() -> Iterator[None]:
    """Hold the reentrancy permit; it is released on every exit path."""
    token = _evaluating.set(True)
    try:
        yield
    finally:
        _evaluating.reset(token)


def evaluate(assertion: Assertion,
             call_site: Lazy = None,
             arguments: Optional[Mapping[str, Any]] = None,
             binding: Lazy = None,
             predicate: Optional[Callable[..., Any]] = None) -> Any:
    """
    Evaluate one assertion.

    Args:
        assertion: The assertion to evaluate
        call_site: Site of the current call, or a callable producing it on failure
        arguments: Keyword arguments for the predicate (None for zero-argument predicates)
        binding: Diagnostic snapshot of visible bindings, or a callable producing it
            on failure. Defaults to `arguments`
        predicate: Overrides `assertion.predicate`

    Returns:
        The expression's value, or True when evaluation was skipped because
        another assertion is already being evaluated in this context

    Raises:
        ContractViolation: The subclass matching the assertion kind, when the
            value is falsy or the expression raised
    """
    if evaluating():
        return True
    with guard():
        return _evaluate(assertion, call_site, arguments, binding, predicate)


def evaluate_all(assertions: Sequence[Assertion],
                 call_site: Lazy = None,
                 arguments: Optional[Mapping[str, Any]] = None,
                 binding: Lazy = None) -> List[Any]:
    """Evaluate assertions in order under a single acquisition of the guard."""
    if not assertions:
        return []
    if evaluating():
        return [True] * len(assertions)
    with guard():
        return [_evaluate(a, call_site, arguments, binding, None) for a in assertions]


def _evaluate(assertion: Assertion,
              call_site: Lazy,
              arguments: Optional[Mapping[str, Any]],
              binding: Lazy,
              predicate: Optional[Callable[..., Any]]) -> Any:
    predicate = predicate or assertion.predicate
    if predicate is None:
        raise ValueError(f"assertion has no compiled predicate: {assertion}")

    try:
        value = predicate(**arguments) if arguments is not None else predicate()
        holds = bool(value)
    except Exception as e:
        raise _violation(assertion, call_site, arguments, binding) from e

    if not holds:
        raise _violation(assertion, call_site, arguments, binding)
    return value


def _violation(assertion: Assertion,
               call_site: Lazy,
               arguments: Optional[Mapping[str, Any]],
               binding: Lazy) -> ContractViolation:
    if binding is None:
        binding = arguments
    site = _force(call_site)
    error = ContractViolation.from_assertion(
        assertion,
        call_site=site,
        binding=_force(binding),
    )
    logger.debug(
        f"{assertion.kind.value} violated in {site.describe() if site else '<unknown>'}: {assertion.text}",
        extra={
            "contract_kind": assertion.kind.value,
            "label": assertion.display_label,
            "expression": assertion.text,
        },
    )
    return error


def _force(value: Lazy) -> Any:
    if callable(value) and not isinstance(value, (Site, Mapping)):
        return value()
    return value


def frame_bindings(frame) -> dict:
    """Local names of `frame`, without dunder entries such as module metadata."""
    return {name: value for name, value in frame.f_locals.items() if not name.startswith("__")}


def frame_namespace(frame) -> dict:
    """
    One dict holding the globals and locals visible in `frame`.

    Expressions evaluated against it see the frame's locals from nested
    scopes too (generator expressions, lambdas), which a separate locals
    mapping does not allow.
    """
    namespace = dict(frame.f_globals)
    if frame.f_locals is not frame.f_globals:
        namespace.update(frame.f_locals)
    namespace[PREDICATES_GLOBAL] = predicates
    return namespace
