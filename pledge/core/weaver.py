"""
Weaving preconditions and postconditions around a function
"""

import functools
import inspect
import logging
from typing import Any, Callable, Dict, Optional, Sequence

from .config import RESULT_NAME, get_settings
from .errors import RegistrationError
from .evaluator import evaluate_all, evaluating, guard
from .models import Assertion, FunctionContract, FunctionIdentity, OldSnapshotTable, Site
from ..generators.docs import append_contract_docs
from ..translators.old import resolve
from ..translators.statements import compile_predicate

logger = logging.getLogger(__name__)

CONTRACT_ATTRIBUTE = "__pledge_contract__"


def weave(func: Callable,
          preconditions: Sequence[Assertion] = (),
          postconditions: Sequence[Assertion] = (),
          snapshots: Optional[OldSnapshotTable] = None,
          doc_fragments: Sequence[str] = ()) -> Callable:
    """
    Wrap `func` so every call is guarded by its contract.

    A call then runs:
        1. old() snapshots, captured from the caller's arguments
        2. preconditions, in declaration order
        3. the original function, its value bound to `result`
        4. postconditions, in declaration order
    and returns `result`. Exceptions from the original function propagate
    untouched and skip the postconditions.

    Args:
        func: Function to guard
        preconditions: Precondition assertions
        postconditions: Postcondition assertions, old() resolved or not
        snapshots: Snapshot table for postconditions resolved beforehand
        doc_fragments: Extra documentation to append to the docstring

    Returns:
        `func` itself when there is nothing to check, otherwise the wrapper

    Raises:
        RegistrationError: If old() is misused, or `result` is also a parameter
            name of a function with postconditions
    """
    settings = get_settings()
    if not settings.enabled:
        return func
    preconditions = list(preconditions) if settings.preconditions else []
    postconditions = list(postconditions) if settings.postconditions else []
    if not preconditions and not postconditions:
        return func

    site = Site.of_function(func)
    postconditions, table = resolve(postconditions, site.file)
    table = (snapshots or OldSnapshotTable()).merge(table) if postconditions else OldSnapshotTable()

    signature = inspect.signature(func)
    parameters = list(signature.parameters)
    if postconditions and RESULT_NAME in parameters:
        raise RegistrationError(
            f"{func.__qualname__} has postconditions, so it cannot take a parameter named {RESULT_NAME!r}",
            site.file, site.line,
        )

    namespace = getattr(func, "__globals__", {})
    preconditions = [_compiled(a, parameters, namespace) for a in preconditions]
    post_parameters = [*parameters, RESULT_NAME, *table.names()]
    postconditions = [_compiled(a, post_parameters, namespace) for a in postconditions]
    table = table.with_captures([
        snapshot.capture or compile_predicate(snapshot.expression, parameters, namespace, site.file or "<pledge>")
        for snapshot in table
    ])

    contract = FunctionContract(
        identity=FunctionIdentity.of_callable(func),
        preconditions=preconditions,
        postconditions=postconditions,
        snapshots=table,
        doc_fragments=list(doc_fragments),
        clauses=[site.line] if site.line else [],
    )

    if inspect.iscoroutinefunction(func):
        wrapper = _async_wrapper(func, signature, contract, site)
    else:
        wrapper = _sync_wrapper(func, signature, contract, site)

    setattr(wrapper, CONTRACT_ATTRIBUTE, contract)
    if settings.append_docs:
        wrapper.__doc__ = append_contract_docs(func.__doc__, contract)

    logger.debug(
        f"Wove {len(preconditions)} precondition(s), {len(postconditions)} postcondition(s) "
        f"and {len(table)} snapshot(s) into {site.describe()}"
    )
    return wrapper


def contract_of(func: Callable) -> Optional[FunctionContract]:
    """The contract woven into `func`, if any"""
    return getattr(func, CONTRACT_ATTRIBUTE, None)


def _compiled(assertion: Assertion, parameters: Sequence[str], namespace: Dict[str, Any]) -> Assertion:
    if assertion.predicate is not None:
        return assertion
    filename = assertion.site.file if assertion.site and assertion.site.file else "<pledge>"
    return assertion.with_predicate(
        compile_predicate(assertion.expression, parameters, namespace, filename)
    )


def _bind(signature: inspect.Signature, args: tuple, kwargs: dict) -> Dict[str, Any]:
    bound = signature.bind(*args, **kwargs)
    bound.apply_defaults()
    return dict(bound.arguments)


def _capture(table: OldSnapshotTable, arguments: Dict[str, Any]) -> Dict[str, Any]:
    if not table:
        return {}
    with guard():
        return {snapshot.name: snapshot.capture(**arguments) for snapshot in table}


def _check_postconditions(contract: FunctionContract,
                          site: Site,
                          arguments: Dict[str, Any],
                          old: Dict[str, Any],
                          result: Any) -> None:
    if not contract.postconditions:
        return
    bindings = dict(arguments)
    bindings[RESULT_NAME] = result
    bindings.update(old)
    evaluate_all(contract.postconditions, site, bindings)


def _sync_wrapper(func: Callable, signature: inspect.Signature,
                  contract: FunctionContract, site: Site) -> Callable:
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        # Calls made while evaluating another assertion run unchecked
        if evaluating():
            return func(*args, **kwargs)

        arguments = _bind(signature, args, kwargs)
        old = _capture(contract.snapshots, arguments)
        evaluate_all(contract.preconditions, site, arguments)

        result = func(*args, **kwargs)

        _check_postconditions(contract, site, arguments, old, result)
        return result

    return wrapper


def _async_wrapper(func: Callable, signature: inspect.Signature,
                   contract: FunctionContract, site: Site) -> Callable:
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        if evaluating():
            return await func(*args, **kwargs)

        arguments = _bind(signature, args, kwargs)
        old = _capture(contract.snapshots, arguments)
        evaluate_all(contract.preconditions, site, arguments)

        result = await func(*args, **kwargs)

        _check_postconditions(contract, site, arguments, old, result)
        return result

    return wrapper


def extend(func: Callable,
           preconditions: Sequence[Assertion] = (),
           postconditions: Sequence[Assertion] = ()) -> Callable:
    """
    Add assertions declared above an already woven function.

    The new assertions come first, because decorators apply bottom-up while
    declaration order reads top-down. The original function is re-woven so a
    single wrapper carries the whole contract.
    """
    contract = contract_of(func)
    original = getattr(func, "__wrapped__", None)
    # functools.wraps copies the contract attribute onto foreign wrappers
    if contract is None or original is None or contract_of(original) is contract:
        return weave(func, preconditions, postconditions)
    return weave(
        original,
        [*preconditions, *contract.preconditions],
        [*postconditions, *contract.postconditions],
        snapshots=contract.snapshots,
        doc_fragments=contract.doc_fragments,
    )
