"""
Tests for runtime assertion evaluation and the reentrancy guard
"""

import asyncio
import threading

import pytest

from pledge.core.config import AssertionKind
from pledge.core.errors import CheckError, ContractViolation, PostconditionError, PreconditionError
from pledge.core.evaluator import evaluate, evaluate_all, evaluating, guard
from pledge.core.models import Assertion, Site
from pledge.translators.statements import compile_predicate

SITE = Site(module="tests", function=("f", 1), file="tests.py", line=3)


def compiled(kind, text, parameters=("x",), label=None):
    assertion = Assertion.new(kind, text, label, site=SITE)
    return assertion.with_predicate(compile_predicate(assertion.expression, list(parameters), {}))


def test_returns_value():
    """Test that a passing assertion yields the expression's value"""
    assertion = compiled(AssertionKind.CHECK, "x * 2")
    assert evaluate(assertion, arguments={"x": 21}) == 42


def test_falsy_raises_kind_specific_violation():
    """Test the error type chosen for each kind"""
    cases = [
        (AssertionKind.PRECONDITION, PreconditionError),
        (AssertionKind.POSTCONDITION, PostconditionError),
        (AssertionKind.CHECK, CheckError),
    ]
    for kind, error_type in cases:
        with pytest.raises(error_type) as excinfo:
            evaluate(compiled(kind, "x > 0", label="positive"), call_site=SITE, arguments={"x": -1})
        error = excinfo.value
        assert isinstance(error, ContractViolation)
        assert isinstance(error, AssertionError)
        assert error.kind is kind
        assert error.label == "positive"
        assert error.expression == "x > 0"
        assert error.binding == {"x": -1}
        assert error.assertion_site == SITE
        assert error.call_site == SITE


def test_exception_becomes_violation():
    """Test that an expression raising is reported as a violation"""
    assertion = compiled(AssertionKind.PRECONDITION, "1 / x > 0")
    with pytest.raises(PreconditionError) as excinfo:
        evaluate(assertion, arguments={"x": 0})
    assert isinstance(excinfo.value.__cause__, ZeroDivisionError)


class Ambiguous:
    def __bool__(self):
        raise ValueError("truth value is ambiguous")


def test_truth_test_failure_becomes_violation():
    """Test that a value whose truth test raises is reported as a violation"""
    assertion = compiled(AssertionKind.POSTCONDITION, "x")
    with pytest.raises(PostconditionError) as excinfo:
        evaluate(assertion, arguments={"x": Ambiguous()})
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert not evaluating()


def test_message_includes_diagnostics():
    """Test the rendered violation message"""
    assertion = compiled(AssertionKind.PRECONDITION, "x >= 0", label="non_negative_x")
    with pytest.raises(PreconditionError) as excinfo:
        evaluate(assertion, call_site=SITE, arguments={"x": -1})
    message = str(excinfo.value)
    assert message.startswith("precondition failed for call to tests.f/1")
    assert "label: 'non_negative_x'" in message
    assert "assertion: x >= 0" in message
    assert "declared at: tests.py:3" in message


def test_lazy_diagnostics():
    """Test that call site and binding are only built on failure"""
    built = []

    def binding():
        built.append("binding")
        return {"x": 0}

    assertion = compiled(AssertionKind.CHECK, "x", parameters=())
    assert evaluate(assertion, binding=binding, predicate=lambda: True)
    assert built == []

    with pytest.raises(CheckError) as excinfo:
        evaluate(assertion, call_site=lambda: SITE, binding=binding, predicate=lambda: 0)
    assert built == ["binding"]
    assert excinfo.value.call_site == SITE


def test_guard_released_on_every_path():
    """Test that the permit is reset after success and failure"""
    assert not evaluating()
    evaluate(compiled(AssertionKind.CHECK, "x"), arguments={"x": 1})
    assert not evaluating()
    with pytest.raises(CheckError):
        evaluate(compiled(AssertionKind.CHECK, "1 / x"), arguments={"x": 0})
    assert not evaluating()


def test_guard_skips_nested_evaluation():
    """Test that evaluation inside another evaluation succeeds without running"""
    calls = []
    assertion = compiled(AssertionKind.CHECK, "x")
    with guard():
        assert evaluating()
        assert evaluate(assertion, predicate=lambda: calls.append(1)) is True
        assert evaluate_all([assertion, assertion], arguments={"x": 0}) == [True, True]
    assert calls == []
    assert not evaluating()


def test_evaluate_all_in_order():
    """Test that a group stops at the first failing assertion"""
    seen = []
    first = compiled(AssertionKind.PRECONDITION, "x").with_predicate(lambda x: seen.append("a") or True)
    second = compiled(AssertionKind.PRECONDITION, "x", label="second").with_predicate(lambda x: False)
    third = compiled(AssertionKind.PRECONDITION, "x").with_predicate(lambda x: seen.append("c") or True)

    with pytest.raises(PreconditionError) as excinfo:
        evaluate_all([first, second, third], SITE, {"x": 1})
    assert excinfo.value.label == "second"
    assert seen == ["a"]


def test_guard_is_thread_local():
    """Test that holding the permit in one thread does not affect another"""
    observed = []

    def worker():
        observed.append(evaluating())

    with guard():
        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
    assert observed == [False]


def test_guard_is_task_local():
    """Test that asyncio tasks have independent permits"""
    async def holder(ready, done):
        with guard():
            ready.set()
            await done.wait()
            return evaluating()

    async def observer(ready, done):
        await ready.wait()
        value = evaluating()
        done.set()
        return value

    async def main():
        ready, done = asyncio.Event(), asyncio.Event()
        return await asyncio.gather(holder(ready, done), observer(ready, done))

    assert asyncio.run(main()) == [True, False]


def test_missing_predicate():
    """Test that an uncompiled assertion cannot be evaluated"""
    with pytest.raises(ValueError, match="no compiled predicate"):
        evaluate(Assertion.new(AssertionKind.CHECK, "x"))
