"""
Compile-time state for one module compiled by pledge.

Contracts are declared as a run of statements or decorators ahead of the
function they guard, and one logical function may be spelled as several
consecutive clauses (same name, same arity) that must all receive the same
contract. The state machine decides, for every function definition, whether
the pending contracts apply to it:

    * NO_CONTRACTS_PENDING - nothing declared since the last binding
    * CONTRACTS_PENDING - assertions or doc fragments await the next function
    * CONTRACTS_APPLY - pending contracts were bound to the last function and
      stay bound for further clauses of that same function
"""

import logging
from enum import Enum
from typing import List, Optional

from .config import AssertionKind
from .errors import RegistrationError
from .models import Assertion, FunctionIdentity

logger = logging.getLogger(__name__)

CLAUSE_ERROR = (
    "cannot define contracts in between clauses of functions with the same name"
    " and arity (number of arguments)"
)


class State(str, Enum):
    NO_CONTRACTS_PENDING = "no_contracts_pending"
    CONTRACTS_PENDING = "contracts_pending"
    CONTRACTS_APPLY = "contracts_apply"


class CompileStateMachine:
    """
    Registration state for a single compilation unit.

    Create one per module being compiled and stop it when the module is done;
    instances are never shared, so modules compiled concurrently do not
    interfere. Events must arrive in source order.

    Usage:
        with CompileStateMachine("shapes") as fsm:
            fsm.precondition_def(assertion)
            fsm.function_def(FunctionIdentity("area", 1))
            fsm.pending_preconditions()
    """

    def __init__(self, module: str):
        self.module = module
        self._state = State.NO_CONTRACTS_PENDING
        self._running = True
        self._last_function: Optional[FunctionIdentity] = None
        self._preconditions: List[Assertion] = []
        self._postconditions: List[Assertion] = []
        self._doc_fragments: List[str] = []

    def __enter__(self) -> "CompileStateMachine":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()

    def stop(self) -> None:
        """End the compilation unit; later events are rejected."""
        self._running = False
        self._clear()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_function(self) -> Optional[FunctionIdentity]:
        return self._last_function

    def current_state(self) -> State:
        return self._state

    # Events

    def function_def(self, identity: FunctionIdentity) -> None:
        """
        A function clause with `identity` is being defined.

        Raises:
            RegistrationError: If contracts were declared between two clauses
                of the same function. Pending contracts are discarded first.
        """
        self._ensure_running()

        if self._state is State.NO_CONTRACTS_PENDING:
            self._last_function = identity

        elif self._state is State.CONTRACTS_PENDING:
            if identity == self._last_function:
                self._clear()
                self._transition(State.NO_CONTRACTS_PENDING, f"function_def {identity}")
                raise RegistrationError(CLAUSE_ERROR)
            self._last_function = identity
            self._transition(State.CONTRACTS_APPLY, f"function_def {identity}")

        elif identity != self._last_function:
            self._last_function = identity
            self._clear()
            self._transition(State.NO_CONTRACTS_PENDING, f"function_def {identity}")

    def precondition_def(self, assertion: Assertion) -> None:
        self._expect(assertion, AssertionKind.PRECONDITION)
        self._pending_event("precondition_def")
        self._preconditions.append(assertion)

    def postcondition_def(self, assertion: Assertion) -> None:
        self._expect(assertion, AssertionKind.POSTCONDITION)
        self._pending_event("postcondition_def")
        self._postconditions.append(assertion)

    def doc_fragment(self, text: str) -> None:
        self._pending_event("doc_fragment")
        self._doc_fragments.append(text)

    # Queries

    def pending_preconditions(self) -> List[Assertion]:
        if self._state is State.NO_CONTRACTS_PENDING:
            return []
        return list(self._preconditions)

    def pending_postconditions(self) -> List[Assertion]:
        if self._state is State.NO_CONTRACTS_PENDING:
            return []
        return list(self._postconditions)

    def pending_doc_fragments(self) -> List[str]:
        if self._state is State.NO_CONTRACTS_PENDING:
            return []
        return list(self._doc_fragments)

    # Internals

    def _pending_event(self, event: str) -> None:
        self._ensure_running()
        # A declaration after a bound function starts the next function's contract
        if self._state is State.CONTRACTS_APPLY:
            self._clear()
        self._transition(State.CONTRACTS_PENDING, event)

    def _transition(self, state: State, event: str) -> None:
        if state is not self._state:
            logger.debug(f"[{self.module}] {self._state.value} --{event}--> {state.value}")
        self._state = state

    def _clear(self) -> None:
        self._preconditions = []
        self._postconditions = []
        self._doc_fragments = []

    def _ensure_running(self) -> None:
        if not self._running:
            raise RegistrationError(f"compile state for module {self.module!r} has been stopped")

    @staticmethod
    def _expect(assertion: Assertion, kind: AssertionKind) -> None:
        if assertion.kind is not kind:
            raise ValueError(f"expected a {kind.value}, got {assertion}")
