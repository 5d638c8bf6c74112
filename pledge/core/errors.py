"""
Error taxonomy for contract registration and contract violations
"""

import pprint
from typing import Any, Dict, Optional, Type

from .config import AssertionKind


class PledgeError(Exception):
    """Base class for every error raised by pledge"""


class RegistrationError(PledgeError):
    """
    Contracts were declared in a way that cannot be bound to a function.

    Raised while compiling a module, so it aborts that module's import.
    """

    def __init__(self, message: str, filename: Optional[str] = None, lineno: Optional[int] = None):
        self.message = message
        self.filename = filename
        self.lineno = lineno
        super().__init__(self._render())

    def locate(self, filename: Optional[str], lineno: Optional[int]) -> "RegistrationError":
        """Attach a source location if the error does not carry one yet."""
        if self.filename is None:
            self.filename = filename
        if self.lineno is None:
            self.lineno = lineno
        self.args = (self._render(),)
        return self

    def _render(self) -> str:
        if self.filename and self.lineno:
            return f"{self.filename}:{self.lineno}: {self.message}"
        if self.filename:
            return f"{self.filename}: {self.message}"
        return self.message


class AssertionDefinitionError(RegistrationError):
    """An assertion expression or label is malformed"""


class ContractViolation(PledgeError, AssertionError):
    """
    A contract did not hold at runtime.

    All three kinds share this payload; `kind` tells them apart and
    `for_kind()` picks the matching subclass for `except` clauses.
    """

    kind: AssertionKind = None
    headline = "contract failed"

    def __init__(self,
                 label: Any,
                 expression: str,
                 assertion_site: Any = None,
                 call_site: Any = None,
                 binding: Optional[Dict[str, Any]] = None):
        self.label = label
        self.expression = expression
        self.assertion_site = assertion_site
        self.call_site = call_site
        self.binding = dict(binding or {})
        super().__init__(self._render())

    @staticmethod
    def for_kind(kind: AssertionKind) -> Type["ContractViolation"]:
        return _VIOLATION_TYPES[AssertionKind(kind)]

    @classmethod
    def from_assertion(cls, assertion, call_site=None, binding=None) -> "ContractViolation":
        error_type = cls.for_kind(assertion.kind)
        return error_type(
            label=assertion.label,
            expression=assertion.text,
            assertion_site=assertion.site,
            call_site=call_site,
            binding=binding,
        )

    def _render(self) -> str:
        where = self.call_site.describe() if self.call_site is not None else "<unknown>"
        lines = [
            f"{self.headline} {where}",
            f"|   label: {self.label!r}",
            f"|   assertion: {self.expression}",
            f"|   binding: {pprint.pformat(self.binding, compact=True)}",
        ]
        if self.assertion_site is not None:
            lines.append(f"|   declared at: {self.assertion_site.location()}")
        return "\n".join(lines)


class PreconditionError(ContractViolation):
    """A function was called with arguments that break its precondition"""
    kind = AssertionKind.PRECONDITION
    headline = "precondition failed for call to"


class PostconditionError(ContractViolation):
    """A function returned normally but broke its postcondition"""
    kind = AssertionKind.POSTCONDITION
    headline = "postcondition failed in"


class CheckError(ContractViolation):
    """An inline check() failed"""
    kind = AssertionKind.CHECK
    headline = "check failed in"


_VIOLATION_TYPES: Dict[AssertionKind, Type[ContractViolation]] = {
    AssertionKind.PRECONDITION: PreconditionError,
    AssertionKind.POSTCONDITION: PostconditionError,
    AssertionKind.CHECK: CheckError,
}
