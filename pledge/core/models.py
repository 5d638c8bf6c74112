"""
Data models for assertions and function contracts
"""

import ast
import dataclasses
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .config import AssertionKind
from .errors import AssertionDefinitionError
from ..translators import expressions

Label = Union[None, str, Enum]


@dataclass(frozen=True)
class Site:
    """Where an assertion was declared, or where a contracted call happened"""
    module: Optional[str]
    function: Optional[Tuple[str, int]] = None
    file: Optional[str] = None
    line: Optional[int] = None

    @classmethod
    def of_function(cls, func: Callable) -> "Site":
        code = getattr(func, "__code__", None)
        return cls(
            module=getattr(func, "__module__", None),
            function=FunctionIdentity.of_callable(func).as_tuple(),
            file=code.co_filename if code else None,
            line=code.co_firstlineno if code else None,
        )

    @classmethod
    def of_frame(cls, frame) -> "Site":
        code = frame.f_code
        function = None
        # module and class bodies run unoptimized; only function frames carry an identity
        if code.co_flags & inspect.CO_OPTIMIZED:
            name = getattr(code, "co_qualname", code.co_name)
            arity = code.co_argcount + code.co_kwonlyargcount
            arity += bool(code.co_flags & inspect.CO_VARARGS)
            arity += bool(code.co_flags & inspect.CO_VARKEYWORDS)
            function = (name, arity)
        return cls(
            module=frame.f_globals.get("__name__"),
            function=function,
            file=code.co_filename,
            line=frame.f_lineno,
        )

    def describe(self) -> str:
        """`module.function/arity`, or just the module outside functions"""
        if self.function is None:
            return self.module or "<unknown>"
        name, arity = self.function
        prefix = f"{self.module}." if self.module else ""
        return f"{prefix}{name}/{arity}"

    def location(self) -> str:
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class FunctionIdentity:
    """A function is identified by its qualified name and its arity"""
    name: str
    arity: int

    @classmethod
    def of_node(cls, node: Union[ast.FunctionDef, ast.AsyncFunctionDef],
                scopes: Sequence[str] = ()) -> "FunctionIdentity":
        return cls(".".join([*scopes, node.name]), len(parameter_names(node.args)))

    @classmethod
    def of_callable(cls, func: Callable) -> "FunctionIdentity":
        name = getattr(func, "__qualname__", getattr(func, "__name__", repr(func)))
        return cls(name, len(inspect.signature(func).parameters))

    def as_tuple(self) -> Tuple[str, int]:
        return (self.name, self.arity)

    def __str__(self) -> str:
        return f"{self.name}/{self.arity}"


def parameter_names(args: ast.arguments) -> List[str]:
    """Every named parameter of a function definition, in signature order"""
    names = [a.arg for a in args.posonlyargs + args.args]
    if args.vararg:
        names.append(args.vararg.arg)
    names.extend(a.arg for a in args.kwonlyargs)
    if args.kwarg:
        names.append(args.kwarg.arg)
    return names


@dataclass(frozen=True)
class Assertion:
    """
    One boolean check attached to a function or evaluated inline.

    `expression` is the structural form used to build the evaluable
    predicate; `text` is the canonical rendering shown in diagnostics and
    documentation. Both are fixed at construction. Attaching a compiled
    predicate or a rewritten expression returns a new instance.
    """
    kind: AssertionKind
    expression: ast.expr = field(compare=False, repr=False)
    text: str
    label: Label = None
    site: Optional[Site] = None
    predicate: Optional[Callable[..., Any]] = field(default=None, compare=False, repr=False)

    @classmethod
    def new(cls,
            kind: AssertionKind,
            expression: Union[str, ast.expr],
            label: Label = None,
            site: Optional[Site] = None) -> "Assertion":
        """
        Build a validated assertion.

        Args:
            kind: precondition, postcondition or check
            expression: Expression source text or an already parsed expression
            label: None, non-blank text, or an enum member used as a symbolic tag
            site: Declaration site

        Raises:
            AssertionDefinitionError: If the expression or the label is malformed
        """
        kind = AssertionKind(kind)
        filename = site.file if site else None
        if isinstance(expression, str):
            expression = expressions.parse_expression(expression, filename or "<assertion>")
        expressions.validate(expression, allow_old=kind is AssertionKind.POSTCONDITION,
                             filename=filename)
        _validate_label(label, filename, site.line if site else None)
        return cls(kind=kind, expression=expression, text=expressions.render(expression),
                   label=label, site=site)

    def with_expression(self, expression: ast.expr) -> "Assertion":
        """Same assertion evaluating `expression`; the declared text is kept."""
        return dataclasses.replace(self, expression=expression, predicate=None)

    def with_predicate(self, predicate: Callable[..., Any]) -> "Assertion":
        return dataclasses.replace(self, predicate=predicate)

    @property
    def display_label(self) -> str:
        if self.label is None:
            return ""
        if isinstance(self.label, Enum):
            return self.label.name
        return self.label

    def __str__(self) -> str:
        return f"{self.kind.value}({self.label!r}) => {self.text}"


def _validate_label(label: Any, filename: Optional[str], lineno: Optional[int]) -> None:
    if label is None or isinstance(label, Enum):
        return
    if isinstance(label, str) and label.strip():
        return
    raise AssertionDefinitionError(
        f"invalid assertion label {label!r}: expected non-blank text or an enum member",
        filename, lineno,
    )


@dataclass(frozen=True)
class OldSnapshot:
    """A value to capture before the function body runs"""
    key: str
    expression: ast.expr = field(compare=False, repr=False)
    name: str
    capture: Optional[Callable[..., Any]] = field(default=None, compare=False, repr=False)


class OldSnapshotTable:
    """Ordered mapping from canonical `old(...)` text to its snapshot binding"""

    def __init__(self, snapshots: Sequence[OldSnapshot] = ()):
        self._snapshots: Dict[str, OldSnapshot] = {}
        for snapshot in snapshots:
            self._snapshots.setdefault(snapshot.key, snapshot)

    def add(self, key: str, expression: ast.expr, name: str) -> OldSnapshot:
        """Register `key` unless present; return the snapshot it maps to."""
        if key not in self._snapshots:
            self._snapshots[key] = OldSnapshot(key=key, expression=expression, name=name)
        return self._snapshots[key]

    def merge(self, other: "OldSnapshotTable") -> "OldSnapshotTable":
        return OldSnapshotTable([*self, *other])

    def with_captures(self, captures: Sequence[Callable[..., Any]]) -> "OldSnapshotTable":
        """Attach compiled capture functions, given in table order."""
        if len(captures) != len(self):
            raise ValueError(f"expected {len(self)} snapshot captures, got {len(captures)}")
        return OldSnapshotTable([
            dataclasses.replace(snapshot, capture=capture)
            for snapshot, capture in zip(self, captures)
        ])

    def keys(self) -> List[str]:
        return list(self._snapshots)

    def names(self) -> List[str]:
        return [snapshot.name for snapshot in self]

    def __getitem__(self, key: str) -> OldSnapshot:
        return self._snapshots[key]

    def __contains__(self, key: object) -> bool:
        return key in self._snapshots

    def __iter__(self) -> Iterator[OldSnapshot]:
        return iter(self._snapshots.values())

    def __len__(self) -> int:
        return len(self._snapshots)

    def __repr__(self) -> str:
        return f"OldSnapshotTable({self.keys()!r})"


@dataclass
class FunctionContract:
    """Preconditions and postconditions shared by every clause of one function"""
    identity: FunctionIdentity
    preconditions: List[Assertion] = field(default_factory=list)
    postconditions: List[Assertion] = field(default_factory=list)
    snapshots: OldSnapshotTable = field(default_factory=OldSnapshotTable)
    doc_fragments: List[str] = field(default_factory=list)
    clauses: List[int] = field(default_factory=list)

    @property
    def has_assertions(self) -> bool:
        return bool(self.preconditions or self.postconditions)
