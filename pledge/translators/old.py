"""
Resolution of old() expressions in postconditions
"""

import ast
import copy
from typing import List, Optional, Sequence, Tuple

from ..core.config import AssertionKind
from ..core.errors import RegistrationError
from ..core.models import Assertion, OldSnapshotTable
from ..utils.hashing import snapshot_variable
from .expressions import contains_old, is_old_call, render


class OldExpressionResolver(ast.NodeTransformer):
    """
    Replaces every `old(E)` with a reference to the snapshot of `E`.

    Usage:
        resolver = OldExpressionResolver()
        postconditions, table = resolver.resolve(postconditions)

    Keys are the canonical text of `E`, so syntactically identical forms
    share one snapshot no matter how often they appear. The pass never
    evaluates anything; running it on resolved postconditions finds no
    markers and changes nothing.
    """

    def __init__(self, filename: Optional[str] = None):
        self.filename = filename
        self.table = OldSnapshotTable()
        self._lineno: Optional[int] = None
        self._filename: Optional[str] = None

    def resolve(self, postconditions: Sequence[Assertion]) -> Tuple[List[Assertion], OldSnapshotTable]:
        """
        Resolve old() markers across a function's postconditions.

        Args:
            postconditions: Postconditions in declaration order

        Returns:
            (rewritten postconditions, table of snapshots to capture)

        Raises:
            RegistrationError: If an old() marker does not take exactly one argument
        """
        self.table = OldSnapshotTable()
        resolved = []
        for postcondition in postconditions:
            if postcondition.kind is not AssertionKind.POSTCONDITION:
                raise ValueError(f"old() resolution only applies to postconditions, got {postcondition}")
            if not contains_old(postcondition.expression):
                resolved.append(postcondition)
                continue
            self._lineno = postcondition.site.line if postcondition.site else None
            self._filename = postcondition.site.file if postcondition.site else None
            expression = self.visit(copy.deepcopy(postcondition.expression))
            resolved.append(postcondition.with_expression(expression))
        return resolved, self.table

    def visit_Call(self, node: ast.Call) -> ast.AST:
        if not is_old_call(node):
            return self.generic_visit(node)

        if len(node.args) != 1 or node.keywords or isinstance(node.args[0], ast.Starred):
            self._fail(node, f"invalid old expression {render(node)!r}: old() takes exactly one argument")
        captured = node.args[0]
        if contains_old(captured):
            self._fail(node, f"invalid old expression {render(node)!r}: old() cannot be nested")

        key = render(captured)
        snapshot = self.table.add(key, captured, snapshot_variable(key))
        return ast.copy_location(ast.Name(id=snapshot.name, ctx=ast.Load()), node)

    def _fail(self, node: ast.AST, message: str) -> None:
        raise RegistrationError(message, self.filename or self._filename,
                                self._lineno or getattr(node, "lineno", None))


def resolve(postconditions: Sequence[Assertion],
            filename: Optional[str] = None) -> Tuple[List[Assertion], OldSnapshotTable]:
    return OldExpressionResolver(filename).resolve(postconditions)
