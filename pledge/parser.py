"""
Parser for contract declarations in modules compiled by pledge.
"""

import ast
from typing import Dict, List, Optional, Set

from .core.config import DECLARATION_ROLES, DOC_ROLE, PACKAGE_NAME, AssertionKind
from .core.errors import RegistrationError
from .core.models import Assertion, Site

ROLES = (*DECLARATION_ROLES, DOC_ROLE)


class DeclarationParser:
    """
    Recognise `pre`, `post`, `check` and `doc` calls and turn them into assertions.

    Only names that the module imports from pledge are recognised:

        from pledge import pre, post as ensure
        import pledge as p          # p.pre(...), p.check(...)

    Each declaration accepts four assertion forms:

        pre(x >= 0)
        pre("non-negative", x >= 0)
        pre(x >= 0, "non-negative")
        pre(numeric=isinstance(x, float), non_negative=x >= 0)
        pre({"x is not too big": x < 1e6})
    """

    def __init__(self, module_name: str, filename: str):
        self.module_name = module_name
        self.filename = filename
        self.names: Dict[str, str] = {}
        self.modules: Set[str] = set()

    @property
    def active(self) -> bool:
        """True once the module imports anything from pledge"""
        return bool(self.names or self.modules)

    def scan_imports(self, tree: ast.Module) -> None:
        """
        Record the local names bound to pledge declarations.

        Args:
            tree: Parsed module
        """
        for node in ast.walk(tree):
            if isinstance(node, ast.ImportFrom) and node.module == PACKAGE_NAME and not node.level:
                for alias in node.names:
                    if alias.name in ROLES:
                        self.names[alias.asname or alias.name] = alias.name
            elif isinstance(node, ast.Import):
                for alias in node.names:
                    if alias.name == PACKAGE_NAME:
                        self.modules.add(alias.asname or alias.name)

    def role(self, node: ast.AST) -> Optional[str]:
        """
        Role of a declaration call.

        Returns:
            "pre", "post", "check", "doc", or None for any other node
        """
        if not isinstance(node, ast.Call):
            return None
        func = node.func
        if isinstance(func, ast.Name):
            return self.names.get(func.id)
        if (isinstance(func, ast.Attribute)
                and isinstance(func.value, ast.Name)
                and func.value.id in self.modules
                and func.attr in ROLES):
            return func.attr
        return None

    def site(self, node: ast.AST, function: Optional[tuple] = None) -> Site:
        return Site(module=self.module_name, function=function, file=self.filename,
                    line=getattr(node, "lineno", None))

    def parse_assertions(self, call: ast.Call, kind: AssertionKind,
                         function: Optional[tuple] = None) -> List[Assertion]:
        """
        Extract the assertions declared by one call.

        Args:
            call: The declaration call
            kind: Kind given to every assertion
            function: (name, arity) of the enclosing function, for checks

        Returns:
            Assertions in source order

        Raises:
            RegistrationError: If the call does not match an assertion form
        """
        args, keywords = call.args, call.keywords
        name = self.role(call)

        if args and keywords:
            self._fail(call, f"{name}() takes either positional or keyword assertions, not both")

        if keywords:
            assertions = []
            for keyword in keywords:
                if keyword.arg is None:
                    self._fail(call, f"{name}() does not accept **mappings; use a dict literal")
                assertions.append(self._assertion(kind, keyword.value, keyword.arg, function))
            return assertions

        if len(args) == 1 and isinstance(args[0], ast.Dict):
            assertions = []
            for key, value in zip(args[0].keys, args[0].values):
                if not _is_text(key):
                    self._fail(args[0], f"{name}() labels must be string literals")
                assertions.append(self._assertion(kind, value, key.value, function))
            return assertions

        if len(args) == 1:
            return [self._assertion(kind, args[0], None, function)]

        if len(args) == 2:
            first, second = args
            if _is_text(first) and not _is_text(second):
                return [self._assertion(kind, second, first.value, function)]
            if _is_text(second) and not _is_text(first):
                return [self._assertion(kind, first, second.value, function)]
            self._fail(call, f"{name}() with two arguments needs one string label and one expression")

        self._fail(call, f"{name}() expects an assertion")

    def parse_doc(self, call: ast.Call) -> str:
        """Text of a `doc("...")` declaration"""
        if len(call.args) != 1 or call.keywords or not _is_text(call.args[0]):
            self._fail(call, "doc() takes a single string literal")
        return call.args[0].value

    def _assertion(self, kind: AssertionKind, expression: ast.expr,
                   label: Optional[str], function: Optional[tuple]) -> Assertion:
        return Assertion.new(kind, expression, label, self.site(expression, function))

    def _fail(self, node: ast.AST, message: str) -> None:
        raise RegistrationError(message, self.filename, getattr(node, "lineno", None))


def _is_text(node: Optional[ast.AST]) -> bool:
    return isinstance(node, ast.Constant) and isinstance(node.value, str)
