"""
Compilation pipeline for modules that declare contracts
"""

import ast
import logging
import sys
import types
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .. import predicates
from ..generators.docs import append_contract_docs
from ..parser import DeclarationParser
from ..translators.old import resolve
from ..translators.statements import bind_super, build_lambda, compile_expression, uses_zero_argument_super
from .config import (DECLARATION_ROLES, DOC_ROLE, PREDICATES_GLOBAL, RESULT_NAME, UNIT_GLOBAL,
                     AssertionKind, get_settings)
from .errors import RegistrationError
from .evaluator import evaluate, frame_bindings, frame_namespace
from .fsm import CompileStateMachine, State
from .models import Assertion, FunctionContract, FunctionIdentity, Site, parameter_names
from .weaver import weave

logger = logging.getLogger(__name__)

FunctionNode = (ast.FunctionDef, ast.AsyncFunctionDef)


class CompilationUnit:
    """
    Runtime companion of a compiled module, bound to it as `__pledge_unit__`.

    Holds the contracts and checks found at compile time. Generated code
    calls back into it to weave functions and to evaluate checks.
    """

    def __init__(self, module_name: str, filename: str):
        self.module_name = module_name
        self.filename = filename
        self.contracts: List[FunctionContract] = []
        self.checks: List[Assertion] = []
        self.frame_checks: Dict[int, types.CodeType] = {}

    def add_contract(self, contract: FunctionContract) -> int:
        self.contracts.append(contract)
        return len(self.contracts) - 1

    def add_check(self, assertion: Assertion, code: Optional[types.CodeType] = None) -> int:
        self.checks.append(assertion)
        index = len(self.checks) - 1
        if code is not None:
            self.frame_checks[index] = code
        return index

    def weave(self,
              index: int,
              preconditions: Sequence[Callable[..., Any]] = (),
              postconditions: Sequence[Callable[..., Any]] = (),
              snapshots: Sequence[Callable[..., Any]] = ()) -> Callable[[Callable], Callable]:
        """
        Decorator applying contract `index` to one clause.

        Args:
            index: Position of the contract in `contracts`
            preconditions: Compiled predicates, one per precondition
            postconditions: Compiled predicates, one per postcondition
            snapshots: Compiled captures, one per old() snapshot
        """
        contract = self.contracts[index]

        def decorator(func: Callable) -> Callable:
            if not contract.has_assertions:
                if contract.doc_fragments and get_settings().append_docs:
                    func.__doc__ = append_contract_docs(func.__doc__, contract)
                return func
            return weave(
                func,
                [a.with_predicate(p) for a, p in zip(contract.preconditions, preconditions)],
                [a.with_predicate(p) for a, p in zip(contract.postconditions, postconditions)],
                snapshots=contract.snapshots.with_captures(snapshots),
                doc_fragments=contract.doc_fragments,
            )

        return decorator

    def check(self, index: int, predicate: Optional[Callable[[], Any]] = None) -> Any:
        """
        Evaluate check `index` in the caller's frame.

        Checks in module and class bodies come without a predicate; their
        compiled expression is evaluated against the caller's namespace.
        """
        settings = get_settings()
        if not (settings.enabled and settings.checks):
            return True
        frame = sys._getframe(1)
        if predicate is None:
            code = self.frame_checks[index]

            def predicate():
                return eval(code, frame_namespace(frame))
        return evaluate(
            self.checks[index],
            call_site=lambda: Site.of_frame(frame),
            binding=lambda: frame_bindings(frame),
            predicate=predicate,
        )

    def __repr__(self) -> str:
        return (f"CompilationUnit({self.module_name!r}, contracts={len(self.contracts)}, "
                f"checks={len(self.checks)})")


class ContractCompiler:
    """
    Rewrites a module so its declared contracts guard its functions.

    Declaration scopes are the module body and class bodies, including the
    bodies of compound statements (if/try/with/...) inside them. Statements
    are fed to one CompileStateMachine in source order. Declarations are
    removed from the tree and every contracted function clause gets an
    innermost decorator:

        @__pledge_unit__.weave(0, preconditions=[lambda x, **__pledge_bindings__: x >= 0], ...)
        def sqrt(x): ...

    `check(...)` calls in functions are replaced by `__pledge_unit__.check(i, lambda: ...)`,
    and in module or class bodies by `__pledge_unit__.check(i)`.
    """

    def __init__(self, module_name: str, filename: str):
        self.unit = CompilationUnit(module_name, filename)
        self.parser = DeclarationParser(module_name, filename)
        self._fsm: Optional[CompileStateMachine] = None
        self._contract: Optional[FunctionContract] = None
        self._scopes: List[str] = []
        self._last_declaration: Optional[int] = None

    @property
    def filename(self) -> str:
        return self.unit.filename

    def compile(self, tree: ast.Module) -> ast.Module:
        """
        Transform `tree` in place.

        Raises:
            RegistrationError: If contracts cannot be bound
        """
        self.parser.scan_imports(tree)
        if not self.parser.active:
            logger.debug(f"{self.unit.module_name} does not import pledge; compiled unchanged")
            return tree

        with CompileStateMachine(self.unit.module_name) as fsm:
            self._fsm = fsm
            tree.body = self._declaration_body(tree.body)
            self._require_no_pending()
        self._fsm = None

        ast.fix_missing_locations(tree)
        logger.info(
            f"Compiled {self.unit.module_name}: {len(self.unit.contracts)} contract(s), "
            f"{len(self.unit.checks)} check(s)"
        )
        return tree

    # Declaration scopes

    def _declaration_body(self, body: List[ast.stmt], keep_empty: bool = False) -> List[ast.stmt]:
        new_body: List[ast.stmt] = []
        for stmt in body:
            new_body.extend(self._declaration_statement(stmt))
        if not new_body and not keep_empty:
            new_body.append(ast.Pass())
        return new_body

    def _declaration_statement(self, stmt: ast.stmt) -> List[ast.stmt]:
        if isinstance(stmt, ast.Expr):
            role = self.parser.role(stmt.value)
            if role in ("pre", "post", DOC_ROLE):
                self._declare(stmt.value, role)
                return []

        if isinstance(stmt, FunctionNode):
            return [self._function(stmt)]

        if isinstance(stmt, ast.ClassDef):
            return [self._class(stmt)]

        if _is_compound(stmt):
            return [self._compound(stmt)]

        return [CheckRewriter(self, function=None, class_body=bool(self._scopes)).visit(stmt)]

    def _declare(self, call: ast.Call, role: str) -> None:
        self._last_declaration = call.lineno
        if role == DOC_ROLE:
            self._fsm.doc_fragment(self.parser.parse_doc(call))
            return
        kind = DECLARATION_ROLES[role]
        for assertion in self.parser.parse_assertions(call, kind):
            if kind is AssertionKind.PRECONDITION:
                self._fsm.precondition_def(assertion)
            else:
                self._fsm.postcondition_def(assertion)

    def _class(self, node: ast.ClassDef) -> ast.ClassDef:
        self._require_no_pending()
        for decorator in node.decorator_list:
            if self.parser.role(decorator):
                raise RegistrationError(
                    "contracts can only decorate functions", self.filename, decorator.lineno
                )
        rewriter = CheckRewriter(self, function=None, class_body=bool(self._scopes))
        node.decorator_list = [rewriter.visit(d) for d in node.decorator_list]
        node.bases = [rewriter.visit(b) for b in node.bases]
        node.keywords = [rewriter.visit(k) for k in node.keywords]

        self._scopes.append(node.name)
        node.body = self._declaration_body(node.body)
        self._scopes.pop()
        self._require_no_pending()
        return node

    def _require_no_pending(self) -> None:
        if self._fsm.current_state() is State.CONTRACTS_PENDING:
            raise RegistrationError(
                "contracts must precede a function definition",
                self.filename, self._last_declaration,
            )

    def _compound(self, stmt: ast.stmt) -> ast.stmt:
        rewriter = CheckRewriter(self, function=None, class_body=bool(self._scopes))
        for field, value in ast.iter_fields(stmt):
            if _is_statement_list(value):
                setattr(stmt, field, self._declaration_body(value, keep_empty=(field in OPTIONAL_BODIES)))
            elif isinstance(value, list) and value and isinstance(value[0], (ast.excepthandler, ast.match_case)):
                for handler in value:
                    if getattr(handler, "type", None) is not None:
                        handler.type = rewriter.visit(handler.type)
                    if getattr(handler, "guard", None) is not None:
                        handler.guard = rewriter.visit(handler.guard)
                    handler.body = self._declaration_body(handler.body)
            elif isinstance(value, ast.AST):
                setattr(stmt, field, rewriter.visit(value))
            elif isinstance(value, list):
                setattr(stmt, field, [rewriter.visit(v) if isinstance(v, ast.AST) else v for v in value])
        return stmt

    # Functions

    def _function(self, node: ast.AST) -> ast.AST:
        self._decorator_declarations(node)

        identity = FunctionIdentity.of_node(node, self._scopes)
        before = self._fsm.current_state()
        try:
            self._fsm.function_def(identity)
        except RegistrationError as e:
            raise e.locate(self.filename, node.lineno)
        after = self._fsm.current_state()

        if after is not State.CONTRACTS_APPLY:
            self._contract = None
        elif before is State.CONTRACTS_PENDING or self._contract is None:
            self._contract = self._bind(identity, node)
        else:
            self._contract.clauses.append(node.lineno)

        outer = CheckRewriter(self, function=None, class_body=bool(self._scopes))
        node.args = outer.visit(node.args)
        rewriter = CheckRewriter(self, function=identity.as_tuple(), instance=_first_positional(node.args))
        node.decorator_list = [rewriter.visit(d) for d in node.decorator_list]
        if self._contract is not None:
            node.decorator_list.append(self._weave_decorator(self._contract, node))
        node.body = [rewriter.visit(stmt) for stmt in node.body]
        return node

    def _decorator_declarations(self, node: ast.AST) -> None:
        kept = []
        for decorator in node.decorator_list:
            role = self.parser.role(decorator)
            if role in ("pre", "post", DOC_ROLE):
                self._declare(decorator, role)
            elif role == "check":
                raise RegistrationError("check() cannot be used as a decorator",
                                        self.filename, decorator.lineno)
            else:
                kept.append(decorator)
        node.decorator_list = kept

    def _bind(self, identity: FunctionIdentity, node: ast.AST) -> FunctionContract:
        postconditions, table = resolve(self._fsm.pending_postconditions(), self.filename)
        if postconditions and RESULT_NAME in parameter_names(node.args):
            raise RegistrationError(
                f"{identity} has postconditions, so it cannot take a parameter named {RESULT_NAME!r}",
                self.filename, node.lineno,
            )
        contract = FunctionContract(
            identity=identity,
            preconditions=self._fsm.pending_preconditions(),
            postconditions=postconditions,
            snapshots=table,
            doc_fragments=self._fsm.pending_doc_fragments(),
            clauses=[node.lineno],
        )
        self.unit.add_contract(contract)
        logger.debug(
            f"Bound {len(contract.preconditions)} precondition(s) and "
            f"{len(contract.postconditions)} postcondition(s) to {identity}"
        )
        return contract

    def _weave_decorator(self, contract: FunctionContract, node: ast.AST) -> ast.Call:
        index = next(i for i, c in enumerate(self.unit.contracts) if c is contract)
        parameters = parameter_names(node.args)
        post_parameters = [*parameters, RESULT_NAME, *contract.snapshots.names()]

        def lambdas(expressions, names):
            return ast.List(elts=[build_lambda(e, names) for e in expressions], ctx=ast.Load())

        call = ast.Call(
            func=ast.Attribute(value=ast.Name(id=UNIT_GLOBAL, ctx=ast.Load()), attr="weave", ctx=ast.Load()),
            args=[ast.Constant(value=index)],
            keywords=[
                ast.keyword(arg="preconditions",
                            value=lambdas([a.expression for a in contract.preconditions], parameters)),
                ast.keyword(arg="postconditions",
                            value=lambdas([a.expression for a in contract.postconditions], post_parameters)),
                ast.keyword(arg="snapshots",
                            value=lambdas([s.expression for s in contract.snapshots], parameters)),
            ],
        )
        return ast.copy_location(call, node)


class CheckRewriter(ast.NodeTransformer):
    """
    Rewrites check() calls into evaluations and rejects misplaced declarations.

    Args:
        compiler: The compiler owning the unit checks are added to
        function: (name, arity) of the enclosing function, None outside functions
        instance: First positional parameter of the enclosing function
        class_body: True while visiting statements run directly in a class body
    """

    def __init__(self, compiler: ContractCompiler, function: Optional[tuple],
                 instance: Optional[str] = None, class_body: bool = False):
        self.compiler = compiler
        self.function = function
        self.instance = instance
        self.class_body = class_body

    @property
    def parser(self) -> DeclarationParser:
        return self.compiler.parser

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:
        return self._nested_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
        return self._nested_function(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        for decorator in node.decorator_list:
            if self.parser.role(decorator):
                self._misplaced(decorator)
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.bases = [self.visit(b) for b in node.bases]
        node.keywords = [self.visit(k) for k in node.keywords]
        body = CheckRewriter(self.compiler, self.function, class_body=True)
        node.body = [body.visit(stmt) for stmt in node.body]
        return node

    def _own_scope(self, node: ast.AST) -> ast.AST:
        class_body, self.class_body = self.class_body, False
        try:
            return self.generic_visit(node)
        finally:
            self.class_body = class_body

    visit_Lambda = _own_scope
    visit_ListComp = _own_scope
    visit_SetComp = _own_scope
    visit_DictComp = _own_scope
    visit_GeneratorExp = _own_scope

    def visit_Call(self, node: ast.Call) -> ast.AST:
        role = self.parser.role(node)
        if role is None:
            return self.generic_visit(node)
        if role != "check":
            self._misplaced(node)

        calls = []
        for assertion in self.parser.parse_assertions(node, AssertionKind.CHECK, self.function):
            if self.class_body:
                # lambdas cannot see class attributes; evaluated against the class namespace instead
                code = compile_expression(assertion.expression, self.compiler.filename)
                arguments = [ast.Constant(value=self.compiler.unit.add_check(assertion, code))]
            else:
                index = self.compiler.unit.add_check(assertion)
                arguments = [ast.Constant(value=index), build_lambda(self._bind_super(assertion.expression))]
            check = ast.Call(
                func=ast.Attribute(value=ast.Name(id=UNIT_GLOBAL, ctx=ast.Load()), attr="check", ctx=ast.Load()),
                args=arguments,
                keywords=[],
            )
            calls.append(ast.copy_location(check, node))

        # keyword and mapping forms evaluate to a list of values
        if len(calls) == 1 and not node.keywords and not isinstance(node.args[0], ast.Dict):
            return calls[0]
        return ast.copy_location(ast.List(elts=calls, ctx=ast.Load()), node)

    def _bind_super(self, expression: ast.expr) -> ast.expr:
        if self.function is None or not uses_zero_argument_super(expression):
            return expression
        if self.instance is None:
            raise RegistrationError(
                f"super() in a check needs {self.function[0]} to take a positional parameter",
                self.compiler.filename, expression.lineno,
            )
        return bind_super(expression, self.instance)

    def _nested_function(self, node: ast.AST) -> ast.AST:
        for decorator in node.decorator_list:
            if self.parser.role(decorator):
                self._misplaced(decorator)
        name = f"{self.function[0]}.<locals>.{node.name}" if self.function else node.name
        nested = CheckRewriter(self.compiler, (name, len(parameter_names(node.args))),
                               instance=_first_positional(node.args))
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.args = self.visit(node.args)
        node.body = [nested.visit(stmt) for stmt in node.body]
        return node

    def _misplaced(self, node: ast.AST) -> None:
        raise RegistrationError(
            "contracts can only be declared in module or class bodies, ahead of a function",
            self.compiler.filename, node.lineno,
        )


def _first_positional(args: ast.arguments) -> Optional[str]:
    positional = args.posonlyargs + args.args
    return positional[0].arg if positional else None


OPTIONAL_BODIES = ("orelse", "finalbody")


def _is_statement_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and isinstance(value[0], ast.stmt)


def _is_compound(stmt: ast.stmt) -> bool:
    return isinstance(stmt, ast.Match) or any(_is_statement_list(v) for _, v in ast.iter_fields(stmt))


def compile_unit(source: str, module_name: str,
                 filename: Optional[str] = None) -> Tuple[types.CodeType, CompilationUnit]:
    """
    Compile module source with its contracts woven in.

    Args:
        source: Module source code
        module_name: Fully qualified module name
        filename: Path reported in tracebacks and diagnostics

    Returns:
        (code object to execute in the module namespace, its CompilationUnit)

    Raises:
        SyntaxError: If the source does not parse
        RegistrationError: If contracts cannot be bound
    """
    filename = filename or f"<pledge:{module_name}>"
    tree = ast.parse(source, filename=filename)
    compiler = ContractCompiler(module_name, filename)
    tree = compiler.compile(tree)
    return compile(tree, filename, "exec"), compiler.unit


def prepare_namespace(namespace: dict, unit: CompilationUnit) -> None:
    """Bind the globals generated code refers to."""
    namespace[UNIT_GLOBAL] = unit
    namespace[PREDICATES_GLOBAL] = predicates


def compile_source(source: str, module_name: str, filename: Optional[str] = None,
                   register: bool = False) -> types.ModuleType:
    """
    Compile and execute module source, returning the new module.

    Args:
        source: Module source code
        module_name: Name of the new module
        filename: Path reported in tracebacks and diagnostics
        register: Also insert the module into sys.modules

    Returns:
        The executed module
    """
    code, unit = compile_unit(source, module_name, filename)
    module = types.ModuleType(module_name)
    module.__file__ = unit.filename
    prepare_namespace(module.__dict__, unit)
    if register:
        sys.modules[module_name] = module
    try:
        exec(code, module.__dict__)
    except BaseException:
        if register:
            sys.modules.pop(module_name, None)
        raise
    return module
