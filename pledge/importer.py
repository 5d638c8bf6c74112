"""
Import machinery for modules that declare contracts

Modules are compiled by pledge either explicitly:

    shapes = load_module("shapes.py")

or implicitly, by installing a finder for a set of package prefixes before
they are imported:

    install("myapp")
    import myapp.shapes
"""

import importlib.machinery
import importlib.util
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .core.compiler import CompilationUnit, compile_unit, prepare_namespace
from .core.config import UNIT_GLOBAL

logger = logging.getLogger(__name__)


class ContractLoader(importlib.machinery.SourceFileLoader):
    """
    Source loader that compiles through pledge.

    Cached bytecode is never read or written; the woven code depends on
    runtime settings captured at import time.
    """

    def exec_module(self, module) -> None:
        source = self.get_source(module.__name__)
        code, unit = compile_unit(source, module.__name__, self.path)
        prepare_namespace(module.__dict__, unit)
        exec(code, module.__dict__)


class ContractFinder:
    """Meta path finder handing matching source modules to ContractLoader"""

    def __init__(self, prefixes: Sequence[str]):
        self.prefixes = tuple(prefixes)

    def matches(self, fullname: str) -> bool:
        return any(fullname == p or fullname.startswith(p + ".") for p in self.prefixes)

    def find_spec(self, fullname, path=None, target=None):
        if not self.matches(fullname):
            return None
        spec = importlib.machinery.PathFinder.find_spec(fullname, path)
        if spec is None or not isinstance(spec.loader, importlib.machinery.SourceFileLoader):
            return spec
        spec.loader = ContractLoader(fullname, spec.origin)
        logger.debug(f"Compiling {fullname} with contracts from {spec.origin}")
        return spec

    def __repr__(self) -> str:
        return f"ContractFinder({list(self.prefixes)!r})"


_finders: List[ContractFinder] = []


def install(*prefixes: str) -> ContractFinder:
    """
    Compile modules under the given package prefixes on import.

    Modules already imported are not recompiled.

    Args:
        *prefixes: Top-level names such as "myapp" or "myapp.geometry"

    Returns:
        The installed finder, for `uninstall()`
    """
    if not prefixes:
        raise ValueError("install() needs at least one module prefix")
    finder = ContractFinder(prefixes)
    sys.meta_path.insert(0, finder)
    _finders.append(finder)
    logger.info(f"Installed contract finder for {', '.join(prefixes)}")
    return finder


def uninstall(finder: Optional[ContractFinder] = None) -> None:
    """Remove one finder, or every finder installed by `install()`."""
    targets = [finder] if finder is not None else list(_finders)
    for target in targets:
        if target in sys.meta_path:
            sys.meta_path.remove(target)
        if target in _finders:
            _finders.remove(target)


def load_module(path: Union[str, Path], module_name: Optional[str] = None):
    """
    Compile and import a single source file.

    Args:
        path: Path to a .py file
        module_name: Name for the module (defaults to the file stem)

    Returns:
        The imported module, also registered in sys.modules

    Raises:
        FileNotFoundError: If `path` does not exist
        RegistrationError: If the module's contracts cannot be bound
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Module file not found: {path}")

    module_name = module_name or path.stem
    loader = ContractLoader(module_name, str(path))
    spec = importlib.util.spec_from_file_location(module_name, str(path), loader=loader)
    module = importlib.util.module_from_spec(spec)

    sys.modules[module_name] = module
    try:
        loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise

    logger.info(f"Loaded {module_name} from {path}")
    return module


def unit_of(module) -> Optional[CompilationUnit]:
    """The CompilationUnit of a module compiled by pledge, if any"""
    return getattr(module, UNIT_GLOBAL, None)
