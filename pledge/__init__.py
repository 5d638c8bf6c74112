"""
Pledge: design by contract for Python modules
"""

import logging

from .core.config import AssertionKind, Settings, configure, get_settings, reset_settings
from .core.errors import (AssertionDefinitionError, CheckError, ContractViolation, PledgeError,
                          PostconditionError, PreconditionError, RegistrationError)
from .core.models import Assertion, FunctionContract, FunctionIdentity, Site
from .core.weaver import contract_of, weave
from .core.compiler import CompilationUnit, compile_source, compile_unit
from .core.log import configure_logging
from .decorators import check, doc, ensures, old, post, pre, requires
from .importer import install, load_module, uninstall
from .predicates import implies, xor

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "pre",
    "post",
    "doc",
    "old",
    "check",
    "requires",
    "ensures",
    "implies",
    "xor",
    "compile_source",
    "compile_unit",
    "load_module",
    "install",
    "uninstall",
    "weave",
    "contract_of",
    "configure",
    "get_settings",
    "reset_settings",
    "configure_logging",
    "Settings",
    "AssertionKind",
    "Assertion",
    "Site",
    "FunctionIdentity",
    "FunctionContract",
    "CompilationUnit",
    "PledgeError",
    "RegistrationError",
    "AssertionDefinitionError",
    "ContractViolation",
    "PreconditionError",
    "PostconditionError",
    "CheckError",
]
