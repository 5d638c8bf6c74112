"""
Constants, enumerations and runtime settings
"""

import ast
from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AssertionKind(str, Enum):
    """Where an assertion sits in a function's lifecycle"""
    PRECONDITION = "precondition"
    POSTCONDITION = "postcondition"
    CHECK = "check"


# Declaration names recognised in modules compiled by pledge
DECLARATION_ROLES = {
    "pre": AssertionKind.PRECONDITION,
    "post": AssertionKind.POSTCONDITION,
    "check": AssertionKind.CHECK,
}
DOC_ROLE = "doc"
PACKAGE_NAME = "pledge"

# Marker for values captured before a function body runs
OLD_MARKER = "old"
OLD_VARIABLE_PREFIX = "_old_"

# Names bound while evaluating assertions
RESULT_NAME = "result"
PREDICATE_NAMES = ("implies", "xor")

# Globals injected into every compiled module
UNIT_GLOBAL = "__pledge_unit__"
PREDICATES_GLOBAL = "__pledge_predicates__"

# Expressions that cannot appear in an assertion
FORBIDDEN_EXPRESSIONS = {
    ast.NamedExpr: "assignment expressions",
    ast.Yield: "yield expressions",
    ast.YieldFrom: "yield expressions",
    ast.Await: "await expressions",
}

ENV_PREFIX = "PLEDGE_"


class Settings(BaseSettings):
    """Switches that decide which contracts get woven and evaluated, read from PLEDGE_* variables"""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    enabled: bool = Field(True, description="Master switch for all contract checking")
    preconditions: bool = Field(True, description="Weave precondition checks")
    postconditions: bool = Field(True, description="Weave postcondition checks")
    checks: bool = Field(True, description="Evaluate inline check() assertions")
    append_docs: bool = Field(True, description="Append contracts to woven docstrings")
    log_level: str = Field("WARNING", description="Level used by configure_logging()")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the active settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(**overrides) -> Settings:
    """
    Replace the active settings with a validated copy carrying `overrides`.

    Weaving reads the settings when a function is woven, so changes only
    affect functions compiled afterwards. Inline checks read them per call.
    """
    global _settings
    _settings = Settings(**{**get_settings().model_dump(), **overrides})
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next lookup re-reads the environment."""
    global _settings
    _settings = None
