"""
Shared fixtures for pledge tests
"""

import logging
import sys
import textwrap
from pathlib import Path

import pytest

from pledge import compile_source, load_module, reset_settings

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Every test starts from default settings, whatever the environment says."""
    for name in ("ENABLED", "PRECONDITIONS", "POSTCONDITIONS", "CHECKS", "APPEND_DOCS", "LOG_LEVEL"):
        monkeypatch.delenv(f"PLEDGE_{name}", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def load_fixture():
    """Compile a module from tests/fixtures through pledge."""
    loaded = []

    def load(name):
        module = load_module(FIXTURES / f"{name}.py", f"pledge_fixture_{name}")
        loaded.append(module.__name__)
        return module

    yield load
    for name in loaded:
        sys.modules.pop(name, None)


@pytest.fixture
def compile_snippet():
    """Compile dedented source text as a throwaway module."""
    def compile_(source, name="snippet"):
        return compile_source(textwrap.dedent(source), name, f"<{name}>")
    return compile_


@pytest.fixture
def pledge_logger():
    """The pledge logger, with its handlers restored afterwards."""
    logger = logging.getLogger("pledge")
    handlers, level = logger.handlers[:], logger.level
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)
