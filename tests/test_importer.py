"""
Tests for loading modules through the contract compiler
"""

import sys
import textwrap

import pytest

from pledge import install, load_module, uninstall
from pledge.core.errors import PostconditionError, PreconditionError, RegistrationError
from pledge.importer import ContractFinder, unit_of


def write(path, source):
    path.write_text(textwrap.dedent(source), encoding="utf-8")
    return path


def test_load_module(tmp_path):
    """Test compiling a single file"""
    path = write(tmp_path / "shapes.py", """
        from pledge import pre

        pre(side >= 0)
        def square(side):
            return side * side
    """)
    module = load_module(path, "pledge_test_shapes")
    try:
        assert sys.modules["pledge_test_shapes"] is module
        assert module.square(3) == 9
        with pytest.raises(PreconditionError):
            module.square(-1)
        assert unit_of(module).filename == str(path)
    finally:
        sys.modules.pop("pledge_test_shapes", None)


def test_load_module_failure_is_not_registered(tmp_path):
    """Test that a module whose contracts cannot be bound is not left behind"""
    path = write(tmp_path / "broken.py", """
        from pledge import pre

        pre(x > 0)
    """)
    with pytest.raises(RegistrationError) as excinfo:
        load_module(path, "pledge_test_broken")
    assert "pledge_test_broken" not in sys.modules
    assert excinfo.value.filename == str(path)


def test_load_missing_file(tmp_path):
    """Test loading a path that does not exist"""
    with pytest.raises(FileNotFoundError):
        load_module(tmp_path / "missing.py")


def test_install_compiles_matching_packages(tmp_path, monkeypatch):
    """Test the import hook for a package prefix"""
    package = tmp_path / "pledge_test_pkg"
    package.mkdir()
    write(package / "__init__.py", "")
    write(package / "geometry.py", """
        from pledge import post

        post(result >= 0)
        def distance(a, b):
            return a - b
    """)
    write(tmp_path / "pledge_test_other.py", """
        def distance(a, b):
            return a - b
    """)
    monkeypatch.syspath_prepend(str(tmp_path))

    finder = install("pledge_test_pkg")
    try:
        assert finder in sys.meta_path
        import pledge_test_pkg.geometry as geometry
        import pledge_test_other as other

        assert unit_of(geometry) is not None
        assert geometry.distance(3, 1) == 2
        with pytest.raises(PostconditionError):
            geometry.distance(1, 3)

        # modules outside the prefix import as usual
        assert unit_of(other) is None
        assert other.distance(1, 3) == -2
    finally:
        uninstall(finder)
        for name in ("pledge_test_pkg.geometry", "pledge_test_pkg", "pledge_test_other"):
            sys.modules.pop(name, None)

    assert finder not in sys.meta_path


def test_finder_matching():
    """Test prefix matching on dotted names"""
    finder = ContractFinder(["app", "lib.core"])
    assert finder.matches("app")
    assert finder.matches("app.models")
    assert finder.matches("lib.core.io")
    assert not finder.matches("application")
    assert not finder.matches("lib")


def test_install_needs_a_prefix():
    """Test that installing without prefixes is refused"""
    with pytest.raises(ValueError):
        install()
