"""
Tests for settings and logging configuration
"""

import json
import logging

import pytest
from pydantic import ValidationError

from pledge import configure, configure_logging, get_settings, reset_settings
from pledge.core.log import JSONFormatter, TextFormatter


def test_defaults():
    """Test default settings"""
    settings = get_settings()
    assert settings.enabled
    assert settings.preconditions and settings.postconditions and settings.checks
    assert settings.append_docs
    assert settings.log_level == "WARNING"


def test_environment(monkeypatch):
    """Test PLEDGE_* environment variables"""
    monkeypatch.setenv("PLEDGE_ENABLED", "false")
    monkeypatch.setenv("PLEDGE_LOG_LEVEL", "DEBUG")
    reset_settings()
    settings = get_settings()
    assert settings.enabled is False
    assert settings.log_level == "DEBUG"
    assert get_settings() is settings


def test_dotenv_file(tmp_path, monkeypatch):
    """Test PLEDGE_* values read from a .env file, with the environment taking precedence"""
    (tmp_path / ".env").write_text("PLEDGE_CHECKS=false\nPLEDGE_LOG_LEVEL=INFO\nUNRELATED=1\n")
    monkeypatch.chdir(tmp_path)
    reset_settings()
    settings = get_settings()
    assert settings.checks is False
    assert settings.log_level == "INFO"

    monkeypatch.setenv("PLEDGE_LOG_LEVEL", "ERROR")
    reset_settings()
    assert get_settings().log_level == "ERROR"


def test_configure_overrides():
    """Test validated overrides"""
    settings = configure(checks=False)
    assert get_settings() is settings
    assert settings.checks is False
    assert settings.preconditions is True

    with pytest.raises(ValidationError):
        configure(enabled="not a boolean")


def test_configure_logging_text(pledge_logger):
    """Test the text handler installed on the pledge logger"""
    logger = configure_logging("debug")
    assert logger is pledge_logger
    assert logger.level == logging.DEBUG
    handlers = [h for h in logger.handlers if not isinstance(h, logging.NullHandler)]
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, TextFormatter)

    configure_logging("info")
    assert len([h for h in logger.handlers if not isinstance(h, logging.NullHandler)]) == 1


def test_configure_logging_uses_settings(pledge_logger):
    """Test the level taken from settings"""
    configure(log_level="ERROR")
    assert configure_logging().level == logging.ERROR


def test_json_formatter_fields():
    """Test that contract fields are added to JSON log records"""
    record = logging.LogRecord("pledge.core.evaluator", logging.DEBUG, __file__, 1,
                               "precondition violated", None, None)
    record.contract_kind = "precondition"
    record.expression = "x >= 0"

    data = json.loads(JSONFormatter().format(record))
    assert data["level"] == "DEBUG"
    assert data["message"] == "precondition violated"
    assert data["contract_kind"] == "precondition"
    assert data["expression"] == "x >= 0"
    assert "label" not in data


def test_violations_are_logged(load_fixture, caplog):
    """Test the debug record emitted before a violation is raised"""
    arithmetic = load_fixture("arithmetic")
    with caplog.at_level(logging.DEBUG, logger="pledge"):
        with pytest.raises(AssertionError):
            arithmetic.sqrt(-1)

    records = [r for r in caplog.records if getattr(r, "contract_kind", None) == "precondition"]
    assert len(records) == 1
    assert records[0].label == "non_negative_x"
    assert records[0].expression == "x >= 0"
