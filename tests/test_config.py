"""
Tests for settings and logging setup.
"""

import pytest
import structlog
from pydantic import ValidationError

from flagkit.config import FeatureSettings
from flagkit.logging import add_component, configure_logging, get_logger


def test_defaults():
    """Test out-of-the-box settings."""
    settings = FeatureSettings()

    assert settings.default_store == "array"
    assert settings.store_config("array") == {"driver": "array"}
    assert settings.store_config("database") == {"driver": "database"}
    assert settings.store_config("missing") is None
    assert settings.events_enabled is True
    assert settings.group_storage is None


def test_environment_prefix(monkeypatch):
    """Test FEATURE_ environment variables are read."""
    monkeypatch.setenv("FEATURE_DEFAULT_STORE", "database")
    monkeypatch.setenv("FEATURE_EVENTS_ENABLED", "false")
    monkeypatch.setenv("FEATURE_GROUPS", '{"beta": ["reports"]}')

    settings = FeatureSettings()

    assert settings.default_store == "database"
    assert settings.events_enabled is False
    assert settings.groups == {"beta": ["reports"]}


def test_validators():
    """Test invalid values are rejected."""
    with pytest.raises(ValidationError):
        FeatureSettings(log_format="xml")
    with pytest.raises(ValidationError):
        FeatureSettings(group_storage="redis")


@pytest.mark.parametrize(
    "fmt, renderer",
    [
        ("json", structlog.processors.JSONRenderer),
        ("text", structlog.dev.ConsoleRenderer),
    ],
)
def test_configure_logging_picks_renderer(fmt, renderer):
    """Test the renderer follows log_format and events are tagged."""
    try:
        configure_logging(level="DEBUG", fmt=fmt)
        processors = structlog.get_config()["processors"]

        assert isinstance(processors[-1], renderer)
        assert add_component in processors
        assert get_logger("flagkit.tests") is not None
    finally:
        structlog.reset_defaults()


def test_component_processor():
    """Test the processor tags events without overwriting."""
    assert add_component(None, "info", {"event": "x"}) == {"event": "x", "component": "flagkit"}
    assert add_component(None, "info", {"component": "api"})["component"] == "api"
