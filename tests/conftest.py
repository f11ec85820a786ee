"""
Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import json
import logging
from pathlib import Path

import pytest

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires an OpenAI API key)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 1 second)")
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Environment and Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """
    Point HOME and every storage location at a temporary directory.

    Settings are loaded here, during setup, so that their logging
    configuration does not replace the capture handlers of the test body.
    Runs automatically for all tests.
    """
    from n00bkeys.config import clear_settings_cache, get_settings

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("N00BKEYS_DATA_DIR", str(home / ".n00bkeys"))
    monkeypatch.delenv("N00BKEYS_CONFIG_DIR", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("LLM_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("LLM_PROMPT_TEMPLATE", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)
    monkeypatch.chdir(tmp_path)

    clear_settings_cache()
    get_settings()
    yield home
    clear_settings_cache()


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def configure_test_logging(caplog, isolated_home):
    """
    Configure logging for tests.

    Sets up log capture and undoes the CLI's logger silencing.
    This fixture runs automatically for all tests.
    """
    caplog.set_level(logging.DEBUG)
    yield
    for logger_name in ("n00bkeys", "httpx", "openai"):
        logging.getLogger(logger_name).setLevel(logging.NOTSET)


@pytest.fixture
def disable_logging():
    """
    Disable logging for specific tests.

    Use this for tests that generate excessive logs.
    """
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


# ============================================================================
# Common Test Data
# ============================================================================


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """A git project with a nested working directory."""
    root = tmp_path / "project"
    (root / ".git").mkdir(parents=True)
    (root / "src" / "pkg").mkdir(parents=True)
    return root


@pytest.fixture
def write_json():
    """Write a JSON document to a path, creating parent directories."""

    def _write(path: Path, payload) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def legacy_history() -> dict:
    """A v1 history document with three entries, newest first."""
    return {
        "version": 1,
        "entries": [
            {"timestamp": "2024-01-03T10:00:00Z", "prompt": "p1", "response": "r1"},
            {"timestamp": "2024-01-02T10:00:00Z", "prompt": "p2", "response": "r2"},
            {"timestamp": "2024-01-01T10:00:00Z", "prompt": "p3", "response": "r3"},
        ],
    }


# ============================================================================
# Mock Query Service
# ============================================================================


@pytest.fixture
def mock_query_service():
    """
    Mock query service for session and CLI tests.

    Usage:
        def test_session(mock_query_service):
            mock_query_service.send.return_value = "use git stash"
    """
    from unittest.mock import MagicMock

    from n00bkeys.llm.base import BaseQueryService

    service = MagicMock(spec=BaseQueryService)
    service.send.return_value = "mock answer"
    return service
