"""Shared test fixtures and configuration."""

import pytest
from unittest.mock import MagicMock, patch

from taskvars.store import VariableStore, parse_json


@pytest.fixture(autouse=True)
def mock_display():
    """Auto-mock the display for all tests.

    This prevents actual terminal output during tests and provides
    a consistent mock interface for display operations.
    """
    display = MagicMock()
    display.console = MagicMock()

    with patch("taskvars.display.get_display", return_value=display):
        with patch("taskvars.workflow.get_display", return_value=display):
            with patch("taskvars.cli.get_display", return_value=display):
                yield display


@pytest.fixture
def store() -> VariableStore:
    """Create a fresh VariableStore for each test."""
    return VariableStore()


@pytest.fixture
def response_store(store: VariableStore) -> VariableStore:
    """Store holding a JSON body, a header map and an XML document."""
    store.set_scoped(
        "Task1", "ResponseBody", parse_json('[{"key1": "v1"}, {"key1": "v2"}]')
    )
    store.set_scoped("Task1", "ResponseHeader", {"TestHeader": "ABC123"})
    return store
