"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
"""

import itertools
import sys
from pathlib import Path

import pytest

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from contextAgent.config.settings import (  # noqa: E402
    ContextSettings,
    MaskingSettings,
    ObservabilitySettings,
    Settings,
    StorageSettings,
    ToolSearchSettings,
)
from contextAgent.runtime.session import ContextSession  # noqa: E402


def char_estimator(text: str) -> int:
    """One token per character, so thresholds in tests read as string lengths."""
    return len(text)


@pytest.fixture
def make_settings(tmp_path):
    """Settings factory with storage and logs under tmp_path."""

    def _make(context=None, masking=None, tool_search=None, usage_statistics_enabled=True):
        return Settings(
            context=context or ContextSettings(),
            masking=masking or MaskingSettings(),
            tool_search=tool_search or ToolSearchSettings(),
            storage=StorageSettings(root=str(tmp_path / "sessions")),
            observability=ObservabilitySettings(
                log_dir=str(tmp_path / "logs"),
                usage_statistics_enabled=usage_statistics_enabled,
            ),
        )

    return _make


@pytest.fixture
def make_session(make_settings):
    """ContextSession factory with a character estimator and predictable ids (id1, id2, ...)."""

    def _make(settings=None, **kwargs):
        counter = itertools.count(1)
        kwargs.setdefault("id_factory", lambda: f"id{next(counter)}")
        kwargs.setdefault("estimator", char_estimator)
        kwargs.setdefault("session_id", "test-session")
        return ContextSession(settings or make_settings(), **kwargs)

    return _make
