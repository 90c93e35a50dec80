"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from quizflow.machine import SessionConfig  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full asyncio sessions)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests (real-time timers)")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def sample_bank_path():
    """Bank file shipped with the project."""
    return PROJECT_ROOT / "tests" / "data" / "sample_bank.json"


# =============================================================================
# Session Fixtures
# =============================================================================


def question_id(question):
    return question["id"]


def grade(question, response):
    return {"correct": response == question["answer"], "payload": response}


@pytest.fixture
def questions():
    """Three questions with one-word answers."""
    return [
        {"id": "q1", "prompt": "Capital of France?", "answer": "Paris"},
        {"id": "q2", "prompt": "2 + 2?", "answer": "4"},
        {"id": "q3", "prompt": "Largest planet?", "answer": "Jupiter"},
    ]


@pytest.fixture
def events_logger():
    """Records every session log call."""
    return MagicMock(name="events_logger")


@pytest.fixture
def response_logger():
    return MagicMock(name="response_logger")


@pytest.fixture
def make_config(questions, events_logger, response_logger):
    """
    Build a SessionConfig with timings scaled down for fast tests.

    Any field can be overridden by keyword.
    """

    def _make(**overrides):
        values = dict(
            questions=questions,
            grader_fn=grade,
            question_identifier_fn=question_id,
            response_logger_fn=response_logger,
            max_attempt_per_question=2,
            attempt_duration=30,
            review_duration=30,
            events_logger=events_logger,
            delay_between_attempts_ms=50,
            tick_interval_seconds=0.05,
        )
        values.update(overrides)
        return SessionConfig(**values)

    return _make


@pytest.fixture
def config(make_config):
    return make_config()
