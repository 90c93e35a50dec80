"""
quizflow: timed question sessions with skip-and-revisit and bounded retries.

The session machine lives in quizflow.machine; quizflow.cli is a terminal
front end that plays a JSON question bank through a session.
"""

from quizflow.machine import (
    AttemptEvent,
    Command,
    GradeResult,
    InProgressStage,
    QuizSession,
    QuizState,
    SessionConfig,
    SessionSnapshot,
)

__version__ = "1.0.0"

__all__ = [
    "AttemptEvent",
    "Command",
    "GradeResult",
    "InProgressStage",
    "QuizSession",
    "QuizState",
    "SessionConfig",
    "SessionSnapshot",
    "__version__",
]
