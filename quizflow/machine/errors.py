"""
Exceptions raised by the quiz session machine.
"""

from __future__ import annotations


class QuizMachineError(Exception):
    """Base class for session machine errors."""
    pass


class GradingError(QuizMachineError):
    """Raised when the grading callback fails or returns malformed output."""

    def __init__(self, question_id: str, reason: str):
        self.question_id = question_id
        self.reason = reason
        super().__init__(f"Grading failed for question {question_id!r}: {reason}")


class SessionFailedError(QuizMachineError):
    """Raised for commands issued after a fatal session error."""
    pass


class SessionNotRunningError(QuizMachineError):
    """Raised when a command is dispatched while the event loop is not running."""
    pass
