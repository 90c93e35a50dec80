"""
Quiz session machine.

Tracks a learner through an ordered sequence of timed questions with answer
submission, skip-and-revisit, bounded retries and a timed review phase.

Components:
- skip_queue: FIFO revisit queue keyed by question identity
- grading: response/skip bookkeeping and phase statistics
- sequencing: next-question decisions (primary pass, revisits, drain)
- timer: pausable countdown actor feeding the session's input queue
- transitions: declarative hierarchical state table
- session: asyncio runtime and command surface
"""

from .context import SessionConfig, SessionContext, create_context
from .errors import (
    GradingError,
    QuizMachineError,
    SessionFailedError,
    SessionNotRunningError,
)
from .session import QuizSession, SessionSnapshot
from .skip_queue import SkipQueue
from .timer import TimerActor
from .types import (
    AttemptEvent,
    AttemptKind,
    Command,
    EventsLogger,
    GradeResult,
    InProgressStage,
    InProgressSummary,
    QuizState,
    ReviewSummary,
    StageSummaries,
    TimerSignal,
)

__all__ = [
    # Configuration & state
    "SessionConfig",
    "SessionContext",
    "create_context",
    "SkipQueue",
    # Runtime
    "QuizSession",
    "SessionSnapshot",
    "TimerActor",
    # Types
    "AttemptEvent",
    "AttemptKind",
    "Command",
    "EventsLogger",
    "GradeResult",
    "InProgressStage",
    "InProgressSummary",
    "QuizState",
    "ReviewSummary",
    "StageSummaries",
    "TimerSignal",
    # Errors
    "QuizMachineError",
    "GradingError",
    "SessionFailedError",
    "SessionNotRunningError",
]
