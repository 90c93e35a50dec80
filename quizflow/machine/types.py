"""
Shared types for the quiz session machine.

Defines:
- Phase enums (QuizState, InProgressStage)
- Event vocabulary (Command, TimerSignal, AttemptKind)
- Event log records (AttemptEvent) and grading results (GradeResult)
- Per-phase summary statistics
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Protocol

from pydantic import BaseModel, ConfigDict, StrictBool

# =============================================================================
# Phases
# =============================================================================


class QuizState(str, Enum):
    """Top-level session phase."""

    STARTING = "starting"
    IN_PROGRESS = "in-progress"
    REVIEWING = "reviewing"
    COMPLETED = "completed"


class InProgressStage(str, Enum):
    """Sub-phase while the session is in progress."""

    WAITING_FOR_ANSWER = "waiting_for_answer"
    GRADING = "grading"
    SKIPPING = "skipping"


# =============================================================================
# Events
# =============================================================================


class Command(str, Enum):
    """Inputs accepted by the machine.

    TICK, TIMEOUT and DELAY_ELAPSED are produced internally by timers.
    """

    START = "start"
    SUBMIT_ANSWER = "submit_answer"
    SKIP = "skip"
    CONFIRM_SKIP = "confirm_skip"
    REJECT_SKIP = "reject_skip"
    GOTO_REVIEW = "goto_review"
    FORCE_REVIEW = "force_review"
    GOTO_SKIPPED = "goto_skipped"
    COMPLETE_REVIEW = "complete_review"
    COMPLETE_ASSESSMENT = "complete_assessment"

    TICK = "tick"
    TIMEOUT = "timeout"
    DELAY_ELAPSED = "delay_elapsed"


INTERNAL_COMMANDS = frozenset({Command.TICK, Command.TIMEOUT, Command.DELAY_ELAPSED})


class TimerSignal(str, Enum):
    """Control signals understood by a timer actor."""

    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"


@dataclass(frozen=True, slots=True)
class QuizEvent:
    """A single entry of the machine's input queue."""

    type: Command
    response: Any = None
    question: Any = None
    question_id: str | None = None
    remaining_ms: float | None = None
    origin: str | None = None  # timer/delay id for internal events


# =============================================================================
# Grading & Event Log
# =============================================================================


class GradeResult(BaseModel):
    """Outcome of the grading callback."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    correct: StrictBool
    payload: Any = None


class AttemptKind(str, Enum):
    """Kind of an event log entry."""

    RESPONSE = "response"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class AttemptEvent:
    """Append-only event log record.

    Response entries carry ``result`` and ``attempt_number``; Skip entries
    leave both unset.
    """

    kind: AttemptKind
    question: Any
    timestamp: datetime
    time_spent_seconds: int
    result: GradeResult | None = None
    attempt_number: int | None = None

    @property
    def correct(self) -> bool:
        return self.result is not None and self.result.correct

    @classmethod
    def response(
        cls,
        question: Any,
        result: GradeResult,
        attempt_number: int,
        timestamp: datetime,
        time_spent_seconds: int,
    ) -> AttemptEvent:
        return cls(
            kind=AttemptKind.RESPONSE,
            question=question,
            timestamp=timestamp,
            time_spent_seconds=time_spent_seconds,
            result=result,
            attempt_number=attempt_number,
        )

    @classmethod
    def skip(cls, question: Any, timestamp: datetime, time_spent_seconds: int) -> AttemptEvent:
        return cls(
            kind=AttemptKind.SKIP,
            question=question,
            timestamp=timestamp,
            time_spent_seconds=time_spent_seconds,
        )


# =============================================================================
# Summaries
# =============================================================================


@dataclass(frozen=True, slots=True)
class InProgressSummary:
    """Statistics for the answering phase."""

    questions_attempted: int = 0
    questions_skipped: int = 0
    questions_correct: int = 0
    questions_incorrect: int = 0
    time_spent_seconds: int = 0


@dataclass(frozen=True, slots=True)
class ReviewSummary:
    """Statistics for the review phase."""

    time_spent_seconds: int = 0


@dataclass(frozen=True, slots=True)
class StageSummaries:
    in_progress: InProgressSummary = field(default_factory=InProgressSummary)
    reviewing: ReviewSummary = field(default_factory=ReviewSummary)


# =============================================================================
# Collaborator Protocols
# =============================================================================


class EventsLogger(Protocol):
    """Structured logger sink injected into every session.

    A logger exposing ``warn`` instead of ``warning`` is also accepted.
    """

    def debug(self, message: str, *args: Any, **kwargs: Any) -> Any: ...

    def info(self, message: str, *args: Any, **kwargs: Any) -> Any: ...

    def warning(self, message: str, *args: Any, **kwargs: Any) -> Any: ...

    def error(self, message: str, *args: Any, **kwargs: Any) -> Any: ...


Clock = Callable[[], float]
QuestionIdentifier = Callable[[Any], str]
