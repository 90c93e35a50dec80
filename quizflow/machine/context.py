"""
Session configuration and context.

SessionConfig is the validated construction input. SessionContext is the
single immutable value every transition handler maps to a new value:
``(old context, event) -> new context``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from config import get_settings
from quizflow.machine.skip_queue import SkipQueue
from quizflow.machine.types import AttemptEvent, AttemptKind, GradeResult, StageSummaries

# =============================================================================
# Configuration
# =============================================================================


def _default_delay_ms() -> int:
    return get_settings().delay_between_attempts_ms


def _default_tick_interval() -> float:
    return get_settings().tick_interval_seconds


def warning_method(events_logger: Any) -> Callable[..., Any] | None:
    """The logger's warning method; ``warn`` is accepted as an alias."""
    return getattr(events_logger, "warning", None) or getattr(events_logger, "warn", None)


def attempts_for(
    events: Iterable[AttemptEvent],
    question_id: str,
    identify: Callable[[Any], str],
) -> int:
    """Count Response events logged for a question."""
    return sum(
        1
        for event in events
        if event.kind is AttemptKind.RESPONSE and identify(event.question) == question_id
    )


class SessionConfig(BaseModel):
    """Construction input for a quiz session."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    questions: list[Any] = Field(min_length=1)
    grader_fn: Callable[[Any, Any], Any]
    question_identifier_fn: Callable[[Any], str]
    response_logger_fn: Callable[[Any, Any], Any]
    max_attempt_per_question: int = Field(ge=1)
    attempt_duration: float = Field(gt=0, description="Answering phase length (seconds)")
    review_duration: float = Field(gt=0, description="Review phase length (seconds)")
    events_logger: Any
    delay_between_attempts_ms: int = Field(default_factory=_default_delay_ms, ge=0)
    tick_interval_seconds: float = Field(default_factory=_default_tick_interval, gt=0)

    # Optional seeds for resuming a session
    events: list[Any] = Field(default_factory=list)
    skipped_questions: list[Any] = Field(default_factory=list)
    skipped_mode: bool = False
    regular_flow_completed: bool = False
    regular_flow_question_idx: int | None = Field(default=None, ge=0)
    regular_flow_question: Any = None
    stage_summaries: Any = None
    time_left: float | None = Field(default=None, gt=0, description="Answering time left on first entry (seconds)")
    attempt_start_time: float | None = Field(default=None, description="Monotonic seconds")

    @model_validator(mode="after")
    def _check_collaborators(self) -> SessionConfig:
        for method in ("debug", "info", "error"):
            if not callable(getattr(self.events_logger, method, None)):
                raise ValueError(f"events_logger must provide a callable {method}()")
        if not callable(warning_method(self.events_logger)):
            raise ValueError("events_logger must provide a callable warning() or warn()")

        for event in self.events:
            if not isinstance(event, AttemptEvent):
                raise ValueError(f"events must hold AttemptEvent records, got {type(event).__name__}")
        if self.stage_summaries is not None and not isinstance(self.stage_summaries, StageSummaries):
            raise ValueError("stage_summaries must be a StageSummaries value")

        seen: set[str] = set()
        for question in self.questions:
            question_id = self.question_identifier_fn(question)
            if question_id in seen:
                raise ValueError(f"duplicate question id: {question_id!r}")
            seen.add(question_id)

        for question in self.skipped_questions:
            if self.question_identifier_fn(question) not in seen:
                raise ValueError(f"skipped question {self.question_identifier_fn(question)!r} is not in questions")
        if self.regular_flow_question_idx is not None and self.regular_flow_question_idx >= len(self.questions):
            raise ValueError("regular_flow_question_idx is out of range")
        if self.regular_flow_question is not None and self.question_identifier_fn(self.regular_flow_question) not in seen:
            raise ValueError("regular_flow_question is not in questions")
        return self

    def identify(self, question: Any) -> str:
        return self.question_identifier_fn(question)

    def grade(self, question: Any, response: Any) -> GradeResult:
        """Run the grading callback and validate its result.

        Errors propagate; the caller wraps them as fatal.
        """
        raw = self.grader_fn(question, response)
        if isinstance(raw, GradeResult):
            return raw
        return GradeResult.model_validate(raw)


# =============================================================================
# Context
# =============================================================================


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Full mutable-by-replacement session state."""

    questions: tuple[Any, ...]
    current_question_idx: int = 0
    current_question: Any = None
    no_of_attempts: int = 0

    # Revisit bookkeeping
    skipped_mode: bool = False
    skipped_questions: SkipQueue = field(default_factory=SkipQueue)
    regular_flow_question_idx: int | None = None
    regular_flow_question: Any = None
    regular_flow_completed: bool = False

    # Timing (monotonic seconds / milliseconds)
    time_left_ms: float = 0.0
    stage_start_time: float = 0.0
    attempt_start_time: float = 0.0

    events: tuple[AttemptEvent, ...] = ()
    stage_summaries: StageSummaries = field(default_factory=StageSummaries)

    @property
    def time_left(self) -> int:
        """Remaining time in whole seconds, clamped to zero."""
        return max(0, int(self.time_left_ms // 1000))

    @property
    def primary_index(self) -> int:
        """Position reached by the primary pass."""
        if self.skipped_mode and self.regular_flow_question_idx is not None:
            return self.regular_flow_question_idx
        return self.current_question_idx

    @property
    def is_last_question(self) -> bool:
        return self.current_question_idx + 1 == len(self.questions)

    def index_of(self, question_id: str, identify: Callable[[Any], str]) -> int:
        for idx, question in enumerate(self.questions):
            if identify(question) == question_id:
                return idx
        raise KeyError(question_id)

    def evolve(self, **changes: Any) -> SessionContext:
        return replace(self, **changes)


def create_context(config: SessionConfig, now: float) -> SessionContext:
    """Build the initial context from a validated configuration.

    Seed values from the configuration are used as given; omitted ones
    get their defaults. The attempt count of the first question is replayed
    from the seeded event log.
    """
    questions = tuple(config.questions)
    identify = config.identify
    events = tuple(config.events)

    return_idx = config.regular_flow_question_idx
    return_question = config.regular_flow_question
    if return_question is not None and return_idx is None:
        return_idx = next(i for i, q in enumerate(questions) if identify(q) == identify(return_question))
    elif return_idx is not None and return_question is None:
        return_question = questions[return_idx]

    time_left = config.attempt_duration if config.time_left is None else config.time_left

    return SessionContext(
        questions=questions,
        current_question_idx=0,
        current_question=questions[0],
        no_of_attempts=attempts_for(events, identify(questions[0]), identify),
        skipped_mode=config.skipped_mode,
        skipped_questions=SkipQueue.from_items([(identify(q), q) for q in config.skipped_questions]),
        regular_flow_question_idx=return_idx,
        regular_flow_question=return_question,
        regular_flow_completed=config.regular_flow_completed,
        time_left_ms=time_left * 1000,
        stage_start_time=now,
        attempt_start_time=now if config.attempt_start_time is None else config.attempt_start_time,
        events=events,
        stage_summaries=config.stage_summaries or StageSummaries(),
    )
