"""
Attempt and grading logic.

Records responses and skips in the event log, tracks the per-question
attempt counter against the configured cap, and derives phase statistics.
The event log is the authoritative source for every per-question count.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

from quizflow.machine.context import SessionConfig, SessionContext, attempts_for
from quizflow.machine.errors import GradingError
from quizflow.machine.types import (
    AttemptEvent,
    AttemptKind,
    InProgressSummary,
    ReviewSummary,
)


def elapsed_seconds(start: float, now: float) -> int:
    """Whole seconds between two monotonic readings (never negative)."""
    return max(0, math.floor(now - start))


# =============================================================================
# Guards
# =============================================================================


def should_advance(context: SessionContext, max_attempts: int) -> bool:
    """True when the last response was correct or the attempt cap is reached."""
    last = context.events[-1] if context.events else None
    if last is not None and last.kind is AttemptKind.RESPONSE and last.correct:
        return True
    return context.no_of_attempts >= max_attempts


def has_attempts_left(
    context: SessionContext,
    question: Any,
    identify: Callable[[Any], str],
    max_attempts: int,
) -> bool:
    """True while the log holds fewer responses for the question than the cap."""
    return attempts_for(context.events, identify(question), identify) < max_attempts


def retries_remaining(context: SessionContext, max_attempts: int) -> bool:
    """True when the current question must be answered again."""
    last = context.events[-1] if context.events else None
    if last is None or last.kind is not AttemptKind.RESPONSE:
        return False
    return not last.correct and context.no_of_attempts < max_attempts


# =============================================================================
# Actions
# =============================================================================


def evaluate_response(
    context: SessionContext,
    config: SessionConfig,
    response: Any,
    question: Any | None,
    *,
    now: float,
    timestamp: datetime,
) -> SessionContext:
    """Grade a response and append it to the event log.

    Also decides whether this response completes the primary pass.
    Raises GradingError if the grading callback fails.
    """
    question = context.current_question if question is None else question
    question_id = config.identify(question)

    try:
        result = config.grade(question, response)
    except ValidationError as exc:
        raise GradingError(question_id, f"malformed grade result: {exc}") from exc
    except Exception as exc:
        raise GradingError(question_id, f"{type(exc).__name__}: {exc}") from exc

    attempt_number = attempts_for(context.events, question_id, config.identify) + 1
    event = AttemptEvent.response(
        question=question,
        result=result,
        attempt_number=attempt_number,
        timestamp=timestamp,
        time_spent_seconds=elapsed_seconds(context.attempt_start_time, now),
    )
    config.response_logger_fn(question, response)

    no_of_attempts = context.no_of_attempts + 1
    completed = context.regular_flow_completed
    if not context.skipped_mode and context.is_last_question:
        completed = completed or result.correct or no_of_attempts >= config.max_attempt_per_question

    return context.evolve(
        events=(*context.events, event),
        no_of_attempts=no_of_attempts,
        regular_flow_completed=completed,
    )


def record_skip(
    context: SessionContext,
    config: SessionConfig,
    question: Any | None,
    *,
    now: float,
    timestamp: datetime,
) -> SessionContext:
    """Log a skip and queue the question for a later revisit."""
    question = context.current_question if question is None else question
    event = AttemptEvent.skip(
        question=question,
        timestamp=timestamp,
        time_spent_seconds=elapsed_seconds(context.attempt_start_time, now),
    )
    return context.evolve(
        events=(*context.events, event),
        skipped_questions=context.skipped_questions.push(config.identify(question), question),
    )


# =============================================================================
# Summaries
# =============================================================================


def summarize_in_progress(
    context: SessionContext,
    identify: Callable[[Any], str],
    now: float,
) -> InProgressSummary:
    """Aggregate answering-phase statistics from the event log."""
    latest: dict[str, bool] = {}
    skipped = 0
    for event in context.events:
        if event.kind is AttemptKind.SKIP:
            skipped += 1
        else:
            latest[identify(event.question)] = event.correct

    correct = sum(1 for ok in latest.values() if ok)
    return InProgressSummary(
        questions_attempted=len(latest),
        questions_skipped=skipped,
        questions_correct=correct,
        questions_incorrect=len(latest) - correct,
        time_spent_seconds=elapsed_seconds(context.stage_start_time, now),
    )


def summarize_review(context: SessionContext, now: float) -> ReviewSummary:
    return ReviewSummary(time_spent_seconds=elapsed_seconds(context.stage_start_time, now))
