"""
Sequencing engine.

Pure decision logic choosing the next question to present. The primary pass
walks the questions in order; skipped questions wait in a FIFO revisit queue
and are presented either on request (goto-skipped) or once the primary pass
is complete (drain mode).

Session flow:
1. Primary pass: index 0 -> N-1, advancing after a confirmed skip or a
   finished question (correct, or out of attempts)
2. Interruption: goto-skipped jumps to a queued question and remembers the
   primary position as the return point
3. Drain: after the last primary question, queued questions are revisited
   head-first until the queue is empty
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable

from quizflow.machine.context import SessionContext
from quizflow.machine.grading import attempts_for, retries_remaining, should_advance
from quizflow.machine.skip_queue import SkipQueue


class AdvanceTrigger(str, Enum):
    """What finished the attempt on the current question."""

    SKIPPED = "skipped"
    GRADED = "graded"


def advance(
    context: SessionContext,
    trigger: AdvanceTrigger,
    *,
    identify: Callable[[Any], str],
    max_attempts: int,
) -> SessionContext:
    """Move to the next question after a confirmed skip or a grading delay."""
    proceed = trigger is AdvanceTrigger.SKIPPED or should_advance(context, max_attempts)

    if context.skipped_mode:
        if not proceed:
            # Another attempt on the revisited question; keep the return point
            return context
        if not context.regular_flow_completed:
            return _return_to_primary(context, identify)
        if context.skipped_questions:
            return _revisit_head(
                context,
                identify,
                return_point=(context.regular_flow_question_idx, context.regular_flow_question),
            )
        return context.evolve(no_of_attempts=0, skipped_mode=False)

    if not proceed:
        return context

    if context.is_last_question:
        context = context.evolve(regular_flow_completed=True)
        if context.skipped_questions:
            return _revisit_head(
                context,
                identify,
                return_point=(context.current_question_idx, context.current_question),
            )
        return context

    next_idx = context.current_question_idx + 1
    next_question = context.questions[next_idx]
    return context.evolve(
        current_question_idx=next_idx,
        current_question=next_question,
        no_of_attempts=attempts_for(context.events, identify(next_question), identify),
    )


def jump_to_skipped(
    context: SessionContext,
    question_id: str,
    *,
    identify: Callable[[Any], str],
) -> SessionContext:
    """Present a queued question out of turn.

    From the primary pass the displayed question becomes the return point and
    is not queued; from skip mode the displayed question goes back on the
    queue.
    """
    target = context.skipped_questions[question_id]
    queue = context.skipped_questions.remove(question_id)
    changes: dict[str, Any] = {
        "skipped_mode": True,
        "current_question": target,
        "current_question_idx": context.index_of(question_id, identify),
        "no_of_attempts": attempts_for(context.events, question_id, identify),
    }

    if context.skipped_mode:
        displayed = context.current_question
        queue = queue.push(identify(displayed), displayed)
    else:
        changes["regular_flow_question_idx"] = context.current_question_idx
        changes["regular_flow_question"] = context.current_question

    return context.evolve(skipped_questions=queue, **changes)


def is_exhausted(context: SessionContext, max_attempts: int) -> bool:
    """True when nothing is left to present in the answering phase."""
    if not context.regular_flow_completed:
        return False
    if context.skipped_questions:
        return False
    if not context.skipped_mode:
        return True
    return not retries_remaining(context, max_attempts)


def skips_whole_session(context: SessionContext, identify: Callable[[Any], str]) -> bool:
    """True when skipping the displayed question leaves nothing answered.

    Holds on the last primary question when every other question is already
    waiting in the revisit queue.
    """
    if context.skipped_mode or not context.is_last_question:
        return False
    current_id = identify(context.current_question)
    return all(
        identify(question) in context.skipped_questions
        for question in context.questions
        if identify(question) != current_id
    )


def abandon_revisits(context: SessionContext) -> SessionContext:
    """Close the primary pass and drop the revisit queue."""
    return context.evolve(
        regular_flow_completed=True,
        skipped_questions=SkipQueue(),
    )


# =============================================================================
# Helpers
# =============================================================================


def _return_to_primary(context: SessionContext, identify: Callable[[Any], str]) -> SessionContext:
    idx = context.regular_flow_question_idx
    question = context.regular_flow_question
    return context.evolve(
        skipped_mode=False,
        current_question_idx=idx,
        current_question=question,
        regular_flow_question_idx=None,
        regular_flow_question=None,
        no_of_attempts=attempts_for(context.events, identify(question), identify),
    )


def _revisit_head(
    context: SessionContext,
    identify: Callable[[Any], str],
    return_point: tuple[int | None, Any],
) -> SessionContext:
    question_id, question, queue = context.skipped_questions.pop_head()
    return_idx, return_question = return_point
    return context.evolve(
        skipped_mode=True,
        skipped_questions=queue,
        current_question_idx=context.index_of(question_id, identify),
        current_question=question,
        no_of_attempts=attempts_for(context.events, question_id, identify),
        regular_flow_question_idx=return_idx,
        regular_flow_question=return_question,
    )
