"""
Declarative hierarchical transition table.

    starting ──start──▶ in-progress ─────────────────────────▶ reviewing ──▶ completed
                        ├─ waiting_for_answer ◀──┐
                        ├─ grading ──(delay)─────┤
                        └─ skipping ──confirm/reject

Every action is a pure function ``(context, event, env) -> context``. Timer
side effects are declared as Effect values and carried out by the runtime
that interprets this table (see quizflow.machine.session).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Mapping, Union

from quizflow.machine import grading, sequencing
from quizflow.machine.context import SessionConfig, SessionContext
from quizflow.machine.sequencing import AdvanceTrigger
from quizflow.machine.types import Command, InProgressStage, QuizEvent, QuizState, TimerSignal

# =============================================================================
# Table Vocabulary
# =============================================================================


@dataclass(frozen=True, slots=True)
class StatePath:
    """A (phase, sub-phase) address in the state hierarchy."""

    state: QuizState
    stage: InProgressStage | None = None

    @property
    def parent(self) -> StatePath | None:
        return StatePath(self.state) if self.stage is not None else None

    def chain(self) -> tuple[StatePath, ...]:
        """Nodes from the top-level phase down to this node."""
        return (self,) if self.parent is None else (self.parent, self)

    def __str__(self) -> str:
        return self.state.value if self.stage is None else f"{self.state.value}.{self.stage.value}"


@dataclass(frozen=True, slots=True)
class ActionEnv:
    """Values an action may read besides context and event."""

    config: SessionConfig
    now: float  # monotonic seconds
    timestamp: datetime


Action = Callable[[SessionContext, QuizEvent, ActionEnv], SessionContext]
Guard = Callable[[SessionContext, QuizEvent, ActionEnv], bool]


@dataclass(frozen=True, slots=True)
class StartTimer:
    """Start the phase timer from the context's remaining time."""


@dataclass(frozen=True, slots=True)
class SignalTimer:
    signal: TimerSignal


@dataclass(frozen=True, slots=True)
class ScheduleDelay:
    """Arm the one-shot post-grading delay."""


@dataclass(frozen=True, slots=True)
class CancelDelay:
    """Disarm the post-grading delay."""


Effect = Union[StartTimer, SignalTimer, ScheduleDelay, CancelDelay]
Step = Union[Action, Effect]


@dataclass(frozen=True, slots=True)
class Transition:
    """Edge of the table. ``target=None`` marks an internal transition."""

    target: StatePath | None
    guard: Guard | None = None
    actions: tuple[Step, ...] = ()

    def enabled(self, context: SessionContext, event: QuizEvent, env: ActionEnv) -> bool:
        return self.guard is None or self.guard(context, event, env)


@dataclass(frozen=True, slots=True)
class StateNode:
    entry: tuple[Step, ...] = ()
    exit: tuple[Step, ...] = ()
    on: Mapping[Command, tuple[Transition, ...]] = field(default_factory=dict)
    always: tuple[Transition, ...] = ()
    initial: InProgressStage | None = None
    final: bool = False


STARTING = StatePath(QuizState.STARTING)
IN_PROGRESS = StatePath(QuizState.IN_PROGRESS)
WAITING_FOR_ANSWER = StatePath(QuizState.IN_PROGRESS, InProgressStage.WAITING_FOR_ANSWER)
GRADING = StatePath(QuizState.IN_PROGRESS, InProgressStage.GRADING)
SKIPPING = StatePath(QuizState.IN_PROGRESS, InProgressStage.SKIPPING)
REVIEWING = StatePath(QuizState.REVIEWING)
COMPLETED = StatePath(QuizState.COMPLETED)

# =============================================================================
# Guards
# =============================================================================


def questions_exhausted(context: SessionContext, event: QuizEvent, env: ActionEnv) -> bool:
    return sequencing.is_exhausted(context, env.config.max_attempt_per_question)


def is_valid_skipped_question(context: SessionContext, event: QuizEvent, env: ActionEnv) -> bool:
    return event.question_id is not None and event.question_id in context.skipped_questions


def attempts_left(context: SessionContext, event: QuizEvent, env: ActionEnv) -> bool:
    question = context.current_question if event.question is None else event.question
    return grading.has_attempts_left(
        context, question, env.config.identify, env.config.max_attempt_per_question
    )


def regular_flow_completed(context: SessionContext, event: QuizEvent, env: ActionEnv) -> bool:
    return context.regular_flow_completed


def skipping_every_question(context: SessionContext, event: QuizEvent, env: ActionEnv) -> bool:
    return sequencing.skips_whole_session(context, env.config.identify)


# =============================================================================
# Actions
# =============================================================================


def enter_in_progress(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    config = env.config
    first = context.questions[0]
    duration = config.attempt_duration if config.time_left is None else config.time_left
    return context.evolve(
        stage_start_time=env.now,
        time_left_ms=duration * 1000,
        current_question_idx=0,
        current_question=first,
        no_of_attempts=grading.attempts_for(context.events, config.identify(first), config.identify),
    )


def enter_review(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return context.evolve(
        stage_start_time=env.now,
        time_left_ms=env.config.review_duration * 1000,
    )


def mark_attempt_start(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return context.evolve(attempt_start_time=env.now)


def evaluate_response(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return grading.evaluate_response(
        context,
        env.config,
        event.response,
        event.question,
        now=env.now,
        timestamp=env.timestamp,
    )


def mark_question_skipped(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return grading.record_skip(
        context, env.config, event.question, now=env.now, timestamp=env.timestamp
    )


def advance_after_skip(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return sequencing.advance(
        context,
        AdvanceTrigger.SKIPPED,
        identify=env.config.identify,
        max_attempts=env.config.max_attempt_per_question,
    )


def advance_after_grading(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return sequencing.advance(
        context,
        AdvanceTrigger.GRADED,
        identify=env.config.identify,
        max_attempts=env.config.max_attempt_per_question,
    )


def go_to_skipped_question(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return sequencing.jump_to_skipped(context, event.question_id, identify=env.config.identify)


def abandon_revisits(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return sequencing.abandon_revisits(context)


def update_time_left(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return context.evolve(time_left_ms=max(0.0, event.remaining_ms or 0.0))


def reset_time_left(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    return context.evolve(time_left_ms=0.0)


def summarize_attempt_stage(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    summary = grading.summarize_in_progress(context, env.config.identify, env.now)
    return context.evolve(
        stage_summaries=replace(context.stage_summaries, in_progress=summary)
    )


def summarize_review_stage(context: SessionContext, event: QuizEvent, env: ActionEnv) -> SessionContext:
    summary = grading.summarize_review(context, env.now)
    return context.evolve(
        stage_summaries=replace(context.stage_summaries, reviewing=summary)
    )


# =============================================================================
# The Table
# =============================================================================

_TICK = (Transition(None, actions=(update_time_left,)),)

STATES: dict[StatePath, StateNode] = {
    STARTING: StateNode(
        on={
            Command.START: (Transition(IN_PROGRESS),),
            Command.GOTO_REVIEW: (Transition(REVIEWING),),
            Command.COMPLETE_ASSESSMENT: (Transition(COMPLETED),),
        },
    ),
    IN_PROGRESS: StateNode(
        initial=InProgressStage.WAITING_FOR_ANSWER,
        entry=(enter_in_progress, StartTimer()),
        exit=(
            SignalTimer(TimerSignal.STOP),
            reset_time_left,
            summarize_attempt_stage,
        ),
        on={
            Command.TICK: _TICK,
            Command.TIMEOUT: (Transition(REVIEWING),),
        },
    ),
    WAITING_FOR_ANSWER: StateNode(
        entry=(mark_attempt_start,),
        on={
            Command.SUBMIT_ANSWER: (Transition(GRADING, guard=attempts_left),),
            Command.SKIP: (Transition(SKIPPING),),
            Command.GOTO_SKIPPED: (
                Transition(
                    WAITING_FOR_ANSWER,
                    guard=is_valid_skipped_question,
                    actions=(go_to_skipped_question,),
                ),
            ),
            Command.FORCE_REVIEW: (Transition(REVIEWING, guard=regular_flow_completed),),
        },
    ),
    SKIPPING: StateNode(
        entry=(SignalTimer(TimerSignal.PAUSE),),
        exit=(SignalTimer(TimerSignal.RESUME),),
        on={
            Command.CONFIRM_SKIP: (
                Transition(
                    REVIEWING,
                    guard=skipping_every_question,
                    actions=(mark_question_skipped, abandon_revisits),
                ),
                Transition(
                    WAITING_FOR_ANSWER,
                    actions=(mark_question_skipped, advance_after_skip),
                ),
            ),
            Command.REJECT_SKIP: (Transition(WAITING_FOR_ANSWER),),
        },
    ),
    GRADING: StateNode(
        entry=(SignalTimer(TimerSignal.PAUSE), evaluate_response, ScheduleDelay()),
        exit=(CancelDelay(), SignalTimer(TimerSignal.RESUME)),
        always=(Transition(REVIEWING, guard=questions_exhausted),),
        on={
            Command.DELAY_ELAPSED: (
                Transition(WAITING_FOR_ANSWER, actions=(advance_after_grading,)),
            ),
        },
    ),
    REVIEWING: StateNode(
        entry=(enter_review, StartTimer()),
        exit=(
            SignalTimer(TimerSignal.STOP),
            reset_time_left,
            summarize_review_stage,
        ),
        on={
            Command.TICK: _TICK,
            Command.TIMEOUT: (Transition(COMPLETED),),
            Command.COMPLETE_REVIEW: (Transition(COMPLETED),),
        },
    ),
    COMPLETED: StateNode(final=True),
}

# =============================================================================
# Table Queries
# =============================================================================


def resolve_target(path: StatePath) -> StatePath:
    """Descend into the initial child of a compound phase."""
    node = STATES[path]
    if node.initial is not None:
        return StatePath(path.state, node.initial)
    return path


def candidates(active: StatePath, command: Command) -> tuple[Transition, ...]:
    """Transitions for a command, innermost node first."""
    for path in reversed(active.chain()):
        transitions = STATES[path].on.get(command)
        if transitions:
            return transitions
    return ()


def always_transitions(active: StatePath) -> tuple[Transition, ...]:
    found: list[Transition] = []
    for path in reversed(active.chain()):
        found.extend(STATES[path].always)
    return tuple(found)


def exit_and_entry(source: StatePath, target: StatePath) -> tuple[list[StatePath], list[StatePath]]:
    """Nodes to exit (innermost first) and enter (outermost first).

    A transition targeting the active leaf exits and re-enters that leaf.
    """
    src, tgt = source.chain(), target.chain()
    shared = 0
    while shared < min(len(src), len(tgt)) and src[shared] == tgt[shared]:
        shared += 1
    if source == target:
        shared -= 1
    return list(reversed(src[shared:])), list(tgt[shared:])
