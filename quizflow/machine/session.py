"""
Quiz session runtime.

Interprets the transition table over a single asyncio input queue:
- External commands and timer events are consumed one at a time, in order
- Guards pick the transition; pure actions produce the next context
- Effects drive the phase timer and the post-grading delay
- Stale timer/delay events (from a stopped timer or a cancelled delay) are
  discarded, so a late deadline can never land in the wrong phase

Usage:
    async with QuizSession(config) as session:
        await session.start()
        await session.submit_answer("Paris")
        snapshot = session.snapshot()
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from quizflow.machine import transitions as table
from quizflow.machine.context import SessionConfig, SessionContext, create_context, warning_method
from quizflow.machine.errors import SessionFailedError, SessionNotRunningError
from quizflow.machine.timer import TimerActor
from quizflow.machine.transitions import (
    ActionEnv,
    CancelDelay,
    ScheduleDelay,
    SignalTimer,
    StartTimer,
    StatePath,
    Step,
    Transition,
)
from quizflow.machine.types import (
    AttemptEvent,
    Clock,
    Command,
    INTERNAL_COMMANDS,
    InProgressStage,
    QuizEvent,
    QuizState,
    StageSummaries,
    TimerSignal,
)

# Guard against a cycle of eventless transitions
MAX_MICROSTEPS = 32


# =============================================================================
# Snapshot
# =============================================================================


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only projection of the session for presentation layers."""

    state: QuizState
    stage: InProgressStage | None
    current_question: Any
    current_question_idx: int
    primary_index: int
    time_left: int
    time_left_ms: float
    no_of_attempts: int
    skipped_mode: bool
    skipped_questions: tuple[tuple[str, Any], ...]
    regular_flow_completed: bool
    events: tuple[AttemptEvent, ...]
    stage_summaries: StageSummaries
    done: bool = False
    failed: bool = False

    @property
    def value(self) -> str | dict[str, str]:
        if self.stage is None:
            return self.state.value
        return {self.state.value: self.stage.value}

    def matches(self, state: QuizState, stage: InProgressStage | None = None) -> bool:
        if state is not self.state:
            return False
        return stage is None or stage is self.stage


@dataclass
class _Envelope:
    event: QuizEvent
    reply: asyncio.Future | None = field(default=None, repr=False)


# =============================================================================
# Session
# =============================================================================


class QuizSession:
    """
    Event-driven quiz session.

    All state changes happen on the consumer task, one queued event at a
    time. Timer actors only enqueue events; they never touch the context.
    """

    def __init__(self, config: SessionConfig, *, clock: Clock = time.monotonic):
        self.config = config
        self._clock = clock
        self._log = config.events_logger
        self._warn = warning_method(config.events_logger)

        self._state: StatePath = table.STARTING
        self._context: SessionContext = create_context(config, clock())

        self._queue: asyncio.Queue[_Envelope] | None = None
        self._worker: asyncio.Task | None = None
        self._completed: asyncio.Event | None = None
        self._failure: BaseException | None = None

        self._ids = itertools.count(1)
        self._timer: TimerActor | None = None
        self._delay_task: asyncio.Task | None = None
        self._delay_id: str | None = None
        self._retired_timers: list[TimerActor] = []
        self._cancelled_delays: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def state(self) -> StatePath:
        return self._state

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def done(self) -> bool:
        return table.STATES[self._state].final

    def begin(self) -> None:
        """Start consuming the input queue. Requires a running event loop."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._completed = asyncio.Event()
        if self.done:
            self._completed.set()
        self._worker = loop.create_task(self._consume(), name="quiz-session")
        self._log.debug(f"Session loop started in {self._state}")

    async def aclose(self) -> None:
        """Stop the consumer task and timers, and wait for their tasks to finish."""
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        self._halt_timers()
        timers = [*self._retired_timers, *([self._timer] if self._timer is not None else [])]
        self._retired_timers.clear()
        await asyncio.gather(*(timer.aclose() for timer in timers))
        delays = list(self._cancelled_delays)
        await asyncio.gather(*delays, return_exceptions=True)

    async def __aenter__(self) -> QuizSession:
        self.begin()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def wait_for_completion(self, timeout: float | None = None) -> SessionSnapshot:
        """Wait until the terminal phase is reached."""
        if self._completed is None:
            raise SessionNotRunningError("session loop has not been started")
        await asyncio.wait_for(self._completed.wait(), timeout)
        if self._failure is not None:
            raise SessionFailedError("session stopped after a fatal error") from self._failure
        return self.snapshot()

    # -------------------------------------------------------------------------
    # Command Surface
    # -------------------------------------------------------------------------

    def send(self, command: Command, **payload: Any) -> None:
        """Enqueue a command without waiting for it to be processed."""
        self._put(_Envelope(self._make_event(command, payload)))

    async def dispatch(self, command: Command, **payload: Any) -> SessionSnapshot:
        """Enqueue a command and wait until it has been processed."""
        reply = asyncio.get_running_loop().create_future()
        self._put(_Envelope(self._make_event(command, payload), reply))
        return await reply

    async def start(self) -> SessionSnapshot:
        return await self.dispatch(Command.START)

    async def submit_answer(self, response: Any, question: Any = None) -> SessionSnapshot:
        return await self.dispatch(Command.SUBMIT_ANSWER, response=response, question=question)

    async def skip(self) -> SessionSnapshot:
        return await self.dispatch(Command.SKIP)

    async def confirm_skip(self) -> SessionSnapshot:
        return await self.dispatch(Command.CONFIRM_SKIP)

    async def reject_skip(self) -> SessionSnapshot:
        return await self.dispatch(Command.REJECT_SKIP)

    async def goto_review(self) -> SessionSnapshot:
        return await self.dispatch(Command.GOTO_REVIEW)

    async def force_review(self) -> SessionSnapshot:
        return await self.dispatch(Command.FORCE_REVIEW)

    async def goto_skipped(self, question_id: str) -> SessionSnapshot:
        return await self.dispatch(Command.GOTO_SKIPPED, question_id=question_id)

    async def complete_review(self) -> SessionSnapshot:
        return await self.dispatch(Command.COMPLETE_REVIEW)

    async def complete_assessment(self) -> SessionSnapshot:
        return await self.dispatch(Command.COMPLETE_ASSESSMENT)

    def snapshot(self) -> SessionSnapshot:
        ctx = self._context
        return SessionSnapshot(
            state=self._state.state,
            stage=self._state.stage,
            current_question=ctx.current_question,
            current_question_idx=ctx.current_question_idx,
            primary_index=ctx.primary_index,
            time_left=ctx.time_left,
            time_left_ms=max(0.0, ctx.time_left_ms),
            no_of_attempts=ctx.no_of_attempts,
            skipped_mode=ctx.skipped_mode,
            skipped_questions=ctx.skipped_questions.items(),
            regular_flow_completed=ctx.regular_flow_completed,
            events=ctx.events,
            stage_summaries=ctx.stage_summaries,
            done=self.done,
            failed=self._failure is not None,
        )

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    @staticmethod
    def _make_event(command: Command, payload: dict[str, Any]) -> QuizEvent:
        if command in INTERNAL_COMMANDS:
            raise ValueError(f"{command.value} is produced internally and cannot be sent")
        return QuizEvent(
            type=command,
            response=payload.get("response"),
            question=payload.get("question"),
            question_id=payload.get("question_id"),
        )

    def _put(self, envelope: _Envelope) -> None:
        if self._failure is not None:
            raise SessionFailedError("session stopped after a fatal error") from self._failure
        if self._queue is None or not self.running:
            raise SessionNotRunningError("call begin() or use 'async with' before sending commands")
        self._queue.put_nowait(envelope)

    def _enqueue_internal(self, event: QuizEvent) -> None:
        if self._queue is not None and self._failure is None:
            self._queue.put_nowait(_Envelope(event))

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            envelope = await self._queue.get()
            try:
                self._handle(envelope.event)
            except Exception as exc:
                self._fail(exc, envelope)
                return
            if envelope.reply is not None and not envelope.reply.done():
                envelope.reply.set_result(self.snapshot())

    def _fail(self, exc: Exception, envelope: _Envelope) -> None:
        self._failure = exc
        self._log.error(f"Session failed in {self._state}: {exc}")
        self._halt_timers()
        if envelope.reply is not None and not envelope.reply.done():
            envelope.reply.set_exception(exc)
        assert self._queue is not None
        while not self._queue.empty():
            pending = self._queue.get_nowait()
            if pending.reply is not None and not pending.reply.done():
                failure = SessionFailedError("session stopped after a fatal error")
                failure.__cause__ = exc
                pending.reply.set_exception(failure)
        if self._completed is not None:
            self._completed.set()

    # -------------------------------------------------------------------------
    # Interpretation
    # -------------------------------------------------------------------------

    def _handle(self, event: QuizEvent) -> None:
        if event.type in INTERNAL_COMMANDS and not self._is_live(event):
            self._log.debug(f"Discarded stale {event.type.value} from {event.origin}")
            return
        if event.type is not Command.TICK:
            self._log.debug(f"Processing {event.type.value} in {self._state}")

        transitions = table.candidates(self._state, event.type)
        if not transitions:
            self._log.debug(f"Ignored {event.type.value}: no transition from {self._state}")
            return

        env = self._env()
        chosen = next((t for t in transitions if t.enabled(self._context, event, env)), None)
        if chosen is None:
            self._warn(f"Rejected {event.type.value} in {self._state}: guard not satisfied")
            return

        self._take(chosen, event, env)
        self._settle(event)

        if self.done:
            self._halt_timers()
            self._log.info("Session completed")
            if self._completed is not None:
                self._completed.set()

    def _settle(self, event: QuizEvent) -> None:
        """Run eventless transitions until none is enabled."""
        for _ in range(MAX_MICROSTEPS):
            env = self._env()
            chosen = next(
                (
                    t
                    for t in table.always_transitions(self._state)
                    if t.enabled(self._context, event, env)
                ),
                None,
            )
            if chosen is None:
                return
            self._take(chosen, event, env)
        raise RuntimeError(f"eventless transitions did not settle in {self._state}")

    def _take(self, transition: Transition, event: QuizEvent, env: ActionEnv) -> None:
        """Fire a transition.

        The transition's own actions run before the exit steps, so summaries
        computed on exit include what the transition recorded.
        """
        if transition.target is None:
            self._run(transition.actions, event, env)
            return

        source = self._state
        target = table.resolve_target(transition.target)
        exits, entries = table.exit_and_entry(source, target)

        self._run(transition.actions, event, env)
        for path in exits:
            self._run(table.STATES[path].exit, event, env)
        self._state = target
        for path in entries:
            self._run(table.STATES[path].entry, event, env)

        self._log.info(f"{source} -> {target}")

    def _run(self, steps: tuple[Step, ...], event: QuizEvent, env: ActionEnv) -> None:
        for step in steps:
            if isinstance(step, StartTimer):
                self._start_timer(self._context.time_left_ms / 1000)
            elif isinstance(step, SignalTimer):
                if self._timer is not None:
                    self._timer.send(step.signal)
            elif isinstance(step, ScheduleDelay):
                self._schedule_delay()
            elif isinstance(step, CancelDelay):
                self._cancel_delay()
            else:
                self._context = step(self._context, event, env)

    def _env(self) -> ActionEnv:
        return ActionEnv(config=self.config, now=self._clock(), timestamp=datetime.now())

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _is_live(self, event: QuizEvent) -> bool:
        if event.type is Command.DELAY_ELAPSED:
            return event.origin is not None and event.origin == self._delay_id
        timer = self._timer
        return timer is not None and not timer.stopped and event.origin == timer.timer_id

    def _start_timer(self, duration_seconds: float) -> None:
        if self._timer is not None:
            self._timer.send(TimerSignal.STOP)
            self._retired_timers.append(self._timer)
        self._timer = TimerActor(
            f"{self._state.state.value}-{next(self._ids)}",
            duration_seconds,
            self._enqueue_internal,
            interval=self.config.tick_interval_seconds,
            clock=self._clock,
        )
        self._timer.start()
        self._log.debug(f"Timer {self._timer.timer_id} started for {duration_seconds}s")

    def _schedule_delay(self) -> None:
        self._cancel_delay()
        delay_id = f"delay-{next(self._ids)}"
        self._delay_id = delay_id
        self._delay_task = asyncio.get_running_loop().create_task(
            self._fire_delay(delay_id, self.config.delay_between_attempts_ms / 1000),
            name=delay_id,
        )

    async def _fire_delay(self, delay_id: str, seconds: float) -> None:
        await asyncio.sleep(seconds)
        self._enqueue_internal(QuizEvent(Command.DELAY_ELAPSED, origin=delay_id))

    def _cancel_delay(self) -> None:
        task, self._delay_task = self._delay_task, None
        self._delay_id = None
        if task is not None and not task.done():
            task.cancel()
            self._cancelled_delays.add(task)
            task.add_done_callback(self._cancelled_delays.discard)

    def _halt_timers(self) -> None:
        if self._timer is not None:
            self._timer.send(TimerSignal.STOP)
        self._cancel_delay()
