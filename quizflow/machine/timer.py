"""
Countdown timer actor.

Runs as an independent asyncio task and reports to its owner only through a
sink callable (the session's input queue):
- a TICK event every ``interval`` seconds carrying the remaining milliseconds,
  computed from wall-clock deltas so scheduler jitter never accumulates
- a single TIMEOUT event once the remaining time reaches zero

Accepts PAUSE / RESUME / STOP signals at any time. Pausing freezes the
remaining time exactly; stopping is permanent.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from quizflow.machine.types import Clock, Command, QuizEvent, TimerSignal


class TimerActor:
    """A pausable countdown delivering events to an owner's queue."""

    def __init__(
        self,
        timer_id: str,
        duration_seconds: float,
        sink: Callable[[QuizEvent], None],
        *,
        interval: float = 1.0,
        clock: Clock = time.monotonic,
    ):
        self.timer_id = timer_id
        self.interval = interval
        self._sink = sink
        self._clock = clock
        self._remaining_ms = duration_seconds * 1000
        self._last_mark: float | None = None
        self._task: asyncio.Task | None = None
        self._cancelled: set[asyncio.Task] = set()
        self._stopped = False
        self._fired = False

    @property
    def remaining_ms(self) -> float:
        """Remaining time, frozen while paused."""
        if self._task is None or self._last_mark is None:
            return self._remaining_ms
        return self._remaining_ms - (self._clock() - self._last_mark) * 1000

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        """Begin counting down. Must be called from within a running loop."""
        if self._stopped or self.running:
            return
        self._last_mark = self._clock()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"timer-{self.timer_id}"
        )

    def send(self, signal: TimerSignal) -> None:
        """Apply a control signal."""
        if signal is TimerSignal.PAUSE:
            self.pause()
        elif signal is TimerSignal.RESUME:
            self.resume()
        elif signal is TimerSignal.STOP:
            self.stop()

    def pause(self) -> None:
        if self._task is None:
            return
        self._remaining_ms = self.remaining_ms
        self._cancel()

    def resume(self) -> None:
        if self._stopped or self._fired:
            return
        self.start()

    def stop(self) -> None:
        self._stopped = True
        if self._task is not None:
            self._remaining_ms = self.remaining_ms
        self._cancel()

    async def aclose(self) -> None:
        """Stop the timer and wait for its cancelled tasks to unwind."""
        self.stop()
        await asyncio.gather(*list(self._cancelled), return_exceptions=True)

    def _cancel(self) -> None:
        task, self._task = self._task, None
        self._last_mark = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            self._cancelled.add(task)
            task.add_done_callback(self._cancelled.discard)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            now = self._clock()
            self._remaining_ms -= (now - self._last_mark) * 1000
            self._last_mark = now
            self._sink(
                QuizEvent(Command.TICK, remaining_ms=self._remaining_ms, origin=self.timer_id)
            )
            if self._remaining_ms <= 0:
                self._fired = True
                self._sink(QuizEvent(Command.TIMEOUT, origin=self.timer_id))
                self._task = None
                self._last_mark = None
                return
