"""
Integration tests for full quiz sessions on the asyncio runtime.

Durations are scaled down (50 ms ticks and grading delay) so the flows run
in well under a second; the real-time scenario is marked slow.

Usage:
    pytest tests/integration -v
    pytest tests/integration -v -m "not slow"
"""

import asyncio
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from quizflow.machine import (
    AttemptEvent,
    AttemptKind,
    Command,
    GradeResult,
    GradingError,
    InProgressStage,
    QuizSession,
    QuizState,
    SessionFailedError,
    SessionNotRunningError,
)
from quizflow.machine.types import QuizEvent

WAITING = (QuizState.IN_PROGRESS, InProgressStage.WAITING_FOR_ANSWER)
GRADING = (QuizState.IN_PROGRESS, InProgressStage.GRADING)
SKIPPING = (QuizState.IN_PROGRESS, InProgressStage.SKIPPING)


async def wait_for_state(session, state, stage=None, timeout=2.0):
    """Poll until the session reaches a phase."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not session.snapshot().matches(state, stage):
        if loop.time() > deadline:
            raise AssertionError(f"timed out waiting for {state} {stage}; at {session.state}")
        await asyncio.sleep(0.01)
    return session.snapshot()


async def answer_and_settle(session, response):
    """Submit and wait out the post-grading delay."""
    snapshot = await session.submit_answer(response)
    if snapshot.matches(*GRADING):
        snapshot = await wait_for_state(session, *WAITING)
    return snapshot


async def skip_and_confirm(session):
    await session.skip()
    return await session.confirm_skip()


# =============================================================================
# Timed phases
# =============================================================================


class TestTimedPhases:
    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_real_time_phases(self, make_config):
        config = make_config(
            attempt_duration=3,
            review_duration=3,
            tick_interval_seconds=1.0,
            delay_between_attempts_ms=1000,
        )
        async with QuizSession(config) as session:
            await session.start()

            await asyncio.sleep(4)
            assert session.snapshot().state is QuizState.REVIEWING

            await asyncio.sleep(4)
            assert session.snapshot().state is QuizState.COMPLETED

    @pytest.mark.asyncio
    async def test_scaled_phases(self, make_config):
        config = make_config(attempt_duration=0.3, review_duration=0.3)
        async with QuizSession(config) as session:
            await session.start()

            await asyncio.sleep(0.5)
            snapshot = session.snapshot()
            assert snapshot.state is QuizState.REVIEWING
            assert snapshot.stage_summaries.in_progress.time_spent_seconds == 0

            final = await session.wait_for_completion(timeout=1.0)
            assert final.done
            assert final.time_left_ms == 0

    @pytest.mark.asyncio
    async def test_time_left_counts_down(self, config):
        async with QuizSession(config) as session:
            started = await session.start()
            assert started.time_left == 30

            await asyncio.sleep(0.2)
            assert session.snapshot().time_left_ms < 30_000

    @pytest.mark.asyncio
    async def test_seeded_time_left_shortens_first_phase(self, make_config):
        config = make_config(attempt_duration=30, time_left=0.2)
        async with QuizSession(config) as session:
            started = await session.start()
            assert started.time_left_ms <= 200

            snapshot = await wait_for_state(session, QuizState.REVIEWING, timeout=1.0)
            assert snapshot.time_left_ms > 20_000

    @pytest.mark.asyncio
    async def test_grading_delay_does_not_consume_attempt_time(self, make_config):
        config = make_config(attempt_duration=0.25, delay_between_attempts_ms=400)
        async with QuizSession(config) as session:
            await session.start()
            await session.submit_answer("Lyon")

            await asyncio.sleep(0.35)
            assert session.snapshot().matches(*GRADING)

            await wait_for_state(session, *WAITING)
            await wait_for_state(session, QuizState.REVIEWING)

    @pytest.mark.asyncio
    async def test_skip_prompt_pauses_timer(self, make_config):
        config = make_config(attempt_duration=0.2)
        async with QuizSession(config) as session:
            await session.start()
            await session.skip()

            await asyncio.sleep(0.35)
            assert session.snapshot().matches(*SKIPPING)

            await session.reject_skip()
            await wait_for_state(session, QuizState.REVIEWING)


# =============================================================================
# Answering
# =============================================================================


class TestRetries:
    @pytest.mark.asyncio
    async def test_two_wrong_answers_then_advance(self, config):
        async with QuizSession(config) as session:
            await session.start()

            snapshot = await session.submit_answer("Lyon")
            assert snapshot.matches(*GRADING)
            snapshot = await wait_for_state(session, *WAITING)
            assert snapshot.current_question_idx == 0
            assert snapshot.no_of_attempts == 1

            snapshot = await session.submit_answer("Nice")
            assert snapshot.no_of_attempts == 2
            snapshot = await wait_for_state(session, *WAITING)
            assert snapshot.current_question_idx == 1
            assert snapshot.no_of_attempts == 0

    @pytest.mark.asyncio
    async def test_correct_answers_reach_review(self, config, response_logger):
        async with QuizSession(config) as session:
            await session.start()
            await answer_and_settle(session, "Paris")
            await answer_and_settle(session, "4")
            snapshot = await session.submit_answer("Jupiter")

            assert snapshot.state is QuizState.REVIEWING
            summary = snapshot.stage_summaries.in_progress
            assert summary.questions_attempted == 3
            assert summary.questions_correct == 3
            assert summary.questions_incorrect == 0
            assert response_logger.call_count == 3

    @pytest.mark.asyncio
    async def test_attempts_never_exceed_cap(self, config):
        async with QuizSession(config) as session:
            await session.start()
            for _ in range(7):
                snapshot = session.snapshot()
                if snapshot.state is not QuizState.IN_PROGRESS:
                    break
                await answer_and_settle(session, "wrong")

            snapshot = session.snapshot()
            assert snapshot.state is QuizState.REVIEWING
            for question in config.questions:
                logged = [
                    e for e in snapshot.events
                    if e.kind is AttemptKind.RESPONSE and e.question["id"] == question["id"]
                ]
                assert len(logged) == config.max_attempt_per_question
            assert snapshot.stage_summaries.in_progress.questions_incorrect == 3

    @pytest.mark.asyncio
    async def test_seeded_attempts_count_toward_cap(self, make_config, questions, events_logger):
        wrong = GradeResult(correct=False)
        seeded = [
            AttemptEvent.response(questions[0], wrong, n, datetime(2024, 1, 1), 4) for n in (1, 2)
        ]
        config = make_config(events=seeded)
        async with QuizSession(config) as session:
            started = await session.start()
            assert started.no_of_attempts == 2

            snapshot = await session.submit_answer("Lyon")
            assert snapshot.matches(*WAITING)
            assert len(snapshot.events) == 2
            events_logger.warning.assert_called()

            snapshot = await skip_and_confirm(session)
            assert snapshot.current_question["id"] == "q2"
            assert snapshot.no_of_attempts == 0

    @pytest.mark.asyncio
    async def test_explicit_question_on_submit(self, config):
        async with QuizSession(config) as session:
            await session.start()
            snapshot = await session.submit_answer("Paris", question=config.questions[0])
            assert snapshot.events[-1].question is config.questions[0]


# =============================================================================
# Skip and revisit
# =============================================================================


class TestSkipAndRevisit:
    @pytest.mark.asyncio
    async def test_skip_every_question(self, config):
        async with QuizSession(config) as session:
            await session.start()
            await skip_and_confirm(session)
            await skip_and_confirm(session)
            snapshot = await skip_and_confirm(session)

            assert snapshot.state is QuizState.REVIEWING
            assert snapshot.primary_index == 2
            assert snapshot.skipped_questions == ()
            assert snapshot.stage_summaries.in_progress.questions_skipped == 3
            assert snapshot.stage_summaries.in_progress.questions_attempted == 0

    @pytest.mark.asyncio
    async def test_skip_summary_matches_event_log(self, config):
        async with QuizSession(config) as session:
            await session.start()
            await answer_and_settle(session, "Lyon")
            await skip_and_confirm(session)
            await skip_and_confirm(session)
            snapshot = await skip_and_confirm(session)

            assert snapshot.state is QuizState.REVIEWING
            summary = snapshot.stage_summaries.in_progress
            logged_skips = sum(1 for e in snapshot.events if e.kind is AttemptKind.SKIP)
            assert logged_skips == 3
            assert summary.questions_skipped == logged_skips
            assert summary.questions_attempted == 1
            assert summary.questions_incorrect == 1

    @pytest.mark.asyncio
    async def test_skipped_questions_drained_before_review(self, config):
        async with QuizSession(config) as session:
            await session.start()
            await skip_and_confirm(session)
            await skip_and_confirm(session)

            snapshot = await answer_and_settle(session, "Saturn")
            assert snapshot.current_question_idx == 2
            assert snapshot.no_of_attempts == 1

            snapshot = await answer_and_settle(session, "Jupiter")
            assert snapshot.regular_flow_completed
            assert snapshot.skipped_mode
            assert snapshot.current_question["id"] == "q1"
            assert [qid for qid, _ in snapshot.skipped_questions] == ["q2"]

            snapshot = await answer_and_settle(session, "Paris")
            assert snapshot.current_question["id"] == "q2"

            snapshot = await session.submit_answer("4")
            assert snapshot.state is QuizState.REVIEWING
            assert snapshot.skipped_questions == ()

    @pytest.mark.asyncio
    async def test_reject_skip_leaves_context_unchanged(self, config):
        async with QuizSession(config) as session:
            await session.start()
            await answer_and_settle(session, "Lyon")
            before = session.snapshot()

            assert (await session.skip()).matches(*SKIPPING)
            after = await session.reject_skip()

            assert after.matches(*WAITING)
            assert after.current_question_idx == before.current_question_idx
            assert after.current_question is before.current_question
            assert after.no_of_attempts == before.no_of_attempts
            assert after.events == before.events
            assert after.skipped_questions == ()

    @pytest.mark.asyncio
    async def test_goto_skipped_round_trip(self, config):
        async with QuizSession(config) as session:
            await session.start()
            await answer_and_settle(session, "Lyon")
            await skip_and_confirm(session)

            snapshot = await session.goto_skipped("q1")
            assert snapshot.matches(*WAITING)
            assert snapshot.current_question is config.questions[0]
            assert snapshot.no_of_attempts == 1
            assert snapshot.skipped_mode
            assert snapshot.primary_index == 1

            snapshot = await answer_and_settle(session, "Paris")
            assert not snapshot.skipped_mode
            assert snapshot.current_question["id"] == "q2"

    @pytest.mark.asyncio
    async def test_unknown_goto_target_is_rejected(self, config, events_logger):
        async with QuizSession(config) as session:
            await session.start()
            before = session.snapshot()

            after = await session.goto_skipped("nope")

            assert after.matches(*WAITING)
            assert after.current_question is before.current_question
            assert after.skipped_mode is False
            assert after.no_of_attempts == before.no_of_attempts
            events_logger.warning.assert_called()

    @pytest.mark.asyncio
    async def test_primary_index_never_decreases(self, config):
        seen = []
        async with QuizSession(config) as session:
            seen.append((await session.start()).primary_index)
            seen.append((await skip_and_confirm(session)).primary_index)
            seen.append((await session.goto_skipped("q1")).primary_index)
            seen.append((await answer_and_settle(session, "Lyon")).primary_index)
            seen.append((await answer_and_settle(session, "Paris")).primary_index)
            seen.append((await skip_and_confirm(session)).primary_index)

        assert seen == sorted(seen)
        assert seen[-1] == 2

    @pytest.mark.asyncio
    async def test_force_review_after_primary_pass(self, config):
        async with QuizSession(config) as session:
            await session.start()
            rejected = await session.force_review()
            assert rejected.matches(*WAITING)

            await skip_and_confirm(session)
            await answer_and_settle(session, "4")
            snapshot = await answer_and_settle(session, "Jupiter")
            assert snapshot.skipped_mode
            assert snapshot.regular_flow_completed

            snapshot = await session.force_review()
            assert snapshot.state is QuizState.REVIEWING


# =============================================================================
# Phases and commands
# =============================================================================


class TestCommandSurface:
    @pytest.mark.asyncio
    async def test_snapshot_value(self, config):
        async with QuizSession(config) as session:
            assert session.snapshot().value == "starting"
            snapshot = await session.start()
            assert snapshot.value == {"in-progress": "waiting_for_answer"}

    @pytest.mark.asyncio
    async def test_invalid_command_is_ignored(self, config):
        async with QuizSession(config) as session:
            snapshot = await session.submit_answer("Paris")
            assert snapshot.state is QuizState.STARTING
            assert snapshot.events == ()

    @pytest.mark.asyncio
    async def test_goto_review_from_start(self, config):
        async with QuizSession(config) as session:
            snapshot = await session.goto_review()
            assert snapshot.state is QuizState.REVIEWING
            assert snapshot.time_left == 30

            snapshot = await session.complete_review()
            assert snapshot.done
            assert snapshot.time_left == 0

    @pytest.mark.asyncio
    async def test_complete_assessment_from_start(self, config):
        async with QuizSession(config) as session:
            await session.complete_assessment()
            final = await session.wait_for_completion(timeout=1.0)
            assert final.state is QuizState.COMPLETED

    @pytest.mark.asyncio
    async def test_commands_after_completion_are_ignored(self, config):
        async with QuizSession(config) as session:
            await session.complete_assessment()
            snapshot = await session.start()
            assert snapshot.state is QuizState.COMPLETED

    @pytest.mark.asyncio
    async def test_send_is_fire_and_forget(self, config):
        async with QuizSession(config) as session:
            session.send(Command.START)
            await wait_for_state(session, *WAITING)

    @pytest.mark.asyncio
    async def test_internal_commands_cannot_be_sent(self, config):
        async with QuizSession(config) as session:
            with pytest.raises(ValueError):
                session.send(Command.TIMEOUT)

    @pytest.mark.asyncio
    async def test_commands_require_running_loop(self, config):
        session = QuizSession(config)
        with pytest.raises(SessionNotRunningError):
            session.send(Command.START)
        with pytest.raises(SessionNotRunningError):
            await session.wait_for_completion()

    @pytest.mark.asyncio
    async def test_transitions_logged(self, config, events_logger):
        async with QuizSession(config) as session:
            await session.start()
        messages = [call.args[0] for call in events_logger.info.call_args_list]
        assert "starting -> in-progress.waiting_for_answer" in messages

    @pytest.mark.asyncio
    async def test_stale_timer_events_are_discarded(self, config):
        async with QuizSession(config) as session:
            await session.start()
            attempt_timer = session._timer.timer_id

            await skip_and_confirm(session)
            await skip_and_confirm(session)
            await skip_and_confirm(session)
            assert session.snapshot().state is QuizState.REVIEWING
            assert session._timer.timer_id != attempt_timer

            session._enqueue_internal(QuizEvent(Command.TIMEOUT, origin=attempt_timer))
            await asyncio.sleep(0.05)
            assert session.snapshot().state is QuizState.REVIEWING


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_waits_for_timer_task(self, config):
        async with QuizSession(config) as session:
            await session.start()
            timer = session._timer
            timer_task = timer._task

        assert timer_task.done()
        assert not timer.running
        assert timer._cancelled == set()

    @pytest.mark.asyncio
    async def test_close_waits_for_pending_delay(self, make_config):
        config = make_config(delay_between_attempts_ms=5000)
        async with QuizSession(config) as session:
            await session.start()
            snapshot = await session.submit_answer("Lyon")
            assert snapshot.matches(*GRADING)
            delay_task = session._delay_task

        assert delay_task.cancelled()
        assert session._cancelled_delays == set()

    @pytest.mark.asyncio
    async def test_logger_with_warn_alias(self, make_config):
        events_logger = MagicMock(spec=["debug", "info", "warn", "error"])
        config = make_config(events_logger=events_logger)
        async with QuizSession(config) as session:
            await session.start()
            snapshot = await session.goto_skipped("nope")

        assert snapshot.matches(*WAITING)
        events_logger.warn.assert_called_once()


# =============================================================================
# Fatal errors
# =============================================================================


class TestGradingFailure:
    @pytest.mark.asyncio
    async def test_grader_exception_fails_session(self, make_config, events_logger):
        def broken(question, response):
            raise RuntimeError("grader offline")

        config = make_config(grader_fn=broken)
        async with QuizSession(config) as session:
            await session.start()

            with pytest.raises(GradingError):
                await session.submit_answer("Paris")

            assert session.snapshot().failed
            events_logger.error.assert_called_once()

            with pytest.raises(SessionFailedError):
                await session.skip()
            with pytest.raises(SessionFailedError) as excinfo:
                await session.wait_for_completion(timeout=1.0)
            assert isinstance(excinfo.value.__cause__, GradingError)

    @pytest.mark.asyncio
    async def test_malformed_result_fails_session(self, make_config):
        config = make_config(grader_fn=lambda q, r: {"correct": "maybe"})
        async with QuizSession(config) as session:
            await session.start()
            with pytest.raises(GradingError, match="malformed grade result"):
                await session.submit_answer("Paris")

    @pytest.mark.asyncio
    async def test_queued_commands_fail_with_session(self, make_config):
        config = make_config(grader_fn=lambda q, r: 1 / 0)
        async with QuizSession(config) as session:
            await session.start()
            first = asyncio.ensure_future(session.submit_answer("Paris"))
            second = asyncio.ensure_future(session.skip())

            with pytest.raises(GradingError):
                await first
            with pytest.raises(SessionFailedError):
                await second
