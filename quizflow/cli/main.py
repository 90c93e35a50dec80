"""
quizflow CLI - play timed question banks in the terminal.

Usage:
    quizflow play bank.json                 # Play with default timings
    quizflow play bank.json -a 3 -t 120     # 3 attempts, 2-minute limit
    quizflow validate bank.json             # Check a bank file
    quizflow version
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Annotated
from uuid import uuid4

import typer
from loguru import logger
from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import get_settings
from quizflow import __version__
from quizflow.cli import render
from quizflow.cli.bank import BankLoadError, BankQuestion, QuestionBank, grade_answer, load_bank, question_id
from quizflow.machine import InProgressStage, QuizSession, QuizState, SessionConfig, SessionSnapshot

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="quizflow",
    help="Timed question sessions with skip-and-revisit and bounded retries",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

POLL_SECONDS = 0.05


def _load_or_exit(path: Path) -> QuestionBank:
    try:
        return load_bank(path)
    except BankLoadError as exc:
        console.print(f"[red]{exc}[/]")
        raise typer.Exit(code=1) from exc


# =============================================================================
# Commands
# =============================================================================


@app.command()
def play(
    bank_file: Annotated[Path, typer.Argument(help="Question bank (JSON)")],
    max_attempts: Annotated[
        int | None, typer.Option("--max-attempts", "-a", min=1, help="Attempts per question")
    ] = None,
    attempt_duration: Annotated[
        float | None, typer.Option("--attempt-duration", "-t", min=1, help="Answering time (seconds)")
    ] = None,
    review_duration: Annotated[
        float | None, typer.Option("--review-duration", "-r", min=1, help="Review time (seconds)")
    ] = None,
    delay_ms: Annotated[
        int | None, typer.Option("--delay-ms", min=0, help="Feedback pause after grading (ms)")
    ] = None,
) -> None:
    """
    Play a question bank.

    Examples:
        quizflow play bank.json
        quizflow play bank.json --max-attempts 1 --attempt-duration 60
    """
    settings = get_settings()
    bank = _load_or_exit(bank_file)

    config = SessionConfig(
        questions=bank.questions,
        grader_fn=grade_answer,
        question_identifier_fn=question_id,
        response_logger_fn=_log_response,
        max_attempt_per_question=max_attempts or settings.default_max_attempts,
        attempt_duration=attempt_duration or settings.default_attempt_duration,
        review_duration=review_duration or settings.default_review_duration,
        events_logger=logger.bind(session=uuid4().hex[:8]),
        delay_between_attempts_ms=settings.delay_between_attempts_ms if delay_ms is None else delay_ms,
    )

    render.header(
        console,
        bank_file.stem,
        len(bank.questions),
        config.max_attempt_per_question,
        config.attempt_duration,
    )
    if not Confirm.ask("Start?", default=True):
        raise typer.Exit()

    try:
        final = asyncio.run(_run_session(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Session abandoned[/]")
        raise typer.Exit(code=130)

    render.summary(console, final)


@app.command()
def validate(
    bank_file: Annotated[Path, typer.Argument(help="Question bank (JSON)")],
) -> None:
    """Validate a question bank and list its questions."""
    bank = _load_or_exit(bank_file)

    table = Table(title=f"Question Bank: {bank_file.name}")
    table.add_column("ID", style="cyan")
    table.add_column("Prompt", style="white")
    table.add_column("Options", style="green", justify="right")
    for item in bank.questions:
        table.add_row(item.id, item.prompt, str(len(item.options)))
    console.print(table)
    console.print(f"[green]✓ {len(bank.questions)} questions OK[/]")


@app.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"quizflow {__version__}")


# =============================================================================
# Session Loop
# =============================================================================


def _log_response(question: BankQuestion, response: str) -> None:
    logger.debug("Response for {}: {!r}", question.id, response)


async def _wait_while(session: QuizSession, stage: InProgressStage) -> SessionSnapshot:
    snapshot = session.snapshot()
    while snapshot.matches(QuizState.IN_PROGRESS, stage):
        await asyncio.sleep(POLL_SECONDS)
        snapshot = session.snapshot()
    return snapshot


async def _run_session(config: SessionConfig) -> SessionSnapshot:
    total = len(config.questions)
    async with QuizSession(config) as session:
        snapshot = await session.start()

        while not snapshot.done:
            if snapshot.matches(QuizState.IN_PROGRESS, InProgressStage.WAITING_FOR_ANSWER):
                render.question(console, snapshot, total, config.max_attempt_per_question)
                raw = await asyncio.to_thread(Prompt.ask, "[cyan]answer[/]", default="", show_default=False)
                if not session.snapshot().matches(QuizState.IN_PROGRESS, InProgressStage.WAITING_FOR_ANSWER):
                    console.print("[yellow]⏱ Time is up[/]")
                    snapshot = session.snapshot()
                    continue
                snapshot = await _apply_input(session, raw.strip())

            elif snapshot.matches(QuizState.IN_PROGRESS, InProgressStage.GRADING):
                render.feedback(console, snapshot)
                snapshot = await _wait_while(session, InProgressStage.GRADING)

            elif snapshot.matches(QuizState.REVIEWING):
                console.print(f"\n[bold cyan]Review[/] [dim]({render.format_clock(snapshot.time_left)} left)[/]")
                render.event_log(console, snapshot)
                await asyncio.to_thread(Prompt.ask, "[cyan]Press Enter to finish the review[/]", default="", show_default=False)
                snapshot = await session.complete_review()

            else:
                # Skipping is resolved inside _apply_input
                snapshot = await session.reject_skip()

        return snapshot


async def _apply_input(session: QuizSession, raw: str) -> SessionSnapshot:
    if raw == "/skip":
        await session.skip()
        confirmed = await asyncio.to_thread(Confirm.ask, "Skip this question for now?", default=True)
        return await (session.confirm_skip() if confirmed else session.reject_skip())

    if raw.startswith("/goto"):
        target = raw.removeprefix("/goto").strip()
        queued = dict(session.snapshot().skipped_questions)
        after = await session.goto_skipped(target)
        if target not in queued:
            console.print(f"[yellow]'{target}' is not in the skipped list[/]")
        return after

    if raw == "/review":
        after = await session.force_review()
        if after.state is QuizState.IN_PROGRESS:
            console.print("[yellow]Reach the last question before finishing early[/]")
        return after

    if not raw:
        console.print("[dim]Type an answer, or /skip[/]")
        return session.snapshot()

    return await session.submit_answer(raw)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {extra[session]} | {message}",
        filter=lambda record: "session" in record["extra"],
    )
    logger.add(
        sys.stderr,
        level=get_settings().log_level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
        filter=lambda record: "session" not in record["extra"],
    )

    app()


if __name__ == "__main__":
    main()
