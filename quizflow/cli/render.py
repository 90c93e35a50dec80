"""
Terminal rendering for quiz sessions (rich).

Pure presentation: every function reads a SessionSnapshot and prints it.
"""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from quizflow.cli.bank import BankQuestion
from quizflow.machine import AttemptKind, SessionSnapshot


def format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def header(console: Console, title: str, total: int, max_attempts: int, attempt_duration: float) -> None:
    console.print(
        Panel(
            f"[bold cyan]{title}[/]\n"
            f"Questions: {total}\n"
            f"Attempts per question: {max_attempts}\n"
            f"Time limit: {format_clock(int(attempt_duration))}\n\n"
            "[dim]/skip  skip this question    /goto ID  revisit a skipped question\n"
            "/review  finish early (after the last question)[/]",
            title="quizflow",
            border_style="cyan",
        )
    )


def question(console: Console, snapshot: SessionSnapshot, total: int, max_attempts: int) -> None:
    item: BankQuestion = snapshot.current_question
    body = Text(item.prompt, style="bold")
    for number, option in enumerate(item.options, start=1):
        body.append(f"\n  {number}. {option}", style="white")

    subtitle = f"attempt {snapshot.no_of_attempts + 1}/{max_attempts} | {format_clock(snapshot.time_left)} left"
    title = f"Question {snapshot.current_question_idx + 1}/{total}"
    if snapshot.skipped_mode:
        title += " [yellow](revisit)[/]"

    console.print()
    console.print(
        Panel(body, title=title, subtitle=subtitle, border_style="cyan", box=box.HEAVY, padding=(1, 2))
    )
    if snapshot.skipped_questions:
        queued = ", ".join(qid for qid, _ in snapshot.skipped_questions)
        console.print(f"[dim]Skipped: {queued}[/]")


def feedback(console: Console, snapshot: SessionSnapshot) -> None:
    """Show the outcome of the latest response."""
    if not snapshot.events or snapshot.events[-1].kind is not AttemptKind.RESPONSE:
        return
    last = snapshot.events[-1]
    item: BankQuestion = last.question
    if last.correct:
        console.print("[bold green]✓ Correct[/]")
    else:
        console.print(f"[bold red]✗ Incorrect[/] [dim](attempt {last.attempt_number})[/]")
    if item.explanation and last.correct:
        console.print(f"[dim]{item.explanation}[/]")


def summary(console: Console, snapshot: SessionSnapshot) -> None:
    """Print the phase summaries."""
    answering = snapshot.stage_summaries.in_progress
    review = snapshot.stage_summaries.reviewing

    table = Table(title="Session Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Questions attempted", str(answering.questions_attempted))
    table.add_row("Correct", str(answering.questions_correct))
    table.add_row("Incorrect", str(answering.questions_incorrect))
    table.add_row("Skips", str(answering.questions_skipped))
    table.add_row("Answering time", format_clock(answering.time_spent_seconds))
    table.add_row("Review time", format_clock(review.time_spent_seconds))
    console.print(table)


def event_log(console: Console, snapshot: SessionSnapshot) -> None:
    """Print every response and skip in order."""
    if not snapshot.events:
        console.print("[dim]No answers recorded[/]")
        return

    log = Table(title="Event Log", box=box.SIMPLE)
    log.add_column("#", style="dim", justify="right")
    log.add_column("Question", style="cyan")
    log.add_column("Event", style="white")
    log.add_column("Attempt", justify="right")
    log.add_column("Time", justify="right", style="dim")
    for number, event in enumerate(snapshot.events, start=1):
        if event.kind is AttemptKind.SKIP:
            outcome = "[yellow]skipped[/]"
            attempt = "-"
        else:
            outcome = "[green]correct[/]" if event.correct else "[red]incorrect[/]"
            attempt = str(event.attempt_number)
        log.add_row(str(number), event.question.id, outcome, attempt, f"{event.time_spent_seconds}s")
    console.print(log)
