"""
Typer CLI for the learn-tutor scheduling engine.

Commands:
    learn-tutor init-db               - Create database tables
    learn-tutor study                 - Interactive study session
    learn-tutor study --topic 3       - Study one topic
    learn-tutor grade 42 2            - Grade a single card (0-3)
    learn-tutor end 7                 - Mark a session completed
    learn-tutor due                   - Card counts per state
    learn-tutor stats                 - Dashboard stats and schedule overview
    learn-tutor sources               - Card counts per imported source
    learn-tutor topics 1              - Card counts per topic of a source
    learn-tutor report                - Topic performance and daily activity
    learn-tutor suspend 42            - Exclude a card from study
    learn-tutor unsuspend 42          - Put a card back into rotation
    learn-tutor reschedule 42 --days 3

Usage:
    learn-tutor --help
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Annotated, NoReturn

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from config import get_settings
from learn_tutor.core.logs import configure_logging
from learn_tutor.db.models import Grade
from learn_tutor.study.exceptions import SchedulingError
from learn_tutor.study.queue_builder import StudyScope
from learn_tutor.study.study_service import QueuedCard, StudyService

app = typer.Typer(
    name="learn-tutor",
    help="learn-tutor: spaced-repetition drills for your own study questions",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

_service: StudyService | None = None

GRADE_LABELS = {
    Grade.AGAIN: "[red]Again[/red]",
    Grade.HARD: "[yellow]Hard[/yellow]",
    Grade.GOOD: "[green]Good[/green]",
    Grade.EASY: "[cyan]Easy[/cyan]",
}

SourceOpt = Annotated[
    int | None, typer.Option("--source", "-s", help="Only cards from this source")
]
TopicOpt = Annotated[
    int | None, typer.Option("--topic", "-t", help="Only cards from this topic")
]


def get_service() -> StudyService:
    """Lazily build the service bound to the configured database."""
    global _service
    if _service is None:
        _service = StudyService()
    return _service


def _scope(source: int | None, topic: int | None) -> StudyScope | None:
    if source is None and topic is None:
        return None
    return StudyScope(source_id=source, topic_id=topic)


def _fail(message: str) -> NoReturn:
    rprint(f"[red]✗[/red] {message}")
    raise typer.Exit(code=1)


def _format_due(due: datetime | None) -> str:
    if due is None:
        return "-"
    return due.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


# ========================================
# Database
# ========================================


@app.command("init-db")
def init_database() -> None:
    """Create all tables in the configured database."""
    from learn_tutor.db.database import init_db

    init_db()
    rprint(f"[green]✓[/green] Database ready at {get_settings().database_url}")


# ========================================
# Study Commands
# ========================================


@app.command()
def study(
    source: SourceOpt = None,
    topic: TopicOpt = None,
    cards: Annotated[
        int | None, typer.Option("--cards", "-n", help="Number of cards to queue")
    ] = None,
) -> None:
    """
    Start an interactive study session.

    Cards are shown learning/relearning first, then due reviews, then new
    cards. Answer 0-3 (Again/Hard/Good/Easy) or q to stop.

    Examples:
        learn-tutor study              # Everything due
        learn-tutor study -t 3         # Only topic 3
        learn-tutor study -s 1 -n 10   # Ten cards from source 1
    """
    service = get_service()
    scope = _scope(source, topic)
    try:
        started = service.start_session(scope=scope, limit=cards)
    except SchedulingError as exc:
        _fail(str(exc))

    console.print(
        Panel(
            f"[bold cyan]STUDY SESSION #{started.session_id}[/]\n"
            f"Cards: {started.total_available}\n"
            f"Focus: {scope.describe() if scope else 'All'}",
            border_style="cyan",
        )
    )

    if not started.cards:
        rprint("[green]Nothing due.[/green] Come back later.")
        service.end_session(started.session_id)
        return

    try:
        for index, card in enumerate(started.cards, start=1):
            if not _drill_card(service, started.session_id, card, index, started.total_available):
                break
    except KeyboardInterrupt:
        summary = service.abandon_session(started.session_id)
        rprint("\n[yellow]Session abandoned.[/yellow]")
    else:
        summary = service.end_session(started.session_id)

    rprint(
        f"\n[bold]Studied {summary.cards_studied}[/bold] · "
        f"correct {summary.cards_correct} ({summary.accuracy:.0%}) · "
        f"{summary.total_time_ms / 1000:.0f}s"
    )


def _drill_card(
    service: StudyService, session_id: int, card: QueuedCard, index: int, total: int
) -> bool:
    """Show one card, collect a grade, apply it. Returns False when the learner quits."""
    console.print(
        Panel(
            card.question_text,
            title=f"[{index}/{total}] {card.topic_title}",
            subtitle=card.card_state,
        )
    )
    started_at = time.monotonic()
    Prompt.ask("[dim]Press Enter to reveal[/dim]", default="", show_default=False)
    console.print(Panel(card.answer_text, border_style="green"))
    if card.explanation:
        rprint(f"[dim]{card.explanation}[/dim]")

    choice = Prompt.ask(
        "Grade (0 Again, 1 Hard, 2 Good, 3 Easy, q to quit)",
        choices=["0", "1", "2", "3", "q"],
    )
    if choice == "q":
        return False

    elapsed_ms = int((time.monotonic() - started_at) * 1000)
    try:
        result = service.grade_card(
            card.id,
            int(choice),
            elapsed_ms=elapsed_ms,
            session_id=session_id,
            expected_review_count=card.review_count,
        )
    except SchedulingError as exc:
        rprint(f"[yellow]⚠[/yellow] {exc}")
        return True

    rprint(
        f"{GRADE_LABELS[Grade(int(choice))]} → {result.new_state}, "
        f"next {_format_due(result.due_date)}"
    )
    return True


@app.command()
def grade(
    card_id: Annotated[int, typer.Argument(help="Card to grade")],
    grade_value: Annotated[
        int, typer.Argument(metavar="GRADE", help="0 Again, 1 Hard, 2 Good, 3 Easy")
    ],
    elapsed_ms: Annotated[
        int | None, typer.Option("--elapsed-ms", help="Time taken to answer")
    ] = None,
    session_id: Annotated[
        int | None, typer.Option("--session", help="Session to credit")
    ] = None,
    expected_review_count: Annotated[
        int | None,
        typer.Option(
            "--expected-review-count",
            help="Refuse the grade unless the card has exactly this many reviews",
        ),
    ] = None,
) -> None:
    """Grade a single card and print its new schedule."""
    try:
        result = get_service().grade_card(
            card_id,
            grade_value,
            elapsed_ms=elapsed_ms,
            session_id=session_id,
            expected_review_count=expected_review_count,
        )
    except SchedulingError as exc:
        _fail(str(exc))

    table = Table(title=f"Card {result.card_id}", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("State", result.new_state)
    table.add_row("Step", str(result.new_step_index))
    table.add_row("Interval (days)", f"{result.new_interval_days:g}")
    table.add_row("Ease", f"{result.new_ease_factor:g}")
    table.add_row("Due", _format_due(result.due_date))
    console.print(table)


@app.command()
def end(session_id: Annotated[int, typer.Argument(help="Session to complete")]) -> None:
    """Mark a study session completed."""
    try:
        summary = get_service().end_session(session_id)
    except SchedulingError as exc:
        _fail(str(exc))
    rprint(
        f"[green]✓[/green] Session {summary.session_id} {summary.status}: "
        f"{summary.cards_studied} studied, {summary.cards_correct} correct"
    )


# ========================================
# Reporting
# ========================================


@app.command()
def due(source: SourceOpt = None, topic: TopicOpt = None) -> None:
    """Show card counts per state (suspended cards listed separately)."""
    counts = get_service().get_due_counts(_scope(source, topic))

    table = Table(title="Due Counts", show_header=True)
    table.add_column("State", style="cyan")
    table.add_column("Cards", justify="right", style="green")
    for key, value in counts.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def stats() -> None:
    """Show today's activity and how the review backlog is spread out."""
    service = get_service()
    card_stats = service.get_card_stats()
    overview = service.get_schedule_overview()

    table = Table(title="Study Stats", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Cards (active)", str(card_stats.counts.total))
    table.add_row("Due now", str(card_stats.counts.due))
    table.add_row("Suspended", str(card_stats.counts.suspended))
    table.add_row("Reviews today", str(card_stats.reviews_today))
    table.add_row("Accuracy today", f"{card_stats.accuracy_today:.0%}")
    table.add_section()
    table.add_row("Due today", str(overview.due_today))
    table.add_row("Due this week", str(overview.due_this_week))
    table.add_row("Due this month", str(overview.due_this_month))
    table.add_row("Due later", str(overview.due_later))
    table.add_row("New cards", str(overview.new_cards))
    console.print(table)


@app.command()
def sources() -> None:
    """List imported sources with their card counts."""
    summaries = get_service().get_sources_summary()
    if not summaries:
        rprint("[yellow]No sources imported yet.[/yellow]")
        return

    table = Table(title="Sources", show_header=True)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("File", style="cyan")
    table.add_column("Cards", justify="right")
    table.add_column("Due", justify="right", style="red")
    table.add_column("New", justify="right", style="green")
    table.add_column("Learning", justify="right", style="yellow")
    for s in summaries:
        table.add_row(
            str(s.source_id),
            s.filename,
            str(s.card_count),
            str(s.due_count),
            str(s.new_count),
            str(s.learning_count),
        )
    console.print(table)


@app.command()
def topics(source_id: Annotated[int, typer.Argument(help="Source to break down")]) -> None:
    """Show card counts for each topic of a source."""
    stats_rows = get_service().get_topic_stats(source_id)
    if not stats_rows:
        _fail(f"No topics for source {source_id}")

    table = Table(title=f"Topics of source {source_id}", show_header=True)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Topic", style="cyan")
    table.add_column("Cards", justify="right")
    table.add_column("Due", justify="right", style="red")
    table.add_column("New", justify="right", style="green")
    table.add_column("Learning", justify="right", style="yellow")
    for t in stats_rows:
        table.add_row(
            str(t.topic_id),
            t.topic_title,
            str(t.card_count),
            str(t.due_count),
            str(t.new_count),
            str(t.learning_count),
        )
    console.print(table)


@app.command()
def report(
    days: Annotated[
        int, typer.Option("--days", "-d", help="Show this many most recent days of activity")
    ] = 7,
) -> None:
    """Review performance per topic and recent daily activity."""
    review_report = get_service().get_review_report()

    table = Table(title="Topic Performance", show_header=True)
    table.add_column("Source", style="dim")
    table.add_column("Topic", style="cyan")
    table.add_column("Reviews", justify="right")
    table.add_column("Accuracy", justify="right", style="green")
    table.add_column("Avg time", justify="right")
    for p in review_report.topic_stats:
        table.add_row(
            p.source_filename,
            p.topic_title,
            str(p.total_reviews),
            f"{p.accuracy_pct}%",
            f"{p.avg_time_sec:g}s",
        )
    console.print(table)

    recent = review_report.daily_stats[-days:] if days > 0 else []
    daily = Table(title="Daily Activity", show_header=True)
    daily.add_column("Date", style="cyan")
    daily.add_column("Reviews", justify="right")
    daily.add_column("Correct", justify="right", style="green")
    for d in recent:
        daily.add_row(d.review_date.isoformat(), str(d.review_count), str(d.correct_count))
    if not recent:
        daily.add_row("-", "0", "0")
    console.print(daily)


# ========================================
# Library housekeeping
# ========================================


@app.command()
def suspend(card_id: Annotated[int, typer.Argument(help="Card to suspend")]) -> None:
    """Exclude a card from study queues and due counts."""
    try:
        get_service().suspend_card(card_id)
    except SchedulingError as exc:
        _fail(str(exc))
    rprint(f"[green]✓[/green] Card {card_id} suspended")


@app.command()
def unsuspend(card_id: Annotated[int, typer.Argument(help="Card to restore")]) -> None:
    """Put a suspended card back into rotation."""
    try:
        get_service().unsuspend_card(card_id)
    except SchedulingError as exc:
        _fail(str(exc))
    rprint(f"[green]✓[/green] Card {card_id} unsuspended")


@app.command()
def reschedule(
    card_id: Annotated[int, typer.Argument(help="Card to move")],
    days: Annotated[
        float | None, typer.Option("--days", "-d", help="Push due date this many days out")
    ] = None,
    due_on: Annotated[
        datetime | None, typer.Option("--due", help="Explicit due date (UTC)")
    ] = None,
) -> None:
    """Override a studied card's due date."""
    due_date = due_on.replace(tzinfo=timezone.utc) if due_on else None
    try:
        new_due = get_service().reschedule_card(card_id, interval_days=days, due_date=due_date)
    except (SchedulingError, ValueError) as exc:
        _fail(str(exc))
    rprint(f"[green]✓[/green] Card {card_id} due {_format_due(new_due)}")


def main() -> None:
    """Entry point for the CLI."""
    configure_logging(level="WARNING")
    app()


if __name__ == "__main__":
    main()
