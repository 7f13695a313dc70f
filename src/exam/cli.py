"""
Adaptive Exam: terminal front end.

A Rich terminal interface over the exam session controller. Each command is
a thin binding to one controller transition; the session itself lives in the
persisted record, so commands can be run one at a time across invocations.

Commands:
- exam start     - Start a new exam (optionally for one topic)
- exam take      - Answer the current round
- exam answer    - Set one answer without the interactive prompt
- exam submit    - Send the round for grading
- exam result    - Show the graded round
- exam continue  - Get the next adaptive round
- exam finish    - End the session and show history
- exam home      - End the session
- exam status    - Show local session and service status
- exam topics    - List available topics
- exam history   - Show past results
"""
from __future__ import annotations

import asyncio
import random
import sys
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from .api_client import ExamApiClient
from .config import ExamSettings, get_settings
from .controller import AdaptiveExamController, ExamPhase
from .errors import ExamError, MissingPrerequisite, TransientCollaboratorError
from .models import (
    MAX_CONFIDENCE,
    AdaptiveAnalysis,
    AIStatus,
    ExamResult,
    ExamState,
    Question,
)
from .randomizer import RoundPresentation
from .session_store import ExamSessionStore, JsonFileBackend

T = TypeVar("T")


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="exam",
    help="Adaptive Exam: multi-round adaptive testing from the terminal",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Styling
# =============================================================================

STYLES = {
    "correct": "bold green",
    "incorrect": "bold red",
    "pending": "bold yellow",
    "info": "bold cyan",
    "dim": "dim",
}


def _verdict(is_correct: bool | None) -> str:
    if is_correct is None:
        return f"[{STYLES['pending']}]pending[/{STYLES['pending']}]"
    if is_correct:
        return f"[{STYLES['correct']}]correct[/{STYLES['correct']}]"
    return f"[{STYLES['incorrect']}]wrong[/{STYLES['incorrect']}]"


# =============================================================================
# Wiring
# =============================================================================

def build_store(settings: ExamSettings) -> ExamSessionStore:
    return ExamSessionStore(JsonFileBackend(settings.state_dir), key=settings.state_key)


def build_controller(settings: ExamSettings, client: ExamApiClient) -> AdaptiveExamController:
    rng = random.Random(settings.random_seed)
    return AdaptiveExamController(build_store(settings), client, RoundPresentation(rng))


def _run(flow: Callable[[AdaptiveExamController, ExamApiClient], Awaitable[T]]) -> T:
    """Run one command against a fresh controller, mapping errors to exit codes."""
    settings = get_settings()

    async def runner() -> T:
        async with ExamApiClient(settings.api) as client:
            return await flow(build_controller(settings, client), client)

    try:
        return asyncio.run(runner())
    except MissingPrerequisite as e:
        console.print(f"\n[yellow]{e}.[/yellow] Start a new exam with [bold]exam start[/bold].")
        raise typer.Exit(1)
    except TransientCollaboratorError as e:
        console.print(f"\n[red]{e}[/red]")
        console.print("[dim]Nothing was lost. Run the same command again to retry.[/dim]")
        raise typer.Exit(1)
    except ExamError as e:
        console.print(f"\n[red]{e}[/red]")
        raise typer.Exit(1)


# =============================================================================
# Display Helpers
# =============================================================================

def display_question(question: Question, index: int, total: int, state: ExamState) -> None:
    """Show one question with its (already shuffled) choices."""
    header = f"Question {index}/{total}"
    if question.topic:
        header += f"  |  {question.topic}"
    if question.created_by:
        header += "  |  AI" if question.created_by == "AI" else "  |  Standard"

    content = question.text
    current = state.answer_for(question.id)
    if question.is_mcq and question.choices:
        content += "\n"
        for i, choice in enumerate(question.choices):
            marker = "[green]>[/green]" if current and current.answer == choice else " "
            content += f"\n{marker} {chr(65 + i)}. {choice}"
    elif current and current.answer:
        content += f"\n\n[dim]Current answer:[/dim] {current.answer}"

    console.print(Panel(content, title=header, title_align="left", border_style="cyan", padding=(1, 2)))


def display_result(result: ExamResult, round_number: int | None = None) -> None:
    """Score, summary and per-answer feedback."""
    style = STYLES["correct"] if result.is_mastery else STYLES["info"]
    body = f"[{style}]{result.score}/{result.total}[/{style}]  ({result.percent:.0f}%)"
    if result.summary:
        body += f"\n\n{result.summary}"
    if result.next_steps:
        body += "\n\n[bold]Next steps:[/bold]"
        for step in result.next_steps:
            body += f"\n  - {step}"
    title = f"Result (round {round_number})" if round_number else f"Result #{result.id}"
    console.print(Panel(body, title=title, border_style="green"))

    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Question")
    table.add_column("Your answer")
    table.add_column("Conf.", justify="center")
    table.add_column("Verdict")
    table.add_column("Feedback", style="dim")

    for i, graded in enumerate(result.answers, 1):
        table.add_row(
            str(i),
            graded.question_text or "(question not found)",
            graded.answer or "(no answer)",
            f"{graded.confidence}/{MAX_CONFIDENCE}",
            _verdict(graded.is_correct),
            graded.feedback or "",
        )
    console.print(table)

    if result.is_mastery:
        console.print("\n[bold green]100% - you have finished practising this topic.[/bold green]")


def display_analysis(analysis: AdaptiveAnalysis) -> None:
    lines = [analysis.summary] if analysis.summary else []
    if analysis.weak_topics:
        lines.append(f"[red]Weak:[/red] {', '.join(analysis.weak_topics)}")
    if analysis.strong_topics:
        lines.append(f"[green]Strong:[/green] {', '.join(analysis.strong_topics)}")
    if lines:
        console.print(Panel("\n".join(lines), title="Analysis", border_style="magenta"))


def display_status(status: AIStatus | None) -> None:
    if status is None:
        console.print("[dim]Service status unavailable[/dim]")
        return
    method = "AI" if status.last_adaptive_method == "AI" else "Manual"
    ai = "[green]on[/green]" if status.ai_enabled else "[yellow]off[/yellow]"
    console.print(f"AI: {ai}  |  Last adaptive selection: {method}")


# =============================================================================
# Interactive round
# =============================================================================

def _prompt_answer(controller: AdaptiveExamController, question: Question) -> None:
    current = controller.state.answer_for(question.id)
    if question.is_mcq and question.choices:
        letters = [chr(65 + i) for i in range(len(question.choices))]
        options: dict = {}
        if current and current.answer in question.choices:
            options["default"] = letters[question.choices.index(current.answer)]
        pick = Prompt.ask(
            f"Your answer ({'/'.join(letters)})",
            choices=letters + [letter.lower() for letter in letters],
            show_choices=False,
            **options,
        ).upper()
        controller.edit_answer(question.id, answer=question.choices[ord(pick) - ord("A")])
    else:
        text = Prompt.ask("Your answer", default=current.answer if current else "")
        controller.edit_answer(question.id, answer=text)

    confidence = IntPrompt.ask(
        f"Confidence (0 = pure guess, {MAX_CONFIDENCE} = certain)",
        choices=[str(i) for i in range(MAX_CONFIDENCE + 1)],
        default=current.confidence if current else 0,
    )
    controller.edit_answer(question.id, confidence=confidence)


async def _take_round(controller: AdaptiveExamController) -> None:
    state = controller.require_round()
    if controller.phase != ExamPhase.IN_ROUND:
        console.print("[yellow]This round was already submitted.[/yellow] See [bold]exam result[/bold].")
        return

    title = f"Exam: {state.topic}" if state.topic else "Exam"
    console.print(f"\n[bold cyan]{title}[/bold cyan]  [dim]round {state.round}[/dim]")
    console.print("=" * 40)

    questions = controller.presentation
    try:
        for i, question in enumerate(questions, 1):
            console.print()
            display_question(question, i, len(questions), controller.state)
            _prompt_answer(controller, question)
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Round paused. Your answers are saved; run exam take to resume.[/yellow]")
        return

    if Confirm.ask("\nSubmit answers?", default=True):
        await _submit(controller)


async def _submit(controller: AdaptiveExamController) -> None:
    with console.status("Submitting answers..."):
        result = await controller.submit()
    display_result(result, controller.state.round)
    if controller.can_continue:
        console.print("\nRun [bold]exam continue[/bold] for an adaptive round, or [bold]exam finish[/bold].")


# =============================================================================
# Commands
# =============================================================================

@app.command()
def start(
    topic: Optional[str] = typer.Option(
        None,
        "--topic", "-t",
        help="Topic to test (all topics when omitted)",
    ),
    interactive: bool = typer.Option(
        True,
        "--take/--no-take",
        help="Go straight into answering the first round",
    ),
) -> None:
    """Start a new exam session, replacing any session in progress."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        with console.status("Loading questions..."):
            state = await controller.start(topic)
        console.print(f"[green]Exam started:[/green] {len(state.questions)} questions")
        if interactive:
            await _take_round(controller)

    _run(flow)


@app.command()
def take() -> None:
    """Answer the current round (answers are saved as you go)."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        await _take_round(controller)

    _run(flow)


@app.command()
def answer(
    question_id: str = typer.Argument(..., help="Question id"),
    text: Optional[str] = typer.Option(None, "--text", "-a", help="Answer text or chosen option"),
    confidence: Optional[int] = typer.Option(
        None, "--confidence", "-c", min=0, max=MAX_CONFIDENCE, help="Confidence 0-5"
    ),
) -> None:
    """Set one answer in the current round."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        state = controller.require_round()
        # Ids arrive as strings on the command line
        matches = [q.id for q in state.questions if str(q.id) == question_id]
        if not matches:
            console.print(f"[red]No question {question_id} in this round[/red]")
            raise typer.Exit(1)
        updated = controller.edit_answer(matches[0], answer=text, confidence=confidence)
        console.print(f"[green]Saved[/green] {updated.answer!r} (confidence {updated.confidence})")

    _run(flow)


@app.command()
def submit() -> None:
    """Send the current round for grading."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        controller.require_round()
        await _submit(controller)

    _run(flow)


@app.command()
def result() -> None:
    """Show the graded round."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        graded = controller.require_result()
        display_result(graded, controller.state.round)

    _run(flow)


@app.command(name="continue")
def continue_(
    interactive: bool = typer.Option(
        True,
        "--take/--no-take",
        help="Go straight into answering the new round",
    ),
) -> None:
    """Get the next adaptive round (not offered after a perfect round)."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        graded = controller.require_result()
        if graded.is_mastery:
            console.print("[green]Perfect round - nothing left to adapt for this topic.[/green]")
            return
        with console.status("Preparing the next round..."):
            analysis = await controller.continue_round()
        display_analysis(analysis)
        console.print(f"[green]Round {controller.state.round}:[/green] {len(controller.state.questions)} questions")
        if interactive:
            await _take_round(controller)

    _run(flow)


@app.command()
def finish() -> None:
    """End the session and show exam history."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        controller.finish()
        console.print("[green]Session finished.[/green]")
        try:
            history = await client.fetch_history()
        except TransientCollaboratorError as e:
            logger.debug(f"History unavailable: {e}")
            console.print("[dim]History unavailable[/dim]")
            return
        _display_history(history)

    _run(flow)


@app.command()
def home() -> None:
    """End the session without showing history."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        controller.go_home()
        console.print("[green]Session cleared.[/green]")

    _run(flow)


@app.command()
def status() -> None:
    """Show the local session and the service's AI status."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        state = controller.state
        table = Table(show_header=False, box=None)
        table.add_column("Field", style="dim")
        table.add_column("Value", style="bold")
        table.add_row("Phase", controller.phase.value)
        table.add_row("Topic", state.topic or "(all)")
        table.add_row("Round", str(state.round))
        table.add_row("Questions", str(len(state.questions)))
        answered = sum(1 for a in state.answers if a.answer)
        table.add_row("Answered", f"{answered}/{len(state.answers)}")
        table.add_row("Questions used", str(len(state.used_question_ids)))
        console.print(table)

        try:
            service = await client.fetch_status()
        except TransientCollaboratorError as e:
            logger.debug(f"Status unavailable: {e}")
            service = None
        display_status(service)

    _run(flow)


@app.command()
def topics() -> None:
    """List the topics the question bank offers."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        info = await client.fetch_exam_info()
        console.print(f"\n[bold]Topics[/bold] ({info.total_questions} questions)")
        for name in info.topics:
            console.print(f"  - {name}")

    _run(flow)


def _display_history(results: list[ExamResult]) -> None:
    if not results:
        console.print("[dim]No exams yet.[/dim]")
        return
    table = Table(title="Exam History")
    table.add_column("ID")
    table.add_column("Date")
    table.add_column("Score", justify="right")
    for item in results:
        table.add_row(str(item.id), item.timestamp, f"{item.score}/{item.total}")
    console.print(table)


@app.command()
def history(
    result_id: Optional[str] = typer.Argument(None, help="Show one result in detail"),
) -> None:
    """Show past exam results."""

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        if result_id is None:
            _display_history(await client.fetch_history())
        else:
            item = await client.fetch_history_item(result_id)
            display_result(item)

    _run(flow)


@app.command(name="clear-history")
def clear_history(
    confirm: bool = typer.Option(
        False,
        "--yes", "-y",
        help="Skip confirmation",
    ),
) -> None:
    """Delete all past results on the server."""
    if not confirm and not Confirm.ask("Delete ALL exam history? This cannot be undone!", default=False):
        raise typer.Exit(0)

    async def flow(controller: AdaptiveExamController, client: ExamApiClient) -> None:
        await client.clear_history()
        console.print("[green]History cleared.[/green]")

    _run(flow)


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
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
