"""Command Line Interface (CLI) output and prompts."""

from typing import Iterable, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from grammar_coach.core.grader import GradingOutcome, StageStatus
from grammar_coach.core.results import HistoryEntry
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import UserCancelledError

logger = get_logger()
console = Console()

_STATUS_STYLE = {
    StageStatus.OK: "green",
    StageStatus.SKIPPED: "dim",
    StageStatus.FAILED: "bold yellow",
}

def display_welcome():
    """Displays a welcome message."""
    console.print(Panel(
        "[bold green]📝 Grammar Coach: AI grading for grammar explanations[/bold green]",
        title="Welcome",
        border_style="blue"
    ))
    console.rule()

def display_farewell():
    console.rule()
    console.print("[bold cyan]👋 Done.[/bold cyan]")

def display_error(message: str):
    """Displays an error message in a standard format."""
    console.print(Panel(f"[bold red]Error:[/bold red] {escape(message)}", title="Error", border_style="red"))

def display_warning(message: str):
    console.print(f"[yellow]Warning:[/yellow] {escape(message)}")

def display_success(message: str):
    console.print(f"[green]Success:[/green] {escape(message)}")

def display_step(step_number: int, description: str):
    """Displays the current step in the process."""
    console.print(f"\n[bold blue]Step {step_number}:[/bold blue] {description}")
    console.rule()

def prompt_for_text(label: str, default: str = "", required: bool = False) -> str:
    """Asks for one free-text value; re-asks while a required value is blank.

    Raises:
        UserCancelledError: If the user enters a single "q" for a required value.
    """
    while True:
        value = Prompt.ask(label, default=default or None, show_default=bool(default)) or ""
        value = value.strip()
        if not required or value:
            if required and value.lower() == "q":
                raise UserCancelledError(f"User cancelled while entering {label}.")
            return value
        console.print("[yellow]This field is required (enter q to cancel).[/yellow]")

def confirm_action(message: str, default: bool = True) -> bool:
    return Confirm.ask(message, default=default)

def display_graded_result(outcome: GradingOutcome):
    """Shows the graded markdown and a per-stage delivery table."""
    console.print(Panel(Markdown(outcome.graded_text), title="Graded Result", border_style="green"))

    table = Table(title="Delivery", show_header=True, header_style="bold magenta")
    table.add_column("Stage", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    for stage in outcome.stages:
        table.add_row(stage.stage, Text(stage.status.value, style=_STATUS_STYLE[stage.status]), stage.error or "")
    console.print(table)

    if outcome.record_id:
        console.print(f"Record ID: [bold]{outcome.record_id}[/bold]")
    if outcome.detail_url:
        console.print(f"Detail view: {outcome.detail_url}")

def display_history(user_id: str, entries: Iterable[HistoryEntry], preview_width: Optional[int] = 60):
    """Displays a user's history, newest first."""
    entries = list(entries)
    if not entries:
        console.print(f"[yellow]No stored results for user {user_id}.[/yellow]")
        return

    table = Table(title=f"History for {user_id}", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Date", style="cyan")
    table.add_column("Explanation")
    table.add_column("Advice", style="green")
    for i, entry in enumerate(entries, start=1):
        table.add_row(
            str(i),
            entry.date,
            entry.explanation[:preview_width],
            entry.advice[:preview_width].replace("\n", " "),
        )
    console.print(table)
    console.print(f"{len(entries)} result(s).")
