"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Annotated

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..adapters.memory_repository import InMemoryScheduleRepository
from ..config import load_config
from ..domain.exceptions import SchedulingError
from ..domain.models import SubjectRef, coerce_time, parse_date
from ..services.schedule_engine import ScheduleEngine

app = typer.Typer(
    name="slotkeeper",
    help="Check schedule conflicts and find bookable slots",
    add_completion=False
)

console = Console()

DEFAULT_DATA_FILE = Path("schedules.yaml")

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to engine config file. Defaults to ./slotkeeper.yaml"),
]
DataOption = Annotated[
    Path,
    typer.Option("--data", help="Path to the schedules YAML file"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """
    Schedule conflict detection and availability slots.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
            force=True,
        )


def _build_engine(
    config_file: Optional[Path],
    data_file: Path,
    today: Optional[str] = None,
) -> Tuple[ScheduleEngine, InMemoryScheduleRepository]:
    config = load_config(config_file)
    repository = InMemoryScheduleRepository.load_from_yaml(data_file)

    clock = None
    if today:
        fixed = parse_date(today)
        clock = lambda: fixed

    return ScheduleEngine(repository, config=config, clock=clock), repository


def _subject(subject_type: str, subject_id: str) -> SubjectRef:
    # YAML data files usually carry numeric ids
    return SubjectRef(type=subject_type, id=int(subject_id) if subject_id.isdigit() else subject_id)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _load_proposal(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Proposal file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("subject"), dict):
        raise ValueError("Proposal file must contain a 'subject' mapping with 'type' and 'id'.")

    return data


def _normalize_periods(periods: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    normalized = []
    for period in periods:
        period = dict(period)
        for key in ("start_time", "end_time"):
            if period.get(key) is not None:
                period[key] = coerce_time(period[key])
        normalized.append(period)
    return normalized


@app.command()
def slots(
    subject_type: Annotated[str, typer.Argument(help="Subject type, e.g. 'doctor'")],
    subject_id: Annotated[str, typer.Argument(help="Subject id")],
    on_date: Annotated[str, typer.Option("--date", help="Date (YYYY-MM-DD)")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Slot duration in minutes")] = 60,
    buffer: Annotated[Optional[int], typer.Option("--buffer", help="Gap between slots in minutes")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = DEFAULT_DATA_FILE,
):
    """
    List the slots of a subject on one date.

    Examples:

        slotkeeper slots doctor 1 --date 2025-01-06
        slotkeeper slots doctor 1 --date 2025-01-06 --duration 30 --buffer 10
    """
    try:
        engine, _ = _build_engine(config_file, data_file)
        subject = _subject(subject_type, subject_id)
        check_date = parse_date(on_date)

        found = engine.get_bookable_slots(subject, check_date, duration, buffer)

        if not found:
            console.print(f"[yellow]⚠ No availability for {subject} on {check_date.to_date_string()}.[/yellow]")
            return

        table = Table(
            title=f"Slots for {subject} on {check_date.format('dddd, YYYY-MM-DD')}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Start", style="bold")
        table.add_column("End", style="bold")
        table.add_column("Minutes", justify="right")
        table.add_column("Status")

        for slot in found:
            status = "[green]available[/green]" if slot.is_available else "[red]booked[/red]"
            table.add_row(slot.start_time, slot.end_time, str(slot.duration_minutes()), status)

        console.print(table)
        available = sum(1 for slot in found if slot.is_available)
        console.print(f"[bold green]✓ {available} of {len(found)} slot(s) available[/bold green]")

    except (SchedulingError, ValueError, FileNotFoundError) as e:
        _fail(e)


@app.command("next-slot")
def next_slot(
    subject_type: Annotated[str, typer.Argument(help="Subject type, e.g. 'doctor'")],
    subject_id: Annotated[str, typer.Argument(help="Subject id")],
    after: Annotated[Optional[str], typer.Option("--after", help="First date to search (YYYY-MM-DD). Defaults to today")] = None,
    duration: Annotated[int, typer.Option("--duration", "-d", help="Slot duration in minutes")] = 60,
    buffer: Annotated[Optional[int], typer.Option("--buffer", help="Gap between slots in minutes")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = DEFAULT_DATA_FILE,
):
    """
    Find the next available slot of a subject.
    """
    try:
        engine, _ = _build_engine(config_file, data_file)
        subject = _subject(subject_type, subject_id)

        result = engine.get_next_bookable_slot(
            subject,
            after_date=parse_date(after) if after else None,
            duration=duration,
            buffer_minutes=buffer,
        )

        if result is None:
            console.print(f"[yellow]⚠ No bookable slot found for {subject}.[/yellow]")
            raise typer.Exit(1)

        slot, slot_date = result
        console.print(f"[bold green]✓ Next slot:[/bold green] {slot.format_display(slot_date)}")

    except (SchedulingError, ValueError, FileNotFoundError) as e:
        _fail(e)


@app.command()
def conflicts(
    schedule_id: Annotated[str, typer.Argument(help="Id of a stored schedule")],
    config_file: ConfigOption = None,
    data_file: DataOption = DEFAULT_DATA_FILE,
):
    """
    Show the stored schedules that conflict with one schedule.
    """
    try:
        engine, repository = _build_engine(config_file, data_file)
        schedule = repository.get(int(schedule_id) if schedule_id.isdigit() else schedule_id)

        found = engine.find_conflicts(schedule)

        if not found:
            console.print(f"[green]✓ {schedule.display_name()} has no conflicts.[/green]")
            return

        table = Table(
            title=f"Conflicts of {schedule.display_name()}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Id", style="dim")
        table.add_column("Name", style="bold yellow")
        table.add_column("Type")
        table.add_column("Dates")

        for other in found:
            dates = other.start_date.to_date_string()
            if other.end_date is not None:
                dates += f" - {other.end_date.to_date_string()}"
            table.add_row(str(other.id), other.display_name(), other.schedule_type.value, dates)

        console.print(table)
        raise typer.Exit(1)

    except (SchedulingError, ValueError, FileNotFoundError) as e:
        _fail(e)


@app.command()
def check(
    proposal_file: Annotated[Path, typer.Argument(help="YAML file describing the proposed schedule")],
    today: Annotated[Optional[str], typer.Option("--today", help="Override today's date (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = DEFAULT_DATA_FILE,
):
    """
    Validate a proposed schedule against the rules and stored schedules.

    The proposal file holds 'subject', 'schedule', 'periods' and
    optionally 'rules'.
    """
    try:
        engine, _ = _build_engine(config_file, data_file, today=today)
        proposal = _load_proposal(proposal_file)

        raw_subject = proposal["subject"]
        subject = SubjectRef(type=str(raw_subject["type"]), id=raw_subject["id"])
        outcome = engine.validate(
            subject,
            proposal.get("schedule") or {},
            _normalize_periods(proposal.get("periods") or []),
            proposal.get("rules"),
        )

        if outcome.is_valid:
            console.print(Panel.fit(
                f"[bold green]✓ Schedule is valid[/bold green]\n\n"
                f"[bold]Subject:[/bold] {subject}",
                title="✓ Check"
            ))
            return

        console.print(f"[bold red]✗[/bold red] {outcome.message}")
        raise typer.Exit(1)

    except (SchedulingError, ValueError, FileNotFoundError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    console.print(f"\n[bold cyan]slotkeeper[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
