"""Contract wizard CLI.

Usage:
    cwiz new
    cwiz resume [PROJECT_ID]
    cwiz status
    cwiz set project_name="Oak Street" site_address="123 Oak St"
    cwiz unit add
    cwiz unit set 1 model="Dvele Model X" price=450000
    cwiz validate --step 3
    cwiz next | back | goto 4
    cwiz schedule
    cwiz save
    cwiz test-draft
    cwiz generate --confirm
    cwiz steps

Each command restores the draft from the local crash-recovery cache, runs,
and writes it back.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from cwiz.config import get_settings

app = typer.Typer(name="cwiz", help="Contract wizard: draft, validate, and generate a contract package")
console = Console()

# Sub-command groups
unit_app = typer.Typer(help="Home units")
app.add_typer(unit_app, name="unit")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]",
                        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
                        force=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_session():
    from cwiz.wizard.session import WizardSession
    return WizardSession(get_settings())


@asynccontextmanager
async def _open_session(restore: bool = True) -> AsyncIterator:
    """Session with the cached draft restored; the draft is cached again on success."""
    session = _make_session()
    if restore:
        snapshot = session.cache.load()
        if snapshot is not None:
            session.store.restore(snapshot)
            session.autosave.prime()
    async with session:
        yield session
        session.persist()


def _run(coro) -> None:
    asyncio.run(coro)


def _parse_assignments(pairs: list[str]) -> dict[str, str]:
    """FIELD=VALUE pairs; field names may be snake_case or camelCase."""
    from cwiz.models import ProjectDraft, UnitSpec

    aliases = {}
    for model in (ProjectDraft, UnitSpec):
        for name, info in model.model_fields.items():
            aliases[info.alias or name] = name
    updates = {}
    for pair in pairs:
        if "=" not in pair:
            console.print(f"[red]Expected FIELD=VALUE, got {pair!r}[/red]")
            raise typer.Exit(1)
        key, value = pair.split("=", 1)
        key = key.strip()
        updates[aliases.get(key, key)] = value
    return updates


def _print_errors(errors: dict[str, str]) -> None:
    table = Table(title="Validation errors")
    table.add_column("Field", style="bold")
    table.add_column("Problem", style="red")
    for name, message in errors.items():
        table.add_row(name, message)
    console.print(table)


def _print_step(session) -> None:
    from cwiz.reference.loader import step_title

    step = session.progress.current_step
    console.print(f"  Step {step}: [bold]{step_title(step)}[/bold]")


def _money(amount: float) -> str:
    return f"${amount:,.2f}"


# ---------------------------------------------------------------------------
# cwiz new / resume
# ---------------------------------------------------------------------------

@app.command()
def new():
    """Start a fresh draft with the next free project number."""

    async def go():
        async with _open_session(restore=False) as session:
            await session.start_fresh()
            console.print("\n[green]New draft started[/green]")
            number = session.draft.project_number
            console.print(f"  Project number: {number or '[yellow]unavailable[/yellow]'}")
            _print_step(session)

    _run(go())


@app.command()
def resume(project_id: Optional[int] = typer.Argument(None, help="Saved project id; omit to restore the local draft")):
    """Resume a saved project from the backend, or the last local draft."""

    async def go():
        async with _open_session(restore=False) as session:
            if project_id is not None:
                ok = await session.hydrate(project_id)
            else:
                ok = session.load_draft()
                if not ok:
                    console.print("[yellow]No local draft found. Run 'cwiz new' first.[/yellow]")
            if ok:
                _print_step(session)

    _run(go())


# ---------------------------------------------------------------------------
# cwiz status
# ---------------------------------------------------------------------------

@app.command()
def status():
    """Show the current draft and wizard progress."""

    async def go():
        async with _open_session() as session:
            d, p = session.draft, session.progress
            console.print(f"\n[bold]{d.project_name or '(unnamed project)'}[/bold]")
            console.print(f"  Number: {d.project_number or '-'}")
            if session.store.draft_project_id is not None:
                console.print(f"  Backend project: {session.store.draft_project_id}")
            console.print(f"  Service model: {d.service_model.value}")
            console.print(f"  Units: {d.total_units}")
            console.print(f"  Offsite: {_money(d.preliminary_offsite_cost)}")
            console.print(f"  Contract price: {_money(d.contract_price)}")
            console.print(f"  Milestones: {d.milestone_total}% + {d.retainage_percent}% retainage")
            _print_step(session)
            done = ", ".join(str(s) for s in sorted(p.completed_steps)) or "none"
            console.print(f"  Completed steps: {done}")

    _run(go())


@app.command()
def steps():
    """List the wizard steps and which are reachable."""
    from cwiz.reference.loader import step_definitions

    async def go():
        async with _open_session() as session:
            nav, p = session.navigator, session.progress
            table = Table(title="Wizard steps")
            table.add_column("#", justify="right")
            table.add_column("Title")
            table.add_column("Status")
            for step in step_definitions():
                if step.number == p.current_step:
                    mark = "[bold cyan]current[/bold cyan]"
                elif step.number in p.completed_steps:
                    mark = "[green]done[/green]"
                elif nav.can_navigate_to(step.number):
                    mark = "reachable"
                else:
                    mark = "[dim]locked[/dim]"
                table.add_row(str(step.number), step.title, mark)
            console.print(table)

    _run(go())


# ---------------------------------------------------------------------------
# cwiz set / unit
# ---------------------------------------------------------------------------

@app.command("set")
def set_fields(assignments: list[str] = typer.Argument(..., help="FIELD=VALUE pairs")):
    """Update draft fields. Autosave runs once all fields are applied."""
    from pydantic import ValidationError

    from cwiz.errors import UnknownFieldError

    updates = _parse_assignments(assignments)

    async def go():
        async with _open_session() as session:
            try:
                session.store.update_project_data(updates)
            except (UnknownFieldError, ValidationError) as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(1)
            await session.autosave.flush()
            for name in updates:
                console.print(f"  {name} = {getattr(session.draft, name)!r}")

    _run(go())


@unit_app.command("add")
def unit_add():
    """Append a default unit."""

    async def go():
        async with _open_session() as session:
            unit = session.store.add_unit()
            await session.autosave.flush()
            console.print(f"[green]Unit {unit.id} added[/green] ({session.draft.total_units} total)")

    _run(go())


@unit_app.command("set")
def unit_set(
    unit_id: int = typer.Argument(..., help="Unit id"),
    assignments: list[str] = typer.Argument(..., help="FIELD=VALUE pairs"),
):
    """Edit one unit."""
    from pydantic import ValidationError

    from cwiz.errors import UnknownFieldError

    updates = _parse_assignments(assignments)

    async def go():
        async with _open_session() as session:
            if not any(u.id == unit_id for u in session.draft.units):
                console.print(f"[red]Unit {unit_id} not found.[/red]")
                raise typer.Exit(1)
            try:
                session.store.update_unit(unit_id, **updates)
            except (UnknownFieldError, ValidationError) as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(1)
            await session.autosave.flush()
            console.print(f"  Offsite cost: {_money(session.draft.preliminary_offsite_cost)}")

    _run(go())


@unit_app.command("remove")
def unit_remove(unit_id: int = typer.Argument(..., help="Unit id")):
    """Remove a unit."""

    async def go():
        async with _open_session() as session:
            session.store.remove_unit(unit_id)
            await session.autosave.flush()
            console.print(f"  {session.draft.total_units} unit(s) remaining")

    _run(go())


@unit_app.command("list")
def unit_list():
    """Show the units on the draft."""

    async def go():
        async with _open_session() as session:
            table = Table(title="Units")
            table.add_column("ID", justify="right")
            table.add_column("Model")
            table.add_column("Sq ft", justify="right")
            table.add_column("Bed/Bath")
            table.add_column("Price", justify="right")
            for u in session.draft.units:
                table.add_row(str(u.id), u.model or "-", f"{u.square_footage:,}",
                              f"{u.bedrooms}/{u.bathrooms:g}", _money(u.price))
            console.print(table)

    _run(go())


# ---------------------------------------------------------------------------
# cwiz validate / next / back / goto
# ---------------------------------------------------------------------------

@app.command()
def validate(step: Optional[int] = typer.Option(None, "--step", "-s", help="Step to check (default: current)")):
    """Check a step's rules without moving."""

    async def go():
        async with _open_session() as session:
            n = step or session.progress.current_step
            result = session.navigator.validate_step(n)
            if result.valid:
                console.print(f"[green]Step {n} is valid.[/green]")
                return
            _print_errors(result.errors)
            raise typer.Exit(1)

    _run(go())


@app.command("next")
def next_step():
    """Validate the current step and advance."""

    async def go():
        async with _open_session() as session:
            moved = await session.navigator.next_step()
            if not moved:
                if session.progress.validation_errors:
                    _print_errors(session.progress.validation_errors)
                raise typer.Exit(1)
            _print_step(session)

    _run(go())


@app.command()
def back():
    """Go to the previous step."""

    async def go():
        async with _open_session() as session:
            await session.navigator.prev_step()
            _print_step(session)

    _run(go())


@app.command()
def goto(step: int = typer.Argument(..., help="Step number (1-9)")):
    """Jump to a reachable step."""

    async def go():
        async with _open_session() as session:
            if not await session.navigator.go_to_step(step):
                console.print(f"[red]Step {step} is not reachable yet.[/red]")
                raise typer.Exit(1)
            _print_step(session)

    _run(go())


# ---------------------------------------------------------------------------
# cwiz schedule
# ---------------------------------------------------------------------------

@app.command()
def schedule():
    """Show the project timeline and warranty expirations."""
    from cwiz.engine.schedule import project_timeline

    async def go():
        async with _open_session() as session:
            d = session.draft
            timeline = project_timeline(d)
            if timeline is None:
                console.print("[yellow]Set effective_date to see the schedule.[/yellow]")
                return

            table = Table(title=f"Schedule: {d.project_name or d.project_number}")
            table.add_column("Phase")
            table.add_column("Days", justify="right")
            table.add_column("Share", justify="right")
            table.add_column("Ends")
            table.add_row("Design", str(d.design_phase_days), f"{timeline.design_percent:.0f}%",
                          str(timeline.design_complete))
            table.add_row("Manufacturing", str(d.manufacturing_duration_days),
                          f"{timeline.manufacturing_percent:.0f}%", str(timeline.manufacturing_complete))
            table.add_row("On-site", str(d.onsite_duration_days), f"{timeline.onsite_percent:.0f}%",
                          str(timeline.project_complete))
            console.print(table)
            console.print(f"  Total: {timeline.total_days} days, completes {d.estimated_completion_date}")

            warranty = Table(title="Warranty")
            warranty.add_column("Coverage")
            warranty.add_column("Months", justify="right")
            warranty.add_column("Expires")
            warranty.add_row("Fit & finish", str(d.warranty_fit_finish_months), str(d.warranty_fit_finish_expires))
            warranty.add_row("Building envelope", str(d.warranty_building_envelope_months),
                             str(d.warranty_envelope_expires))
            warranty.add_row("Structural", str(d.warranty_structural_months), str(d.warranty_structural_expires))
            console.print(warranty)

    _run(go())


# ---------------------------------------------------------------------------
# cwiz number
# ---------------------------------------------------------------------------

@app.command("check-number")
def check_number(number: Optional[str] = typer.Argument(None, help="Number to check (default: the draft's)")):
    """Ask the backend whether a project number is still free."""

    async def go():
        async with _open_session() as session:
            unique = await session.check_project_number_uniqueness(number)
            shown = number or session.draft.project_number
            if unique is None:
                console.print(f"[yellow]Could not check {shown!r}.[/yellow]")
            elif unique:
                console.print(f"[green]{shown} is available.[/green]")
            else:
                console.print(f"[red]{shown} already exists.[/red]")
                raise typer.Exit(1)

    _run(go())


@app.command("regen-number")
def regen_number():
    """Replace the draft's project number with the next free one."""

    async def go():
        async with _open_session() as session:
            number = await session.regenerate_project_number()
            console.print(f"  Project number: {number or '[yellow]unavailable[/yellow]'}")

    _run(go())


# ---------------------------------------------------------------------------
# cwiz save / test-draft / generate
# ---------------------------------------------------------------------------

@app.command()
def save():
    """Save the draft to the backend now."""

    async def go():
        async with _open_session() as session:
            if await session.save_draft() is None:
                raise typer.Exit(1)

    _run(go())


@app.command("test-draft")
def test_draft():
    """Load pre-filled sample data and jump to the review step."""

    async def go():
        async with _open_session(restore=False) as session:
            session.load_test_draft()
            _print_step(session)

    _run(go())


@app.command()
def generate(confirm: bool = typer.Option(False, "--confirm", help="Confirm the draft has been reviewed")):
    """Generate the contract package."""
    from cwiz.errors import ConfirmationRequiredError
    from cwiz.models import GenerationState
    from cwiz.wizard.generation import STAGE_LABELS

    async def go():
        async with _open_session() as session:
            session.store.set_confirmation(confirm)
            try:
                contracts = await session.generate_contracts()
            except ConfirmationRequiredError as e:
                console.print(f"[red]{e}. Re-run with --confirm.[/red]")
                raise typer.Exit(1)

            p = session.progress
            if p.generation_state == GenerationState.ERROR:
                console.print(f"[red]Stopped at: {STAGE_LABELS[p.generation_step]}[/red]")
                console.print(f"  {p.generation_error}")
                raise typer.Exit(1)

            table = Table(title=f"Contracts for project {session.pipeline.project_id}")
            table.add_column("ID", justify="right")
            table.add_column("Type")
            table.add_column("File")
            table.add_column("Download")
            for c in contracts:
                table.add_row(c.id, c.type, c.filename, c.download_url)
            console.print(table)

    _run(go())


if __name__ == "__main__":
    app()
