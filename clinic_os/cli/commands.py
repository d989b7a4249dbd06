"""CLI commands for Clinic OS."""

import asyncio
from datetime import date
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_os.config import get_settings
from clinic_os.core.database import init_db, make_engine
from clinic_os.core.repository import ClinicSettingsRepository
from clinic_os.scheduling.booking import BookingService, PartnerLocks
from clinic_os.scheduling.errors import SchedulingError
from clinic_os.scheduling.models import AvailabilityResult, ClinicSettings
from clinic_os.scheduling.timeutil import DAY_NAMES

app = typer.Typer(
    name="clinic-os",
    help="Appointment booking with conflict detection for a single clinic",
    add_completion=False,
)
console = Console()

T = TypeVar("T")


def _with_session(work: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Run *work* in a fresh engine/session bound to this command's event loop."""

    async def runner() -> T:
        engine = make_engine(get_settings().database_url)
        try:
            await init_db(engine)
            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with factory() as session:
                result = await work(session)
                await session.commit()
                return result
        finally:
            await engine.dispose()

    return asyncio.run(runner())


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting Clinic OS API server on {host}:{port}")
    uvicorn.run(
        "clinic_os.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command("init-db")
def init_db_command():
    """Create the database tables and default clinic settings."""

    async def noop(session: AsyncSession) -> None:
        return None

    _with_session(noop)
    console.print("[green]Database initialized[/green]")


@app.command()
def settings():
    """Show the clinic's opening hours and booking policy."""
    clinic = _with_session(lambda session: ClinicSettingsRepository(session).load_or_default())
    _display_settings(clinic)


def _display_settings(clinic: ClinicSettings) -> None:
    table = Table(title=f"{clinic.name} - opening hours")
    table.add_column("Day", style="cyan")
    table.add_column("Open")
    table.add_column("Hours")
    table.add_column("Lunch")

    for day_of_week, day_name in enumerate(DAY_NAMES):
        hours = clinic.hours_for(day_of_week)
        if hours is None or not hours.is_open:
            table.add_row(day_name, "[red]closed[/red]", "-", "-")
            continue
        lunch = hours.lunch_interval()
        table.add_row(
            day_name,
            "[green]open[/green]",
            f"{hours.open_time or '00:00'} - {hours.close_time or '24:00'}",
            lunch.label() if lunch else "-",
        )
    console.print(table)

    policy = (
        f"Weekend bookings: {'allowed' if clinic.allow_weekend_bookings else 'not allowed'}\n"
        f"Minimum notice: {clinic.min_booking_hours}h\n"
        f"Maximum advance: {clinic.max_booking_days} days\n"
        f"Edit cancelled: {'yes' if clinic.allow_cancelled_movement else 'no'}\n"
        f"Edit completed: {'yes' if clinic.allow_completed_movement else 'no'}"
    )
    console.print(Panel(policy, title="Booking policy"))


@app.command()
def check(
    partner_id: str = typer.Argument(..., help="Partner id"),
    day: str = typer.Argument(..., help="Date as YYYY-MM-DD"),
    start_time: str = typer.Argument(..., help="Start time HH:MM"),
    end_time: str = typer.Argument(..., help="End time HH:MM"),
    room_id: Optional[str] = typer.Option(None, "--room", "-r", help="Room id"),
):
    """Check whether a slot is bookable and list every conflict."""
    try:
        parsed_day = date.fromisoformat(day)
    except ValueError:
        console.print(f"[red]Invalid date: {day}. Use YYYY-MM-DD[/red]")
        raise typer.Exit(1)

    cfg = get_settings()

    async def run(session: AsyncSession) -> AvailabilityResult:
        service = BookingService(
            session,
            PartnerLocks(),
            override_scope=cfg.encaixe_override_scope,
            slot_minutes=cfg.slot_minutes,
            suggestion_count=cfg.suggestion_count,
        )
        return await service.check_availability(partner_id, parsed_day, start_time, end_time, room_id=room_id)

    try:
        result = _with_session(run)
    except SchedulingError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    _display_availability(result, f"{partner_id} {parsed_day} {start_time}-{end_time}")
    if not result.available:
        raise typer.Exit(1)


def _display_availability(result: AvailabilityResult, title: Any) -> None:
    if result.available:
        console.print(f"[green]Available:[/green] {title}")
        return

    table = Table(title=f"Conflicts for {title}")
    table.add_column("Type", style="cyan")
    table.add_column("Message")
    table.add_column("Time")
    for conflict in result.conflicts:
        slot = conflict.time_slot
        table.add_row(
            conflict.type.value,
            conflict.message,
            f"{slot.start_time}-{slot.end_time}" if slot else "-",
        )
    console.print(table)

    if result.suggested_times:
        suggestions = ", ".join(f"{s.start_time}-{s.end_time}" for s in result.suggested_times)
        console.print(f"[yellow]Suggested times:[/yellow] {suggestions}")


@app.command()
def version():
    """Show version information."""
    from clinic_os import __version__

    console.print(f"Clinic OS v{__version__}")
