"""
Main CLI application using Typer.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.fake_payment import FakePaymentGateway
from ..adapters.memory_store import InMemoryBookingStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookingError
from ..domain.models import Booking, Requester
from ..domain.queue_estimator import QueueEstimator
from ..domain.schedule_builder import ScheduleBuilder
from ..domain.slot_registry import SlotRegistry
from ..services.booking_engine import BookingEngine

app = typer.Typer(
    name="clinicqueue",
    help="Book clinic appointments and follow the waiting queue",
    add_completion=False
)

console = Console()

logger = logging.getLogger(__name__)

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


@dataclass
class Clinic:
    """Everything one CLI invocation works with, wired together."""
    config: AppConfig
    registry: SlotRegistry
    engine: BookingEngine
    payments: FakePaymentGateway


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    return AppConfig.load_from_yaml(config_path)


def _build_clinic(config: AppConfig, start: pendulum.DateTime, days: int) -> Clinic:
    """Register the configured doctors and generate their slots for ``days`` days."""
    registry = SlotRegistry()
    builder = ScheduleBuilder(config.working_hours(), slot_minutes=config.schedule.slot_minutes)
    end = start.add(days=days - 1).end_of("day")

    for doctor in config.doctors:
        registry.add_doctor(doctor.to_domain())
        count = registry.add_slots(builder.build_slots(doctor.id, start, end))
        logger.debug("Generated %d slots for %s", count, doctor.id)

    engine = BookingEngine(
        registry=registry,
        store=InMemoryBookingStore(),
        estimator=QueueEstimator(registry, average_visit_minutes=config.average_visit_minutes),
        timezone=config.timezone,
    )
    payments = FakePaymentGateway(engine, test_mode=config.payment_test_mode)
    return Clinic(config=config, registry=registry, engine=engine, payments=payments)


def _parse_day(value: Optional[str], tz: str) -> pendulum.DateTime:
    if not value:
        return pendulum.now(tz).start_of("day")
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).start_of("day")
    except Exception as e:
        console.print(f"[red]Invalid date '{value}': {e}[/red]")
        raise typer.Exit(1)


def _describe(booking: Booking) -> str:
    return (
        f"status={booking.status.value} payment={booking.payment_status.value} "
        f"queue=#{booking.queue_number} slot={booking.slot_id}"
    )


@app.command()
def doctors(config_file: ConfigOption = None):
    """
    List all configured doctors.
    """
    try:
        config = _load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not config.doctors:
        console.print("[yellow]No doctors defined in the config file.[/yellow]")
        return

    table = Table(title="Doctors", show_header=True, header_style="bold cyan")
    table.add_column("Id", style="bold yellow")
    table.add_column("Name")
    table.add_column("Specialization", style="dim")
    table.add_column("City", style="dim")

    for doctor in config.doctors:
        table.add_row(doctor.id, doctor.name, doctor.specialization, doctor.city)

    console.print()
    console.print(table)
    console.print()


@app.command()
def slots(
    doctor: Annotated[str, typer.Argument(help="Doctor id or name")],
    config_file: ConfigOption = None,
    start: Annotated[Optional[str], typer.Option("--from", help="First day (YYYY-MM-DD), defaults to today")] = None,
    days: Annotated[int, typer.Option("--days", "-d", min=1, help="Number of days to show")] = 7,
    verbose: VerboseOption = False,
):
    """
    Show the free slots of a doctor grouped by day.

    Examples:

        clinicqueue slots d-1
        clinicqueue slots "Dr. Weber" --from 2024-11-25 --days 3
    """
    _setup_logging(verbose)
    try:
        config = _load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    doctor_config = config.find_doctor(doctor)
    if doctor_config is None:
        console.print(f"[bold red]Error:[/bold red] Unknown doctor '{doctor}'")
        raise typer.Exit(1)

    first_day = _parse_day(start, config.timezone)
    clinic = _build_clinic(config, first_day, days)
    available = clinic.registry.list_available(doctor_config.id, first_day)
    groups = SlotRegistry.group_by_day(available, config.timezone)

    console.print(f"\n[bold cyan]Free slots of {doctor_config.name}[/bold cyan]\n")
    if not groups:
        console.print("[yellow]No free slots in this period.[/yellow]\n")
        return

    for day, summaries in groups:
        console.print(f"[bold]{pendulum.date(day.year, day.month, day.day).format('dddd, DD.MM.YYYY')}[/bold]")
        for summary in summaries:
            console.print(f"  {summary.slot.id}  {summary.slot.start.format('HH:mm')} - {summary.slot.end.format('HH:mm')}")
    console.print()


async def _run_demo(clinic: Clinic, doctor_id: str, from_time: pendulum.DateTime) -> None:
    engine = clinic.engine
    first, second, third = [s.slot for s in list(clinic.registry.list_available(doctor_id, from_time))[:3]]
    alice = Requester("alice@example.com")
    bob = Requester("bob@example.com")

    booking = await engine.create_booking(doctor_id, first.id, alice, "checkup")
    console.print(f"[green]✓[/green] Alice booked {first.id}: {_describe(booking)}")

    rival = await asyncio.gather(
        engine.create_booking(doctor_id, second.id, alice, "follow-up"),
        engine.create_booking(doctor_id, second.id, bob, "fever"),
        return_exceptions=True,
    )
    winners = [r for r in rival if isinstance(r, Booking)]
    losers = [r for r in rival if isinstance(r, BookingError)]
    console.print(
        f"[green]✓[/green] Concurrent claims on {second.id}: {len(winners)} booked, "
        f"{len(losers)} refused ({', '.join(type(e).__name__ for e in losers)})"
    )

    booking = await clinic.payments.pay(booking.id)
    console.print(f"[green]✓[/green] Payment received: {_describe(booking)}")

    booking = await engine.reschedule(booking.id, third.id, alice)
    console.print(f"[green]✓[/green] Rescheduled: {_describe(booking)}")

    table = Table(title="Alice's bookings", show_header=True, header_style="bold cyan")
    table.add_column("Doctor")
    table.add_column("When")
    table.add_column("Status")
    table.add_column("Ahead", justify="right")
    table.add_column("Wait", justify="right")
    for view in await engine.bookings_for_patient(alice.identity):
        position = view.position
        table.add_row(
            view.doctor.name,
            view.slot.start.format("DD.MM.YYYY HH:mm"),
            f"{view.booking.status.value} / {view.booking.payment_status.value}",
            str(position.people_ahead) if position else "-",
            f"{position.estimated_wait_minutes} min" if position else "-",
        )
    console.print()
    console.print(table)

    booking = await engine.cancel(booking.id, alice)
    console.print(f"[green]✓[/green] Cancelled: {_describe(booking)}, slot {third.id} is {clinic.registry.state_of(third.id).value}")


@app.command()
def demo(
    config_file: ConfigOption = None,
    doctor: Annotated[Optional[str], typer.Option("--doctor", help="Doctor id or name, defaults to the first one")] = None,
    verbose: VerboseOption = False,
):
    """
    Walk through a booking lifecycle against an in-memory clinic.
    """
    _setup_logging(verbose)
    try:
        config = _load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    doctor_config = config.find_doctor(doctor) if doctor else (config.doctors[0] if config.doctors else None)
    if doctor_config is None:
        console.print("[bold red]Error:[/bold red] No matching doctor configured")
        raise typer.Exit(1)

    # Tomorrow onwards, so today's already elapsed hours never matter.
    from_time = pendulum.now(config.timezone).add(days=1).start_of("day")
    clinic = _build_clinic(config, from_time, days=14)

    if len(list(clinic.registry.list_available(doctor_config.id, from_time))) < 3:
        console.print("[bold red]Error:[/bold red] The schedule needs at least three slots for the demo")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold]{doctor_config.name}[/bold] ({doctor_config.specialization or 'general'})\n"
        f"Payment test mode: {'on' if config.payment_test_mode else 'off'}",
        title="clinicqueue demo"
    ))

    try:
        asyncio.run(_run_demo(clinic, doctor_config.id, from_time))
    except BookingError as e:
        console.print(f"[bold red]{type(e).__name__}:[/bold red] {e}")
        raise typer.Exit(1)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]clinicqueue[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
