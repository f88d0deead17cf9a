"""
Domain models for slots, bookings and the queue derived from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

import pendulum
from pendulum import DateTime

from .exceptions import InvalidTransition


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start


@dataclass
class WorkingHours:
    """
    Opening hours of a doctor's practice.
    """
    start_time: time
    end_time: time
    exclude_weekdays: List[int]  # 0=Monday, 6=Sunday
    timezone: str = "Europe/Berlin"

    def is_working_day(self, dt: DateTime) -> bool:
        """Check if a given datetime falls on a working day."""
        return dt.day_of_week not in self.exclude_weekdays

    def get_working_hours_for_day(self, day: DateTime) -> TimeRange | None:
        """
        Get the working hours range for a specific day.
        Returns None if it's not a working day.
        """
        if not self.is_working_day(day):
            return None

        start = day.set(hour=self.start_time.hour, minute=self.start_time.minute, second=0, microsecond=0)
        end = day.set(hour=self.end_time.hour, minute=self.end_time.minute, second=0, microsecond=0)

        return TimeRange(start=start, end=end)


class SlotState(str, Enum):
    FREE = "FREE"
    HELD = "HELD"
    BOOKED = "BOOKED"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class Role(str, Enum):
    PATIENT = "PATIENT"
    ADMIN = "ADMIN"


SLOT_TRANSITIONS: Dict[SlotState, FrozenSet[SlotState]] = {
    SlotState.FREE: frozenset({SlotState.HELD}),
    SlotState.HELD: frozenset({SlotState.BOOKED, SlotState.FREE}),
    SlotState.BOOKED: frozenset({SlotState.FREE}),
}

BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset(),
}


def check_transition(table: Dict[Enum, FrozenSet[Enum]], current: Enum, target: Enum) -> None:
    """Raise InvalidTransition unless ``current -> target`` is listed in ``table``."""
    if target not in table[current]:
        raise InvalidTransition(f"{type(current).__name__} cannot move from {current.value} to {target.value}")


@dataclass(frozen=True)
class Doctor:
    id: str
    name: str
    specialization: str = ""
    city: str = ""


@dataclass(frozen=True)
class Slot:
    """
    One bookable interval offered by one doctor.

    The occupancy state lives in the SlotRegistry, not here; ``Slot`` is the
    immutable description handed out to callers together with a state
    snapshot where needed.
    """
    id: str
    doctor_id: str
    time_range: TimeRange

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    @property
    def end(self) -> DateTime:
        return self.time_range.end

    def day(self, timezone: str) -> date:
        """Calendar day of the slot start in the given timezone."""
        return self.start.in_timezone(timezone).date()


@dataclass(frozen=True)
class SlotSummary:
    """Slot plus the occupancy state observed when the summary was taken."""
    slot: Slot
    state: SlotState

    @property
    def id(self) -> str:
        return self.slot.id


@dataclass(frozen=True)
class Requester:
    """Authenticated caller identity supplied by the auth layer."""
    identity: str
    role: Role = Role.PATIENT

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class Booking:
    """
    A patient's claim on a slot.

    Bookings are immutable values; every lifecycle step produces a new
    instance via ``dataclasses.replace`` which the store then persists.
    ``version`` starts at 1 and grows by one with every stored change.
    """
    id: str
    patient_id: str
    slot_id: str
    doctor_id: str
    reason: str
    queue_number: int
    appointment_date: date
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    created_at: DateTime = field(default_factory=lambda: pendulum.now("UTC"))
    updated_at: Optional[DateTime] = None
    version: int = 1

    @property
    def is_active(self) -> bool:
        return self.status is not BookingStatus.CANCELLED


@dataclass(frozen=True)
class QueuePosition:
    people_ahead: int
    estimated_wait_minutes: int


@dataclass(frozen=True)
class BookingView:
    """One row of a patient's dashboard."""
    booking: Booking
    slot: Slot
    doctor: Doctor
    position: Optional[QueuePosition]
