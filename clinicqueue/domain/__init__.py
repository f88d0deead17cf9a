"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Booking,
    BookingStatus,
    BookingView,
    Doctor,
    PaymentStatus,
    QueuePosition,
    Requester,
    Role,
    Slot,
    SlotState,
    SlotSummary,
    TimeRange,
    WorkingHours,
)
from .queue_estimator import QueueEstimator, QueueNumberAllocator
from .schedule_builder import ScheduleBuilder
from .slot_registry import AvailableSlots, SlotRegistry

__all__ = [
    "AvailableSlots",
    "Booking",
    "BookingStatus",
    "BookingView",
    "Doctor",
    "PaymentStatus",
    "QueueEstimator",
    "QueueNumberAllocator",
    "QueuePosition",
    "Requester",
    "Role",
    "ScheduleBuilder",
    "Slot",
    "SlotRegistry",
    "SlotState",
    "SlotSummary",
    "TimeRange",
    "WorkingHours",
]
