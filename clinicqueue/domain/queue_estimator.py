"""
Queue numbers and waiting estimates per doctor and calendar day.
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Dict, Iterable, Protocol, Tuple

from .exceptions import DoctorNotFound
from .models import Booking, QueuePosition

logger = logging.getLogger(__name__)

DEFAULT_AVERAGE_VISIT_MINUTES = 15


class DoctorDirectoryProtocol(Protocol):
    """Anything that can tell whether a doctor id is known."""

    def has_doctor(self, doctor_id: str) -> bool:
        ...


class QueueEstimator:
    """
    Computes how many patients are ahead of a queue number and how long the
    wait is likely to be.

    Stateless: the booking set is passed in on every call, so the answer
    always reflects the current bookings and nothing is cached.
    """

    def __init__(
        self,
        directory: DoctorDirectoryProtocol,
        average_visit_minutes: int = DEFAULT_AVERAGE_VISIT_MINUTES,
    ) -> None:
        if average_visit_minutes < 0:
            raise ValueError("average_visit_minutes must not be negative")
        self._directory = directory
        self.average_visit_minutes = average_visit_minutes

    def position(
        self,
        doctor_id: str,
        day: date,
        queue_number: int,
        bookings: Iterable[Booking],
    ) -> QueuePosition:
        """
        Count active bookings of the same doctor and day with a smaller queue
        number.

        Raises:
            DoctorNotFound: if the doctor is unknown
        """
        if not self._directory.has_doctor(doctor_id):
            raise DoctorNotFound(f"Unknown doctor: {doctor_id}")

        ahead = sum(
            1
            for booking in bookings
            if booking.is_active
            and booking.doctor_id == doctor_id
            and booking.appointment_date == day
            and booking.queue_number < queue_number
        )
        return QueuePosition(
            people_ahead=ahead,
            estimated_wait_minutes=ahead * self.average_visit_minutes,
        )


class QueueNumberAllocator:
    """
    Hands out monotonically increasing queue numbers per (doctor, day).

    A reserved number that is given back while it is still the latest one is
    reused; otherwise the gap stays. Numbers are never handed out twice.
    """

    def __init__(self) -> None:
        self._counters: Dict[Tuple[str, date], int] = {}
        self._lock = threading.Lock()

    def reserve(self, doctor_id: str, day: date) -> int:
        key = (doctor_id, day)
        with self._lock:
            number = self._counters.get(key, 0) + 1
            self._counters[key] = number
        return number

    def give_back(self, doctor_id: str, day: date, number: int) -> None:
        key = (doctor_id, day)
        with self._lock:
            if self._counters.get(key) == number:
                self._counters[key] = number - 1
            else:
                logger.debug("Queue number %s for %s on %s left as a gap", number, doctor_id, day)

    def current(self, doctor_id: str, day: date) -> int:
        with self._lock:
            return self._counters.get((doctor_id, day), 0)
