"""
In-memory booking store for tests, the CLI demo and single-process use.
"""

from __future__ import annotations

import threading
from datetime import date
from typing import Dict, List, Optional

from ..domain.exceptions import ConcurrentUpdate
from ..domain.models import Booking


class InMemoryBookingStore:
    """
    Dictionary-backed implementation of ``BookingStoreProtocol``.

    Bookings are immutable, so the stored objects are handed out directly.
    Nothing is ever deleted: cancelled bookings stay for the patient's history.
    """

    def __init__(self) -> None:
        self._bookings: Dict[str, Booking] = {}
        self._lock = threading.Lock()

    async def get(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            return self._bookings.get(booking_id)

    async def save(self, booking: Booking) -> None:
        """Store ``booking`` if it directly succeeds the stored version."""
        with self._lock:
            current = self._bookings.get(booking.id)
            stored_version = current.version if current is not None else 0
            if booking.version != stored_version + 1:
                raise ConcurrentUpdate(
                    f"Booking {booking.id} is at version {stored_version}, cannot store version {booking.version}"
                )
            self._bookings[booking.id] = booking

    async def list_for_patient(self, patient_id: str) -> List[Booking]:
        with self._lock:
            return [b for b in self._bookings.values() if b.patient_id == patient_id]

    async def list_for_doctor_day(self, doctor_id: str, day: date) -> List[Booking]:
        with self._lock:
            return [
                b for b in self._bookings.values()
                if b.doctor_id == doctor_id and b.appointment_date == day
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._bookings)
