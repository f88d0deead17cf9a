"""
Ownership of bookable slots and their occupancy state.

All occupancy changes funnel through ``try_claim``, ``commit`` and
``release``. Each slot has its own lock; the state check and the write happen
under it without any suspension point, so claims on one slot are
linearizable whether callers are asyncio tasks or OS threads.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import date
from typing import Dict, Iterable, Iterator, List, Tuple

from pendulum import DateTime

from .exceptions import DoctorNotFound, InvalidInput, InvalidSlotState, SlotUnavailable
from .models import SLOT_TRANSITIONS, Doctor, Slot, SlotState, SlotSummary

logger = logging.getLogger(__name__)


class _SlotEntry:
    __slots__ = ("slot", "state", "lock")

    def __init__(self, slot: Slot):
        self.slot = slot
        self.state = SlotState.FREE
        self.lock = threading.Lock()


class AvailableSlots:
    """
    Lazy, restartable view of a doctor's free slots from a given instant.

    Nothing is computed until iteration starts, and every new iteration
    reads the current occupancy again.
    """

    def __init__(self, registry: "SlotRegistry", doctor_id: str, from_time: DateTime):
        self._registry = registry
        self._doctor_id = doctor_id
        self._from_time = from_time

    def __iter__(self) -> Iterator[SlotSummary]:
        for entry in self._registry._entries_for(self._doctor_id):
            if entry.slot.start < self._from_time:
                continue
            with entry.lock:
                state = entry.state
            if state is SlotState.FREE:
                yield SlotSummary(slot=entry.slot, state=state)


class SlotRegistry:
    """
    Owns the slots of every doctor and tracks each slot's occupancy.
    """

    def __init__(self) -> None:
        self._doctors: Dict[str, Doctor] = {}
        self._entries: Dict[str, _SlotEntry] = {}
        self._by_doctor: Dict[str, List[_SlotEntry]] = {}
        # Guards the directory structures above, never a slot's state.
        self._directory_lock = threading.Lock()

    # Directory

    def add_doctor(self, doctor: Doctor) -> None:
        with self._directory_lock:
            if doctor.id in self._doctors:
                raise InvalidInput(f"Doctor {doctor.id} is already registered")
            self._doctors[doctor.id] = doctor
            self._by_doctor[doctor.id] = []

    def get_doctor(self, doctor_id: str) -> Doctor:
        try:
            return self._doctors[doctor_id]
        except KeyError:
            raise DoctorNotFound(f"Unknown doctor: {doctor_id}") from None

    def has_doctor(self, doctor_id: str) -> bool:
        return doctor_id in self._doctors

    def list_doctors(self) -> List[Doctor]:
        return sorted(self._doctors.values(), key=lambda d: d.name.lower())

    def add_slot(self, slot: Slot) -> None:
        """
        Register a new FREE slot.

        Raises:
            DoctorNotFound: if the slot's doctor is not registered
            InvalidInput: if the id is taken or the slot overlaps another
                slot of the same doctor
        """
        with self._directory_lock:
            if slot.doctor_id not in self._doctors:
                raise DoctorNotFound(f"Unknown doctor: {slot.doctor_id}")
            if slot.id in self._entries:
                raise InvalidInput(f"Slot {slot.id} already exists")

            entries = self._by_doctor[slot.doctor_id]
            for existing in entries:
                if existing.slot.time_range.overlaps(slot.time_range):
                    raise InvalidInput(f"Slot {slot.id} overlaps slot {existing.slot.id}")

            entry = _SlotEntry(slot)
            self._entries[slot.id] = entry
            # Replaced rather than mutated so running iterations keep their snapshot.
            self._by_doctor[slot.doctor_id] = sorted(entries + [entry], key=lambda e: e.slot.start)

    def add_slots(self, slots: Iterable[Slot]) -> int:
        count = 0
        for slot in slots:
            self.add_slot(slot)
            count += 1
        return count

    def get_slot(self, slot_id: str) -> Slot:
        entry = self._entries.get(slot_id)
        if entry is None:
            raise SlotUnavailable(f"Unknown slot: {slot_id}")
        return entry.slot

    def state_of(self, slot_id: str) -> SlotState:
        entry = self._entries.get(slot_id)
        if entry is None:
            raise SlotUnavailable(f"Unknown slot: {slot_id}")
        with entry.lock:
            return entry.state

    def _entries_for(self, doctor_id: str) -> List[_SlotEntry]:
        if doctor_id not in self._doctors:
            raise DoctorNotFound(f"Unknown doctor: {doctor_id}")
        return self._by_doctor[doctor_id]

    # Queries

    def list_available(self, doctor_id: str, from_time: DateTime) -> AvailableSlots:
        """
        Return the FREE slots of a doctor starting at or after ``from_time``,
        ascending by start time.
        """
        if doctor_id not in self._doctors:
            raise DoctorNotFound(f"Unknown doctor: {doctor_id}")
        return AvailableSlots(self, doctor_id, from_time)

    @staticmethod
    def group_by_day(summaries: Iterable[SlotSummary], timezone: str) -> List[Tuple[date, List[SlotSummary]]]:
        """Group slot summaries into day buckets, both levels ordered by start."""
        groups: "OrderedDict[date, List[SlotSummary]]" = OrderedDict()
        for summary in sorted(summaries, key=lambda s: s.slot.start):
            groups.setdefault(summary.slot.day(timezone), []).append(summary)
        return list(groups.items())

    # Occupancy transitions

    def try_claim(self, slot_id: str) -> Slot:
        """
        Atomically move a slot FREE -> HELD.

        Raises:
            SlotUnavailable: if the slot is unknown or not FREE
        """
        entry = self._entries.get(slot_id)
        if entry is None:
            raise SlotUnavailable(f"Unknown slot: {slot_id}")

        with entry.lock:
            if SlotState.HELD not in SLOT_TRANSITIONS[entry.state]:
                raise SlotUnavailable(f"Slot {slot_id} is {entry.state.value.lower()}")
            entry.state = SlotState.HELD

        logger.debug("Slot %s held", slot_id)
        return entry.slot

    def commit(self, slot_id: str) -> None:
        """
        Move a held slot HELD -> BOOKED.

        Raises:
            InvalidSlotState: if the slot is unknown or not HELD
        """
        entry = self._entries.get(slot_id)
        if entry is None:
            raise InvalidSlotState(f"Unknown slot: {slot_id}")

        with entry.lock:
            if SlotState.BOOKED not in SLOT_TRANSITIONS[entry.state]:
                raise InvalidSlotState(f"Slot {slot_id} is {entry.state.value}, expected HELD")
            entry.state = SlotState.BOOKED

        logger.debug("Slot %s booked", slot_id)

    def release(self, slot_id: str) -> None:
        """
        Return a HELD or BOOKED slot to FREE. Releasing a FREE slot is a no-op.

        Raises:
            InvalidSlotState: if the slot is unknown
        """
        entry = self._entries.get(slot_id)
        if entry is None:
            raise InvalidSlotState(f"Unknown slot: {slot_id}")

        with entry.lock:
            if entry.state is SlotState.FREE:
                return
            previous = entry.state
            entry.state = SlotState.FREE

        logger.debug("Slot %s released from %s", slot_id, previous.value)
