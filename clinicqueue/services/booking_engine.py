"""
Application service driving the booking lifecycle.

The engine is the only component that mutates slot occupancy and booking
state. It coordinates the ``SlotRegistry`` (exclusivity), the
``QueueNumberAllocator`` (ordering) and a booking store reached through a
small async protocol, so the in-memory store used in tests and a real
database adapter are interchangeable.

Every mutating operation either completes fully or leaves slot occupancy,
the booking record and the queue counter as they were before the call.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from functools import partial
from datetime import date
from typing import Awaitable, Callable, List, Optional, Protocol

import pendulum

from ..domain.exceptions import (
    AlreadyCancelled,
    BookingError,
    BookingNotFound,
    ConcurrentUpdate,
    InvalidInput,
    Unauthorized,
    Unavailable,
)
from ..domain.models import (
    BOOKING_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    Booking,
    BookingStatus,
    BookingView,
    PaymentStatus,
    QueuePosition,
    Requester,
    check_transition,
)
from ..domain.queue_estimator import QueueEstimator, QueueNumberAllocator
from ..domain.slot_registry import SlotRegistry

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 5


class BookingStoreProtocol(Protocol):
    """Protocol describing the persistence behaviour needed by the engine."""

    async def get(self, booking_id: str) -> Optional[Booking]:
        """Return the booking or None."""

    async def save(self, booking: Booking) -> None:
        """
        Insert or replace a booking.

        The write is conditional: it must raise ConcurrentUpdate unless
        ``booking.version`` is exactly one above the stored version (0 when
        the booking is new).
        """

    async def list_for_patient(self, patient_id: str) -> List[Booking]:
        """Return every booking of a patient, cancelled ones included."""

    async def list_for_doctor_day(self, doctor_id: str, day: date) -> List[Booking]:
        """Return every booking of a doctor on one calendar day."""


def _new_booking_id() -> str:
    return uuid.uuid4().hex


class BookingEngine:
    """
    Create, pay, cancel and reschedule bookings.

    Booking mutations hold no lock across awaits. Each one reads the
    booking, computes the next version and writes it conditionally; when
    another request changed the booking in between, the mutation starts
    over from a fresh read. This works the same for asyncio tasks sharing a
    loop and for threads each running their own loop.
    """

    def __init__(
        self,
        registry: SlotRegistry,
        store: BookingStoreProtocol,
        estimator: QueueEstimator,
        *,
        timezone: str = "Europe/Berlin",
        allocator: QueueNumberAllocator | None = None,
        id_factory: Callable[[], str] = _new_booking_id,
    ) -> None:
        self._registry = registry
        self._store = store
        self._estimator = estimator
        self._allocator = allocator or QueueNumberAllocator()
        self._id_factory = id_factory
        self.timezone = timezone

    # Commands

    async def create_booking(
        self,
        doctor_id: str,
        slot_id: str,
        patient: Requester,
        reason: str,
    ) -> Booking:
        """
        Claim a slot for a patient and record a PENDING booking on it.

        Raises:
            InvalidInput: empty reason, missing patient identity, or a slot
                that belongs to a different doctor
            DoctorNotFound: unknown doctor
            SlotUnavailable: the slot is taken, held or unknown
            Unavailable: the booking could not be persisted
        """
        cleaned_reason = (reason or "").strip()
        if not cleaned_reason:
            raise InvalidInput("Reason for visit must not be empty")
        if not patient.identity:
            raise InvalidInput("Patient identity is required")

        self._registry.get_doctor(doctor_id)
        slot = self._registry.try_claim(slot_id)

        day: Optional[date] = None
        queue_number: Optional[int] = None
        try:
            if slot.doctor_id != doctor_id:
                raise InvalidInput(f"Slot {slot_id} does not belong to doctor {doctor_id}")

            day = slot.day(self.timezone)
            queue_number = self._allocator.reserve(doctor_id, day)
            booking = Booking(
                id=self._id_factory(),
                patient_id=patient.identity,
                slot_id=slot.id,
                doctor_id=doctor_id,
                reason=cleaned_reason,
                queue_number=queue_number,
                appointment_date=day,
            )
            self._registry.commit(slot.id)
        except BaseException:
            self._rollback_claim(slot.id, doctor_id, day, queue_number)
            raise

        await self._settled_write(
            booking,
            on_failure=partial(self._rollback_claim, slot.id, doctor_id, day, queue_number),
        )

        logger.info(
            "Booking %s created for patient %s on slot %s (queue #%s)",
            booking.id, booking.patient_id, slot.id, queue_number,
        )
        return booking

    async def confirm_payment(self, booking_id: str, success: bool) -> Booking:
        """
        Apply the payment provider's outcome to a booking.

        A successful payment confirms the booking; repeating it is a no-op.
        A failed payment only marks the payment as FAILED so the patient may
        retry; the slot stays booked.

        Raises:
            BookingNotFound: unknown booking
            AlreadyCancelled: the booking was cancelled
            InvalidTransition: a failure reported for an already paid booking
            ConcurrentUpdate: the booking kept changing underneath every attempt
        """
        return await self._retry_on_conflict(booking_id, partial(self._confirm_once, booking_id, success))

    async def cancel(self, booking_id: str, requester: Requester) -> Booking:
        """
        Cancel a booking and free its slot. Cancelling twice is a no-op.

        Raises:
            BookingNotFound: unknown booking
            Unauthorized: requester is neither the owner nor an administrator
            Unavailable: the cancellation could not be persisted
        """
        return await self._retry_on_conflict(booking_id, partial(self._cancel_once, booking_id, requester))

    async def reschedule(self, booking_id: str, new_slot_id: str, requester: Requester) -> Booking:
        """
        Move a booking to another slot of the same doctor.

        The new slot is claimed first; the old one is released only after
        the moved booking is stored. On any failure the booking keeps its old
        slot and the new slot is left as it was.

        Raises:
            BookingNotFound: unknown booking
            Unauthorized: requester is neither the owner nor an administrator
            AlreadyCancelled: the booking was cancelled
            SlotUnavailable: the new slot cannot be claimed
            InvalidInput: the new slot belongs to another doctor
            Unavailable: the move could not be persisted
        """
        return await self._retry_on_conflict(
            booking_id, partial(self._reschedule_once, booking_id, new_slot_id, requester)
        )

    # Queries

    async def get_booking(self, booking_id: str) -> Booking:
        return await self._load(booking_id)

    async def queue_position(self, booking_id: str) -> Optional[QueuePosition]:
        """Current position of a booking in its doctor's day; None once cancelled."""
        booking = await self._load(booking_id)
        return await self._position_of(booking)

    async def bookings_for_patient(self, patient_id: str) -> List[BookingView]:
        """
        Everything a patient's dashboard shows, ordered by appointment time.

        Computed from the store and the registry on every call.
        """
        try:
            bookings = await self._store.list_for_patient(patient_id)
        except BookingError:
            raise
        except Exception as exc:
            raise Unavailable(f"Could not load bookings of patient {patient_id}: {exc}") from exc

        views: List[BookingView] = []
        for booking in bookings:
            slot = self._registry.get_slot(booking.slot_id)
            views.append(
                BookingView(
                    booking=booking,
                    slot=slot,
                    doctor=self._registry.get_doctor(booking.doctor_id),
                    position=await self._position_of(booking),
                )
            )

        views.sort(key=lambda view: (view.slot.start, view.booking.created_at))
        return views

    # Single attempts of the booking mutations

    async def _confirm_once(self, booking_id: str, success: bool) -> Booking:
        booking = await self._load(booking_id)
        if booking.status is BookingStatus.CANCELLED:
            raise AlreadyCancelled(f"Booking {booking_id} is cancelled")

        if success:
            if booking.payment_status is PaymentStatus.PAID:
                logger.debug("Booking %s already paid, ignoring repeated callback", booking_id)
                return booking
            check_transition(PAYMENT_TRANSITIONS, booking.payment_status, PaymentStatus.PAID)
            check_transition(BOOKING_TRANSITIONS, booking.status, BookingStatus.CONFIRMED)
            updated = self._next_version(booking, payment_status=PaymentStatus.PAID, status=BookingStatus.CONFIRMED)
        else:
            check_transition(PAYMENT_TRANSITIONS, booking.payment_status, PaymentStatus.FAILED)
            updated = self._next_version(booking, payment_status=PaymentStatus.FAILED)

        await self._persist(updated)
        logger.info("Booking %s payment %s", booking_id, updated.payment_status.value)
        return updated

    async def _cancel_once(self, booking_id: str, requester: Requester) -> Booking:
        booking = await self._load(booking_id)
        self._authorize(booking, requester, "cancel")

        if booking.status is BookingStatus.CANCELLED:
            return booking

        check_transition(BOOKING_TRANSITIONS, booking.status, BookingStatus.CANCELLED)
        updated = self._next_version(booking, status=BookingStatus.CANCELLED)
        await self._settled_write(updated, on_success=partial(self._registry.release, booking.slot_id))

        logger.info("Booking %s cancelled by %s, slot %s is free", booking_id, requester.identity, booking.slot_id)
        return updated

    async def _reschedule_once(self, booking_id: str, new_slot_id: str, requester: Requester) -> Booking:
        booking = await self._load(booking_id)
        self._authorize(booking, requester, "reschedule")
        if booking.status is BookingStatus.CANCELLED:
            raise AlreadyCancelled(f"Booking {booking_id} is cancelled")

        new_slot = self._registry.try_claim(new_slot_id)

        day: Optional[date] = None
        queue_number: Optional[int] = None
        try:
            if new_slot.doctor_id != booking.doctor_id:
                raise InvalidInput(
                    f"Slot {new_slot_id} belongs to doctor {new_slot.doctor_id}, "
                    f"booking {booking_id} is with doctor {booking.doctor_id}"
                )

            day = new_slot.day(self.timezone)
            queue_number = self._allocator.reserve(booking.doctor_id, day)
            updated = self._next_version(
                booking,
                slot_id=new_slot.id,
                queue_number=queue_number,
                appointment_date=day,
            )
            self._registry.commit(new_slot.id)
        except BaseException:
            self._rollback_claim(new_slot.id, booking.doctor_id, day, queue_number)
            raise

        await self._settled_write(
            updated,
            on_success=partial(self._registry.release, booking.slot_id),
            on_failure=partial(self._rollback_claim, new_slot.id, booking.doctor_id, day, queue_number),
        )

        logger.info(
            "Booking %s moved from slot %s to %s (queue #%s)",
            booking_id, booking.slot_id, new_slot.id, queue_number,
        )
        return updated

    # Helpers

    async def _retry_on_conflict(self, booking_id: str, attempt: Callable[[], Awaitable[Booking]]) -> Booking:
        """Run ``attempt`` again from a fresh read whenever the store reports a concurrent change."""
        for _ in range(MAX_UPDATE_ATTEMPTS - 1):
            try:
                return await attempt()
            except ConcurrentUpdate:
                logger.debug("Booking %s changed concurrently, retrying", booking_id)
        return await attempt()

    @staticmethod
    def _next_version(booking: Booking, **changes) -> Booking:
        return replace(booking, updated_at=pendulum.now("UTC"), version=booking.version + 1, **changes)

    async def _load(self, booking_id: str) -> Booking:
        try:
            booking = await self._store.get(booking_id)
        except BookingError:
            raise
        except Exception as exc:
            raise Unavailable(f"Could not load booking {booking_id}: {exc}") from exc

        if booking is None:
            raise BookingNotFound(f"Unknown booking: {booking_id}")
        return booking

    async def _persist(self, booking: Booking) -> None:
        try:
            await self._store.save(booking)
        except BookingError:
            raise
        except Exception as exc:
            raise Unavailable(f"Could not store booking {booking.id}: {exc}") from exc

    async def _settled_write(
        self,
        booking: Booking,
        on_success: Optional[Callable[[], None]] = None,
        on_failure: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Store ``booking`` and apply the slot side effects of the outcome.

        The write is shielded from cancellation of the caller, and the
        callbacks run when the write itself finishes, so slot occupancy
        always matches what the store actually holds.
        """
        write = asyncio.ensure_future(self._persist(booking))

        def settle(done: asyncio.Future) -> None:
            if not done.cancelled() and done.exception() is None:
                if on_success is not None:
                    on_success()
            elif on_failure is not None:
                on_failure()

        write.add_done_callback(settle)
        await asyncio.shield(write)

    async def _position_of(self, booking: Booking) -> Optional[QueuePosition]:
        if not booking.is_active:
            return None
        try:
            same_day = await self._store.list_for_doctor_day(booking.doctor_id, booking.appointment_date)
        except BookingError:
            raise
        except Exception as exc:
            raise Unavailable(f"Could not load the queue of doctor {booking.doctor_id}: {exc}") from exc

        return self._estimator.position(
            booking.doctor_id,
            booking.appointment_date,
            booking.queue_number,
            same_day,
        )

    @staticmethod
    def _authorize(booking: Booking, requester: Requester, action: str) -> None:
        if requester.is_admin or requester.identity == booking.patient_id:
            return
        logger.warning("%s may not %s booking %s", requester.identity, action, booking.id)
        raise Unauthorized(f"Not allowed to {action} booking {booking.id}")

    def _rollback_claim(
        self,
        slot_id: str,
        doctor_id: str,
        day: Optional[date],
        queue_number: Optional[int],
    ) -> None:
        """Undo a claim and a queue reservation made by the failing operation."""
        self._registry.release(slot_id)
        if day is not None and queue_number is not None:
            self._allocator.give_back(doctor_id, day, queue_number)
        logger.warning("Rolled back claim on slot %s", slot_id)
