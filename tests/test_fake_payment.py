"""
Tests for the test-mode payment gateway.
"""

import asyncio

import pendulum
import pytest

from clinicqueue.adapters.fake_payment import FakePaymentGateway
from clinicqueue.adapters.memory_store import InMemoryBookingStore
from clinicqueue.domain.exceptions import BookingNotFound, InvalidInput, Unavailable
from clinicqueue.domain.models import BookingStatus, Doctor, PaymentStatus, Requester, Slot, TimeRange
from clinicqueue.domain.queue_estimator import QueueEstimator
from clinicqueue.domain.slot_registry import SlotRegistry
from clinicqueue.services.booking_engine import BookingEngine

PATIENT = Requester("p1@example.com")


def _build(test_mode: bool = True):
    registry = SlotRegistry()
    registry.add_doctor(Doctor(id="d1", name="Dr. Weber"))
    start = pendulum.parse("2024-11-25 09:00", tz="Europe/Berlin")
    registry.add_slot(Slot(id="S", doctor_id="d1", time_range=TimeRange(start=start, end=start.add(minutes=30))))
    engine = BookingEngine(
        registry=registry,
        store=InMemoryBookingStore(),
        estimator=QueueEstimator(registry),
        timezone="Europe/Berlin",
    )
    booking = asyncio.run(engine.create_booking("d1", "S", PATIENT, "checkup"))
    return FakePaymentGateway(engine, test_mode=test_mode), booking


def test_pay_confirms_booking():
    gateway, booking = _build()

    paid = asyncio.run(gateway.pay(booking.id))

    assert paid.status is BookingStatus.CONFIRMED
    assert paid.payment_status is PaymentStatus.PAID


def test_declined_payment_marks_failure():
    gateway, booking = _build()

    declined = asyncio.run(gateway.pay(booking.id, succeed=False))

    assert declined.status is BookingStatus.PENDING
    assert declined.payment_status is PaymentStatus.FAILED


def test_pay_refused_outside_test_mode():
    gateway, booking = _build(test_mode=False)

    with pytest.raises(Unavailable):
        asyncio.run(gateway.pay(booking.id))


def test_callback_payload_is_applied():
    gateway, booking = _build()

    paid = asyncio.run(gateway.handle_callback({"booking_id": booking.id, "success": True}))
    again = asyncio.run(gateway.handle_callback({"booking_id": booking.id, "success": True}))

    assert paid.payment_status is PaymentStatus.PAID
    assert again == paid


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"booking_id": "  ", "success": True},
        {"booking_id": "b1"},
        {"booking_id": "b1", "success": "maybe"},
    ],
)
def test_malformed_callback(payload):
    gateway, _ = _build()

    with pytest.raises(InvalidInput):
        asyncio.run(gateway.handle_callback(payload))


def test_callback_for_unknown_booking():
    gateway, _ = _build()

    with pytest.raises(BookingNotFound):
        asyncio.run(gateway.handle_callback({"booking_id": "nope", "success": True}))
