"""
Stand-in payment provider used when the clinic runs in payment test mode.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from pydantic import BaseModel, ValidationError, field_validator

from ..domain.exceptions import InvalidInput, Unavailable
from ..domain.models import Booking
from ..services.booking_engine import BookingEngine

logger = logging.getLogger(__name__)


class PaymentCallback(BaseModel):
    """Payload the payment provider posts back once a charge settles."""
    booking_id: str
    success: bool

    @field_validator("booking_id")
    @classmethod
    def validate_booking_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("booking_id must not be empty")
        return value


class FakePaymentGateway:
    """
    Simulates the external payment provider.

    It never talks to a real provider: ``pay`` immediately reports the
    requested outcome back to the engine, exactly as the provider's callback
    would. Outside test mode every charge is refused.
    """

    def __init__(self, engine: BookingEngine, test_mode: bool = True):
        self._engine = engine
        self.test_mode = test_mode

    async def pay(self, booking_id: str, succeed: bool = True) -> Booking:
        """
        Pretend to charge the patient for a booking and deliver the outcome.

        Raises:
            Unavailable: if test mode is disabled
        """
        if not self.test_mode:
            raise Unavailable("Payment test mode is disabled; no payment provider is configured")

        logger.info("Fake payment for booking %s: %s", booking_id, "success" if succeed else "failure")
        return await self._engine.confirm_payment(booking_id, succeed)

    async def handle_callback(self, payload: Dict[str, Any]) -> Booking:
        """
        Validate a raw provider callback and apply it.

        Raises:
            InvalidInput: if the payload is malformed
        """
        try:
            callback = PaymentCallback(**payload)
        except ValidationError as exc:
            raise InvalidInput(f"Malformed payment callback: {exc}") from exc

        return await self._engine.confirm_payment(callback.booking_id, callback.success)
