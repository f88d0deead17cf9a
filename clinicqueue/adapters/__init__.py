"""
Adapters layer - Persistence and payment integrations.
"""

from .fake_payment import FakePaymentGateway, PaymentCallback
from .memory_store import InMemoryBookingStore

__all__ = ["FakePaymentGateway", "InMemoryBookingStore", "PaymentCallback"]
