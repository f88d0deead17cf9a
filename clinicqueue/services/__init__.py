"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_engine import BookingEngine, BookingStoreProtocol

__all__ = ["BookingEngine", "BookingStoreProtocol"]
