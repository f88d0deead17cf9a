"""
Domain-specific exception hierarchy for the clinic booking engine.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""

    retryable = False


class InvalidInput(BookingError):
    """Raised when a request field is missing or malformed."""


class SlotUnavailable(BookingError):
    """Raised when a slot cannot be claimed (taken, held or unknown)."""

    retryable = True


class InvalidSlotState(BookingError):
    """Raised when a slot is not in the state an operation requires."""


class BookingNotFound(BookingError):
    """Raised when a booking id is unknown."""


class DoctorNotFound(BookingError):
    """Raised when a doctor id is unknown."""


class Unauthorized(BookingError):
    """Raised when the requester may not act on a booking."""


class AlreadyCancelled(BookingError):
    """Raised when a cancelled booking is asked to change."""


class InvalidTransition(BookingError):
    """Raised when a status change is not in the transition table."""


class Unavailable(BookingError):
    """Raised when persistence or another collaborator fails."""

    retryable = True


class ConcurrentUpdate(BookingError):
    """Raised when a booking changed between being read and being written."""

    retryable = True
