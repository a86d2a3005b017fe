"""Domain events carried through the transactional outbox."""

from .booking_events import (
    BookingCreated,
    BookingPaid,
    BookingPostCreationFailed,
    DoubleBookingOverridden,
    GroupBookingCreated,
    PaymentInitiated,
)

__all__ = [
    "BookingCreated",
    "BookingPaid",
    "BookingPostCreationFailed",
    "DoubleBookingOverridden",
    "GroupBookingCreated",
    "PaymentInitiated",
]
