"""Booking and payment domain events."""
from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Dict, List, Optional


def _jsonable(value: Any) -> Any:
    # Outbox payloads live in a JSON column
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class _OutboxEvent:
    event_type: ClassVar[str]

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))  # type: ignore[call-overload]


@dataclass
class BookingCreated(_OutboxEvent):
    """Fired in the reservation transaction once the booking row exists."""

    event_type: ClassVar[str] = "booking.created"

    booking_id: str
    booking_number: str
    customer_id: str
    provider_id: str
    status: str
    scheduled_at: str
    total_amount: str
    currency: str


@dataclass
class GroupBookingCreated(_OutboxEvent):
    """Fired after the group aggregate is written; notifies participants."""

    event_type: ClassVar[str] = "group_booking.created"

    group_booking_id: str
    ref_number: str
    primary_booking_id: str
    participants: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class DoubleBookingOverridden(_OutboxEvent):
    event_type: ClassVar[str] = "booking.double_booking_override"

    booking_id: str
    conflicting_bookings: List[str]
    authorized_by: Optional[str]


@dataclass
class BookingPostCreationFailed(_OutboxEvent):
    """A best-effort step failed; an external process may retry it."""

    event_type: ClassVar[str] = "booking.post_creation_failed"

    booking_id: str
    step: str
    error: str


@dataclass
class BookingPaid(_OutboxEvent):
    """Fired when gift card and/or wallet covered the amount to collect."""

    event_type: ClassVar[str] = "booking.paid"

    booking_id: str
    payment_provider: str
    amount: str
    currency: str
    status: str


@dataclass
class PaymentInitiated(_OutboxEvent):
    """Fired when a gateway charge was started for the remaining amount."""

    event_type: ClassVar[str] = "booking.payment_initiated"

    booking_id: str
    reference: str
    amount: str
    currency: str
    saved_card: bool = False


@dataclass
class GiftCardShortfall(_OutboxEvent):
    """Fired when a gift card hold was voided after the card charge went through."""

    event_type: ClassVar[str] = "booking.gift_card_shortfall"

    booking_id: str
    payment_reference: str
    shortfall: str
    currency: str
