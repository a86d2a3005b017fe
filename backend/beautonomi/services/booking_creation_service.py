# backend/beautonomi/services/booking_creation_service.py
"""
Slot reservation and booking creation.

The reservation itself is one transaction around the repository's
reserve-and-insert primitive. Everything after it is best-effort: each step
commits on its own, and a failure is logged, counted and queued to the outbox
without touching the booking that already exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from ..core.exceptions import (
    BookingCreateException,
    BookingFetchException,
    BookingValidationException,
    InternalBookingException,
    RepositoryException,
    SlotConflictException,
    is_missing_relation_error,
)
from ..core.time_utils import as_utc
from ..events.booking_events import (
    BookingCreated,
    BookingPostCreationFailed,
    DoubleBookingOverridden,
    GroupBookingCreated,
)
from ..models.booking import Booking
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.event_outbox_repository import EventOutboxRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.group_booking_repository import GroupBookingRepository
from .base import BaseService
from .booking_validation_service import ValidatedBookingData
from .pricing_policy import round_money, to_decimal

OVERLAP_CONSTRAINT_MARKERS = ("no_overlap", "overlap", "exclusion")


def _is_overlap_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode == "23P01":
        return True
    text = str(exc).lower()
    return any(marker in text for marker in OVERLAP_CONSTRAINT_MARKERS)


@dataclass(frozen=True)
class BookingCreationOutcome:
    booking: Booking
    conflicting_booking_ids: Tuple[str, ...] = ()
    failed_steps: Tuple[str, ...] = ()


class BookingCreationService(BaseService):
    """Reserve the slot, persist the booking, then run the best-effort follow-ups."""

    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        group_booking_repository: Optional[GroupBookingRepository] = None,
        outbox_repository: Optional[EventOutboxRepository] = None,
    ):
        super().__init__(db)
        self.bookings = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.groups = group_booking_repository or RepositoryFactory.create_group_booking_repository(db)
        self.outbox = outbox_repository or RepositoryFactory.create_event_outbox_repository(db)

    @BaseService.measure_operation("create_booking_record")
    def create(self, validated: ValidatedBookingData, actor_id: str) -> BookingCreationOutcome:
        """
        Persist a validated booking.

        Raises:
            SlotConflictException: the slot was taken under the lock
            BookingValidationException: loyalty points or promo uses ran out mid-flight
            BookingCreateException: any other persistence failure
            BookingFetchException: the committed booking could not be re-read
        """
        booking_id, conflicting = self._reserve(validated)

        try:
            booking = self.bookings.get_by_id(booking_id)
        except RepositoryException as exc:
            raise BookingFetchException(details={"booking_id": booking_id}) from exc
        if booking is None:
            raise BookingFetchException(details={"booking_id": booking_id})

        failed: List[str] = []
        steps: List[Tuple[str, Callable[[], None]]] = []
        if validated.is_group_booking:
            steps.append(("group_booking", lambda: self._create_group(booking, validated)))
        if validated.resource_ids:
            steps.append(("resources", lambda: self._assign_resources(booking, validated)))
        if validated.addons:
            steps.append(("addons", lambda: self._add_addons(booking, validated)))
        if validated.product_quantities:
            steps.append(("products", lambda: self._add_products(booking, validated)))
        if conflicting and validated.conflict.override_permitted:
            steps.append(
                ("override_audit", lambda: self._record_override(booking, conflicting, actor_id))
            )

        for step, action in steps:
            if not self._run_step(booking.id, step, action):
                failed.append(step)

        return BookingCreationOutcome(
            booking=booking,
            conflicting_booking_ids=tuple(conflicting),
            failed_steps=tuple(failed),
        )

    # ---------------------------------------------------------- reservation
    def _reserve(self, validated: ValidatedBookingData) -> Tuple[str, List[str]]:
        pricing = validated.pricing
        try:
            with self.transaction():
                try:
                    booking, conflicting = self.bookings.reserve_and_insert(
                        booking_fields=validated.booking_fields(),
                        line_items=[line.as_row(validated.currency) for line in validated.service_lines],
                        staff_windows=validated.staff_windows(),
                        start_at=validated.start_at,
                        end_at=validated.end_at,
                        allow_overlap=validated.conflict.override_permitted,
                    )
                    if pricing.loyalty_points_redeemed and not self.bookings.debit_loyalty_points(
                        validated.customer_id, pricing.loyalty_points_redeemed
                    ):
                        raise BookingValidationException(
                            "Insufficient loyalty points", code="LOYALTY_INSUFFICIENT_POINTS"
                        )
                    if validated.promotion_id and not self.bookings.increment_promotion_usage(
                        validated.promotion_id
                    ):
                        raise BookingValidationException(
                            "Promo code usage limit reached", code="PROMO_USAGE_LIMIT"
                        )
                    event = BookingCreated(
                        booking_id=booking.id,
                        booking_number=booking.booking_number,
                        customer_id=booking.customer_id,
                        provider_id=booking.provider_id,
                        status=booking.status,
                        scheduled_at=validated.start_at.isoformat(),
                        total_amount=str(pricing.total_amount),
                        currency=validated.currency,
                    )
                    self.outbox.enqueue(event.event_type, booking.id, event.to_dict())
                    booking_id = booking.id
                except IntegrityError as exc:
                    if _is_overlap_violation(exc):
                        raise SlotConflictException(
                            details={"staff_id": validated.primary_staff_id}
                        ) from exc
                    raise BookingCreateException(details={"reason": "integrity"}) from exc
                except SQLAlchemyError as exc:
                    raise BookingCreateException() from exc
        except InternalBookingException as exc:
            # Commit-time failures surface here after rollback
            raise BookingCreateException() from exc

        self.log_operation(
            "reserve_booking",
            booking_id=booking_id,
            staff_id=validated.primary_staff_id,
            override=bool(conflicting),
        )
        return booking_id, conflicting

    # ---------------------------------------------------- best-effort steps
    def _run_step(self, booking_id: str, step: str, action: Callable[[], None]) -> bool:
        """Run one post-creation step in its own transaction; never raises."""
        try:
            with self.transaction():
                action()
        except Exception as exc:
            cause = exc.__cause__ or exc
            if step == "group_booking" and is_missing_relation_error(cause):
                self.logger.warning(
                    "Group booking tables missing; feature not deployed (booking %s)", booking_id
                )
                prometheus_metrics.record_post_creation_step(step, "skipped")
                return True
            self.logger.error(
                "Post-creation step %s failed for booking %s: %s",
                step,
                booking_id,
                exc,
                exc_info=True,
            )
            prometheus_metrics.record_post_creation_step(step, "failed")
            self._queue_failure(booking_id, step, exc)
            return False
        prometheus_metrics.record_post_creation_step(step, "success")
        return True

    def _queue_failure(self, booking_id: str, step: str, exc: Exception) -> None:
        event = BookingPostCreationFailed(booking_id=booking_id, step=step, error=str(exc)[:500])
        try:
            with self.transaction():
                self.outbox.enqueue(
                    event.event_type,
                    booking_id,
                    event.to_dict(),
                    idempotency_key=f"{event.event_type}:{booking_id}:{step}",
                )
        except Exception as outbox_exc:
            self.logger.error(
                "Could not queue retry for step %s of booking %s: %s", step, booking_id, outbox_exc
            )

    def _create_group(self, booking: Booking, validated: ValidatedBookingData) -> None:
        if validated.participant_lines:
            self.bookings.add_service_lines(
                booking.id, [line.as_row(validated.currency) for line in validated.participant_lines]
            )
        participants = [
            {
                "participant_name": participant.name,
                "participant_email": participant.email,
                "participant_phone": participant.phone,
                "is_primary_contact": participant.is_primary_contact,
            }
            for participant in validated.group_participants
        ]
        group = self.groups.create_group(
            ref_number=f"GB-{str(ulid.ULID())[-10:]}",
            provider_id=validated.provider_id,
            primary_booking_id=booking.id,
            primary_contact_id=validated.customer_id,
            participants=participants,
        )
        self.bookings.update(booking.id, group_booking_id=group.id)
        event = GroupBookingCreated(
            group_booking_id=group.id,
            ref_number=group.ref_number,
            primary_booking_id=booking.id,
            participants=participants,
        )
        self.outbox.enqueue(event.event_type, group.id, event.to_dict())

    def _assign_resources(self, booking: Booking, validated: ValidatedBookingData) -> None:
        line_ids: Dict[Tuple[str, object], str] = {
            (row.offering_id, as_utc(row.scheduled_start_at)): row.id for row in booking.services
        }
        assignments = []
        for line in validated.service_lines:
            if validated.resources_explicit:
                resource_ids = list(validated.resource_ids)
            else:
                offering = validated.offerings[line.offering_id]
                resource_ids = [resource.id for resource in offering.required_resources]
            for resource_id in resource_ids:
                assignments.append(
                    {
                        "booking_service_id": line_ids.get((line.offering_id, line.start_at)),
                        "resource_id": resource_id,
                        "scheduled_start_at": line.start_at,
                        "scheduled_end_at": line.end_at,
                    }
                )
        self.bookings.add_resource_assignments(booking.id, assignments)

    def _add_addons(self, booking: Booking, validated: ValidatedBookingData) -> None:
        self.bookings.add_addons(
            booking.id,
            [(addon_id, round_money(addon.price)) for addon_id, addon in validated.addons.items()],
        )

    def _add_products(self, booking: Booking, validated: ValidatedBookingData) -> None:
        self.bookings.add_products(
            booking.id,
            [
                (product_id, quantity, round_money(to_decimal(validated.products[product_id].retail_price)))
                for product_id, quantity in validated.product_quantities.items()
            ],
        )

    def _record_override(self, booking: Booking, conflicting: List[str], actor_id: str) -> None:
        self.bookings.record_event(
            booking.id,
            "double_booking_override",
            {"conflicting_bookings": list(conflicting), "authorized_by": actor_id},
            created_by=actor_id,
        )
        event = DoubleBookingOverridden(
            booking_id=booking.id,
            conflicting_bookings=list(conflicting),
            authorized_by=actor_id,
        )
        self.outbox.enqueue(event.event_type, booking.id, event.to_dict())
