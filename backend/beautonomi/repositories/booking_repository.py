# backend/beautonomi/repositories/booking_repository.py
"""
Booking Repository

Owns the reserve-and-insert primitive that serializes bookings per staff
member, plus the child-row writers used by the post-creation steps.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from sqlalchemy import case, or_, select, update
from sqlalchemy.orm import Query, Session, selectinload

from ..core.enums import ACTIVE_BOOKING_STATUSES
from ..core.exceptions import SlotConflictException
from ..models.booking import (
    Booking,
    BookingAddon,
    BookingEvent,
    BookingProduct,
    BookingResourceAssignment,
    BookingService,
)
from ..models.promotion import LoyaltyAccount, Promotion
from ..models.provider import Product, ProviderStaff
from .base_repository import BaseRepository


class BookingRepository(BaseRepository[Booking]):
    """Data access for bookings and their child rows."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            selectinload(Booking.services),
            selectinload(Booking.addons),
            selectinload(Booking.products),
        )

    def get_for_customer(self, booking_id: str, customer_id: str) -> Optional[Booking]:
        return (
            self._apply_eager_loading(self.db.query(Booking))
            .filter(Booking.id == booking_id, Booking.customer_id == customer_id)
            .first()
        )

    # ------------------------------------------------------------ conflicts
    def find_conflicting_booking_ids(
        self, staff_id: str, start_at: datetime, end_at: datetime
    ) -> List[str]:
        """Active bookings for the staff member whose blocked window overlaps [start, end)."""
        stmt = (
            select(Booking.id)
            .join(BookingService, BookingService.booking_id == Booking.id)
            .where(
                BookingService.staff_id == staff_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.scheduled_at < end_at,
                Booking.scheduled_end_at > start_at,
            )
            .distinct()
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_busy_resource_ids(
        self, resource_ids: Iterable[str], start_at: datetime, end_at: datetime
    ) -> Set[str]:
        ids = list(dict.fromkeys(resource_ids))
        if not ids:
            return set()
        stmt = (
            select(BookingResourceAssignment.resource_id)
            .join(Booking, Booking.id == BookingResourceAssignment.booking_id)
            .where(
                BookingResourceAssignment.resource_id.in_(ids),
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                BookingResourceAssignment.scheduled_start_at < end_at,
                BookingResourceAssignment.scheduled_end_at > start_at,
            )
        )
        return set(self.db.execute(stmt).scalars().all())

    def lock_staff(self, staff_id: str) -> Optional[ProviderStaff]:
        """
        Take a row lock on the staff member for the rest of the transaction.

        Concurrent reservations for the same staff member queue here. SQLite
        renders no FOR UPDATE clause and relies on its database-level write lock.
        """
        stmt = select(ProviderStaff).where(ProviderStaff.id == staff_id).with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    # ------------------------------------------------------------- reserve
    def reserve_and_insert(
        self,
        *,
        booking_fields: Dict[str, Any],
        line_items: Sequence[Dict[str, Any]],
        staff_windows: Mapping[str, Tuple[datetime, datetime]],
        start_at: datetime,
        end_at: datetime,
        allow_overlap: bool = False,
    ) -> Tuple[Booking, List[str]]:
        """
        Lock, re-check and insert the booking with its service rows.

        Must run inside a caller-owned transaction. Every staff member in
        ``staff_windows`` is locked in id order, then checked against their own
        window. Returns the booking and the ids of overlapping bookings seen
        under the locks (non-empty only when ``allow_overlap`` let the insert
        through).

        Raises:
            SlotConflictException: the window is taken and overlap is not allowed
        """
        ordered = sorted(staff_windows)
        for staff_id in ordered:
            self.lock_staff(staff_id)

        conflicting: List[str] = []
        for staff_id in ordered:
            window_start, window_end = staff_windows[staff_id]
            found = self.find_conflicting_booking_ids(staff_id, window_start, window_end)
            if found and not allow_overlap:
                raise SlotConflictException(details={"staff_id": staff_id})
            for booking_id in found:
                if booking_id not in conflicting:
                    conflicting.append(booking_id)

        booking = Booking(scheduled_at=start_at, scheduled_end_at=end_at, **booking_fields)
        self.db.add(booking)
        self.db.flush()

        for item in line_items:
            self.db.add(BookingService(booking_id=booking.id, **item))
        self.db.flush()
        return booking, conflicting

    def debit_loyalty_points(self, user_id: str, points: int) -> bool:
        """Atomically spend loyalty points; False when the balance is too low."""
        if points <= 0:
            return True
        result = self.db.execute(
            update(LoyaltyAccount)
            .where(LoyaltyAccount.user_id == user_id, LoyaltyAccount.points_balance >= points)
            .values(points_balance=LoyaltyAccount.points_balance - points)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_promotion_usage(self, promotion_id: str) -> bool:
        """Consume one use of a promotion; False once its usage limit is reached."""
        result = self.db.execute(
            update(Promotion)
            .where(
                Promotion.id == promotion_id,
                or_(Promotion.usage_limit.is_(None), Promotion.usage_count < Promotion.usage_limit),
            )
            .values(usage_count=Promotion.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ---------------------------------------------------------- child rows
    def add_service_lines(self, booking_id: str, items: Sequence[Dict[str, Any]]) -> List[BookingService]:
        rows = [BookingService(booking_id=booking_id, **item) for item in items]
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def add_addons(self, booking_id: str, addons: Sequence[Tuple[str, Any]]) -> List[BookingAddon]:
        rows = [
            BookingAddon(booking_id=booking_id, addon_id=addon_id, quantity=1, price=price)
            for addon_id, price in addons
        ]
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def add_products(
        self, booking_id: str, products: Sequence[Tuple[str, int, Any]]
    ) -> List[BookingProduct]:
        """Insert product lines and decrement tracked stock, clamped at zero."""
        rows = []
        for product_id, quantity, unit_price in products:
            rows.append(
                BookingProduct(
                    booking_id=booking_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=unit_price * quantity,
                )
            )
            self.decrement_stock(product_id, quantity)
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def decrement_stock(self, product_id: str, quantity: int) -> None:
        self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.track_stock_quantity.is_(True))
            .values(
                quantity=case(
                    (Product.quantity > quantity, Product.quantity - quantity),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )

    def add_resource_assignments(
        self, booking_id: str, assignments: Sequence[Dict[str, Any]]
    ) -> List[BookingResourceAssignment]:
        rows = [BookingResourceAssignment(booking_id=booking_id, **item) for item in assignments]
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def record_event(
        self,
        booking_id: str,
        event_type: str,
        event_data: Dict[str, Any],
        created_by: Optional[str],
    ) -> BookingEvent:
        event = BookingEvent(
            booking_id=booking_id,
            event_type=event_type,
            event_data=event_data,
            created_by=created_by,
        )
        self.db.add(event)
        self.db.flush()
        return event
