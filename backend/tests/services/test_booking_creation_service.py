# backend/tests/services/test_booking_creation_service.py
"""
Tests for slot reservation and the best-effort post-creation steps.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from beautonomi.core.exceptions import BookingValidationException, SlotConflictException
from beautonomi.models import (
    Booking,
    BookingAddon,
    BookingEvent,
    BookingProduct,
    BookingResourceAssignment,
    EventOutbox,
    GroupBooking,
    GroupBookingParticipant,
    LoyaltyAccount,
    LoyaltyRule,
    Promotion,
)
from beautonomi.repositories.booking_repository import BookingRepository
from beautonomi.repositories.group_booking_repository import GroupBookingRepository
from beautonomi.services.booking_creation_service import BookingCreationService
from beautonomi.services.booking_validation_service import BookingValidationService


@pytest.fixture
def validator(db, snapshot, fixed_clock):
    return BookingValidationService(db, settings_snapshot=snapshot, clock=fixed_clock)


@pytest.fixture
def creator(db):
    return BookingCreationService(db)


def _outbox(db, event_type):
    return db.query(EventOutbox).filter(EventOutbox.event_type == event_type).all()


class TestReservation:
    def test_booking_and_service_rows_are_persisted(self, db, validator, creator, make_draft, catalog):
        validated = validator.validate(make_draft(), catalog.customer.id)

        outcome = creator.create(validated, actor_id=catalog.customer.id)

        booking = outcome.booking
        assert booking.booking_number.startswith("BK-")
        assert booking.status == "confirmed"
        assert booking.payment_status == "pending"
        assert booking.total_amount == Decimal("1050.00")
        assert booking.commission_base == Decimal("1000.00")
        assert [line.offering_id for line in booking.services] == [catalog.offering.id]
        assert booking.staff_id == catalog.staff.id
        assert outcome.failed_steps == ()

    def test_booking_created_event_is_queued_with_the_booking(self, db, validator, creator, make_draft, catalog):
        validated = validator.validate(make_draft(), catalog.customer.id)
        booking = creator.create(validated, actor_id=catalog.customer.id).booking

        (event,) = _outbox(db, "booking.created")
        assert event.aggregate_id == booking.id
        assert event.idempotency_key == f"booking.created:{booking.id}"
        assert event.payload["booking_number"] == booking.booking_number
        assert event.payload["total_amount"] == "1050.00"
        assert event.status == "PENDING"

    def test_second_booking_for_same_slot_loses_under_the_lock(
        self, db, validator, creator, make_draft, catalog
    ):
        # Both pass the pre-check before either is inserted
        first = validator.validate(make_draft(), catalog.customer.id)
        second = validator.validate(make_draft(), catalog.customer.id)

        creator.create(first, actor_id=catalog.customer.id)
        with pytest.raises(SlotConflictException) as exc_info:
            creator.create(second, actor_id=catalog.customer.id)

        assert exc_info.value.http_status == 409
        assert db.query(Booking).count() == 1
        assert len(_outbox(db, "booking.created")) == 1

    def test_different_staff_can_share_the_slot(self, db, validator, creator, make_draft, catalog):
        first = validator.validate(make_draft(), catalog.customer.id)
        second = validator.validate(
            make_draft(services=[{"offering_id": catalog.offering.id, "staff_id": catalog.second_staff.id}]),
            catalog.customer.id,
        )

        creator.create(first, actor_id=catalog.customer.id)
        creator.create(second, actor_id=catalog.customer.id)

        assert db.query(Booking).count() == 2

    def _two_staff_draft(self, make_draft, catalog, **overrides):
        # short_offering runs 09:00-09:30 for staff, offering 09:30-10:45 for second_staff
        return make_draft(
            services=[
                {"offering_id": catalog.short_offering.id, "staff_id": catalog.staff.id},
                {"offering_id": catalog.offering.id, "staff_id": catalog.second_staff.id},
            ],
            **overrides,
        )

    def _book_second_staff(self, validator, creator, make_draft, catalog):
        draft = make_draft(services=[{"offering_id": catalog.offering.id, "staff_id": catalog.second_staff.id}])
        return creator.create(
            validator.validate(draft, catalog.customer.id), actor_id=catalog.customer.id
        ).booking

    def test_secondary_staff_conflict_is_rejected(self, db, validator, creator, make_draft, catalog):
        self._book_second_staff(validator, creator, make_draft, catalog)

        with pytest.raises(SlotConflictException) as exc_info:
            validator.validate(self._two_staff_draft(make_draft, catalog), catalog.customer.id)

        assert exc_info.value.details["staff_id"] == catalog.second_staff.id
        assert db.query(Booking).count() == 1

    def test_secondary_staff_conflict_loses_under_the_lock(
        self, db, validator, creator, make_draft, catalog
    ):
        multi = validator.validate(self._two_staff_draft(make_draft, catalog), catalog.customer.id)
        self._book_second_staff(validator, creator, make_draft, catalog)

        with pytest.raises(SlotConflictException) as exc_info:
            creator.create(multi, actor_id=catalog.customer.id)

        assert exc_info.value.details["staff_id"] == catalog.second_staff.id
        assert db.query(Booking).count() == 1

    def test_loyalty_points_are_debited(self, db, validator, creator, make_draft, catalog):
        db.add_all(
            [
                LoyaltyRule(currency="ZAR", redemption_rate=Decimal("10")),
                LoyaltyAccount(user_id=catalog.customer.id, points_balance=1000),
            ]
        )
        db.commit()
        validated = validator.validate(make_draft(loyalty_points_to_redeem=500), catalog.customer.id)

        creator.create(validated, actor_id=catalog.customer.id)

        account = db.query(LoyaltyAccount).one()
        db.refresh(account)
        assert account.points_balance == 500

    def test_loyalty_spent_elsewhere_rolls_back_the_booking(
        self, db, validator, creator, make_draft, catalog
    ):
        account = LoyaltyAccount(user_id=catalog.customer.id, points_balance=1000)
        db.add_all([LoyaltyRule(currency="ZAR", redemption_rate=Decimal("10")), account])
        db.commit()
        validated = validator.validate(make_draft(loyalty_points_to_redeem=500), catalog.customer.id)
        account.points_balance = 100
        db.commit()

        with pytest.raises(BookingValidationException) as exc_info:
            creator.create(validated, actor_id=catalog.customer.id)

        assert exc_info.value.code == "LOYALTY_INSUFFICIENT_POINTS"
        assert db.query(Booking).count() == 0
        assert _outbox(db, "booking.created") == []

    def test_promotion_usage_is_consumed(self, db, validator, creator, make_draft, catalog):
        promo = Promotion(code="WELCOME", discount_type="fixed", discount_value=Decimal("100"), usage_limit=5)
        db.add(promo)
        db.commit()
        validated = validator.validate(make_draft(promotion_code="WELCOME"), catalog.customer.id)

        booking = creator.create(validated, actor_id=catalog.customer.id).booking

        db.refresh(promo)
        assert promo.usage_count == 1
        assert booking.discount_code == "WELCOME"
        assert booking.promotion_discount_amount == Decimal("100.00")


class TestPostCreationSteps:
    def test_addons_and_products_are_attached(self, db, validator, creator, make_draft, catalog):
        validated = validator.validate(
            make_draft(
                addon_ids=[catalog.addon.id],
                products=[{"product_id": catalog.product.id, "quantity": 2}],
            ),
            catalog.customer.id,
        )

        outcome = creator.create(validated, actor_id=catalog.customer.id)

        addon = db.query(BookingAddon).one()
        assert addon.booking_id == outcome.booking.id
        assert addon.price == Decimal("50.00")
        product_line = db.query(BookingProduct).one()
        assert product_line.quantity == 2
        assert product_line.total_price == Decimal("160.00")
        db.refresh(catalog.product)
        assert catalog.product.quantity == 1

    def test_stock_decrement_is_clamped_at_zero(self, db, validator, creator, make_draft, catalog):
        validated = validator.validate(
            make_draft(products=[{"product_id": catalog.product.id, "quantity": 3}]),
            catalog.customer.id,
        )
        # Another sale lands between validation and creation
        catalog.product.quantity = 1
        db.commit()

        outcome = creator.create(validated, actor_id=catalog.customer.id)

        assert outcome.failed_steps == ()
        db.refresh(catalog.product)
        assert catalog.product.quantity == 0

    def test_resources_are_assigned_per_service_line(self, db, validator, creator, make_draft, catalog):
        validated = validator.validate(make_draft(resource_ids=[catalog.resource.id]), catalog.customer.id)

        outcome = creator.create(validated, actor_id=catalog.customer.id)

        (assignment,) = db.query(BookingResourceAssignment).all()
        assert assignment.booking_id == outcome.booking.id
        assert assignment.resource_id == catalog.resource.id
        assert assignment.booking_service_id == outcome.booking.services[0].id

    def test_failed_step_keeps_the_booking_and_queues_a_retry(
        self, db, validator, creator, make_draft, catalog
    ):
        validated = validator.validate(make_draft(addon_ids=[catalog.addon.id]), catalog.customer.id)

        with patch.object(BookingRepository, "add_addons", side_effect=SQLAlchemyError("disk full")):
            outcome = creator.create(validated, actor_id=catalog.customer.id)

        assert outcome.failed_steps == ("addons",)
        assert db.query(Booking).count() == 1
        assert db.query(BookingAddon).count() == 0
        (failure,) = _outbox(db, "booking.post_creation_failed")
        assert failure.idempotency_key == f"booking.post_creation_failed:{outcome.booking.id}:addons"
        assert failure.payload["step"] == "addons"

    def test_override_is_audited(self, db, validator, creator, make_draft, catalog):
        catalog.provider.allow_double_booking_override = True
        db.commit()
        existing = creator.create(
            validator.validate(make_draft(), catalog.customer.id), actor_id=catalog.customer.id
        ).booking

        validated = validator.validate(make_draft(allow_conflict_override=True), catalog.customer.id)
        outcome = creator.create(validated, actor_id=catalog.customer.id)

        assert outcome.conflicting_booking_ids == (existing.id,)
        audit = db.query(BookingEvent).filter(BookingEvent.booking_id == outcome.booking.id).one()
        assert audit.event_type == "double_booking_override"
        assert audit.event_data == {
            "conflicting_bookings": [existing.id],
            "authorized_by": catalog.customer.id,
        }
        (event,) = _outbox(db, "booking.double_booking_override")
        assert event.payload["authorized_by"] == catalog.customer.id

    def test_override_audit_names_conflicts_on_every_staff(
        self, db, validator, creator, make_draft, catalog
    ):
        catalog.provider.allow_double_booking_override = True
        db.commit()
        single = make_draft(services=[{"offering_id": catalog.offering.id, "staff_id": catalog.second_staff.id}])
        existing = creator.create(
            validator.validate(single, catalog.customer.id), actor_id=catalog.customer.id
        ).booking

        draft = make_draft(
            services=[
                {"offering_id": catalog.short_offering.id, "staff_id": catalog.staff.id},
                {"offering_id": catalog.offering.id, "staff_id": catalog.second_staff.id},
            ],
            allow_conflict_override=True,
        )
        outcome = creator.create(validator.validate(draft, catalog.customer.id), actor_id=catalog.customer.id)

        assert outcome.conflicting_booking_ids == (existing.id,)
        audit = db.query(BookingEvent).filter(BookingEvent.booking_id == outcome.booking.id).one()
        assert audit.event_data["conflicting_bookings"] == [existing.id]


class TestGroupBookings:
    def _group_draft(self, make_draft, catalog):
        return make_draft(
            is_group_booking=True,
            group_participants=[
                {"name": "Zola", "email": "zola@example.com", "is_primary_contact": True},
                {"name": "Naledi", "offering_ids": [catalog.short_offering.id]},
            ],
        )

    def test_group_aggregate_is_written(self, db, validator, creator, make_draft, catalog):
        validated = validator.validate(self._group_draft(make_draft, catalog), catalog.customer.id)

        outcome = creator.create(validated, actor_id=catalog.customer.id)

        group = db.query(GroupBooking).one()
        assert group.primary_booking_id == outcome.booking.id
        assert group.ref_number.startswith("GB-")
        db.refresh(outcome.booking)
        assert outcome.booking.group_booking_id == group.id
        names = {row.participant_name for row in db.query(GroupBookingParticipant).all()}
        assert names == {"Zola", "Naledi"}
        participant_lines = [line for line in outcome.booking.services if line.participant_name]
        assert len(participant_lines) == 2
        (event,) = _outbox(db, "group_booking.created")
        assert event.aggregate_id == group.id

    def test_missing_group_tables_are_skipped_quietly(self, db, validator, creator, make_draft, catalog):
        validated = validator.validate(self._group_draft(make_draft, catalog), catalog.customer.id)
        missing = OperationalError(
            "INSERT INTO group_bookings", {}, Exception("no such table: group_bookings")
        )

        with patch.object(GroupBookingRepository, "create_group", side_effect=missing):
            outcome = creator.create(validated, actor_id=catalog.customer.id)

        assert outcome.failed_steps == ()
        assert db.query(Booking).count() == 1
        assert _outbox(db, "booking.post_creation_failed") == []
