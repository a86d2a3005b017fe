# backend/tests/conftest.py
"""
Pytest configuration for the booking pipeline.

Every test gets a fresh in-memory SQLite database (StaticPool so the
FastAPI TestClient threads share one connection) with the full schema
created from the models, plus a seeded provider catalog.
"""

import os

# Set BEFORE any beautonomi imports so the settings singleton picks them up
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["PAYMENT_GATEWAY"] = "paystack"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_placeholder"
os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from beautonomi import models  # noqa: F401 - registers every table
from beautonomi.database import Base
from beautonomi.integrations.payment_gateway import (
    GatewayCharge,
    GatewayInitialization,
    PaymentGatewayError,
)
from beautonomi.models import (
    GiftCard,
    Offering,
    PlatformSettings,
    Product,
    Provider,
    ProviderLocation,
    ProviderStaff,
    Resource,
    SavedPaymentMethod,
    ServiceAddon,
    User,
    Wallet,
)
from beautonomi.schemas.booking import BookingDraft
from beautonomi.services.booking_creation_service import BookingCreationService
from beautonomi.services.booking_validation_service import BookingValidationService
from beautonomi.services.pricing_policy import PlatformSettingsSnapshot, ServiceFeeRule

BOOKING_START = datetime(2030, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@dataclass
class Catalog:
    customer: User
    provider: Provider
    staff: ProviderStaff
    second_staff: ProviderStaff
    offering: Offering
    short_offering: Offering
    location: ProviderLocation
    addon: ServiceAddon
    product: Product
    resource: Resource


@pytest.fixture
def catalog(db: Session) -> Catalog:
    """A salon with two staff members, two offerings, an add-on, a product and a chair."""
    customer = User(email="thandi@example.com", full_name="Thandi Nkosi")
    provider = Provider(
        business_name="Glow Studio",
        currency="ZAR",
        tax_rate_percent=Decimal("0"),
        travel_fee=Decimal("120.00"),
        tips_enabled=True,
    )
    db.add_all([customer, provider])
    db.flush()

    offering = Offering(
        provider_id=provider.id,
        title="Silk Press",
        price=Decimal("1000.00"),
        duration_minutes=60,
        buffer_minutes=15,
        supports_at_home=True,
        at_home_price_adjustment=Decimal("100.00"),
    )
    short_offering = Offering(
        provider_id=provider.id,
        title="Brow Tint",
        price=Decimal("200.00"),
        duration_minutes=30,
        buffer_minutes=0,
    )
    staff = ProviderStaff(provider_id=provider.id, full_name="Ayanda")
    second_staff = ProviderStaff(provider_id=provider.id, full_name="Lerato")
    staff.offerings = [offering, short_offering]
    second_staff.offerings = [offering]
    location = ProviderLocation(provider_id=provider.id, name="Rosebank", city="Johannesburg")
    addon = ServiceAddon(provider_id=provider.id, name="Scalp Massage", price=Decimal("50.00"))
    product = Product(
        provider_id=provider.id,
        name="Argan Oil",
        retail_price=Decimal("80.00"),
        track_stock_quantity=True,
        quantity=3,
    )
    resource = Resource(provider_id=provider.id, name="Chair 1")
    db.add_all([offering, short_offering, staff, second_staff, location, addon, product, resource])
    db.add(
        PlatformSettings(
            settings={"payouts": {"commission_enabled": True, "platform_commission_percentage": 15}}
        )
    )
    db.commit()
    return Catalog(
        customer=customer,
        provider=provider,
        staff=staff,
        second_staff=second_staff,
        offering=offering,
        short_offering=short_offering,
        location=location,
        addon=addon,
        product=product,
        resource=resource,
    )


@pytest.fixture
def snapshot() -> PlatformSettingsSnapshot:
    """15% commission, no tax, 5% customer service fee."""
    return PlatformSettingsSnapshot(
        commission_enabled=True,
        commission_percentage=Decimal("15"),
        default_tax_rate_percent=Decimal("0"),
        service_fee=ServiceFeeRule(fee_type="percentage", percentage=Decimal("5")),
    )


@pytest.fixture
def make_draft(catalog: Catalog):
    def _make(**overrides: Any) -> BookingDraft:
        data: Dict[str, Any] = {
            "provider_id": catalog.provider.id,
            "services": [{"offering_id": catalog.offering.id, "staff_id": catalog.staff.id}],
            "selected_datetime": BOOKING_START,
            "location_type": "at_salon",
            "location_id": catalog.location.id,
        }
        data.update(overrides)
        return BookingDraft.model_validate(data)

    return _make


@pytest.fixture
def make_gift_card(db: Session):
    def _make(code: str = "GIFT-1050", balance: str = "1050.00", **fields: Any) -> GiftCard:
        card = GiftCard(code=code, balance=Decimal(balance), currency=fields.pop("currency", "ZAR"), **fields)
        db.add(card)
        db.commit()
        return card

    return _make


@pytest.fixture
def make_wallet(db: Session, catalog: Catalog):
    def _make(balance: str = "200.00", user: Optional[User] = None) -> Wallet:
        wallet = Wallet(user_id=(user or catalog.customer).id, balance=Decimal(balance), currency="ZAR")
        db.add(wallet)
        db.commit()
        return wallet

    return _make


@pytest.fixture
def saved_card(db: Session, catalog: Catalog) -> SavedPaymentMethod:
    method = SavedPaymentMethod(
        user_id=catalog.customer.id,
        provider="paystack",
        authorization_code="AUTH_abc123",
        customer_reference="CUS_xyz",
        last4="4081",
        brand="visa",
    )
    db.add(method)
    db.commit()
    return method


class FakeGateway:
    """In-memory gateway recording every call."""

    name = "paystack"

    def __init__(
        self,
        *,
        charge_succeeds: bool = True,
        error: Optional[PaymentGatewayError] = None,
    ) -> None:
        self.charge_succeeds = charge_succeeds
        self.error = error
        self.initialized: List[Dict[str, Any]] = []
        self.charged: List[Dict[str, Any]] = []

    def initialize_transaction(self, **kwargs: Any) -> GatewayInitialization:
        self.initialized.append(kwargs)
        if self.error is not None:
            raise self.error
        return GatewayInitialization(
            authorization_url=f"https://checkout.paystack.com/{kwargs['reference']}",
            reference=kwargs["reference"],
        )

    def charge_authorization(self, **kwargs: Any) -> GatewayCharge:
        self.charged.append(kwargs)
        if self.error is not None:
            raise self.error
        return GatewayCharge(
            succeeded=self.charge_succeeds,
            reference=kwargs["reference"],
            message=None if self.charge_succeeds else "Declined",
        )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fixed_clock():
    now = BOOKING_START - timedelta(days=2)
    return lambda: now


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def make_booking(db: Session, catalog: Catalog, snapshot: PlatformSettingsSnapshot, fixed_clock, make_draft):
    """Validate and persist a booking without settling it; returns (booking, draft, validated)."""

    def _make(**overrides: Any):
        draft = make_draft(**overrides)
        validated = BookingValidationService(
            db, settings_snapshot=snapshot, clock=fixed_clock
        ).validate(draft, catalog.customer.id)
        outcome = BookingCreationService(db).create(validated, actor_id=catalog.customer.id)
        return outcome.booking, draft, validated

    return _make
