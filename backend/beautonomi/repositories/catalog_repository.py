# backend/beautonomi/repositories/catalog_repository.py
"""
Read-only lookups over provider catalog and pricing reference data.

The validation stage resolves every id in a booking draft through this
repository before any money is computed.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from ..models.platform import PlatformFeeConfig
from ..models.promotion import LoyaltyAccount, LoyaltyRule, MembershipPlan, Promotion, UserMembership
from ..models.provider import (
    Offering,
    Product,
    Provider,
    ProviderLocation,
    ProviderStaff,
    Resource,
    ServiceAddon,
    ServicePackage,
    staff_offerings,
)
from ..models.user import User
from .base_repository import BaseRepository


class CatalogRepository(BaseRepository[Provider]):
    """Provider, offering, staff and discount lookups."""

    def __init__(self, db: Session):
        super().__init__(db, Provider)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        return self.get_by_id(provider_id, load_relationships=False)

    def get_offerings(self, provider_id: str, offering_ids: Iterable[str]) -> Dict[str, Offering]:
        ids = list(dict.fromkeys(offering_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(Offering)
            .options(selectinload(Offering.required_resources))
            .filter(Offering.id.in_(ids), Offering.provider_id == provider_id)
            .all()
        )
        return {row.id: row for row in rows}

    def get_staff(self, provider_id: str, staff_ids: Iterable[str]) -> Dict[str, ProviderStaff]:
        ids = [staff_id for staff_id in dict.fromkeys(staff_ids) if staff_id]
        if not ids:
            return {}
        rows = (
            self.db.query(ProviderStaff)
            .filter(ProviderStaff.id.in_(ids), ProviderStaff.provider_id == provider_id)
            .all()
        )
        return {row.id: row for row in rows}

    def is_staff_qualified(self, staff_id: str, offering_id: str) -> bool:
        row = (
            self.db.query(staff_offerings.c.staff_id)
            .filter(
                staff_offerings.c.staff_id == staff_id,
                staff_offerings.c.offering_id == offering_id,
            )
            .first()
        )
        return row is not None

    def find_qualified_staff(self, provider_id: str, offering_id: str) -> Optional[ProviderStaff]:
        """First active staff member able to perform the offering."""
        return (
            self.db.query(ProviderStaff)
            .join(staff_offerings, staff_offerings.c.staff_id == ProviderStaff.id)
            .filter(
                staff_offerings.c.offering_id == offering_id,
                ProviderStaff.provider_id == provider_id,
                ProviderStaff.is_active.is_(True),
            )
            .order_by(ProviderStaff.id.asc())
            .first()
        )

    def get_location(self, provider_id: str, location_id: str) -> Optional[ProviderLocation]:
        return (
            self.db.query(ProviderLocation)
            .filter(ProviderLocation.id == location_id, ProviderLocation.provider_id == provider_id)
            .first()
        )

    def get_addons(self, provider_id: str, addon_ids: Iterable[str]) -> Dict[str, ServiceAddon]:
        ids = list(dict.fromkeys(addon_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(ServiceAddon)
            .filter(ServiceAddon.id.in_(ids), ServiceAddon.provider_id == provider_id)
            .all()
        )
        return {row.id: row for row in rows}

    def get_products(self, provider_id: str, product_ids: Iterable[str]) -> Dict[str, Product]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(Product)
            .filter(Product.id.in_(ids), Product.provider_id == provider_id)
            .all()
        )
        return {row.id: row for row in rows}

    def get_package(self, provider_id: str, package_id: str) -> Optional[ServicePackage]:
        return (
            self.db.query(ServicePackage)
            .filter(ServicePackage.id == package_id, ServicePackage.provider_id == provider_id)
            .first()
        )

    def get_promotion_by_code(self, code: str) -> Optional[Promotion]:
        return (
            self.db.query(Promotion)
            .filter(func.upper(Promotion.code) == code.strip().upper())
            .first()
        )

    def get_active_membership(
        self, user_id: str, provider_id: str, now: datetime
    ) -> Optional[MembershipPlan]:
        return (
            self.db.query(MembershipPlan)
            .join(UserMembership, UserMembership.plan_id == MembershipPlan.id)
            .filter(
                UserMembership.user_id == user_id,
                UserMembership.provider_id == provider_id,
                UserMembership.status == "active",
                or_(UserMembership.expires_at.is_(None), UserMembership.expires_at > now),
                MembershipPlan.is_active.is_(True),
            )
            .order_by(MembershipPlan.discount_percent.desc())
            .first()
        )

    def get_active_loyalty_rule(self, currency: str) -> Optional[LoyaltyRule]:
        return (
            self.db.query(LoyaltyRule)
            .filter(LoyaltyRule.currency == currency, LoyaltyRule.is_active.is_(True))
            .order_by(LoyaltyRule.effective_from.desc())
            .first()
        )

    def get_loyalty_balance(self, user_id: str) -> int:
        account = self.db.query(LoyaltyAccount).filter(LoyaltyAccount.user_id == user_id).first()
        return int(account.points_balance) if account else 0

    def get_fee_config(self, config_id: Optional[str]) -> Optional[PlatformFeeConfig]:
        """Provider-specific fee config, falling back to the active platform default."""
        if config_id:
            config = self.db.get(PlatformFeeConfig, config_id)
            if config is not None and config.is_active:
                return config
        return (
            self.db.query(PlatformFeeConfig)
            .filter(PlatformFeeConfig.is_default.is_(True), PlatformFeeConfig.is_active.is_(True))
            .first()
        )

    def get_resources(self, provider_id: str, resource_ids: Iterable[str]) -> List[Resource]:
        ids = list(dict.fromkeys(resource_ids))
        if not ids:
            return []
        return (
            self.db.query(Resource)
            .filter(Resource.id.in_(ids), Resource.provider_id == provider_id)
            .all()
        )
