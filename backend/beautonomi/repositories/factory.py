# backend/beautonomi/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .catalog_repository import CatalogRepository
    from .event_outbox_repository import EventOutboxRepository
    from .gift_card_repository import GiftCardRepository
    from .group_booking_repository import GroupBookingRepository
    from .ledger_repository import LedgerRepository
    from .platform_settings_repository import PlatformSettingsRepository
    from .wallet_repository import WalletRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_catalog_repository(db: Session) -> "CatalogRepository":
        from .catalog_repository import CatalogRepository

        return CatalogRepository(db)

    @staticmethod
    def create_gift_card_repository(db: Session) -> "GiftCardRepository":
        from .gift_card_repository import GiftCardRepository

        return GiftCardRepository(db)

    @staticmethod
    def create_wallet_repository(db: Session) -> "WalletRepository":
        from .wallet_repository import WalletRepository

        return WalletRepository(db)

    @staticmethod
    def create_ledger_repository(db: Session) -> "LedgerRepository":
        from .ledger_repository import LedgerRepository

        return LedgerRepository(db)

    @staticmethod
    def create_group_booking_repository(db: Session) -> "GroupBookingRepository":
        from .group_booking_repository import GroupBookingRepository

        return GroupBookingRepository(db)

    @staticmethod
    def create_platform_settings_repository(db: Session) -> "PlatformSettingsRepository":
        from .platform_settings_repository import PlatformSettingsRepository

        return PlatformSettingsRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)
