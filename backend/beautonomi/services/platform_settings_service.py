"""Builds the platform settings snapshot injected into pricing and the ledger."""

from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..repositories.factory import RepositoryFactory
from ..repositories.platform_settings_repository import PlatformSettingsRepository
from .base import BaseService
from .pricing_policy import PlatformSettingsSnapshot


class PlatformSettingsService(BaseService):
    def __init__(self, db: Session, repository: Optional[PlatformSettingsRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_platform_settings_repository(db)

    def get_snapshot(self) -> PlatformSettingsSnapshot:
        document = self.repository.get_active_document()
        snapshot = PlatformSettingsSnapshot.from_document(
            document, default_tax_rate_percent=settings.default_tax_rate_percent
        )
        self.logger.debug(
            "Platform settings snapshot commission_enabled=%s rate=%s",
            snapshot.commission_enabled,
            snapshot.commission_percentage,
        )
        return snapshot
