"""Access to the platform settings document."""

from typing import Any, Dict

from sqlalchemy.orm import Session

from ..models.platform import PlatformSettings
from .base_repository import BaseRepository


class PlatformSettingsRepository(BaseRepository[PlatformSettings]):
    def __init__(self, db: Session):
        super().__init__(db, PlatformSettings)

    def get_active_document(self) -> Dict[str, Any]:
        row = (
            self.db.query(PlatformSettings)
            .filter(PlatformSettings.is_active.is_(True))
            .order_by(PlatformSettings.created_at.desc())
            .first()
        )
        return dict(row.settings or {}) if row else {}
