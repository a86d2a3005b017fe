"""Writers for the optional group booking aggregate."""

from typing import Any, Dict, List, Sequence

from sqlalchemy.orm import Session

from ..models.group_booking import GroupBooking, GroupBookingParticipant
from .base_repository import BaseRepository


class GroupBookingRepository(BaseRepository[GroupBooking]):
    def __init__(self, db: Session):
        super().__init__(db, GroupBooking)

    def create_group(
        self,
        *,
        ref_number: str,
        provider_id: str,
        primary_booking_id: str,
        primary_contact_id: str,
        participants: Sequence[Dict[str, Any]],
    ) -> GroupBooking:
        group = GroupBooking(
            ref_number=ref_number,
            provider_id=provider_id,
            primary_booking_id=primary_booking_id,
            primary_contact_id=primary_contact_id,
        )
        self.db.add(group)
        self.db.flush()
        rows: List[GroupBookingParticipant] = [
            GroupBookingParticipant(group_booking_id=group.id, **participant)
            for participant in participants
        ]
        self.db.add_all(rows)
        self.db.flush()
        return group
