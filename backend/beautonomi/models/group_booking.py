# backend/beautonomi/models/group_booking.py
"""
Group booking aggregate.

These tables ship in a later migration than bookings; the creation flow
treats their absence as the feature not being deployed.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class GroupBooking(Base):
    __tablename__ = "group_bookings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    ref_number = Column(String(20), nullable=False, unique=True)
    provider_id = Column(String(26), ForeignKey("providers.id"), nullable=False)
    primary_booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)
    primary_contact_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GroupBookingParticipant(Base):
    __tablename__ = "group_booking_participants"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    group_booking_id = Column(
        String(26), ForeignKey("group_bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    participant_name = Column(String(200), nullable=False)
    participant_email = Column(String(255), nullable=True)
    participant_phone = Column(String(40), nullable=True)
    is_primary_contact = Column(Boolean, nullable=False, default=False)
