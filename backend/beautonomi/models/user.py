# backend/beautonomi/models/user.py
"""Customer accounts as seen by the booking pipeline."""

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class User(Base):
    """A marketplace customer (authentication lives upstream)."""

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), nullable=True, unique=True)
    full_name = Column(String(200), nullable=True)
    phone = Column(String(40), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"
