# backend/beautonomi/api/dependencies.py
"""
Dependencies for dependency injection.

Identity is resolved upstream by the auth middleware, which forwards the
acting user in the ``X-User-Id`` header.
"""

from typing import Generator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db as original_get_db
from ..services.booking_service import BookingService


def get_db() -> Generator[Session, None, None]:
    """
    Get database session dependency.

    Yields:
        Database session that will be closed after use
    """
    yield from original_get_db()


def get_current_user_id(x_user_id: str = Header(default="", alias="X-User-Id")) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required", "kind": "Unauthorized"},
        )
    return user_id


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Get booking service instance with all dependencies."""
    return BookingService(db)
