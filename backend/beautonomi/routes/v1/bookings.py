# backend/beautonomi/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    POST / - Create a booking and settle its payment
    POST /{booking_id}/settlement - Retry settlement for an unpaid booking
"""

import logging
from typing import NoReturn

from fastapi import APIRouter, Body, Depends, Path, status

from ...api.dependencies import get_booking_service, get_current_user_id
from ...core.exceptions import DomainException, InternalBookingException
from ...schemas.booking import (
    BookingCreateResponse,
    BookingDraft,
    BookingResponse,
    SettlementRetryRequest,
)
from ...services.booking_service import BookingCreateResult, BookingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    raise exc.to_http_exception()


def _to_response(result: BookingCreateResult) -> BookingCreateResponse:
    return BookingCreateResponse(
        booking=BookingResponse.model_validate(result.booking),
        payment_url=result.payment_url,
    )


@router.post(
    "",
    response_model=BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Validation or funding instrument error"},
        409: {"description": "Time slot not available"},
        500: {"description": "Booking could not be persisted"},
    },
)
def create_booking(
    draft: BookingDraft = Body(...),
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """
    Create a booking and settle its payment.

    Returns the booking plus a gateway redirect URL when a new card charge
    was initialized; ``payment_url`` is null for gift card, wallet, saved
    card and cash bookings.
    """
    try:
        return _to_response(booking_service.create_booking(draft, user_id))
    except DomainException as e:
        handle_domain_exception(e)
    except Exception as e:
        logger.error("Unhandled error creating booking: %s", e, exc_info=True)
        handle_domain_exception(InternalBookingException())


@router.post(
    "/{booking_id}/settlement",
    response_model=BookingCreateResponse,
    responses={
        400: {"description": "Booking cannot be settled again or funding failed"},
    },
)
def retry_settlement(
    booking_id: str = Path(..., min_length=1),
    funding: SettlementRetryRequest = Body(...),
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """Retry payment for a created but unpaid booking with different funding."""
    try:
        return _to_response(booking_service.retry_settlement(booking_id, user_id, funding))
    except DomainException as e:
        handle_domain_exception(e)
    except Exception as e:
        logger.error("Unhandled error retrying settlement for %s: %s", booking_id, e, exc_info=True)
        handle_domain_exception(InternalBookingException())
