# backend/beautonomi/core/exceptions.py
"""
Domain-specific exceptions for the booking and settlement pipeline.

Every booking failure carries a stable ``kind`` and HTTP status so the
route layer can translate it without inspecting messages.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    kind = "InternalError"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.http_status,
            detail={
                "message": self.message,
                "kind": self.kind,
                "code": self.code,
                "details": self.details,
            },
        )


class BookingValidationException(DomainException):
    """Raised when a booking draft references something unusable."""

    kind = "ValidationError"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details)


class SlotConflictException(DomainException):
    """Raised when the requested time overlaps an existing booking."""

    kind = "SlotConflict"
    http_status = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: str = "SLOT_CONFLICT",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message or "This time slot is no longer available. Please select another time.",
            code=code,
            details=details,
        )


class FundingException(DomainException):
    """Base for failures tied to one funding instrument."""

    http_status = status.HTTP_400_BAD_REQUEST
    instrument = "unknown"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = {"instrument": self.instrument}
        merged.update(details or {})
        super().__init__(message=message, code=code, details=merged)

    def attach_booking(self, booking_id: str) -> "FundingException":
        self.details["booking_id"] = booking_id
        return self


class GiftCardInvalidException(FundingException):
    """Raised when a gift card cannot be reserved for the amount due."""

    kind = "GiftCardInvalid"
    instrument = "gift_card"

    def __init__(self, message: str = "Invalid, expired, or insufficient gift card", **kwargs: Any):
        kwargs.setdefault("code", "GIFT_CARD_INVALID")
        super().__init__(message, **kwargs)


class WalletException(FundingException):
    """Raised when the wallet self-debit fails."""

    kind = "WalletError"
    instrument = "wallet"

    def __init__(self, message: str = "Wallet payment failed", **kwargs: Any):
        kwargs.setdefault("code", "WALLET_ERROR")
        super().__init__(message, **kwargs)


class PaymentFailedException(FundingException):
    """Raised when the card gateway rejects or cannot process a charge."""

    kind = "PaymentFailed"
    instrument = "card"

    def __init__(
        self,
        message: str = "Payment failed",
        *,
        retryable: bool = True,
        code: str = "PAYMENT_FAILED",
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {"retryable": retryable}
        merged.update(details or {})
        super().__init__(message, code=code, details=merged)

    @property
    def retryable(self) -> bool:
        return bool(self.details.get("retryable"))


class BookingCreateException(DomainException):
    """Raised when the booking row could not be persisted."""

    kind = "CreateError"

    def __init__(self, message: str = "Failed to create booking", **kwargs: Any):
        kwargs.setdefault("code", "CREATE_ERROR")
        super().__init__(message, **kwargs)


class BookingFetchException(DomainException):
    """Raised when a freshly created booking cannot be read back."""

    kind = "FetchError"

    def __init__(self, message: str = "Booking created but could not be loaded", **kwargs: Any):
        kwargs.setdefault("code", "FETCH_ERROR")
        super().__init__(message, **kwargs)


class InternalBookingException(DomainException):
    """Catch-all for unexpected failures in the booking pipeline."""

    kind = "InternalError"

    def __init__(self, message: str = "An unexpected error occurred", **kwargs: Any):
        kwargs.setdefault("code", "INTERNAL_ERROR")
        super().__init__(message, **kwargs)


class PaymentRecordException(DomainException):
    """Raised when a card was charged but the payment could not be written down."""

    kind = "InternalError"

    def __init__(
        self,
        message: str = "Payment was taken but could not be recorded. Please contact support.",
        **kwargs: Any,
    ):
        kwargs.setdefault("code", "PAYMENT_NOT_RECORDED")
        super().__init__(message, **kwargs)


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


def is_missing_relation_error(exc: BaseException) -> bool:
    """Detect 'table does not exist' errors across PostgreSQL and SQLite."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode == "42P01":
        return True
    text = str(exc).lower()
    return "no such table" in text or ("relation" in text and "does not exist" in text)
