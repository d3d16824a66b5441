"""Booking domain errors and their HTTP translation."""

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base class for errors raised by the booking services."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.message)


class ValidationError(DomainError):
    """Missing or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class BookingConflict(DomainError):
    """The requested interval collides with a live booking or a blocked time."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = 'This time slot is no longer available.') -> None:
        super().__init__(message, code='BOOKING_CONFLICT')


class PaymentRequired(DomainError):
    """No usable credit, package session or payment resolves for the booking."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED


class RemoteFailure(DomainError):
    """The database or payment processor could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
