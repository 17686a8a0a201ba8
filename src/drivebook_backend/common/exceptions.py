"""
This file contains custom, application-specific exceptions.

Services raise these; the handler registered in main.py turns them into
HTTP responses through `to_http_exception`.
"""
from typing import Optional

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base class for every booking/payment engine error."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={"message": self.message, "code": self.code, "field": self.field},
        )


class NotFoundError(DomainError):
    """Raised for an unknown learner, instructor, lesson, payment or package."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    """Raised when a write collides with existing data."""
    status_code = status.HTTP_409_CONFLICT


class SlotConflictError(ConflictError):
    """Raised when a proposed lesson overlaps an occupying lesson."""
    pass


class InsufficientBalanceError(DomainError):
    """Raised when the learner's balance cannot cover a booking."""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStateError(DomainError):
    """Raised when acting on a lesson or payment whose status does not permit it."""
    status_code = status.HTTP_409_CONFLICT


class ExternalGatewayError(DomainError):
    """Raised on payment-gateway failures: bad signature, timeout, non-2xx."""
    status_code = status.HTTP_502_BAD_GATEWAY


class WebhookSignatureError(ExternalGatewayError):
    """Raised when an inbound gateway event fails signature verification."""
    status_code = status.HTTP_400_BAD_REQUEST


class InternalInconsistencyError(DomainError):
    """Raised when a claimed payment could not be credited to the ledger."""
    pass


class UnauthorizedRoleError(DomainError):
    """Raised when a user's role does not permit them to perform an action."""
    status_code = status.HTTP_403_FORBIDDEN
