"""Domain errors raised by the ledger, inventory and production services.

Every error is a DRF :class:`~rest_framework.exceptions.APIException` so the
services can raise them directly and the API layer renders them with the
right status code.  Callers may attach structured details through ``extra``
(for example the feasibility breakdown of a production batch) which
:func:`api_exception_handler` merges into the response body.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

__all__ = [
    "DomainError",
    "NotFound",
    "ValidationFailed",
    "Conflict",
    "InsufficientFunds",
    "InsufficientStock",
    "api_exception_handler",
]


class DomainError(APIException):
    """Base class for business rule violations."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request could not be processed."
    default_code = "domain_error"

    def __init__(self, detail: Optional[str] = None, *, extra: Optional[Mapping[str, Any]] = None):
        super().__init__(detail=detail, code=self.default_code)
        self.extra = dict(extra or {})


class NotFound(DomainError):
    """Raised when a referenced record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "The requested record was not found."
    default_code = "not_found"


class ValidationFailed(DomainError):
    """Raised for malformed or contradictory input."""

    default_detail = "Invalid input."
    default_code = "validation_error"


class Conflict(DomainError):
    """Raised for duplicates, forbidden state changes and dependent history."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state."
    default_code = "conflict"


class InsufficientFunds(DomainError):
    """Raised when a debit exceeds the available balance."""

    default_detail = "Insufficient funds."
    default_code = "insufficient_funds"


class InsufficientStock(DomainError):
    """Raised when a stock movement would leave a negative quantity."""

    default_detail = "Insufficient stock."
    default_code = "insufficient_stock"


def api_exception_handler(exc, context):
    """Render :class:`DomainError` instances with their code and extra details."""

    response = exception_handler(exc, context)
    if response is None or not isinstance(exc, DomainError):
        return response

    response.data = {
        "detail": str(exc.detail),
        "code": exc.default_code,
        **exc.extra,
    }
    return response
