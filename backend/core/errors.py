"""Error taxonomy shared by the services and the HTTP layer.

Business-rule errors (NotFound, InvalidTransition, InsufficientStock, Conflict)
are raised by the services as-is and cross transaction boundaries unwrapped.
Anything else raised inside a transaction is rewrapped as InternalFailure.
"""

from typing import Any, Optional

from fastapi import status


class ServiceError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error_data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.error_data = error_data


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStock(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class InternalFailure(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


# Errors that carry a business meaning and must reach the caller unchanged.
BUSINESS_ERRORS = (NotFound, InvalidTransition, InsufficientStock, Conflict, ValidationError)
