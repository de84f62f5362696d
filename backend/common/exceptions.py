"""
Standardized error handling for the service layer and API responses.

This module provides two families of errors:

1. Domain errors (``ServiceError`` and subclasses) raised by business logic.
   Each carries the HTTP status code it maps to, so endpoints can let them
   propagate and the application-level handler renders them consistently.
2. HTTP helpers (``create_api_error``, ``handle_database_error``) that wrap
   unexpected internal failures into safe, generic ``HTTPException`` objects
   while logging the full detail for debugging.

Error Taxonomy:
    - ValidationError: malformed or illogical input (400)
    - NotFoundError: unknown tenant-scoped device or export job (404)
    - LimitExceededError: export would exceed the configured record cap (400)
    - UniqueConstraintViolation: internal signal from the session store that an
      idempotency key already exists; converted into the duplicate success path
    - GenerationFailure: I/O or serialization error while producing an export;
      captured into the job's error_message, never surfaced over HTTP
    - InvalidStateTransition: attempted export job transition not allowed by the
      job state machine

Example:
    ```python
    from common.exceptions import NotFoundError, handle_database_error

    try:
        device = await registry.resolve_device(tenant_id, device_id)
    except SQLAlchemyError as e:
        raise handle_database_error("resolving device", e)
    if device is None:
        raise NotFoundError(f"Device {device_id} not found")
    ```
"""

from fastapi import HTTPException
from loguru import logger

# HTTP Status Code Constants
HTTP_400_BAD_REQUEST = 400
HTTP_401_UNAUTHORIZED = 401
HTTP_403_FORBIDDEN = 403
HTTP_404_NOT_FOUND = 404
HTTP_422_UNPROCESSABLE_ENTITY = 422
HTTP_500_INTERNAL_SERVER_ERROR = 500
HTTP_503_SERVICE_UNAVAILABLE = 503


class ServiceError(Exception):
    """
    Base class for errors raised by the service layer.

    Attributes:
        message (str): User-facing message, safe to return to API clients.
        status_code (int): HTTP status code the error maps to.
    """

    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Input failed parsing or a business rule (e.g. start_time >= stop_time)."""

    status_code = HTTP_400_BAD_REQUEST


class NotFoundError(ServiceError):
    """A tenant-scoped device or export job does not exist or is not reachable."""

    status_code = HTTP_404_NOT_FOUND


class LimitExceededError(ServiceError):
    """An export request matches more sessions than the configured maximum."""

    status_code = HTTP_400_BAD_REQUEST


class UniqueConstraintViolation(ServiceError):
    """
    Raised by the session store when the idempotency key already exists.

    Never reaches an HTTP client; the ingestion service turns it into a
    successful duplicate result.
    """

    status_code = HTTP_500_INTERNAL_SERVER_ERROR


class GenerationFailure(ServiceError):
    """Export file generation failed (cursor, serialization or I/O error)."""

    status_code = HTTP_500_INTERNAL_SERVER_ERROR


class InvalidStateTransition(ServiceError):
    """An export job transition that the state machine does not allow."""

    status_code = HTTP_500_INTERNAL_SERVER_ERROR


def create_api_error(
    operation: str,
    status_code: int = 500,
    internal_error: Exception | None = None,
    user_message: str | None = None,
) -> HTTPException:
    """
    Create a standardized API error response with a safe error message.

    Logs the full internal error (with traceback) and returns an HTTPException
    whose detail never contains internal information.

    Args:
        operation: Description of the operation that failed (e.g., "ingesting
            session"). Used for logging context.
        status_code: HTTP status code to return. Defaults to 500.
        internal_error: Optional original exception that caused this error.
        user_message: Optional custom user-friendly message. If None, a generic
            message appropriate for the status code is used.

    Returns:
        HTTPException configured with the status code and safe error message.

    Example:
        ```python
        try:
            result = await service.get_summary(...)
        except SQLAlchemyError as e:
            raise create_api_error(
                operation="fetching summary",
                status_code=500,
                internal_error=e,
            )
        ```
    """
    # Log the full error internally for debugging
    if internal_error:
        logger.exception(f"API error in {operation}: {internal_error}")

    # Determine user-facing message
    if user_message:
        message = user_message
    elif status_code == HTTP_400_BAD_REQUEST:
        message = "Invalid request. Please check your input and try again."
    elif status_code == HTTP_401_UNAUTHORIZED:
        message = "Authentication failed. Please check your credentials."
    elif status_code == HTTP_403_FORBIDDEN:
        message = "Access denied. You don't have permission to perform this action."
    elif status_code == HTTP_404_NOT_FOUND:
        message = "Resource not found."
    elif status_code == HTTP_422_UNPROCESSABLE_ENTITY:
        message = "Validation error. Please check your request parameters."
    elif status_code == HTTP_503_SERVICE_UNAVAILABLE:
        message = "Service temporarily unavailable. Please try again later."
    else:
        message = (
            "An error occurred while processing your request. Please try again later."
        )

    return HTTPException(status_code=status_code, detail=message)


def handle_database_error(operation: str, error: Exception) -> HTTPException:
    """
    Handle database-related errors with generic, safe error messages.

    Convenience wrapper for SQLAlchemy and driver errors: logs the full error
    and returns a 500 whose message does not reveal database structure.

    Args:
        operation: Description of the database operation that failed (e.g.,
            "listing export jobs").
        error: The database exception that occurred.

    Returns:
        HTTPException with status code 500 and a generic error message.
    """
    return create_api_error(
        operation=operation,
        status_code=500,
        internal_error=error,
        user_message="Failed to retrieve data. Please try again later.",
    )
