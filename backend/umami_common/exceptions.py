"""
Domain error taxonomy and standardized error handling for API responses.

This module defines the errors raised by the ingestion and aggregation core and
the helpers that turn them into safe HTTP responses. Internal details are
logged with loguru and never exposed to clients.

Domain Errors:
    - InvalidInput: malformed identifiers, out-of-range values. Rejected, never persisted.
    - ConflictRetryable: session-creation race. Retried internally, bounded.
    - TransientFailure: a retryable conflict that exhausted its attempts.
    - TenantMismatch: cross-tenant access attempt. Rejected and logged as a security event.
    - TenantNotFound: unknown or soft-deleted tenant on a normal path.
    - StorageUnavailable: the database failed; callers retry with backoff.
    - TypeInvariantViolation: attribute discriminant disagrees with the populated slot.
    - QueryCancelled: an aggregation scan was cancelled mid-flight.

Example:
    ```python
    from umami_common.exceptions import InvalidInput, handle_database_error

    if not fingerprint:
        raise InvalidInput("fingerprint is required", field="fingerprint")

    try:
        rows = session.execute(stmt).all()
    except SQLAlchemyError as e:
        raise handle_database_error("fetching metrics", e)
    ```
"""

from fastapi import HTTPException
from loguru import logger

# HTTP Status Code Constants
HTTP_400_BAD_REQUEST = 400
HTTP_401_UNAUTHORIZED = 401
HTTP_403_FORBIDDEN = 403
HTTP_404_NOT_FOUND = 404
HTTP_408_REQUEST_TIMEOUT = 408
HTTP_409_CONFLICT = 409
HTTP_422_UNPROCESSABLE_ENTITY = 422
HTTP_429_TOO_MANY_REQUESTS = 429
HTTP_500_INTERNAL_SERVER_ERROR = 500
HTTP_503_SERVICE_UNAVAILABLE = 503


class AnalyticsError(Exception):
    """
    Base class of the domain error taxonomy.

    Attributes:
        message (str): Human-readable description. Safe to return to clients.
        status_code (int): HTTP status used when the error reaches the API layer.
        code (str): Stable machine-readable error code.
    """

    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    code = "analytics_error"

    def __init__(self, message: str, **context: object) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"code": self.code, "message": self.message}
        field = self.context.get("field")
        if field:
            payload["field"] = field
        return payload


class InvalidInput(AnalyticsError):
    """Malformed identifier or out-of-range value. Never persisted."""

    status_code = HTTP_422_UNPROCESSABLE_ENTITY
    code = "invalid_input"


class TypeInvariantViolation(InvalidInput):
    """Attribute data_type disagrees with the populated value slot."""

    code = "type_invariant_violation"


class ConflictRetryable(AnalyticsError):
    """A uniqueness conflict the caller is expected to resolve by re-reading."""

    status_code = HTTP_409_CONFLICT
    code = "conflict"


class TransientFailure(AnalyticsError):
    """A retryable condition that exhausted its bounded attempts."""

    status_code = HTTP_503_SERVICE_UNAVAILABLE
    code = "transient_failure"


class StorageUnavailable(AnalyticsError):
    """The database could not complete the operation. Fails closed."""

    status_code = HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_unavailable"


class TenantMismatch(AnalyticsError):
    """A caller tried to reach data of a tenant it is not authorized for."""

    status_code = HTTP_403_FORBIDDEN
    code = "tenant_mismatch"


class TenantNotFound(AnalyticsError):
    """The tenant does not exist or is soft-deleted."""

    status_code = HTTP_404_NOT_FOUND
    code = "tenant_not_found"


class QueryCancelled(AnalyticsError):
    """An aggregation scan observed its cancellation token."""

    status_code = HTTP_408_REQUEST_TIMEOUT
    code = "query_cancelled"


def create_api_error(
    operation: str,
    status_code: int = 500,
    internal_error: Exception | None = None,
    user_message: str | None = None,
) -> HTTPException:
    """
    Create a standardized API error response with a safe error message.

    Args:
        operation: Description of the operation that failed (e.g., "ingesting hits").
            Used for logging context.
        status_code: HTTP status code to return. Defaults to 500.
        internal_error: Optional original exception. Logged with its stack trace,
            never included in the response.
        user_message: Optional custom user-friendly message. If None, a generic
            message appropriate for the status code is used.

    Returns:
        HTTPException configured with the status code and a safe message.
    """
    # Log the full error internally for debugging
    if internal_error:
        logger.opt(exception=internal_error).error(
            f"API error in {operation}: {internal_error}"
        )

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
    elif status_code == HTTP_429_TOO_MANY_REQUESTS:
        message = "Rate limit exceeded. Please try again later."
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

    Args:
        operation: Description of the database operation that failed.
        error: The database exception that occurred.

    Returns:
        HTTPException with status code 503 and a generic message that doesn't
        expose database structure, query details, or connection information.
    """
    return create_api_error(
        operation=operation,
        status_code=HTTP_503_SERVICE_UNAVAILABLE,
        internal_error=error,
        user_message="Failed to retrieve data. Please try again later.",
    )


def error_response_body(error: AnalyticsError) -> dict[str, object]:
    """
    Build the JSON body returned for a domain error.

    Storage and transient failures collapse to a generic message; validation
    and access errors keep their message since it carries no internal detail.
    """
    if isinstance(error, (StorageUnavailable, TransientFailure)):
        return {
            "code": error.code,
            "message": "Service temporarily unavailable. Please try again later.",
        }
    if isinstance(error, TenantMismatch):
        return {
            "code": error.code,
            "message": "Access denied. You don't have permission to perform this action.",
        }
    return error.to_dict()
