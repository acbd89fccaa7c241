"""
Custom exceptions and error handlers for consistent error responses.

The allocation core raises these exceptions; the HTTP layer renders them
with standardized error codes through the global exception handlers.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger("fleet")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when a referenced truck, driver, client or trip does not exist."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ResourceUnavailableError(AppException):
    """Raised when a truck is not AVAILABLE or a driver is not ACTIVE."""

    def __init__(self, resource: str, resource_id: Any, current_status: Any = None, reason: str = None):
        message = f"{resource} {resource_id} is not available"
        if current_status is not None:
            message = f"{message} (status: {getattr(current_status, 'value', current_status)})"
        details = {"resource": resource, "id": resource_id}
        if current_status is not None:
            details["status"] = getattr(current_status, "value", current_status)
        if reason:
            details["reason"] = reason
        super().__init__(
            message=message,
            error_code="ERR_ALLOC_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class AllocationConflictError(AppException):
    """
    Raised when a compare-and-swap precondition no longer holds.

    Recovered inside the coordinator by retrying the whole attempt.
    """

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_ALLOC_002",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InvalidTransitionError(AppException):
    """Raised for a status change outside the trip lifecycle."""

    def __init__(self, current: Any, target: Any, message: str = None,
                 error_code: str = "ERR_TRIP_001", status_code: int = status.HTTP_400_BAD_REQUEST):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        self.current = current
        self.target = target
        super().__init__(
            message=message or f"Invalid status transition from {current_value} to {target_value}",
            error_code=error_code,
            status_code=status_code,
            details={"from": current_value, "to": target_value}
        )


class TripFinalizedError(InvalidTransitionError):
    """Raised when a COMPLETED or CANCELLED trip is mutated."""

    def __init__(self, trip_id: int, current: Any, target: Any = None):
        self.trip_id = trip_id
        current_value = getattr(current, "value", current)
        super().__init__(
            current=current,
            target=target,
            message=f"Trip {trip_id} is {current_value} and can no longer be changed",
            error_code="ERR_TRIP_002",
            status_code=status.HTTP_409_CONFLICT
        )
        self.details["trip_id"] = trip_id


class TripActiveError(AppException):
    """Raised when deleting a trip that is IN_PROGRESS."""

    def __init__(self, trip_id: int):
        super().__init__(
            message=f"Cannot delete trip {trip_id} while it is in progress",
            error_code="ERR_TRIP_003",
            status_code=status.HTTP_409_CONFLICT,
            details={"trip_id": trip_id}
        )


class InvalidResourceStateError(AppException):
    """Raised when a resource is not in the state an operation requires."""

    def __init__(self, resource: str, resource_id: Any, current_status: Any, expected: Any = None):
        current_value = getattr(current_status, "value", current_status)
        message = f"{resource} {resource_id} is in state {current_value}"
        if expected is not None:
            message = f"{message}, expected {getattr(expected, 'value', expected)}"
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id, "status": current_value}
        )


class DuplicateResourceError(AppException):
    """Raised when a unique identifier is already registered."""

    def __init__(self, resource: str, field: str, value: Any):
        super().__init__(
            message=f"{resource} with this {field} already exists",
            error_code="ERR_DUPLICATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "field": field, "value": value}
        )


class ResourceInUseError(AppException):
    """Raised when deleting a record still referenced by a non-terminal trip."""

    def __init__(self, resource: str, resource_id: Any, trip_ids=None):
        super().__init__(
            message=f"Cannot delete {resource.lower()} {resource_id} with active trips",
            error_code="ERR_IN_USE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id, "trip_ids": list(trip_ids or [])}
        )


class ValidationFailedError(AppException):
    """Raised when a request is well-formed but violates a domain rule."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_002",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ConsistencyFaultError(AppException):
    """
    Raised when resource status disagrees with the trips referencing it.

    Never corrected automatically; requires manual reconciliation.
    """

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONSISTENCY_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=422,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
