"""
Error taxonomy and global exception handlers.

Every failure leaves the service as one JSON envelope:

    {"error_code": "...", "message": "...", "details": {...}}

    404 ERR_NOT_FOUND_001     shipment / payment does not exist
    403 ERR_PERM_001          caller may not act on the shipment
    401 ERR_AUTH_001          missing or unusable identity
    400 ERR_PRECONDITION_001  operation not allowed in the current status
    422 ERR_VALIDATION(_001)  malformed or unusable input
    409 ERR_CONFLICT_001      write contention outlasted the retries
    502 ERR_UPSTREAM_001      shipment store or payment gateway failed
"""

import logging
import math
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: Dict[str, Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.headers = headers
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Requested shipment or payment does not exist."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InsufficientPermissionsError(AppException):
    """Caller is identified but may not perform the operation."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class AuthenticationError(AppException):
    """No bearer token, or one that does not yield a caller identity."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )


class PreconditionFailedError(AppException):
    """Operation is not allowed in the shipment's (or payment's) current state."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PRECONDITION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ValidationFailedError(AppException):
    """Input passed schema validation but cannot be acted upon."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class ConcurrentUpdateError(AppException):
    """A shipment kept changing underneath every retry of an update."""

    def __init__(self, resource: str, resource_id: Any = None):
        super().__init__(
            message=f"{resource} was modified concurrently, please retry",
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id}
        )


class UpstreamServiceError(AppException):
    """The shipment store or the payment gateway failed."""

    def __init__(self, message: str = "Upstream service failure", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_UPSTREAM_001",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details
        )


# Global Exception Handlers

def _envelope(status_code: int, error_code: str, message: Any, details: dict, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error_code": error_code, "message": message, "details": details},
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    return _envelope(exc.status_code, exc.error_code, exc.message, exc.details, exc.headers)


# Status code -> error code for framework-raised HTTPException (e.g. role checks)
HTTP_ERROR_CODES = {
    400: "ERR_BAD_REQUEST",
    401: "ERR_AUTH_001",
    403: "ERR_PERM_001",
    404: "ERR_NOT_FOUND",
    405: "ERR_METHOD_NOT_ALLOWED",
    500: "ERR_INTERNAL_SERVER",
}


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _envelope(
        exc.status_code,
        HTTP_ERROR_CODES.get(exc.status_code, "ERR_UNKNOWN"),
        exc.detail,
        {},
        getattr(exc, "headers", None),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Pydantic errors with their context stringified (ctx may hold exception objects)."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        # NaN and Infinity are not valid JSON
        if isinstance(error.get("input"), float) and not math.isfinite(error["input"]):
            error["input"] = str(error["input"])
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _envelope(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ERR_VALIDATION",
        "Validation error",
        {"errors": jsonable_errors(exc)},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "ERR_INTERNAL_SERVER",
        "An internal server error occurred",
        {},
    )
