"""
Centralized Error Handling for the Eswatini MSME Registry

This module provides:
- Custom exception hierarchy
- Standardized error responses
- Error logging
- Registry-specific validation and state-transition errors
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("msme.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_OWNERSHIP_TYPE = "INVALID_OWNERSHIP_TYPE"
    OWNER_COUNT_MISMATCH = "OWNER_COUNT_MISMATCH"
    INVALID_OWNER_GENDER = "INVALID_OWNER_GENDER"
    MISSING_INKHUNDLA = "MISSING_INKHUNDLA"
    INVALID_CLASSIFICATION = "INVALID_CLASSIFICATION"
    INVALID_DIRECTOR_NATIONALITY = "INVALID_DIRECTOR_NATIONALITY"
    PASSWORD_TOO_SHORT = "PASSWORD_TOO_SHORT"

    # State Conflicts (400)
    REJECTION_REASON_REQUIRED = "REJECTION_REASON_REQUIRED"
    REJECTION_REASON_TOO_LONG = "REJECTION_REASON_TOO_LONG"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"

    # Credential Recovery (400, deliberately generic)
    INVALID_OTP = "INVALID_OTP"
    EXPIRED_OTP = "EXPIRED_OTP"
    INVALID_RESET_REQUEST = "INVALID_RESET_REQUEST"

    # Authentication/Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    BUSINESS_NOT_FOUND = "BUSINESS_NOT_FOUND"
    SNAPSHOT_NOT_FOUND = "SNAPSHOT_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Rate Limiting (429)
    RATE_LIMITED = "RATE_LIMITED"
    TOO_MANY_ATTEMPTS = "TOO_MANY_ATTEMPTS"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    TRANSIENT_STORE_ERROR = "TRANSIENT_STORE_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Bad input shape or business rule; the caller can correct and retry."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            field=field,
        )


class StateConflictException(AppException):
    """Illegal verification transition (e.g. rejecting without a reason)."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.ILLEGAL_TRANSITION,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            field=field,
        )


class CredentialRecoveryException(AppException):
    """
    Failure in the forgot-password flow.

    Messages are intentionally generic so that callers cannot tell
    whether an account exists or which check failed.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_OTP):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


# ============================================================================
# Authentication/Authorization Exceptions
# ============================================================================

class AuthenticationException(AppException):
    """Base authentication exception"""

    def __init__(
        self,
        message: str = "Authentication required",
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        code: ErrorCode = ErrorCode.FORBIDDEN,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class BusinessNotFoundException(NotFoundException):
    """MSME business record not found"""

    def __init__(self, business_id: Union[str, UUID]):
        super().__init__(
            resource_type="Business",
            resource_id=business_id,
            code=ErrorCode.BUSINESS_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class DuplicateEntryException(ConflictException):
    """Duplicate entry exception"""

    def __init__(
        self,
        resource_type: str,
        field: str,
        value: str,
    ):
        super().__init__(
            message=f"{resource_type} with {field} '{value}' already exists",
            resource_type=resource_type,
            code=ErrorCode.DUPLICATE_ENTRY,
            details={"field": field},
        )


# ============================================================================
# Database Exceptions
# ============================================================================

class DatabaseException(AppException):
    """Database error exception"""

    def __init__(
        self,
        message: str = "A database error occurred",
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            original_error=original_error,
        )


class TransientStoreException(DatabaseException):
    """Write conflict or timeout that outlived the retry budget."""

    def __init__(self, operation: str, attempts: int, original_error: Optional[Exception] = None):
        super().__init__(
            message=f"{operation} failed after {attempts} attempts",
            code=ErrorCode.TRANSIENT_STORE_ERROR,
            original_error=original_error,
        )
        self.details = {"operation": operation, "attempts": attempts}


# ============================================================================
# Rate Limiting Exception
# ============================================================================

class RateLimitException(AppException):
    """Rate limit exceeded"""

    def __init__(self, retry_after: int = 60, code: ErrorCode = ErrorCode.RATE_LIMITED):
        minutes = max(1, (retry_after + 59) // 60)
        super().__init__(
            code=code,
            message=f"Too many failed attempts. Please try again in {minutes} minutes.",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"retry_after_seconds": retry_after},
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    error = {
        "code": code.value,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if field:
        error["field"] = field
    if details:
        error["details"] = details

    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc.original_error,
    )

    headers = None
    if isinstance(exc, RateLimitException):
        headers = {"Retry-After": str(exc.details.get("retry_after_seconds", 60))}

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        429: ErrorCode.RATE_LIMITED,
        500: ErrorCode.INTERNAL_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body/query validation errors as 400s."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_400_BAD_REQUEST,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_400_BAD_REQUEST

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    "AppException",
    "ErrorCode",
    "ValidationException",
    "StateConflictException",
    "CredentialRecoveryException",
    "AuthenticationException",
    "AuthorizationException",
    "NotFoundException",
    "BusinessNotFoundException",
    "ConflictException",
    "DuplicateEntryException",
    "DatabaseException",
    "TransientStoreException",
    "RateLimitException",
    "setup_exception_handlers",
    "create_error_response",
]
