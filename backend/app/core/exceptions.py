"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes for the settlement domain and global
exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("crowdfund.errors")

# Marker for errors that point at upstream configuration or ledger problems
DATA_QUALITY_ALERT = "DATA_QUALITY"


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

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


class CampaignNotFoundError(ResourceNotFoundError):
    """Raised when a settlement or reconciliation targets an unknown campaign."""

    def __init__(self, campaign_id: Any):
        super().__init__("Campaign", campaign_id)


class SettlementNotFoundError(ResourceNotFoundError):

    def __init__(self, settlement_id: Any):
        super().__init__("Settlement", settlement_id)


class InvalidInputError(AppException):
    """Raised when allocation inputs are out of range."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_SETTLE_INPUT",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ShareOverflowError(AppException):
    """Raised when partner and collaborator shares together exceed 100%."""

    def __init__(self, total_share: float):
        super().__init__(
            message=f"Combined partner and collaborator shares exceed 100% ({total_share:.6f})",
            error_code="ERR_SETTLE_SHARE_OVERFLOW",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"total_share": total_share, "alert": DATA_QUALITY_ALERT}
        )


class NoSuccessfulFundingsError(AppException):
    """Raised when a campaign reached its target without any succeeded ledger entry."""

    def __init__(self, campaign_id: Any):
        super().__init__(
            message=f"Campaign {campaign_id} has no successful fundings to settle",
            error_code="ERR_SETTLE_NO_FUNDINGS",
            status_code=status.HTTP_409_CONFLICT,
            details={"campaign_id": campaign_id, "alert": DATA_QUALITY_ALERT}
        )


class InvalidSettlementTransitionError(AppException):
    """Raised when a settlement is moved out of order (e.g. PENDING -> PAID)."""

    def __init__(self, settlement_id: Any, current: str, expected: str):
        super().__init__(
            message=f"Settlement status is {current}, expected {expected}",
            error_code="ERR_SETTLE_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
            details={"settlement_id": settlement_id, "current": current, "expected": expected}
        )


class StoreUnavailableError(AppException):
    """Raised when the settlement store cannot be reached."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Settlement store unavailable during {operation}",
            error_code="ERR_STORE_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"operation": operation}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if exc.details.get("alert") == DATA_QUALITY_ALERT:
        logger.warning(
            "Data quality alert",
            extra={"error_code": exc.error_code, "path": request.url.path, "details": exc.details}
        )
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
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
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
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": exc.errors()
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
