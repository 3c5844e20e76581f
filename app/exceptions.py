"""Custom exception classes and global exception handlers."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BnOverseasException(Exception):
    """Base exception for all platform-specific errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(BnOverseasException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", 404)


class ForbiddenException(BnOverseasException):
    """Access forbidden exception."""

    def __init__(self, message: str = "Access denied. Admin privileges required."):
        super().__init__(message, 403)


class UnauthorizedException(BnOverseasException):
    """Authentication required exception."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401)


class ValidationException(BnOverseasException):
    """Validation error exception with field-level errors."""

    def __init__(self, errors: list[dict] | str):
        if isinstance(errors, str):
            errors = [{"field": "general", "message": errors}]
        super().__init__("Validation failed", 422)
        self.errors = errors


class SettingsUnavailableError(BnOverseasException):
    """The settings store could not be read.

    Raised by the settings resolver so that each integration factory can apply
    its own environment fallback.
    """

    def __init__(self, message: str = "Settings are temporarily unavailable"):
        super().__init__(message, 503)


class StorageNotConfiguredError(BnOverseasException):
    """Object storage is disabled or missing credentials or a bucket."""

    def __init__(self, message: str = "S3 storage is not configured"):
        super().__init__(message, 503)


def create_exception_handlers():
    """Create the JSON exception handlers for the application."""

    async def app_exception_handler(request: Request, exc: BnOverseasException):
        """Handle platform exceptions."""
        logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message} (status={exc.status_code})")

        content = {
            "status": "error",
            "message": exc.message,
        }
        if hasattr(exc, "errors"):
            content["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=content)

    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}")
        logger.error(f"Exception: {type(exc).__name__}: {exc}")
        tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        logger.error("".join(tb_lines))

        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "An unexpected error occurred",
            },
        )

    return {
        BnOverseasException: app_exception_handler,
        Exception: generic_exception_handler,
    }
