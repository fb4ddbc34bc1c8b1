"""Global exception handlers for the API."""

from typing import Dict, Optional, Tuple, Type

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from talentsync.errors import (
    AuthError,
    CandidateNotFoundError,
    ConsentRequired,
    InvalidPayload,
    InvalidSignature,
    JobNotFoundError,
    PermanentExternalError,
    TalentSyncError,
    TemplateLockedError,
    TemplateNotFoundError,
    TenantNotFoundError,
    TransientExternalError,
)

from talentsync_api.schemas.base import ErrorDetail, ErrorResponse

logger = structlog.get_logger()


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        code: str = "API_ERROR",
        status_code: int = 400,
        details: dict = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationAPIError(APIError):
    """Validation error."""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=422,
            details={"field": field} if field else {},
        )


class UnauthorizedError(APIError):
    """Missing or wrong credentials."""

    def __init__(self, message: str = "Invalid or missing API key"):
        super().__init__(message=message, code="UNAUTHORIZED", status_code=401)


# Most specific classes first; lookup walks this in order
DOMAIN_ERRORS: Dict[Type[TalentSyncError], Tuple[int, str]] = {
    InvalidSignature: (401, "INVALID_SIGNATURE"),
    InvalidPayload: (400, "INVALID_PAYLOAD"),
    CandidateNotFoundError: (404, "NOT_FOUND"),
    JobNotFoundError: (404, "NOT_FOUND"),
    TemplateNotFoundError: (404, "NOT_FOUND"),
    TenantNotFoundError: (404, "NOT_FOUND"),
    TemplateLockedError: (409, "TEMPLATE_LOCKED"),
    ConsentRequired: (409, "CONSENT_REQUIRED"),
    AuthError: (409, "ATS_AUTH_REQUIRED"),
    TransientExternalError: (503, "UPSTREAM_UNAVAILABLE"),
    PermanentExternalError: (502, "UPSTREAM_ERROR"),
}


def error_body(code: str, message: str, details: Optional[dict] = None) -> dict:
    return ErrorResponse(error=ErrorDetail(code=code, message=message, details=details or {})).model_dump()


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        """Handle custom API errors."""
        logger.warning(
            "API error",
            code=exc.code,
            message=exc.message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(TalentSyncError)
    async def domain_error_handler(request: Request, exc: TalentSyncError) -> JSONResponse:
        """Map the domain error taxonomy onto HTTP statuses."""
        status_code, code = 500, "INTERNAL_ERROR"
        for error_type, mapped in DOMAIN_ERRORS.items():
            if isinstance(exc, error_type):
                status_code, code = mapped
                break

        details = {}
        if isinstance(exc, AuthError):
            details = {"tenant_id": exc.tenant_id, "reason": exc.reason}

        log = logger.error if status_code >= 500 else logger.warning
        log("Domain error", code=code, error=str(exc), error_type=type(exc).__name__, path=request.url.path)
        return JSONResponse(status_code=status_code, content=error_body(code, str(exc), details))

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle Pydantic validation errors."""
        errors = exc.errors(include_url=False, include_context=False)
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        message = first_error.get("msg", "Validation error")

        logger.warning(
            "Validation error",
            field=field,
            message=message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=422,
            content=error_body("VALIDATION_ERROR", message, {"field": field, "errors": errors}),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        """Handle database errors."""
        logger.error(
            "Database error",
            error=str(exc),
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=error_body("DATABASE_ERROR", "A database error occurred", {}),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        logger.exception(
            "Unexpected error",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=error_body("INTERNAL_ERROR", "An unexpected error occurred", {}),
        )
