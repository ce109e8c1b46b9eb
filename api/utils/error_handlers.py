"""
Global Exception Handlers

Maps HTTP, validation and enrichment pipeline exceptions to ErrorResponse
bodies with consistent status codes and logging.

Design Considerations:
- Standardized error response format
- Pipeline errors keep their meaning (missing email, upstream LLM failure)
- Unexpected errors are logged with traceback and sanitized in the response
"""

import logging
import traceback
from typing import List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models.errors import ErrorResponse, ValidationErrorResponse, ValidationErrorItem
from src.email_processing.errors import EmailNotFoundError, EnrichmentError, LLMError

logger = logging.getLogger(__name__)


def add_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(EmailNotFoundError, email_not_found_handler)
    app.add_exception_handler(LLMError, llm_error_handler)
    app.add_exception_handler(EnrichmentError, enrichment_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")


def _error_response(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with standardized format."""
    log_exception(request, exc, exc.status_code)
    return _error_response(exc.status_code, ErrorResponse(
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
        details=getattr(exc, "details", None),
    ))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors with field-level detail."""
    log_exception(request, exc, status.HTTP_422_UNPROCESSABLE_ENTITY)

    validation_errors: List[ValidationErrorItem] = [
        ValidationErrorItem(
            loc=[str(loc_item) for loc_item in error["loc"]],
            msg=error["msg"],
            type=error["type"]
        )
        for error in exc.errors()
    ]
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, ValidationErrorResponse(
        message="Request validation error",
        error_code="VALIDATION_ERROR",
        validation_errors=validation_errors,
    ))


async def email_not_found_handler(request: Request, exc: EmailNotFoundError) -> JSONResponse:
    log_exception(request, exc, status.HTTP_404_NOT_FOUND)
    return _error_response(status.HTTP_404_NOT_FOUND, ErrorResponse(
        message=str(exc),
        error_code="EMAIL_NOT_FOUND",
        details={"mailbox_address": exc.mailbox_address, "message_id": exc.message_id},
    ))


async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    log_exception(request, exc, status.HTTP_502_BAD_GATEWAY)
    return _error_response(status.HTTP_502_BAD_GATEWAY, ErrorResponse(
        message="AI provider request failed",
        error_code="LLM_ERROR",
        details={"upstream_status": exc.status},
    ))


async def enrichment_error_handler(request: Request, exc: EnrichmentError) -> JSONResponse:
    log_exception(request, exc, status.HTTP_400_BAD_REQUEST)
    return _error_response(status.HTTP_400_BAD_REQUEST, ErrorResponse(
        message=str(exc),
        error_code="ENRICHMENT_ERROR",
        details={"type": exc.__class__.__name__},
    ))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions with a sanitized response."""
    log_exception(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, include_traceback=True)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorResponse(
        message="An unexpected error occurred",
        error_code="INTERNAL_SERVER_ERROR",
        details={"type": exc.__class__.__name__},
    ))


def log_exception(
    request: Request,
    exc: Exception,
    status_code: int,
    include_traceback: bool = False
) -> None:
    """
    Log an exception with request context at a severity matching its status.

    Args:
        request: Request that caused exception
        exc: Exception instance
        status_code: HTTP status code of the response
        include_traceback: Whether to include full traceback
    """
    if status_code >= 500:
        log_level = logging.ERROR
    elif status_code >= 400:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO

    error_details = {
        "status_code": status_code,
        "error_type": exc.__class__.__name__,
        "error_message": str(exc),
        "client_host": request.client.host if request.client else "unknown"
    }
    if include_traceback:
        error_details["traceback"] = traceback.format_exc()

    logger.log(
        log_level,
        f"Exception during request to {request.method} {request.url.path}: {exc.__class__.__name__}",
        extra={"error_details": error_details}
    )
