#!/usr/bin/env python3
"""
Error handlers for the web application.

Maps the notification error taxonomy onto HTTP status codes.
"""

import logging
from fastapi import Request, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from core.exceptions import (
    ConflictError,
    MissingTemplateVariablesError,
    NotFoundError,
    NotificationError,
    NotificationPermissionError,
    NotificationValidationError,
)

logger = logging.getLogger(__name__)


def status_code_for(exc: NotificationError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, NotificationValidationError):
        return 400
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, NotificationPermissionError):
        return 403
    return 500


async def notification_exception_handler(
    request: Request,
    exc: NotificationError
) -> JSONResponse:
    """
    Handle notification subsystem exceptions.

    Args:
        request: The FastAPI request.
        exc: The notification exception.

    Returns:
        JSONResponse with error details.
    """
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"Service error in {request.url.path}: {exc}", exc_info=True)
    else:
        logger.info(f"{exc.__class__.__name__} in {request.url.path}: {exc}")

    content = {
        "success": False,
        "error": str(exc),
        "type": exc.__class__.__name__
    }
    if isinstance(exc, MissingTemplateVariablesError):
        content["missing"] = exc.missing

    return JSONResponse(status_code=status_code, content=content)


async def http_exception_handler(
    request: Request,
    exc: HTTPException
) -> JSONResponse:
    """
    Handle FastAPI HTTP exceptions with consistent format.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "type": "HTTPException"
        }
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.
    """
    logger.exception(f"Unexpected error in {request.url.path}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "type": "InternalError"
        }
    )


async def validation_exception_handler(
    request: Request,
    exc: ValidationError
) -> JSONResponse:
    """
    Handle model validation that happens inside an endpoint, after the
    request itself has been parsed.
    """
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Validation failed",
            "type": "ValidationError",
            "details": jsonable_encoder(
                exc.errors(include_url=False, include_context=False, include_input=False)
            )
        }
    )
