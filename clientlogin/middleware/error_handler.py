"""Exception handlers turning login errors into consistent JSON responses."""

import logging
from typing import Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from ..core.config import settings
from ..exceptions import ClientLoginError, ProviderExchangeError


logger = logging.getLogger(__name__)


async def client_login_exception_handler(request: Request, exc: ClientLoginError) -> JSONResponse:
    """
    Handle errors raised by the login flow.

    The visitor only ever sees the public message of the error class.
    Provider failures are logged in full; the detail is returned only
    when DEBUG is on.

    Args:
        request: FastAPI request
        exc: Login error

    Returns:
        JSON response with the error's status code
    """
    if isinstance(exc, ProviderExchangeError):
        logger.error(f"Provider {exc.provider} failed on {request.url.path}: {exc.detail}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.detail or exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.detail if settings.DEBUG else None,
        },
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError]
) -> JSONResponse:
    """
    Handle Pydantic validation errors, e.g. an oversized password form.

    Submitted values are never echoed back.
    """
    errors = []

    for error in exc.errors():
        field_path = ".".join(str(x) for x in error["loc"] if x != "body")
        errors.append({
            "field": field_path,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(f"Validation error on {request.url.path}: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "ValidationError",
            "message": "The submitted fields are invalid",
            "details": errors
        }
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Database error on {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "DatabaseError",
            "message": "Login storage is unavailable",
            "details": str(exc) if settings.DEBUG else None
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback, answer 500."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalError",
            "message": "Login failed unexpectedly",
            "details": str(exc) if settings.DEBUG else None
        }
    )
