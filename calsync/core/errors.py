# calsync/core/errors.py
"""Maps calendar engine errors onto HTTP responses"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from calsync.exceptions import (
    EventNotFoundError,
    IntegrationNotFoundError,
    InvalidTransitionError,
    ProviderError,
    ReauthorizationRequired,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message, **extra})


async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return _error(404, "not_found", str(exc))


async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return _error(400, "invalid_transition", str(exc))


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error(400, "invalid_request", str(exc))


async def reauthorization_handler(request: Request, exc: ReauthorizationRequired) -> JSONResponse:
    logger.warning(f"{exc.provider} integration {exc.integration_id} needs re-authorization")
    return _error(409, "reauthorization_required", str(exc), provider=exc.provider)


async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error(f"Provider error from {exc.provider} ({exc.status_code}): {exc}")
    return _error(502, "provider_error", str(exc), provider=exc.provider)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EventNotFoundError, not_found_handler)
    app.add_exception_handler(IntegrationNotFoundError, not_found_handler)
    app.add_exception_handler(UnknownProviderError, not_found_handler)
    app.add_exception_handler(InvalidTransitionError, invalid_transition_handler)
    app.add_exception_handler(ReauthorizationRequired, reauthorization_handler)
    app.add_exception_handler(ProviderError, provider_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
