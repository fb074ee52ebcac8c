"""Translation of service-level failures into client-visible HTTP errors."""

import asyncio

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from flashcards_api.ai.openrouter import OpenRouterError, OpenRouterErrorCode

_INFERENCE_STATUS = {
    OpenRouterErrorCode.rate_limit_exceeded: status.HTTP_429_TOO_MANY_REQUESTS,
    OpenRouterErrorCode.network_error: status.HTTP_503_SERVICE_UNAVAILABLE,
    OpenRouterErrorCode.server_error: status.HTTP_503_SERVICE_UNAVAILABLE,
    OpenRouterErrorCode.invalid_response_format: status.HTTP_502_BAD_GATEWAY,
    OpenRouterErrorCode.schema_validation_failed: status.HTTP_502_BAD_GATEWAY,
    OpenRouterErrorCode.api_request_failed: status.HTTP_502_BAD_GATEWAY,
}

_INFERENCE_DETAIL = {
    status.HTTP_429_TOO_MANY_REQUESTS: "AI service rate limit exceeded. Please try again later.",
    status.HTTP_503_SERVICE_UNAVAILABLE: "AI service is temporarily unavailable. Please try again.",
    status.HTTP_502_BAD_GATEWAY: "AI service returned an invalid response. Please try again.",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "Failed to generate flashcards. Please try again.",
}


def inference_error_status(error: OpenRouterError) -> int:
    if error.code == OpenRouterErrorCode.max_retries_exceeded:
        if error.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
            return status.HTTP_429_TOO_MANY_REQUESTS
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return _INFERENCE_STATUS.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def inference_http_error(error: OpenRouterError) -> HTTPException:
    status_code = inference_error_status(error)
    return HTTPException(status_code=status_code, detail=_INFERENCE_DETAIL[status_code])


def database_http_error(error: Exception) -> HTTPException:
    if isinstance(error, IntegrityError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A flashcard with this content already exists",
        )
    if isinstance(error, (asyncio.TimeoutError, PoolTimeoutError)):
        return HTTPException(
            status_code=status.HTTP_408_REQUEST_TIMEOUT,
            detail="Request timed out. Please try again.",
        )
    if isinstance(error, (OperationalError, InterfaceError, DisconnectionError)):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Temporary database problem. Please try again.",
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Database operation failed. Please try again.",
    )


DATABASE_ERRORS = (SQLAlchemyError, asyncio.TimeoutError)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return "; ".join(parts) or "Invalid request"


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": f"Validation failed: {_format_validation_errors(exc)}",
            "errors": jsonable_encoder(exc.errors()),
        },
    )
