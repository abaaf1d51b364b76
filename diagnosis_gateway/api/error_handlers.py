"""Exception handlers for the gateway API.

Every failure, whichever layer raises it, is turned into a gateway exception,
classified once, logged once, and rendered as the shared error envelope.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from diagnosis_gateway.api.dependencies import get_settings
from diagnosis_gateway.domain.error_classifier import ClassifiedError, ErrorKind, classify
from diagnosis_gateway.domain.errors import (
    GatewayError,
    InputValidationError,
    MalformedBodyError,
    RouteNotFoundError,
)
from diagnosis_gateway.infrastructure.settings import Settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def resolve_settings(request: Request) -> Settings:
    """Settings for code paths outside dependency injection (handlers, middleware)."""
    provider = request.app.dependency_overrides.get(get_settings, get_settings)
    return provider()


def render(classified: ClassifiedError) -> JSONResponse:
    return JSONResponse(status_code=classified.status_code, content=classified.to_envelope())


def error_response(request: Request, error: BaseException) -> JSONResponse:
    """Classify ``error`` and render the error envelope.

    Parameters:
        request: Request being served
        error: Failure raised while serving it

    Returns:
        JSONResponse carrying the classified status code and envelope
    """
    settings = resolve_settings(request)
    classified = classify(
        error,
        is_production=settings.is_production,
        request_id=request.headers.get(REQUEST_ID_HEADER),
    )

    extra = {
        "request_id": getattr(request.state, "request_id", "-"),
        "method": request.method,
        "path": request.url.path,
        "status_code": classified.status_code,
    }
    if classified.is_operational:
        logger.warning(
            f"{request.method} {request.url.path} - {classified.kind.value}: {error}",
            extra=extra,
        )
    else:
        logger.error(
            f"{request.method} {request.url.path} - unhandled error: {error}",
            exc_info=(type(error), error, error.__traceback__),
            extra=extra,
        )
    return render(classified)


def _format_location(location: tuple) -> str:
    parts = [str(part) for part in location[1:]] if len(location) > 1 else [str(p) for p in location]
    return ".".join(parts)


def translate_validation_error(exc: RequestValidationError) -> GatewayError:
    """Convert FastAPI's request validation failure into a gateway error."""
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        return MalformedBodyError("Request body is not valid JSON")

    details = [f"{_format_location(tuple(err.get('loc', ())))}: {err.get('msg')}" for err in errors]
    return InputValidationError("; ".join(details) or "Invalid request", details)


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return error_response(request, exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(request, translate_validation_error(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return error_response(request, RouteNotFoundError(f"Route {request.url.path} not found"))

    classified = ClassifiedError(
        status_code=exc.status_code,
        message=str(exc.detail),
        is_operational=True,
        kind=ErrorKind.INTERNAL if exc.status_code >= 500 else ErrorKind.INPUT_VALIDATION,
        request_id=request.headers.get(REQUEST_ID_HEADER),
    )
    response = render(classified)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    """Install the gateway exception handlers on ``app``."""
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
