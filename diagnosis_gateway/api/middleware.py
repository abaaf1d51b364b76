"""Middleware configuration for the gateway API.

This module sets up middleware for request correlation, logging, error
handling, rate limiting, body size limits and security headers.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from diagnosis_gateway.api.dependencies import get_id_generator
from diagnosis_gateway.api.error_handlers import REQUEST_ID_HEADER, error_response
from diagnosis_gateway.api.security import (
    BodySizeLimitMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from diagnosis_gateway.infrastructure.request_context import request_id_context
from diagnosis_gateway.infrastructure.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseEvent:
    """What an observer sees once a request has been answered."""
    request_id: str
    method: str
    path: str
    status_code: int
    duration_ms: float
    client_ip: str
    user_agent: Optional[str]
    content_length: Optional[str]


ResponseObserver = Callable[[ResponseEvent], None]


def log_response(event: ResponseEvent) -> None:
    """Default observer: one access log line per response."""
    logger.info(
        f"{event.method} {event.path} - Status: {event.status_code} - Time: {event.duration_ms:.1f}ms",
        extra={
            "request_id": event.request_id,
            "method": event.method,
            "path": event.path,
            "status_code": event.status_code,
            "duration_ms": round(event.duration_ms, 1),
            "client_ip": event.client_ip,
        },
    )


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign every request a correlation id.

    A caller-supplied ``X-Request-ID`` is reused; otherwise one is generated.
    The id is stored on ``request.state``, bound in the request context, and
    returned in the response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER)
        if not request_id:
            provider = request.app.dependency_overrides.get(get_id_generator, get_id_generator)
            request_id = provider().request_id()
        request.state.request_id = request_id

        with request_id_context(request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging.

    After the handler completes, each registered observer is called with a
    ResponseEvent. Observers must not raise; a failing observer is logged and
    skipped.
    """

    def __init__(self, app, observers: Optional[Iterable[ResponseObserver]] = None):
        super().__init__(app)
        self.observers = list(observers) if observers is not None else [log_response]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        request_id = getattr(request.state, "request_id", "-")

        logger.info(
            f"Incoming {request.method} request {request.url.path}",
            extra={"request_id": request_id, "method": request.method, "path": request.url.path,
                   "client_ip": client_ip},
        )

        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time"] = f"{duration_ms / 1000:.3f}"

        event = ResponseEvent(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            client_ip=client_ip,
            user_agent=request.headers.get("user-agent"),
            content_length=response.headers.get("content-length"),
        )
        for observer in self.observers:
            try:
                observer(event)
            except Exception as e:
                logger.warning(f"Response observer {observer!r} failed: {str(e)}")

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for global error handling.

    Catches anything the exception handlers did not, so even unexpected
    failures are classified and answered with the error envelope.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            return error_response(request, e)


def setup_middleware(app: FastAPI, settings: Settings,
                     observers: Optional[Iterable[ResponseObserver]] = None) -> None:
    """Setup application middleware.

    Parameters:
        app: FastAPI application instance
        settings: Application settings
        observers: Post-response observers (defaults to access logging)

    Middleware Order (outermost first):
        1. RequestIDMiddleware - Assigns the correlation id
        2. LoggingMiddleware - Logs requests and notifies observers
        3. SecurityHeadersMiddleware - Adds security headers
        4. RateLimitMiddleware - Enforces rate limits
        5. BodySizeLimitMiddleware - Rejects oversized bodies
        6. ErrorHandlingMiddleware - Classifies unexpected errors
    """
    # Starlette wraps in reverse order of registration
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.max_body_size)
    app.add_middleware(
        RateLimitMiddleware,
        default_limit=settings.rate_limit,
        default_window=settings.rate_limit_window,
    )
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.enable_hsts)
    app.add_middleware(LoggingMiddleware, observers=observers)
    app.add_middleware(RequestIDMiddleware)
