"""Security middleware for the gateway API.

This module provides rate limiting, security headers and request body size
limits for production deployment.

Security Impact:
    - Rate limiting prevents abuse and DoS attacks
    - Security headers protect against common vulnerabilities
    - Body size limits stop oversized payloads before they are parsed,
      whether or not the client declares a length
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from diagnosis_gateway.api.error_handlers import REQUEST_ID_HEADER, error_response, render
from diagnosis_gateway.domain.error_classifier import ClassifiedError, ErrorKind
from diagnosis_gateway.domain.errors import PayloadTooLargeError

logger = logging.getLogger(__name__)

# Health probes and docs are never rate limited.
EXEMPT_PATHS = ("/api/health", "/api/docs", "/api/redoc", "/api/openapi.json")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware for rate limiting requests.

    Implements an in-memory sliding-window limiter keyed by client address.
    The request counters are the only mutable state shared between requests.

    Security Impact:
        - Prevents DoS attacks
        - Protects against abuse
        - Configurable per endpoint
    """

    def __init__(
        self,
        app,
        default_limit: int = 100,
        default_window: int = 900,
        per_endpoint_limits: Dict[str, Tuple[int, int]] = None
    ):
        """Initialize rate limiter.

        Parameters:
            app: FastAPI application
            default_limit: Default requests per window
            default_window: Default window in seconds
            per_endpoint_limits: Dict mapping endpoint paths to (limit, window) tuples
        """
        super().__init__(app)
        self.default_limit = default_limit
        self.default_window = default_window
        self.per_endpoint_limits = per_endpoint_limits or {}

        # In-memory storage: {client_ip: {endpoint: [timestamp, ...]}}
        self._requests: Dict[str, Dict[str, list]] = defaultdict(lambda: defaultdict(list))

        self._last_cleanup = time.time()
        self._cleanup_interval = 300

    def _get_client_id(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    def _get_endpoint_key(self, request: Request) -> str:
        path = request.url.path
        for endpoint_pattern in self.per_endpoint_limits:
            if path.startswith(endpoint_pattern):
                return endpoint_pattern
        return "default"

    def _limits_for(self, endpoint_key: str) -> Tuple[int, int]:
        return self.per_endpoint_limits.get(endpoint_key, (self.default_limit, self.default_window))

    def _cleanup_old_entries(self):
        """Remove old entries from rate limit tracking."""
        current_time = time.time()
        if current_time - self._last_cleanup < self._cleanup_interval:
            return

        longest_window = max([self.default_window] + [w for _, w in self.per_endpoint_limits.values()])
        cutoff_time = current_time - longest_window
        for client_id in list(self._requests):
            client_requests = self._requests[client_id]
            for endpoint_key in list(client_requests):
                client_requests[endpoint_key] = [ts for ts in client_requests[endpoint_key] if ts > cutoff_time]
                if not client_requests[endpoint_key]:
                    del client_requests[endpoint_key]
            if not client_requests:
                del self._requests[client_id]

        self._last_cleanup = current_time

    def _check_rate_limit(self, client_id: str, endpoint_key: str) -> Tuple[bool, int, int]:
        """Check if request is within rate limit.

        Returns:
            Tuple of (allowed, remaining, reset_after)
        """
        limit, window = self._limits_for(endpoint_key)

        current_time = time.time()
        window_start = current_time - window

        client_requests = self._requests[client_id][endpoint_key]
        client_requests[:] = [ts for ts in client_requests if ts > window_start]

        if len(client_requests) >= limit:
            reset_after = int(window - (current_time - client_requests[0]))
            return False, 0, reset_after

        client_requests.append(current_time)
        return True, limit - len(client_requests), window

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/" or request.url.path.startswith(EXEMPT_PATHS):
            return await call_next(request)

        self._cleanup_old_entries()

        client_id = self._get_client_id(request)
        endpoint_key = self._get_endpoint_key(request)
        limit, _ = self._limits_for(endpoint_key)

        allowed, remaining, reset_after = self._check_rate_limit(client_id, endpoint_key)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_id} on {endpoint_key}")
            response = render(ClassifiedError(
                status_code=429,
                message="Too many requests from this IP, please try again later.",
                is_operational=True,
                kind=ErrorKind.INPUT_VALIDATION,
                request_id=request.headers.get(REQUEST_ID_HEADER),
            ))
            response.headers["X-RateLimit-Limit"] = str(limit)
            response.headers["X-RateLimit-Remaining"] = "0"
            response.headers["X-RateLimit-Reset"] = str(int(time.time()) + reset_after)
            response.headers["Retry-After"] = str(reset_after)
            return response

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(int(time.time()) + reset_after)
        return response


class BodySizeLimitMiddleware:
    """Reject requests whose body exceeds ``max_body_size``.

    A declared ``Content-Length`` is checked before anything is read. Bodies
    without one (chunked transfer) are counted as they arrive and buffered;
    the request is rejected as soon as the count passes the limit, and the
    buffered body is replayed to the application otherwise.

    Written as a plain ASGI middleware because ``BaseHTTPMiddleware`` cannot
    hand a partially read body on to the application.
    """

    def __init__(self, app: ASGIApp, max_body_size: int):
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > self.max_body_size:
                await self._reject(request, int(content_length), scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        messages: list[Message] = []
        size = 0
        while True:
            message = await receive()
            messages.append(message)
            if message["type"] != "http.request":
                break
            size += len(message.get("body", b""))
            if size > self.max_body_size:
                await self._reject(request, size, scope, receive, send)
                return
            if not message.get("more_body", False):
                break

        await self.app(scope, _replay(messages, receive), send)

    async def _reject(self, request: Request, size: int, scope: Scope, receive: Receive, send: Send) -> None:
        logger.warning(f"Rejected {request.method} {request.url.path}: body of {size} bytes over limit")
        response = error_response(request, PayloadTooLargeError(
            f"Request body of {size} bytes exceeds limit of {self.max_body_size} bytes",
            limit=self.max_body_size,
            size=size,
        ))
        await response(scope, receive, send)


def _replay(messages: list[Message], receive: Receive) -> Receive:
    """Receive callable that returns buffered messages first, then reads on."""
    pending = list(messages)

    async def replayed() -> Message:
        if pending:
            return pending.pop(0)
        return await receive()

    return replayed


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware for adding security headers.

    Security Impact:
        - Prevents MIME type sniffing
        - Prevents clickjacking
        - Enforces HTTPS in production
    """

    def __init__(self, app, enable_hsts: bool = False):
        """Initialize security headers middleware.

        Parameters:
            app: FastAPI application
            enable_hsts: Enable HSTS header (use in production with HTTPS)
        """
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "X-DNS-Prefetch-Control": "off",
            "X-Download-Options": "noopen",
            "X-Permitted-Cross-Domain-Policies": "none",
            "Cross-Origin-Opener-Policy": "same-origin",
            "Cross-Origin-Resource-Policy": "same-origin",
            "Referrer-Policy": "no-referrer",
        }
        # Swagger UI needs its CDN assets
        if not request.url.path.startswith(("/api/docs", "/api/redoc")):
            security_headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if self.enable_hsts:
            security_headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        for header, value in security_headers.items():
            response.headers[header] = value

        return response

