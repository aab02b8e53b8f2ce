"""Custom middleware for request tracking, tracing, logging and request metrics."""

import logging
import re
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .observability import REQUEST_COUNT, REQUEST_DURATION

logger = logging.getLogger(__name__)

TRACEPARENT_PATTERN = re.compile(r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$")


def parse_traceparent(traceparent: str) -> Optional[dict]:
    """
    Parse a W3C traceparent header.

    https://www.w3.org/TR/trace-context/

    Returns None for malformed headers, unknown versions and all-zero IDs.
    """
    match = TRACEPARENT_PATTERN.match(traceparent)
    if not match:
        return None

    version, trace_id, parent_id, flags = match.groups()
    if version != "00" or trace_id == "0" * 32 or parent_id == "0" * 16:
        return None

    return {
        "trace_id": trace_id,
        "parent_id": parent_id,
        "flags": flags,
    }


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an ID taken from X-Request-ID or freshly generated.

    The ID is echoed in the response and bound into structlog's context so
    every log line emitted while handling the request carries it.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response


class TraceContextMiddleware(BaseHTTPMiddleware):
    """Continue an incoming W3C trace or start a new one, and echo traceparent."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        tracestate = request.headers.get("tracestate")
        incoming = parse_traceparent(request.headers.get("traceparent", ""))

        if incoming:
            trace_id = incoming["trace_id"]
            parent_span_id = incoming["parent_id"]
            flags = incoming["flags"]
        else:
            trace_id = uuid.uuid4().hex
            parent_span_id = None
            flags = "01"  # sampled

        span_id = uuid.uuid4().hex[:16]
        request.state.trace_context = {
            "trace_id": trace_id,
            "span_id": span_id,
            "parent_span_id": parent_span_id,
            "flags": flags,
            "tracestate": tracestate,
        }

        response = await call_next(request)

        response.headers["traceparent"] = f"00-{trace_id}-{span_id}-{flags}"
        if tracestate:
            response.headers["tracestate"] = tracestate
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Log each request and record Prometheus request metrics.

    Metrics are labelled with the route template rather than the raw path so
    label cardinality stays bounded.
    """

    def __init__(self, app: ASGIApp, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.skip_paths = skip_paths or ["/health", "/metrics", "/favicon.ico"]

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    @staticmethod
    def _endpoint(request: Request) -> str:
        route = request.scope.get("route")
        return getattr(route, "path", request.url.path)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        trace_context = getattr(request.state, "trace_context", {})
        log_data = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "trace_id": trace_context.get("trace_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "client_ip": self._client_ip(request),
        }

        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start_time
            REQUEST_COUNT.labels(request.method, self._endpoint(request), "500").inc()
            REQUEST_DURATION.labels(request.method, self._endpoint(request)).observe(duration)
            logger.exception("HTTP request failed", extra=log_data)
            raise

        duration = time.perf_counter() - start_time
        endpoint = self._endpoint(request)
        REQUEST_COUNT.labels(request.method, endpoint, str(response.status_code)).inc()
        REQUEST_DURATION.labels(request.method, endpoint).observe(duration)

        log_data.update({
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        })

        # Log at appropriate level based on status code
        if response.status_code >= 500:
            logger.error("HTTP request completed with server error", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("HTTP request completed with client error", extra=log_data)
        else:
            logger.info("HTTP request completed successfully", extra=log_data)

        return response


def setup_middleware(app, enable_logging: bool = True) -> None:
    """
    Setup all middleware on the FastAPI app.

    Middleware added last runs first, so request IDs and trace context are
    in place before the logging middleware reads them.
    """
    if enable_logging:
        app.add_middleware(LoggingMiddleware)

    app.add_middleware(TraceContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
