"""Trace ID middleware binding each request's id into the log context."""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from genpipe.logging_config import bind_request_context, clear_context
from genpipe.services.id_generator import generate_id

TRACE_HEADER = "X-Trace-Id"


class TraceIdMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Trace-Id or mint one; echo it on the response.

    Log lines emitted while the request runs (including dispatcher logs for
    jobs started by it) carry the ``trace_id`` field.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = request.headers.get(TRACE_HEADER) or generate_id("trc_")
        request.state.trace_id = trace_id
        bind_request_context(trace_id)
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers[TRACE_HEADER] = trace_id
        return response
