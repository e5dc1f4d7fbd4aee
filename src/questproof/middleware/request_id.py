"""Generate or propagate X-Request-Id and bind it to the log context."""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Ensure every request has a unique X-Request-Id header."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Bind the request id (and caller, when known) to the structlog context."""
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        if user_id := request.headers.get("X-User-Id"):
            structlog.contextvars.bind_contextvars(caller=user_id)
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response
