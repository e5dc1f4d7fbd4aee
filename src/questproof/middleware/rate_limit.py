"""Sliding window rate limiting per client IP."""

import math

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

# Paths exempt from rate limiting
_EXEMPT_PATHS = frozenset({"/health", "/ready"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limit requests per IP through the application's RateLimiter.

    Limits come from the running services' settings.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Check rate limit, return 429 if exceeded."""
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        services = getattr(request.app.state, "services", None)
        if services is None:
            # Not started yet, let the request through without rate limiting
            return await call_next(request)

        limit = services.settings.rate_limit_requests
        client_ip = request.client.host if request.client else "unknown"
        decision = await services.limiter.allow(
            f"ip:{client_ip}", limit, services.settings.rate_limit_window_seconds,
        )
        if not decision:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later.", "code": "rate_limited"},
                headers={
                    "Retry-After": str(max(1, math.ceil(decision.retry_after))),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Limit": str(limit),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        response.headers["X-RateLimit-Limit"] = str(limit)
        return response
