"""HTTP middleware and exception handlers for the verification API."""

import logging as stdlib_logging

from fastapi import FastAPI

from questproof.config import Settings
from questproof.middleware.cors import setup_cors
from questproof.middleware.error_handler import setup_error_handlers
from questproof.middleware.logging import setup_logging
from questproof.middleware.rate_limit import RateLimitMiddleware
from questproof.middleware.request_id import RequestIdMiddleware

logger = stdlib_logging.getLogger(__name__)

# Innermost first. Starlette wraps each added middleware around the previous ones.
MIDDLEWARE_STACK = (RateLimitMiddleware, RequestIdMiddleware)


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, error handlers and the middleware stack.

    CORS goes on last so preflights and 429 responses carry its headers.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    for middleware in MIDDLEWARE_STACK:
        app.add_middleware(middleware)
    if not setup_cors(app, settings):
        logger.info("CORS disabled: no allowed origins configured")
