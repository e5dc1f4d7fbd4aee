"""Cross-origin access for the quest clients."""

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from questproof.config import Settings

# Headers the verification API sets that browser clients need to read
EXPOSED_HEADERS = ("X-Request-Id", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After")


def cors_options(settings: Settings) -> dict[str, Any]:
    """Derive CORSMiddleware options from settings.

    Browsers refuse credentialed responses for a wildcard origin, so
    credentials are only allowed for an explicit origin list.
    """
    origins = list(settings.cors_origins)
    methods = sorted({m.upper() for m in settings.cors_methods} | {"OPTIONS"})
    return {
        "allow_origins": origins,
        "allow_credentials": "*" not in origins,
        "allow_methods": methods,
        "allow_headers": ["Content-Type", "Authorization", "X-User-Id", "X-User-Role", "X-Request-Id"],
        "expose_headers": list(EXPOSED_HEADERS),
    }


def setup_cors(app: FastAPI, settings: Settings) -> bool:
    """Add CORS handling; returns False when no origins are configured."""
    if not settings.cors_origins:
        return False
    app.add_middleware(CORSMiddleware, **cors_options(settings))
    return True
