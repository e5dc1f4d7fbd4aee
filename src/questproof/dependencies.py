"""Shared FastAPI dependencies.

Authentication happens upstream; the gateway forwards the caller as
``X-User-Id`` and, for staff, ``X-User-Role: admin``.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request

from questproof.services import Services


@dataclass(frozen=True)
class Identity:
    user_id: int
    is_admin: bool = False


def get_services(request: Request) -> Services:
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


async def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Malformed caller identity") from None
    if user_id <= 0:
        raise HTTPException(status_code=401, detail="Malformed caller identity")
    return Identity(user_id=user_id, is_admin=(x_user_role or "").lower() == "admin")


async def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity
