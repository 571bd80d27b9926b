"""Middleware resolving the bearer token into the request's actor."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from servicedesk.dependencies.auth import resolve_actor_from_token


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization`` header; ``None`` when absent."""

    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return credentials.strip() or None


class RBACMiddleware(BaseHTTPMiddleware):
    """Populate ``request.state.actor``; anonymous requests carry ``None``.

    Resolved actors are recorded on the active span as ``enduser.id`` and
    ``enduser.role`` so ticket operation spans can be traced back to a caller.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            actor = resolve_actor_from_token(bearer_token(request.headers.get("Authorization")))
        except HTTPException as exc:
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

        request.state.actor = actor
        if actor is not None:
            span = trace.get_current_span()
            span.set_attribute("enduser.id", actor.id)
            span.set_attribute("enduser.role", actor.role.value)
        return await call_next(request)
