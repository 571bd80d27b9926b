from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from servicedesk.tickets.permissions import Actor, Capability, Role

TOKEN_ACTOR_MAP: dict[str, Actor] = {
    "admin-token": Actor(id="admin-1", name="Administrator", role=Role.ADMIN, department="IT"),
    "supervisor-token": Actor(id="supervisor-1", name="IT Supervisor", role=Role.SUPERVISOR, department="IT"),
    "technician-token": Actor(id="technician-1", name="Support Technician", role=Role.TECHNICIAN, department="IT"),
    "user-token": Actor(id="user-1", name="Joao Silva", role=Role.USER, department="Sales"),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_actor_from_token(token: str | None) -> Actor | None:
    """Return the actor associated with a bearer token, or ``None`` when anonymous.

    Stand-in for the external authentication collaborator: a real deployment
    would verify the token and load the user record from its own store.
    """

    if token is None:
        return None

    actor = TOKEN_ACTOR_MAP.get(token)
    if actor is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return actor


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> Actor | None:
    cached = getattr(request.state, "actor", None)
    if isinstance(cached, Actor):
        return cached

    token = credentials.credentials if credentials is not None else None
    actor = resolve_actor_from_token(token)
    request.state.actor = actor
    return actor


def permission_required(capability: Capability) -> Callable[..., Actor]:
    """Dependency factory ensuring the current actor carries ``capability``."""

    async def dependency(actor: Annotated[Actor | None, Depends(get_current_actor)]) -> Actor:
        if actor is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        if not actor.has_permission(capability):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return actor

    return dependency


CurrentActor = Annotated[Actor | None, Depends(get_current_actor)]
