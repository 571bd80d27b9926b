from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from servicedesk.dependencies.auth import CurrentActor
from servicedesk.tickets.permissions import Capability, Role, permissions_for

router = APIRouter(prefix="/me", tags=["auth"])


class ActorPermissionsResponse(BaseModel):
    id: str
    name: str
    role: Role
    permissions: dict[Capability, bool]


@router.get("/permissions", response_model=ActorPermissionsResponse)
async def my_permissions(actor: CurrentActor) -> ActorPermissionsResponse:
    if actor is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return ActorPermissionsResponse(
        id=actor.id,
        name=actor.name,
        role=actor.role,
        permissions=permissions_for(actor.role),
    )
