from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from servicedesk.dependencies.auth import permission_required
from servicedesk.tickets.permissions import Actor, Capability
from servicedesk.tickets.service import TicketService

require_reports = permission_required(Capability.VIEW_REPORTS)

ReportsActor = Annotated[Actor, Depends(require_reports)]


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service
