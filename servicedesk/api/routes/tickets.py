from __future__ import annotations

from datetime import datetime
from typing import Annotated, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from servicedesk.dependencies.auth import CurrentActor
from servicedesk.dependencies.tickets import ReportsActor, get_ticket_service
from servicedesk.tickets.errors import ErrorKind
from servicedesk.tickets.models import (
    TicketAction,
    TicketCategory,
    TicketCreate,
    TicketPriority,
    TicketUpdate,
)
from servicedesk.tickets.permissions import Role
from servicedesk.tickets.results import OperationResult
from servicedesk.tickets.service import TicketService
from servicedesk.tickets.state import TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])

T = TypeVar("T")

HTTP_STATUS_BY_ERROR: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.STORAGE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class TicketCreateRequest(BaseModel):
    title: str
    description: str
    category: TicketCategory
    priority: TicketPriority = TicketPriority.MEDIUM


class TicketUpdateRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    category: TicketCategory | None = None
    priority: TicketPriority | None = None
    status: TicketStatus | None = None
    resolution: str | None = Field(default=None, max_length=5000)
    rejection_reason: str | None = Field(default=None, max_length=500)
    satisfaction_rating: int | None = None
    expected_version: int | None = None


class TicketRejectRequest(BaseModel):
    reason: str = Field(..., max_length=500)


class TicketAssignRequest(BaseModel):
    technician_id: str
    technician_name: str | None = None


class CommentCreateRequest(BaseModel):
    content: str
    is_internal: bool = False


class SlaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    response_hours: int
    resolution_hours: int


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    requires_approval: bool
    created_by: str
    created_by_name: str | None
    created_by_department: str | None
    assigned_to: str | None
    assigned_to_name: str | None
    approved_by: str | None
    approved_by_name: str | None
    approved_at: datetime | None
    rejection_reason: str | None
    resolution: str | None
    resolved_by: str | None
    resolved_by_name: str | None
    resolved_at: datetime | None
    closed_by: str | None
    closed_by_name: str | None
    closed_at: datetime | None
    satisfaction_rating: int | None
    created_at: datetime
    updated_at: datetime
    version: int
    sla: SlaResponse


class TicketHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    action: TicketAction
    description: str
    previous_status: TicketStatus | None
    new_status: TicketStatus | None
    user_id: str
    user_name: str
    user_role: Role
    created_at: datetime


class TicketCommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    content: str
    is_internal: bool
    user_id: str
    user_name: str
    user_role: Role
    created_at: datetime


class TicketStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    by_status: dict[TicketStatus, int]
    urgent_active: int


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


def _unwrap(result: OperationResult[T]) -> T:
    if result.ok:
        return result.value  # type: ignore[return-value]
    assert result.error_kind is not None
    raise HTTPException(
        status_code=HTTP_STATUS_BY_ERROR[result.error_kind],
        detail={"error": result.error_kind.value, "message": result.message},
    )


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreateRequest, service: TicketServiceDep, actor: CurrentActor) -> TicketResponse:
    result = await service.create(actor, TicketCreate(**payload.model_dump()))
    return TicketResponse.model_validate(_unwrap(result))


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    actor: CurrentActor,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    priority: TicketPriority | None = Query(default=None),
    category: TicketCategory | None = Query(default=None),
    q: str | None = Query(default=None, max_length=200),
) -> list[TicketResponse]:
    if q:
        tickets = _unwrap(await service.search(actor, q))
        tickets = [
            ticket
            for ticket in tickets
            if (status_filter is None or ticket.status == status_filter)
            and (priority is None or ticket.priority == priority)
            and (category is None or ticket.category == category)
        ]
    else:
        tickets = _unwrap(await service.get_all(actor, status=status_filter, priority=priority, category=category))
    return [TicketResponse.model_validate(ticket) for ticket in tickets]


@router.get("/stats", response_model=TicketStatsResponse)
async def ticket_stats(service: TicketServiceDep, actor: ReportsActor) -> TicketStatsResponse:
    return TicketStatsResponse.model_validate(_unwrap(await service.get_stats(actor)))


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> TicketResponse:
    return TicketResponse.model_validate(_unwrap(await service.get_by_id(actor, ticket_id)))


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    changes = TicketUpdate(**payload.model_dump(exclude_unset=True))
    return TicketResponse.model_validate(_unwrap(await service.update(actor, ticket_id, changes)))


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> Response:
    _unwrap(await service.delete(actor, ticket_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{ticket_id}/approve", response_model=TicketResponse)
async def approve_ticket(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> TicketResponse:
    return TicketResponse.model_validate(_unwrap(await service.approve(actor, ticket_id)))


@router.post("/{ticket_id}/reject", response_model=TicketResponse)
async def reject_ticket(
    ticket_id: str,
    payload: TicketRejectRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    return TicketResponse.model_validate(_unwrap(await service.reject(actor, ticket_id, payload.reason)))


@router.post("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    ticket_id: str,
    payload: TicketAssignRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    result = await service.assign(actor, ticket_id, payload.technician_id, payload.technician_name)
    return TicketResponse.model_validate(_unwrap(result))


@router.post("/{ticket_id}/take-ownership", response_model=TicketResponse)
async def take_ownership(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> TicketResponse:
    return TicketResponse.model_validate(_unwrap(await service.take_ownership(actor, ticket_id)))


@router.get("/{ticket_id}/comments", response_model=list[TicketCommentResponse])
async def list_comments(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> list[TicketCommentResponse]:
    comments = _unwrap(await service.get_comments(actor, ticket_id))
    return [TicketCommentResponse.model_validate(comment) for comment in comments]


@router.post("/{ticket_id}/comments", response_model=TicketCommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    payload: CommentCreateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketCommentResponse:
    result = await service.add_comment(actor, ticket_id, payload.content, payload.is_internal)
    return TicketCommentResponse.model_validate(_unwrap(result))


@router.get("/{ticket_id}/history", response_model=list[TicketHistoryResponse])
async def get_ticket_history(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> list[TicketHistoryResponse]:
    entries = _unwrap(await service.get_history(actor, ticket_id))
    return [TicketHistoryResponse.model_validate(entry) for entry in entries]
