from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Mapping

from .permissions import Role
from .state import TicketStatus

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 5000
COMMENT_MAX_LENGTH = 5000
RATING_MIN = 1
RATING_MAX = 5


class TicketCategory(str, Enum):
    HARDWARE = "hardware"
    SOFTWARE = "software"
    NETWORK = "network"
    ACCESS = "access"
    OTHER = "other"


class TicketPriority(str, Enum):
    """Ticket urgency, ordered by severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY: Mapping[TicketPriority, int] = {
    TicketPriority.LOW: 1,
    TicketPriority.MEDIUM: 2,
    TicketPriority.HIGH: 3,
    TicketPriority.URGENT: 4,
}


class TicketAction(str, Enum):
    """Actions recorded in a ticket's history."""

    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMMENTED = "commented"
    REOPENED = "reopened"
    CLOSED = "closed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class SlaTarget:
    """Response and resolution targets in hours. Stored only, never enforced."""

    response_hours: int
    resolution_hours: int


SLA_HOURS: Mapping[TicketPriority, SlaTarget] = {
    TicketPriority.LOW: SlaTarget(response_hours=48, resolution_hours=120),
    TicketPriority.MEDIUM: SlaTarget(response_hours=24, resolution_hours=72),
    TicketPriority.HIGH: SlaTarget(response_hours=8, resolution_hours=24),
    TicketPriority.URGENT: SlaTarget(response_hours=2, resolution_hours=8),
}


@dataclass(slots=True)
class Ticket:
    """Aggregate representing a support ticket entry."""

    id: str
    title: str
    description: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    requires_approval: bool
    created_by: str
    created_at: datetime
    updated_at: datetime
    created_by_name: str | None = None
    created_by_department: str | None = None
    assigned_to: str | None = None
    assigned_to_name: str | None = None
    approved_by: str | None = None
    approved_by_name: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    resolution: str | None = None
    resolved_by: str | None = None
    resolved_by_name: str | None = None
    resolved_at: datetime | None = None
    closed_by: str | None = None
    closed_by_name: str | None = None
    closed_at: datetime | None = None
    satisfaction_rating: int | None = None
    version: int = 1

    @property
    def sla(self) -> SlaTarget:
        return SLA_HOURS[self.priority]


@dataclass(slots=True)
class TicketHistoryEntry:
    """Immutable audit entry describing one action taken on a ticket."""

    id: str
    ticket_id: str
    action: TicketAction
    description: str
    user_id: str
    user_name: str
    user_role: Role
    created_at: datetime
    previous_status: TicketStatus | None = None
    new_status: TicketStatus | None = None


@dataclass(slots=True)
class TicketComment:
    """Comment attached to a ticket; internal ones are hidden from plain users."""

    id: str
    ticket_id: str
    content: str
    is_internal: bool
    user_id: str
    user_name: str
    user_role: Role
    created_at: datetime


@dataclass(slots=True)
class TicketCreate:
    title: str
    description: str
    category: TicketCategory
    priority: TicketPriority = TicketPriority.MEDIUM


@dataclass(slots=True)
class TicketUpdate:
    """Partial update; ``None`` means "leave unchanged"."""

    title: str | None = None
    description: str | None = None
    category: TicketCategory | None = None
    priority: TicketPriority | None = None
    status: TicketStatus | None = None
    resolution: str | None = None
    rejection_reason: str | None = None
    satisfaction_rating: int | None = None
    expected_version: int | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, item.name) is None for item in fields(self) if item.name != "expected_version")


@dataclass(slots=True)
class TicketStats:
    """Counts over the tickets visible to one actor."""

    total: int
    by_status: dict[TicketStatus, int] = field(default_factory=dict)
    urgent_active: int = 0
