"""Ticket lifecycle engine: permissions, state machine, persistence and orchestration."""

from .errors import (
    ErrorKind,
    ForbiddenError,
    InvalidTicketStateError,
    InvalidTicketTransitionError,
    TicketConflictError,
    TicketNotFoundError,
    TicketServiceError,
    TicketValidationError,
    UnauthenticatedError,
)
from .models import (
    SLA_HOURS,
    Ticket,
    TicketAction,
    TicketCategory,
    TicketComment,
    TicketCreate,
    TicketHistoryEntry,
    TicketPriority,
    TicketStats,
    TicketUpdate,
)
from .permissions import Actor, Capability, Role, UserStatus, has_permission, permissions_for
from .repository import AuditLedger, CommentStore, TicketRepository
from .results import OperationResult
from .service import TicketService
from .state import TicketStateMachine, TicketStatus

__all__ = [
    "Actor",
    "AuditLedger",
    "Capability",
    "CommentStore",
    "ErrorKind",
    "ForbiddenError",
    "InvalidTicketStateError",
    "InvalidTicketTransitionError",
    "OperationResult",
    "Role",
    "SLA_HOURS",
    "Ticket",
    "TicketAction",
    "TicketCategory",
    "TicketComment",
    "TicketConflictError",
    "TicketCreate",
    "TicketHistoryEntry",
    "TicketNotFoundError",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStats",
    "TicketStatus",
    "TicketUpdate",
    "TicketValidationError",
    "UnauthenticatedError",
    "UserStatus",
    "has_permission",
    "permissions_for",
]
