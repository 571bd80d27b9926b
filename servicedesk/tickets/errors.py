from __future__ import annotations

from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    """Failure categories reported by ticket operations."""

    VALIDATION = "validation_error"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_STATE = "invalid_state"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE = "storage_error"


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""

    kind: ClassVar[ErrorKind]


class TicketValidationError(TicketServiceError):
    """Raised when ticket input fails shape or length checks."""

    kind = ErrorKind.VALIDATION


class UnauthenticatedError(TicketServiceError):
    """Raised when an operation is attempted without an active actor."""

    kind = ErrorKind.UNAUTHENTICATED


class ForbiddenError(TicketServiceError):
    """Raised when the actor lacks the role or ownership for an action."""

    kind = ErrorKind.FORBIDDEN


class InvalidTicketTransitionError(TicketServiceError):
    """Raised when attempting to transition to an unreachable state."""

    kind = ErrorKind.INVALID_TRANSITION


class InvalidTicketStateError(TicketServiceError):
    """Raised when an action does not apply to the ticket's current status."""

    kind = ErrorKind.INVALID_STATE


class TicketNotFoundError(TicketServiceError):
    """Raised when an operation targets a non-existent ticket."""

    kind = ErrorKind.NOT_FOUND


class TicketConflictError(TicketServiceError):
    """Raised when an update was based on a stale ticket version."""

    kind = ErrorKind.CONFLICT


class TicketStorageError(TicketServiceError):
    """Raised when unwrapping a result that failed on persistence."""

    kind = ErrorKind.STORAGE


ERRORS_BY_KIND: dict[ErrorKind, type[TicketServiceError]] = {
    error.kind: error
    for error in (
        TicketValidationError,
        UnauthenticatedError,
        ForbiddenError,
        InvalidTicketTransitionError,
        InvalidTicketStateError,
        TicketNotFoundError,
        TicketConflictError,
        TicketStorageError,
    )
}
