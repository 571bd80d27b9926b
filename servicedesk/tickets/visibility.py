"""Role dependent filters applied on every ticket and comment read path."""

from __future__ import annotations

from typing import Callable, Iterable, Mapping

from .models import Ticket, TicketComment
from .permissions import Actor, Role
from .state import TicketStatus

TicketPredicate = Callable[[Actor, Ticket], bool]


def _own_tickets(actor: Actor, ticket: Ticket) -> bool:
    return ticket.created_by == actor.id


def _technician_queue(actor: Actor, ticket: Ticket) -> bool:
    if ticket.assigned_to == actor.id:
        return True
    return not ticket.assigned_to and ticket.status == TicketStatus.OPEN


def _everything(actor: Actor, ticket: Ticket) -> bool:
    return True


TICKET_SCOPES: Mapping[Role, TicketPredicate] = {
    Role.USER: _own_tickets,
    Role.TECHNICIAN: _technician_queue,
    Role.SUPERVISOR: _everything,
    Role.ADMIN: _everything,
}

INTERNAL_COMMENT_READERS = frozenset({Role.TECHNICIAN, Role.SUPERVISOR, Role.ADMIN})


def can_view_ticket(actor: Actor, ticket: Ticket) -> bool:
    predicate = TICKET_SCOPES.get(actor.role)
    return predicate is not None and predicate(actor, ticket)


def visible_tickets(actor: Actor, tickets: Iterable[Ticket]) -> list[Ticket]:
    return [ticket for ticket in tickets if can_view_ticket(actor, ticket)]


def visible_comments(actor: Actor, comments: Iterable[TicketComment]) -> list[TicketComment]:
    if actor.role in INTERNAL_COMMENT_READERS:
        return list(comments)
    return [comment for comment in comments if not comment.is_internal]


def sort_for_display(tickets: Iterable[Ticket]) -> list[Ticket]:
    """Order by priority severity (most severe first), then newest first."""

    return sorted(
        tickets,
        key=lambda ticket: (ticket.priority.severity, ticket.created_at),
        reverse=True,
    )
