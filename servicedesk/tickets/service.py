from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from opentelemetry import trace

from servicedesk.storage import KeyValueStore, StorageError

from .errors import (
    ErrorKind,
    ForbiddenError,
    InvalidTicketStateError,
    TicketConflictError,
    TicketNotFoundError,
    TicketServiceError,
    TicketValidationError,
    UnauthenticatedError,
)
from .models import (
    COMMENT_MAX_LENGTH,
    RATING_MAX,
    RATING_MIN,
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
from .permissions import Actor, Capability, Role
from .repository import AuditLedger, BlobCollection, CommentStore, TicketRepository
from .results import OperationResult
from .state import TicketStateMachine, TicketStatus
from .visibility import (
    INTERNAL_COMMENT_READERS,
    can_view_ticket,
    sort_for_display,
    visible_comments,
    visible_tickets,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Statuses in which a ticket's creator may still edit or delete it.
OWNER_EDIT_WINDOW = frozenset({TicketStatus.OPEN, TicketStatus.PENDING_APPROVAL})
# Statuses in which ticket content may be edited at all.
EDITABLE_STATUSES = frozenset(
    {TicketStatus.OPEN, TicketStatus.PENDING_APPROVAL, TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD}
)
INACTIVE_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED})

EnumT = TypeVar("EnumT", bound=Enum)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce(enum_type: type[EnumT], value: Any, field_name: str) -> EnumT:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError as exc:
        raise TicketValidationError(f"Invalid {field_name}: {value!r}") from exc


def _operation(name: str, *, ticket_scoped: bool = True) -> Callable[..., Any]:
    """Trace an engine operation and convert raised errors into a failed result."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[OperationResult[Any]]]:
        @functools.wraps(func)
        async def wrapper(self: "TicketService", actor: Actor | None, *args: Any, **kwargs: Any) -> OperationResult[Any]:
            with tracer.start_as_current_span(f"tickets.{name}") as span:
                if actor is not None:
                    span.set_attribute("actor.role", actor.role.value)
                if ticket_scoped and args:
                    span.set_attribute("ticket.id", str(args[0]))
                try:
                    value = await func(self, actor, *args, **kwargs)
                except TicketServiceError as exc:
                    span.set_attribute("result.outcome", exc.kind.value)
                    logger.info("Ticket operation %s rejected (%s): %s", name, exc.kind.value, exc)
                    return OperationResult.failure(exc.kind, str(exc))
                except StorageError as exc:
                    span.set_attribute("result.outcome", ErrorKind.STORAGE.value)
                    logger.error("Ticket operation %s failed in storage: %s", name, exc)
                    return OperationResult.failure(ErrorKind.STORAGE, str(exc))
                span.set_attribute("result.outcome", "ok")
                return OperationResult.success(value)

        return wrapper

    return decorator


class TicketService:
    """High level orchestration for the ticket lifecycle, authorization and audit trail.

    Every public operation takes the acting :class:`Actor` explicitly and returns
    an :class:`OperationResult`. Mutations run one at a time per service
    instance; each one persists the ticket (or comment) and appends exactly one
    history entry, restoring the previous collection if the history write fails.
    """

    def __init__(
        self,
        repository: TicketRepository,
        ledger: AuditLedger,
        comments: CommentStore,
        *,
        state_machine: TicketStateMachine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tickets = repository
        self._ledger = ledger
        self._comments = comments
        self._state_machine = state_machine or TicketStateMachine()
        self._clock = clock or _utcnow
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_store(cls, store: KeyValueStore, *, key_prefix: str = "", **kwargs: Any) -> "TicketService":
        return cls(
            TicketRepository(store, f"{key_prefix}tickets"),
            AuditLedger(store, f"{key_prefix}ticket_history"),
            CommentStore(store, f"{key_prefix}ticket_comments"),
            **kwargs,
        )

    @property
    def state_machine(self) -> TicketStateMachine:
        return self._state_machine

    # -- mutations -------------------------------------------------------

    @_operation("create", ticket_scoped=False)
    async def create(self, actor: Actor | None, payload: TicketCreate) -> Ticket:
        actor = self._require_actor(actor)
        self._require_capability(actor, Capability.CREATE_TICKET, "You are not allowed to create tickets")
        category = _coerce(TicketCategory, payload.category, "category")
        priority = _coerce(TicketPriority, payload.priority or TicketPriority.MEDIUM, "priority")

        now = self._clock()
        ticket = Ticket(
            id=str(uuid.uuid4()),
            title=(payload.title or "").strip(),
            description=(payload.description or "").strip(),
            category=category,
            priority=priority,
            status=self._state_machine.initial_state(priority, actor.role),
            requires_approval=self._state_machine.requires_approval(priority, actor.role),
            created_by=actor.id,
            created_by_name=actor.name,
            created_by_department=actor.department,
            created_at=now,
            updated_at=now,
        )
        entry = self._entry(ticket, actor, TicketAction.CREATED, "Ticket created", new_status=ticket.status)

        async with self._write_lock:
            await self._persist(self._tickets, lambda: self._tickets.add(ticket), entry)
        logger.info("Ticket %s created by %s with status %s", ticket.id, actor.id, ticket.status.value)
        return ticket

    @_operation("update")
    async def update(self, actor: Actor | None, ticket_id: str, changes: TicketUpdate) -> Ticket:
        actor = self._require_actor(actor)
        if changes.is_empty():
            raise TicketValidationError("No fields provided for update")

        async with self._write_lock:
            ticket = await self._load(ticket_id)
            is_owner = ticket.created_by == actor.id
            owner_scoped = not actor.has_permission(Capability.EDIT_ALL_TICKETS)
            if owner_scoped:
                if not (is_owner and actor.has_permission(Capability.EDIT_OWN_TICKETS)):
                    raise ForbiddenError("You can only edit tickets you created")
            else:
                self._ensure_visible(actor, ticket)

            if changes.expected_version is not None and changes.expected_version != ticket.version:
                raise TicketConflictError(
                    f"Ticket {ticket_id} is at version {ticket.version}, not {changes.expected_version}"
                )

            current = ticket.status
            target = current if changes.status is None else _coerce(TicketStatus, changes.status, "status")
            status_changed = target != current
            content = self._content_values(changes)

            if owner_scoped:
                self._guard_owner_update(actor, current, target, status_changed, content, changes)
            elif status_changed:
                self._state_machine.assert_transition(actor.role, current, target, is_owner=is_owner)
            self._guard_field_edits(current, target, status_changed, content, changes)

            now = self._clock()
            updated = replace(
                ticket,
                **content,
                status=target,
                updated_at=max(now, ticket.created_at),
                version=ticket.version + 1,
            )
            if changes.resolution is not None:
                updated.resolution = changes.resolution.strip()
            if status_changed:
                self._stamp_transition(updated, actor, target, now, changes)

            if status_changed:
                entry = self._entry(
                    updated,
                    actor,
                    TicketAction.STATUS_CHANGED,
                    f"Status changed from {current.value} to {target.value}",
                    previous_status=current,
                    new_status=target,
                )
            else:
                edited = sorted(set(content) | ({"resolution"} if changes.resolution is not None else set()))
                entry = self._entry(updated, actor, TicketAction.UPDATED, f"Ticket updated: {', '.join(edited) or 'no changes'}")

            await self._persist(self._tickets, lambda: self._store_ticket(updated), entry)
        return updated

    @_operation("approve")
    async def approve(self, actor: Actor | None, ticket_id: str) -> Ticket:
        actor = self._require_actor(actor)
        self._require_capability(actor, Capability.APPROVE_TICKETS, "Only supervisors and admins can approve tickets")

        async with self._write_lock:
            ticket = await self._load(ticket_id)
            self._require_pending_approval(ticket)
            now = self._clock()
            updated = replace(
                ticket,
                status=TicketStatus.OPEN,
                approved_by=actor.id,
                approved_by_name=actor.name,
                approved_at=now,
                updated_at=max(now, ticket.created_at),
                version=ticket.version + 1,
            )
            entry = self._entry(
                updated,
                actor,
                TicketAction.APPROVED,
                f"Ticket approved by {actor.name}",
                previous_status=ticket.status,
                new_status=updated.status,
            )
            await self._persist(self._tickets, lambda: self._store_ticket(updated), entry)
        return updated

    @_operation("reject")
    async def reject(self, actor: Actor | None, ticket_id: str, reason: str) -> Ticket:
        actor = self._require_actor(actor)
        self._require_capability(actor, Capability.APPROVE_TICKETS, "Only supervisors and admins can reject tickets")
        reason = (reason or "").strip()
        if not reason:
            raise TicketValidationError("A rejection reason is required")

        async with self._write_lock:
            ticket = await self._load(ticket_id)
            self._require_pending_approval(ticket)
            now = self._clock()
            updated = replace(
                ticket,
                status=TicketStatus.CANCELLED,
                rejection_reason=reason,
                updated_at=max(now, ticket.created_at),
                version=ticket.version + 1,
            )
            entry = self._entry(
                updated,
                actor,
                TicketAction.REJECTED,
                f"Ticket rejected: {reason}",
                previous_status=ticket.status,
                new_status=updated.status,
            )
            await self._persist(self._tickets, lambda: self._store_ticket(updated), entry)
        return updated

    @_operation("assign")
    async def assign(
        self,
        actor: Actor | None,
        ticket_id: str,
        technician_id: str,
        technician_name: str | None = None,
    ) -> Ticket:
        return await self._assign(self._require_actor(actor), ticket_id, technician_id, technician_name)

    @_operation("take_ownership")
    async def take_ownership(self, actor: Actor | None, ticket_id: str) -> Ticket:
        actor = self._require_actor(actor)
        if actor.role == Role.USER:
            raise ForbiddenError("Users cannot take ownership of tickets")
        return await self._assign(actor, ticket_id, actor.id, actor.name)

    @_operation("delete")
    async def delete(self, actor: Actor | None, ticket_id: str) -> None:
        actor = self._require_actor(actor)

        async with self._write_lock:
            ticket = await self._load(ticket_id)
            if not actor.has_permission(Capability.DELETE_ALL_TICKETS):
                if not (ticket.created_by == actor.id and actor.has_permission(Capability.DELETE_OWN_TICKETS)):
                    raise ForbiddenError("You can only delete tickets you created")
                if ticket.status not in OWNER_EDIT_WINDOW:
                    raise ForbiddenError(
                        f"Tickets can only be deleted by their creator while open or pending approval "
                        f"(current: {ticket.status.value})"
                    )
            if not await self._tickets.remove(ticket_id):
                raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        logger.info("Ticket %s deleted by %s", ticket_id, actor.id)

    @_operation("add_comment")
    async def add_comment(
        self,
        actor: Actor | None,
        ticket_id: str,
        content: str,
        is_internal: bool = False,
    ) -> TicketComment:
        actor = self._require_actor(actor)
        content = (content or "").strip()
        if not content:
            raise TicketValidationError("Comment content is required")
        if len(content) > COMMENT_MAX_LENGTH:
            raise TicketValidationError(f"Comments are limited to {COMMENT_MAX_LENGTH} characters")

        async with self._write_lock:
            ticket = await self._load(ticket_id)
            self._ensure_visible(actor, ticket)
            comment = TicketComment(
                id=str(uuid.uuid4()),
                ticket_id=ticket.id,
                content=content,
                # authors who cannot read internal notes cannot write them either
                is_internal=bool(is_internal) and actor.role in INTERNAL_COMMENT_READERS,
                user_id=actor.id,
                user_name=actor.name,
                user_role=actor.role,
                created_at=self._clock(),
            )
            description = "Internal comment added" if comment.is_internal else "Comment added"
            entry = self._entry(ticket, actor, TicketAction.COMMENTED, description)
            await self._persist(self._comments, lambda: self._comments.append(comment), entry)
        return comment

    # -- reads -----------------------------------------------------------

    @_operation("get_all", ticket_scoped=False)
    async def get_all(
        self,
        actor: Actor | None,
        *,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
        category: TicketCategory | None = None,
    ) -> list[Ticket]:
        actor = self._require_actor(actor)
        tickets = visible_tickets(actor, await self._tickets.load())
        if status is not None:
            status = _coerce(TicketStatus, status, "status")
            tickets = [ticket for ticket in tickets if ticket.status == status]
        if priority is not None:
            priority = _coerce(TicketPriority, priority, "priority")
            tickets = [ticket for ticket in tickets if ticket.priority == priority]
        if category is not None:
            category = _coerce(TicketCategory, category, "category")
            tickets = [ticket for ticket in tickets if ticket.category == category]
        return sort_for_display(tickets)

    @_operation("get_by_id")
    async def get_by_id(self, actor: Actor | None, ticket_id: str) -> Ticket:
        actor = self._require_actor(actor)
        ticket = await self._load(ticket_id)
        self._ensure_visible(actor, ticket)
        return ticket

    @_operation("search", ticket_scoped=False)
    async def search(self, actor: Actor | None, term: str) -> list[Ticket]:
        actor = self._require_actor(actor)
        tickets = visible_tickets(actor, await self._tickets.load())
        needle = (term or "").strip().lower()
        if needle:
            tickets = [
                ticket
                for ticket in tickets
                if needle in ticket.title.lower()
                or needle in ticket.description.lower()
                or needle in ticket.category.value
                or needle in ticket.id
            ]
        return sort_for_display(tickets)

    @_operation("get_history")
    async def get_history(self, actor: Actor | None, ticket_id: str) -> list[TicketHistoryEntry]:
        actor = self._require_actor(actor)
        self._ensure_visible(actor, await self._load(ticket_id))
        return await self._ledger.for_ticket(ticket_id)

    @_operation("get_comments")
    async def get_comments(self, actor: Actor | None, ticket_id: str) -> list[TicketComment]:
        actor = self._require_actor(actor)
        self._ensure_visible(actor, await self._load(ticket_id))
        return visible_comments(actor, await self._comments.for_ticket(ticket_id))

    @_operation("get_stats", ticket_scoped=False)
    async def get_stats(self, actor: Actor | None) -> TicketStats:
        actor = self._require_actor(actor)
        tickets = visible_tickets(actor, await self._tickets.load())
        stats = TicketStats(total=len(tickets), by_status={status: 0 for status in TicketStatus})
        for ticket in tickets:
            stats.by_status[ticket.status] += 1
            if ticket.priority == TicketPriority.URGENT and ticket.status not in INACTIVE_STATUSES:
                stats.urgent_active += 1
        return stats

    # -- guards ----------------------------------------------------------

    @staticmethod
    def _require_actor(actor: Actor | None) -> Actor:
        if actor is None:
            raise UnauthenticatedError("Authentication required")
        if not actor.is_active:
            raise UnauthenticatedError(f"Account is {actor.status.value}")
        return actor

    @staticmethod
    def _require_capability(actor: Actor, capability: Capability, message: str) -> None:
        if not actor.has_permission(capability):
            raise ForbiddenError(message)

    @staticmethod
    def _ensure_visible(actor: Actor, ticket: Ticket) -> None:
        if not can_view_ticket(actor, ticket):
            raise ForbiddenError(f"Ticket {ticket.id} is not visible to you")

    @staticmethod
    def _require_pending_approval(ticket: Ticket) -> None:
        if ticket.status != TicketStatus.PENDING_APPROVAL:
            raise InvalidTicketStateError(
                f"Ticket {ticket.id} is {ticket.status.value}, not {TicketStatus.PENDING_APPROVAL.value}"
            )

    def _guard_owner_update(
        self,
        actor: Actor,
        current: TicketStatus,
        target: TicketStatus,
        status_changed: bool,
        content: dict[str, Any],
        changes: TicketUpdate,
    ) -> None:
        if status_changed:
            if not self._state_machine.is_owner_transition(current, target):
                raise ForbiddenError("Only staff can change the status of a ticket")
            if content or changes.resolution is not None or changes.rejection_reason is not None:
                raise InvalidTicketStateError(
                    "Only the status and satisfaction rating may change when confirming or reopening a ticket"
                )
            self._state_machine.assert_transition(actor.role, current, target, is_owner=True)
            return
        if current not in OWNER_EDIT_WINDOW:
            raise InvalidTicketStateError(
                f"Tickets can only be edited while open or pending approval (current: {current.value})"
            )

    @staticmethod
    def _guard_field_edits(
        current: TicketStatus,
        target: TicketStatus,
        status_changed: bool,
        content: dict[str, Any],
        changes: TicketUpdate,
    ) -> None:
        editable = current in EDITABLE_STATUSES or (status_changed and target in EDITABLE_STATUSES)
        if content and not editable:
            raise InvalidTicketStateError(f"Ticket content cannot be edited while {current.value}")
        if changes.resolution is not None and not (editable or target == TicketStatus.RESOLVED):
            raise InvalidTicketStateError(f"Resolution cannot be edited while {current.value}")
        if changes.rejection_reason is not None and not (status_changed and target == TicketStatus.CANCELLED):
            raise InvalidTicketStateError("A rejection reason can only accompany a cancellation")
        if changes.satisfaction_rating is not None:
            if not (status_changed and target == TicketStatus.CLOSED):
                raise TicketValidationError("A satisfaction rating can only be given when closing a ticket")
            if not RATING_MIN <= changes.satisfaction_rating <= RATING_MAX:
                raise TicketValidationError(f"Satisfaction rating must be between {RATING_MIN} and {RATING_MAX}")

    # -- helpers ---------------------------------------------------------

    async def _assign(
        self,
        actor: Actor,
        ticket_id: str,
        technician_id: str,
        technician_name: str | None,
    ) -> Ticket:
        technician_id = (technician_id or "").strip()
        if not technician_id:
            raise TicketValidationError("A technician id is required")
        self_assignment = actor.role == Role.TECHNICIAN and technician_id == actor.id
        if not (actor.has_permission(Capability.ASSIGN_TICKETS) or self_assignment):
            raise ForbiddenError("Technicians can only assign tickets to themselves")

        async with self._write_lock:
            ticket = await self._load(ticket_id)
            self._ensure_visible(actor, ticket)
            current = ticket.status
            if current != TicketStatus.IN_PROGRESS:
                if not self._state_machine.is_reachable(current, TicketStatus.IN_PROGRESS):
                    raise InvalidTicketStateError(f"Cannot assign a ticket that is {current.value}")
                self._state_machine.assert_transition(actor.role, current, TicketStatus.IN_PROGRESS)

            name = (technician_name or "").strip() or technician_id
            previous = ticket.assigned_to_name or ticket.assigned_to
            now = self._clock()
            updated = replace(
                ticket,
                assigned_to=technician_id,
                assigned_to_name=name,
                status=TicketStatus.IN_PROGRESS,
                updated_at=max(now, ticket.created_at),
                version=ticket.version + 1,
            )
            description = f"Assigned to {name}"
            if previous:
                description += f" (previously {previous})"
            entry = self._entry(
                updated,
                actor,
                TicketAction.ASSIGNED,
                description,
                previous_status=current,
                new_status=TicketStatus.IN_PROGRESS,
            )
            await self._persist(self._tickets, lambda: self._store_ticket(updated), entry)
        return updated

    @staticmethod
    def _content_values(changes: TicketUpdate) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if changes.title is not None:
            values["title"] = changes.title.strip()
        if changes.description is not None:
            values["description"] = changes.description.strip()
        if changes.category is not None:
            values["category"] = _coerce(TicketCategory, changes.category, "category")
        if changes.priority is not None:
            values["priority"] = _coerce(TicketPriority, changes.priority, "priority")
        return values

    @staticmethod
    def _stamp_transition(
        ticket: Ticket,
        actor: Actor,
        target: TicketStatus,
        now: datetime,
        changes: TicketUpdate,
    ) -> None:
        if target == TicketStatus.RESOLVED:
            ticket.resolved_by = actor.id
            ticket.resolved_by_name = actor.name
            ticket.resolved_at = now
        elif target == TicketStatus.CLOSED:
            ticket.closed_by = actor.id
            ticket.closed_by_name = actor.name
            ticket.closed_at = now
            ticket.satisfaction_rating = changes.satisfaction_rating
        elif target == TicketStatus.CANCELLED and changes.rejection_reason is not None:
            ticket.rejection_reason = changes.rejection_reason.strip()

    def _entry(
        self,
        ticket: Ticket,
        actor: Actor,
        action: TicketAction,
        description: str,
        *,
        previous_status: TicketStatus | None = None,
        new_status: TicketStatus | None = None,
    ) -> TicketHistoryEntry:
        return TicketHistoryEntry(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            action=action,
            description=description,
            user_id=actor.id,
            user_name=actor.name,
            user_role=actor.role,
            created_at=self._clock(),
            previous_status=previous_status,
            new_status=new_status,
        )

    async def _load(self, ticket_id: str) -> Ticket:
        ticket = await self._tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def _store_ticket(self, ticket: Ticket) -> Ticket:
        stored = await self._tickets.replace(ticket)
        if stored is None:
            raise TicketNotFoundError(f"Ticket {ticket.id} not found")
        return stored

    async def _persist(
        self,
        collection: BlobCollection[Any],
        write: Callable[[], Awaitable[Any]],
        entry: TicketHistoryEntry,
    ) -> None:
        snapshot = await collection.load()
        await write()
        try:
            await self._ledger.append(entry)
        except StorageError:
            logger.error("History append failed for ticket %s; restoring '%s'", entry.ticket_id, collection.key)
            await collection.save(snapshot)
            raise
