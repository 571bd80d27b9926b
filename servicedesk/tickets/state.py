from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Mapping

from .errors import ForbiddenError, InvalidTicketTransitionError
from .permissions import Role

if TYPE_CHECKING:
    from .models import TicketPriority


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    PENDING_APPROVAL = "pending_approval"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class TransitionRule:
    """Targets reachable from a status and the roles allowed to move there."""

    targets: frozenset[TicketStatus]
    roles: frozenset[Role]


_STAFF = frozenset({Role.TECHNICIAN, Role.SUPERVISOR, Role.ADMIN})
_MANAGERS = frozenset({Role.SUPERVISOR, Role.ADMIN})
_EVERYONE = frozenset(Role)


class TicketStateMachine:
    """Validate ticket lifecycle transitions against the role-gated table."""

    _TRANSITIONS: Mapping[TicketStatus, TransitionRule] = {
        TicketStatus.OPEN: TransitionRule(
            frozenset({TicketStatus.PENDING_APPROVAL, TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}),
            _STAFF,
        ),
        TicketStatus.PENDING_APPROVAL: TransitionRule(
            frozenset({TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}),
            _MANAGERS,
        ),
        TicketStatus.IN_PROGRESS: TransitionRule(
            frozenset({TicketStatus.ON_HOLD, TicketStatus.RESOLVED, TicketStatus.CANCELLED}),
            _STAFF,
        ),
        TicketStatus.ON_HOLD: TransitionRule(
            frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}),
            _STAFF,
        ),
        TicketStatus.RESOLVED: TransitionRule(
            frozenset({TicketStatus.CLOSED, TicketStatus.IN_PROGRESS}),
            _EVERYONE,
        ),
        # reopen
        TicketStatus.CLOSED: TransitionRule(frozenset({TicketStatus.IN_PROGRESS}), _MANAGERS),
        # reactivate
        TicketStatus.CANCELLED: TransitionRule(frozenset({TicketStatus.OPEN}), _MANAGERS),
    }

    # Edges the ticket's creator may take regardless of role.
    _OWNER_TRANSITIONS: Mapping[TicketStatus, frozenset[TicketStatus]] = {
        TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED, TicketStatus.IN_PROGRESS}),
    }

    # Priorities that hold a ticket for supervisor approval when filed by a plain user.
    _APPROVAL_PRIORITIES: frozenset[str] = frozenset({"urgent"})

    def __init__(
        self,
        transitions: Mapping[TicketStatus, TransitionRule] | None = None,
        owner_transitions: Mapping[TicketStatus, frozenset[TicketStatus]] | None = None,
    ) -> None:
        self._transitions = transitions or self._TRANSITIONS
        self._owner_transitions = self._OWNER_TRANSITIONS if owner_transitions is None else owner_transitions

    def requires_approval(self, priority: TicketPriority, role: Role) -> bool:
        return role == Role.USER and priority.value in self._APPROVAL_PRIORITIES

    def initial_state(self, priority: TicketPriority, role: Role) -> TicketStatus:
        if self.requires_approval(priority, role):
            return TicketStatus.PENDING_APPROVAL
        return TicketStatus.OPEN

    def targets(self, current: TicketStatus) -> frozenset[TicketStatus]:
        rule = self._transitions.get(current)
        return rule.targets if rule else frozenset()

    def allowed_roles(self, current: TicketStatus) -> frozenset[Role]:
        rule = self._transitions.get(current)
        return rule.roles if rule else frozenset()

    def is_reachable(self, current: TicketStatus, target: TicketStatus) -> bool:
        return target in self.targets(current)

    def is_owner_transition(self, current: TicketStatus, target: TicketStatus) -> bool:
        return target in self._owner_transitions.get(current, frozenset())

    def can_transition(
        self,
        role: Role,
        current: TicketStatus,
        target: TicketStatus,
        *,
        is_owner: bool = False,
    ) -> bool:
        if not self.is_reachable(current, target):
            return False
        if is_owner and self.is_owner_transition(current, target):
            return True
        return role in self.allowed_roles(current)

    def assert_transition(
        self,
        role: Role,
        current: TicketStatus,
        target: TicketStatus,
        *,
        is_owner: bool = False,
    ) -> None:
        if not self.is_reachable(current, target):
            raise InvalidTicketTransitionError(
                f"Invalid ticket status transition: {current.value} -> {target.value}"
            )
        if is_owner and self.is_owner_transition(current, target):
            return
        if role not in self.allowed_roles(current):
            raise ForbiddenError(
                f"Role {role.value} may not move a ticket from {current.value} to {target.value}"
            )

    def reachable_from(self, start: TicketStatus) -> set[TicketStatus]:
        """Return every status reachable from ``start`` by any number of edges."""

        seen = {start}
        queue = deque([start])
        while queue:
            for target in self.targets(queue.popleft()):
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        return seen
