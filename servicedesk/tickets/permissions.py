"""Role catalog describing which capabilities each actor role carries."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class Role(str, Enum):
    """Supported actor roles, least privileged first."""

    USER = "user"
    TECHNICIAN = "technician"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Account states reported by the authentication collaborator."""

    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"


class Capability(str, Enum):
    """Fine grained actions guarded by the catalog."""

    CREATE_TICKET = "create_ticket"
    VIEW_OWN_TICKETS = "view_own_tickets"
    VIEW_ALL_TICKETS = "view_all_tickets"
    EDIT_OWN_TICKETS = "edit_own_tickets"
    EDIT_ALL_TICKETS = "edit_all_tickets"
    DELETE_OWN_TICKETS = "delete_own_tickets"
    DELETE_ALL_TICKETS = "delete_all_tickets"
    CHANGE_TICKET_STATUS = "change_ticket_status"
    ASSIGN_TICKETS = "assign_tickets"
    APPROVE_TICKETS = "approve_tickets"
    MANAGE_USERS = "manage_users"
    VIEW_REPORTS = "view_reports"
    ACCESS_SETTINGS = "access_settings"


_USER_CAPABILITIES = frozenset(
    {
        Capability.CREATE_TICKET,
        Capability.VIEW_OWN_TICKETS,
        Capability.EDIT_OWN_TICKETS,
        Capability.DELETE_OWN_TICKETS,
    }
)
_TECHNICIAN_CAPABILITIES = _USER_CAPABILITIES | {
    Capability.VIEW_ALL_TICKETS,
    Capability.EDIT_ALL_TICKETS,
    Capability.CHANGE_TICKET_STATUS,
    Capability.VIEW_REPORTS,
}
_SUPERVISOR_CAPABILITIES = _TECHNICIAN_CAPABILITIES | {
    Capability.DELETE_ALL_TICKETS,
    Capability.ASSIGN_TICKETS,
    Capability.APPROVE_TICKETS,
}
_ADMIN_CAPABILITIES = _SUPERVISOR_CAPABILITIES | {
    Capability.MANAGE_USERS,
    Capability.ACCESS_SETTINGS,
}

ROLE_PERMISSIONS: Mapping[Role, frozenset[Capability]] = {
    Role.USER: _USER_CAPABILITIES,
    Role.TECHNICIAN: _TECHNICIAN_CAPABILITIES,
    Role.SUPERVISOR: _SUPERVISOR_CAPABILITIES,
    Role.ADMIN: _ADMIN_CAPABILITIES,
}


def has_permission(role: Role, capability: Capability) -> bool:
    """Return whether ``role`` carries ``capability``."""

    return capability in ROLE_PERMISSIONS.get(role, frozenset())


def permissions_for(role: Role) -> dict[Capability, bool]:
    """Return the full capability map for ``role``."""

    granted = ROLE_PERMISSIONS.get(role, frozenset())
    return {capability: capability in granted for capability in Capability}


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated identity performing an operation."""

    id: str
    name: str
    role: Role
    department: str | None = None
    status: UserStatus = UserStatus.ACTIVE

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles

    def has_permission(self, capability: Capability) -> bool:
        return has_permission(self.role, capability)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE
