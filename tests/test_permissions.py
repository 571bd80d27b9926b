import pytest

from servicedesk.tickets.permissions import (
    ROLE_PERMISSIONS,
    Actor,
    Capability,
    Role,
    UserStatus,
    has_permission,
    permissions_for,
)


def test_user_has_only_self_scoped_capabilities():
    assert ROLE_PERMISSIONS[Role.USER] == {
        Capability.CREATE_TICKET,
        Capability.VIEW_OWN_TICKETS,
        Capability.EDIT_OWN_TICKETS,
        Capability.DELETE_OWN_TICKETS,
    }


def test_each_role_extends_the_previous_one():
    ordered = [Role.USER, Role.TECHNICIAN, Role.SUPERVISOR, Role.ADMIN]
    for lower, higher in zip(ordered, ordered[1:]):
        assert ROLE_PERMISSIONS[lower] < ROLE_PERMISSIONS[higher]


@pytest.mark.parametrize(
    ("role", "capability", "expected"),
    [
        (Role.TECHNICIAN, Capability.VIEW_ALL_TICKETS, True),
        (Role.TECHNICIAN, Capability.CHANGE_TICKET_STATUS, True),
        (Role.TECHNICIAN, Capability.ASSIGN_TICKETS, False),
        (Role.TECHNICIAN, Capability.DELETE_ALL_TICKETS, False),
        (Role.SUPERVISOR, Capability.APPROVE_TICKETS, True),
        (Role.SUPERVISOR, Capability.ASSIGN_TICKETS, True),
        (Role.SUPERVISOR, Capability.MANAGE_USERS, False),
        (Role.ADMIN, Capability.MANAGE_USERS, True),
        (Role.ADMIN, Capability.ACCESS_SETTINGS, True),
        (Role.USER, Capability.VIEW_REPORTS, False),
    ],
)
def test_has_permission_matches_catalog(role, capability, expected):
    assert has_permission(role, capability) is expected


def test_permissions_for_lists_every_capability():
    mapping = permissions_for(Role.SUPERVISOR)
    assert set(mapping) == set(Capability)
    assert mapping[Capability.APPROVE_TICKETS] is True
    assert mapping[Capability.ACCESS_SETTINGS] is False


def test_actor_helpers():
    actor = Actor(id="x", name="X", role=Role.TECHNICIAN)
    assert actor.has_role(Role.TECHNICIAN, Role.ADMIN)
    assert not actor.has_role(Role.USER)
    assert actor.has_permission(Capability.CHANGE_TICKET_STATUS)
    assert actor.is_active
    assert not Actor(id="y", name="Y", role=Role.USER, status=UserStatus.BLOCKED).is_active
