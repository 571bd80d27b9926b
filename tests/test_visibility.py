from datetime import datetime, timedelta, timezone

from servicedesk.tickets.models import Ticket, TicketCategory, TicketComment, TicketPriority
from servicedesk.tickets.permissions import Actor, Role
from servicedesk.tickets.state import TicketStatus
from servicedesk.tickets.visibility import (
    can_view_ticket,
    sort_for_display,
    visible_comments,
    visible_tickets,
)

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _ticket(
    ticket_id: str,
    *,
    created_by: str = "u1",
    status: TicketStatus = TicketStatus.OPEN,
    assigned_to: str | None = None,
    priority: TicketPriority = TicketPriority.MEDIUM,
    offset_minutes: int = 0,
) -> Ticket:
    created = BASE + timedelta(minutes=offset_minutes)
    return Ticket(
        id=ticket_id,
        title="Printer offline",
        description="The printer on floor two is offline",
        category=TicketCategory.HARDWARE,
        priority=priority,
        status=status,
        requires_approval=False,
        created_by=created_by,
        created_at=created,
        updated_at=created,
        assigned_to=assigned_to,
    )


def _comment(comment_id: str, *, internal: bool) -> TicketComment:
    return TicketComment(
        id=comment_id,
        ticket_id="t",
        content="note",
        is_internal=internal,
        user_id="t1",
        user_name="t1",
        user_role=Role.TECHNICIAN,
        created_at=BASE,
    )


def test_users_only_see_their_own_tickets():
    user = Actor(id="u1", name="u1", role=Role.USER)
    mine = _ticket("a")
    theirs = _ticket("b", created_by="u2")
    assert can_view_ticket(user, mine)
    assert not can_view_ticket(user, theirs)
    assert visible_tickets(user, [mine, theirs]) == [mine]


def test_technicians_see_their_queue_and_unassigned_open_tickets():
    tech = Actor(id="t1", name="t1", role=Role.TECHNICIAN)
    unassigned_open = _ticket("a")
    assigned_to_me = _ticket("b", status=TicketStatus.ON_HOLD, assigned_to="t1")
    assigned_elsewhere = _ticket("c", status=TicketStatus.IN_PROGRESS, assigned_to="t2")
    unassigned_pending = _ticket("d", status=TicketStatus.PENDING_APPROVAL)
    own_but_elsewhere = _ticket("e", created_by="t1", status=TicketStatus.IN_PROGRESS, assigned_to="t2")

    visible = visible_tickets(
        tech, [unassigned_open, assigned_to_me, assigned_elsewhere, unassigned_pending, own_but_elsewhere]
    )

    assert [ticket.id for ticket in visible] == ["a", "b"]


def test_supervisors_and_admins_see_everything():
    tickets = [_ticket("a"), _ticket("b", created_by="u9", status=TicketStatus.CLOSED)]
    for role in (Role.SUPERVISOR, Role.ADMIN):
        assert visible_tickets(Actor(id="x", name="x", role=role), tickets) == tickets


def test_internal_comments_are_hidden_from_users():
    comments = [_comment("public", internal=False), _comment("internal", internal=True)]
    user = Actor(id="u1", name="u1", role=Role.USER)
    tech = Actor(id="t1", name="t1", role=Role.TECHNICIAN)

    assert [comment.id for comment in visible_comments(user, comments)] == ["public"]
    assert visible_comments(tech, comments) == comments


def test_sort_for_display_orders_by_priority_then_newest():
    old_urgent = _ticket("old-urgent", priority=TicketPriority.URGENT, offset_minutes=0)
    new_low = _ticket("new-low", priority=TicketPriority.LOW, offset_minutes=30)
    new_urgent = _ticket("new-urgent", priority=TicketPriority.URGENT, offset_minutes=10)
    medium = _ticket("medium", priority=TicketPriority.MEDIUM, offset_minutes=5)

    ordered = sort_for_display([new_low, old_urgent, medium, new_urgent])

    assert [ticket.id for ticket in ordered] == ["new-urgent", "old-urgent", "medium", "new-low"]
