from datetime import datetime, timedelta, timezone

import pytest

from servicedesk.storage import InMemoryKeyValueStore
from servicedesk.tickets import (
    Actor,
    Role,
    TicketCategory,
    TicketCreate,
    TicketPriority,
    TicketService,
)


class StepClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def service(store: InMemoryKeyValueStore) -> TicketService:
    return TicketService.from_store(store, key_prefix="test_", clock=StepClock())


@pytest.fixture
def user() -> Actor:
    return Actor(id="u1", name="u1", role=Role.USER, department="Finance")


@pytest.fixture
def other_user() -> Actor:
    return Actor(id="u2", name="u2", role=Role.USER, department="Sales")


@pytest.fixture
def technician() -> Actor:
    return Actor(id="t1", name="t1", role=Role.TECHNICIAN, department="IT")


@pytest.fixture
def other_technician() -> Actor:
    return Actor(id="t2", name="t2", role=Role.TECHNICIAN, department="IT")


@pytest.fixture
def supervisor() -> Actor:
    return Actor(id="s1", name="s1", role=Role.SUPERVISOR, department="IT")


@pytest.fixture
def admin() -> Actor:
    return Actor(id="a1", name="a1", role=Role.ADMIN, department="IT")


@pytest.fixture
def create_ticket(service: TicketService):
    async def _create(actor: Actor, **overrides):
        values = {
            "title": "Monitor não liga",
            "description": "tela preta após queda de energia",
            "category": TicketCategory.HARDWARE,
            "priority": TicketPriority.HIGH,
        }
        values.update(overrides)
        result = await service.create(actor, TicketCreate(**values))
        assert result.ok, result.message
        return result.value

    return _create
