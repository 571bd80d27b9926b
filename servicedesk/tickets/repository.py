from __future__ import annotations

import logging
from typing import Generic, Sequence, TypeVar

from pydantic import TypeAdapter, ValidationError

from servicedesk.storage import KeyValueStore, StorageError

from .errors import TicketValidationError
from .models import (
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    RATING_MAX,
    RATING_MIN,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    Ticket,
    TicketComment,
    TicketHistoryEntry,
)
from .state import TicketStatus

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")


class BlobCollection(Generic[ItemT]):
    """A list of records serialized as one JSON blob under a single key.

    Every read loads the whole collection and every write replaces it, so the
    order of the stored list carries no meaning beyond insertion order.
    """

    def __init__(self, store: KeyValueStore, key: str, item_type: type[ItemT]) -> None:
        self._store = store
        self._key = key
        self._adapter: TypeAdapter[list[ItemT]] = TypeAdapter(list[item_type])  # type: ignore[valid-type]

    @property
    def key(self) -> str:
        return self._key

    async def load(self) -> list[ItemT]:
        raw = await self._store.get(self._key)
        if raw is None:
            return []
        try:
            return self._adapter.validate_json(raw)
        except ValidationError as exc:
            logger.error("Stored collection '%s' could not be decoded", self._key)
            raise StorageError(f"Stored collection '{self._key}' is corrupt") from exc

    async def save(self, items: Sequence[ItemT]) -> None:
        payload = self._adapter.dump_json(list(items))
        await self._store.set(self._key, payload)


def validate_ticket(ticket: Ticket) -> None:
    """Enforce field level bounds before a ticket record is persisted."""

    title = ticket.title.strip()
    if not title:
        raise TicketValidationError("Title is required")
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise TicketValidationError(
            f"Title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters"
        )
    description = ticket.description.strip()
    if not description:
        raise TicketValidationError("Description is required")
    if not DESCRIPTION_MIN_LENGTH <= len(description) <= DESCRIPTION_MAX_LENGTH:
        raise TicketValidationError(
            f"Description must be between {DESCRIPTION_MIN_LENGTH} and {DESCRIPTION_MAX_LENGTH} characters"
        )
    if ticket.satisfaction_rating is not None and not RATING_MIN <= ticket.satisfaction_rating <= RATING_MAX:
        raise TicketValidationError(f"Satisfaction rating must be between {RATING_MIN} and {RATING_MAX}")
    if ticket.updated_at < ticket.created_at:
        raise TicketValidationError("updated_at must not precede created_at")


class TicketRepository(BlobCollection[Ticket]):
    """CRUD and query surface over ticket records."""

    def __init__(self, store: KeyValueStore, key: str = "tickets") -> None:
        super().__init__(store, key, Ticket)

    async def get(self, ticket_id: str) -> Ticket | None:
        for ticket in await self.load():
            if ticket.id == ticket_id:
                return ticket
        return None

    async def list_tickets(self, *, status: TicketStatus | None = None) -> list[Ticket]:
        tickets = await self.load()
        if status is None:
            return tickets
        return [ticket for ticket in tickets if ticket.status == status]

    async def add(self, ticket: Ticket) -> Ticket:
        validate_ticket(ticket)
        tickets = await self.load()
        if any(existing.id == ticket.id for existing in tickets):
            raise TicketValidationError(f"Ticket {ticket.id} already exists")
        await self.save([ticket, *tickets])
        return ticket

    async def replace(self, ticket: Ticket) -> Ticket | None:
        """Swap the stored record with the same id; ``None`` when it is gone."""

        validate_ticket(ticket)
        tickets = await self.load()
        for index, existing in enumerate(tickets):
            if existing.id == ticket.id:
                tickets[index] = ticket
                await self.save(tickets)
                return ticket
        return None

    async def remove(self, ticket_id: str) -> bool:
        tickets = await self.load()
        remaining = [ticket for ticket in tickets if ticket.id != ticket_id]
        if len(remaining) == len(tickets):
            return False
        await self.save(remaining)
        return True


class AuditLedger(BlobCollection[TicketHistoryEntry]):
    """Append-only history of ticket actions."""

    def __init__(self, store: KeyValueStore, key: str = "ticket_history") -> None:
        super().__init__(store, key, TicketHistoryEntry)

    async def append(self, entry: TicketHistoryEntry) -> TicketHistoryEntry:
        entries = await self.load()
        entries.append(entry)
        await self.save(entries)
        return entry

    async def for_ticket(self, ticket_id: str) -> list[TicketHistoryEntry]:
        return [entry for entry in await self.load() if entry.ticket_id == ticket_id]


class CommentStore(BlobCollection[TicketComment]):
    """Append-only ticket comments."""

    def __init__(self, store: KeyValueStore, key: str = "ticket_comments") -> None:
        super().__init__(store, key, TicketComment)

    async def append(self, comment: TicketComment) -> TicketComment:
        comments = await self.load()
        comments.append(comment)
        await self.save(comments)
        return comment

    async def for_ticket(self, ticket_id: str) -> list[TicketComment]:
        return [comment for comment in await self.load() if comment.ticket_id == ticket_id]
