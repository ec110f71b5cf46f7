"""Logical operations the lifecycle engine issues against durable storage."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol, Sequence

from .models import Ticket, TicketAuditEntry
from .state import TicketStatus


class TicketOrder(str, Enum):
    """Supported orderings for ticket queries."""

    UPDATED_DESC = "updated_desc"
    CREATED_ASC = "created_asc"


@dataclass(frozen=True, slots=True)
class TicketDraft:
    """Values for a ticket that has not been persisted yet."""

    message: str
    reporter_id: int
    status: TicketStatus
    created_at: datetime


@dataclass(frozen=True, slots=True)
class TicketPredicate:
    """Expected current state for a conditional update.

    ``resolver_id=None`` matches only tickets that have no resolver.
    """

    status: TicketStatus
    resolver_id: int | None


@dataclass(frozen=True, slots=True)
class TicketPatch:
    """Fields written by a conditional update. ``None`` leaves a field unchanged."""

    status: TicketStatus
    resolver_id: int | None = None
    result: str | None = None


@dataclass(frozen=True, slots=True)
class TicketQuery:
    """Filter, order and window for a ticket listing."""

    status: TicketStatus | None = None
    resolver_id: int | None = None
    order: TicketOrder = TicketOrder.UPDATED_DESC
    offset: int = 0
    limit: int = 100


class TicketStore(Protocol):
    """Durable keyed storage for tickets and their audit history.

    Every mutating call must be all-or-nothing: the ticket row and its audit
    entry are written together or not at all.
    """

    async def insert(self, draft: TicketDraft, *, note: str = "Ticket created") -> Ticket:
        ...

    async def get_by_id(self, ticket_id: int) -> Ticket | None:
        ...

    async def conditional_update(
        self,
        ticket_id: int,
        *,
        expected: TicketPredicate,
        patch: TicketPatch,
        actor_id: int,
        note: str,
    ) -> Ticket | None:
        """Atomically apply ``patch`` if the ticket matches ``expected``.

        Returns the updated ticket, or ``None`` when no row matched.
        """
        ...

    async def query(self, query: TicketQuery) -> tuple[Sequence[Ticket], int]:
        ...

    async def history(self, ticket_id: int) -> Sequence[TicketAuditEntry]:
        ...
