from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from .state import TicketStatus


@dataclass(slots=True)
class Ticket:
    """Current state of a support ticket."""

    id: int
    message: str
    reporter_id: int
    status: TicketStatus
    resolver_id: int | None
    result: str | None
    created_at: datetime
    updated_at: datetime
    version: int = 1

    @property
    def is_claimed(self) -> bool:
        return self.resolver_id is not None


@dataclass(slots=True)
class TicketAuditEntry:
    """Append-only history entry recorded for every accepted mutation."""

    ticket_id: int
    sequence: int
    from_status: TicketStatus | None
    to_status: TicketStatus
    actor_id: int
    note: str
    created_at: datetime


@dataclass(slots=True)
class TicketPage:
    """A window of tickets together with the size of the full result set."""

    tickets: Sequence[Ticket]
    total: int
    offset: int
    limit: int
