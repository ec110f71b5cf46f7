from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from helpdesk.identity import Identity, Role
from helpdesk.metrics import MetricsRegistry, register_default_metrics
from helpdesk.tickets.engine import TicketLifecycleEngine
from helpdesk.tickets.models import Ticket, TicketAuditEntry
from helpdesk.tickets.queries import TicketQueryService
from helpdesk.tickets.service import TicketService
from helpdesk.tickets.store import TicketDraft, TicketOrder, TicketPatch, TicketPredicate, TicketQuery


class InMemoryTicketStore:
    """Store double whose conditional update is atomic with respect to the event loop.

    Every call yields to the loop before touching state so that concurrent
    callers genuinely interleave, but the compare and the write of a
    conditional update happen without an ``await`` in between.
    """

    def __init__(self, *, first_id: int = 1, delay: float = 0.0) -> None:
        self.delay = delay
        self._ids = itertools.count(first_id)
        self._tickets: dict[int, Ticket] = {}
        self._history: dict[int, list[TicketAuditEntry]] = defaultdict(list)
        self.update_attempts = 0

    async def insert(self, draft: TicketDraft, *, note: str = "Ticket created") -> Ticket:
        await asyncio.sleep(self.delay)
        ticket = Ticket(
            id=next(self._ids),
            message=draft.message,
            reporter_id=draft.reporter_id,
            status=draft.status,
            resolver_id=None,
            result=None,
            created_at=draft.created_at,
            updated_at=draft.created_at,
            version=1,
        )
        self._tickets[ticket.id] = ticket
        self._record(ticket, from_status=None, actor_id=draft.reporter_id, note=note)
        return replace(ticket)

    async def get_by_id(self, ticket_id: int) -> Ticket | None:
        await asyncio.sleep(self.delay)
        ticket = self._tickets.get(ticket_id)
        return None if ticket is None else replace(ticket)

    async def conditional_update(
        self,
        ticket_id: int,
        *,
        expected: TicketPredicate,
        patch: TicketPatch,
        actor_id: int,
        note: str,
    ) -> Ticket | None:
        await asyncio.sleep(self.delay)
        self.update_attempts += 1
        current = self._tickets.get(ticket_id)
        if current is None or current.status != expected.status or current.resolver_id != expected.resolver_id:
            return None
        now = datetime.now(timezone.utc)
        if now <= current.updated_at:
            now = current.updated_at + timedelta(microseconds=1)
        updated = replace(
            current,
            status=patch.status,
            resolver_id=current.resolver_id if patch.resolver_id is None else patch.resolver_id,
            result=current.result if patch.result is None else patch.result,
            updated_at=now,
            version=current.version + 1,
        )
        self._tickets[ticket_id] = updated
        self._record(updated, from_status=expected.status, actor_id=actor_id, note=note)
        return replace(updated)

    async def query(self, query: TicketQuery) -> tuple[list[Ticket], int]:
        await asyncio.sleep(self.delay)
        rows = [
            ticket
            for ticket in self._tickets.values()
            if (query.status is None or ticket.status == query.status)
            and (query.resolver_id is None or ticket.resolver_id == query.resolver_id)
        ]
        if query.order is TicketOrder.CREATED_ASC:
            rows.sort(key=lambda ticket: (ticket.created_at, ticket.id))
        else:
            rows.sort(key=lambda ticket: (ticket.updated_at, ticket.id), reverse=True)
        window = rows[query.offset : query.offset + query.limit]
        return [replace(ticket) for ticket in window], len(rows)

    async def history(self, ticket_id: int) -> list[TicketAuditEntry]:
        await asyncio.sleep(self.delay)
        return list(self._history.get(ticket_id, []))

    def all_tickets(self) -> list[Ticket]:
        return [replace(ticket) for ticket in self._tickets.values()]

    def _record(self, ticket: Ticket, *, from_status, actor_id: int, note: str) -> None:
        self._history[ticket.id].append(
            TicketAuditEntry(
                ticket_id=ticket.id,
                sequence=ticket.version,
                from_status=from_status,
                to_status=ticket.status,
                actor_id=actor_id,
                note=note,
                created_at=ticket.updated_at,
            )
        )


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self._current
        self._current += timedelta(seconds=1)
        return value


@pytest.fixture
def store() -> InMemoryTicketStore:
    return InMemoryTicketStore()


@pytest.fixture
def engine(store: InMemoryTicketStore) -> TicketLifecycleEngine:
    return TicketLifecycleEngine(store, clock=StepClock())


@pytest.fixture
def queries(store: InMemoryTicketStore) -> TicketQueryService:
    return TicketQueryService(store, max_page_size=100, unsolved_limit=10)


@pytest.fixture
def registry() -> MetricsRegistry:
    return register_default_metrics(MetricsRegistry())


@pytest.fixture
def service(engine: TicketLifecycleEngine, queries: TicketQueryService, registry: MetricsRegistry) -> TicketService:
    return TicketService(engine, queries, registry=registry, timeout=1.0)


@pytest.fixture
def specialist() -> Identity:
    return Identity(user_id=7, role=Role.SPECIALIST)


@pytest.fixture
def engineer() -> Identity:
    return Identity(user_id=3, role=Role.ENGINEER)


@pytest.fixture
def other_engineer() -> Identity:
    return Identity(user_id=9, role=Role.ENGINEER)


@pytest.fixture
def make_store():
    return InMemoryTicketStore


@pytest.fixture
def make_clock():
    return StepClock
