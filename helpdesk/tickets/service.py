from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from opentelemetry import trace

from helpdesk.identity.models import Identity
from helpdesk.metrics import MetricsRegistry, register_default_metrics, track_duration
from helpdesk.metrics.definitions import (
    TICKET_CLAIMS,
    TICKET_OPERATION_DURATION,
    TICKET_OPERATION_FAILURES,
    TICKET_TRANSITIONS,
    TICKETS_CREATED,
)

from .engine import TicketLifecycleEngine
from .errors import AlreadyClaimedError, DeadlineExceededError, TicketServiceError
from .guard import AuthorizationGuard, TicketOperation
from .models import Ticket, TicketAuditEntry, TicketPage
from .queries import TicketQueryService
from .state import TicketStatus

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)

T = TypeVar("T")


class TicketService:
    """Guarded entry point for ticket operations.

    Every call takes the caller's identity explicitly, is authorized before the
    engine or query service runs, and is bounded by a request deadline. On
    expiry the in-flight store call is cancelled, which rolls back its
    transaction, and ``DeadlineExceededError`` is raised.
    """

    def __init__(
        self,
        engine: TicketLifecycleEngine,
        queries: TicketQueryService,
        *,
        guard: AuthorizationGuard | None = None,
        registry: MetricsRegistry | None = None,
        timeout: float | None = None,
    ) -> None:
        self._engine = engine
        self._queries = queries
        self._guard = guard or AuthorizationGuard()
        self._timeout = timeout

        registry = register_default_metrics(registry)
        self._created = registry.counter(TICKETS_CREATED)
        self._claims = registry.counter(TICKET_CLAIMS, label_names=("outcome",))
        self._transitions = registry.counter(TICKET_TRANSITIONS, label_names=("status",))
        self._duration = registry.distribution(TICKET_OPERATION_DURATION, label_names=("operation",))
        self._failures = registry.counter(TICKET_OPERATION_FAILURES, label_names=("operation", "error"))

    async def create_ticket(self, identity: Identity | None, *, message: str, timeout: float | None = None) -> Ticket:
        ticket = await self._run(
            identity,
            TicketOperation.CREATE,
            lambda caller: self._engine.create(reporter_id=caller.user_id, message=message),
            timeout=timeout,
        )
        self._created.inc()
        return ticket

    async def get_ticket(self, identity: Identity | None, ticket_id: int, *, timeout: float | None = None) -> Ticket:
        return await self._run(
            identity,
            TicketOperation.GET,
            lambda _: self._engine.get_by_id(ticket_id),
            timeout=timeout,
        )

    async def get_history(
        self, identity: Identity | None, ticket_id: int, *, timeout: float | None = None
    ) -> Sequence[TicketAuditEntry]:
        return await self._run(
            identity,
            TicketOperation.HISTORY,
            lambda _: self._engine.history(ticket_id),
            timeout=timeout,
        )

    async def claim_ticket(self, identity: Identity | None, ticket_id: int, *, timeout: float | None = None) -> Ticket:
        try:
            ticket = await self._run(
                identity,
                TicketOperation.CLAIM,
                lambda caller: self._engine.claim(ticket_id, engineer_id=caller.user_id),
                timeout=timeout,
            )
        except AlreadyClaimedError:
            self._claims.inc(labels={"outcome": "already_claimed"})
            raise
        self._claims.inc(labels={"outcome": "claimed"})
        return ticket

    async def transition_ticket(
        self,
        identity: Identity | None,
        ticket_id: int,
        *,
        new_status: TicketStatus | str,
        result: str | None,
        timeout: float | None = None,
    ) -> Ticket:
        ticket = await self._run(
            identity,
            TicketOperation.TRANSITION,
            lambda caller: self._engine.transition(
                ticket_id,
                engineer_id=caller.user_id,
                new_status=new_status,
                result=result,
            ),
            timeout=timeout,
        )
        self._transitions.inc(labels={"status": ticket.status.value})
        return ticket

    async def list_by_status(
        self,
        identity: Identity | None,
        status: TicketStatus | str,
        *,
        offset: int = 0,
        limit: int = 20,
        timeout: float | None = None,
    ) -> TicketPage:
        return await self._run(
            identity,
            TicketOperation.LIST_BY_STATUS,
            lambda _: self._queries.list_by_status(status, offset=offset, limit=limit),
            timeout=timeout,
        )

    async def list_my_tickets(
        self,
        identity: Identity | None,
        *,
        offset: int = 0,
        limit: int = 20,
        timeout: float | None = None,
    ) -> TicketPage:
        return await self._run(
            identity,
            TicketOperation.LIST_BY_RESOLVER,
            lambda caller: self._queries.list_by_resolver(caller.user_id, offset=offset, limit=limit),
            timeout=timeout,
        )

    async def list_unsolved(
        self,
        identity: Identity | None,
        *,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> Sequence[Ticket]:
        return await self._run(
            identity,
            TicketOperation.LIST_UNSOLVED,
            lambda _: self._queries.list_unsolved(limit),
            timeout=timeout,
        )

    async def _run(
        self,
        identity: Identity | None,
        operation: TicketOperation,
        call: Callable[[Identity], Awaitable[T]],
        *,
        timeout: float | None,
    ) -> T:
        deadline = self._timeout if timeout is None else timeout
        labels = {"operation": operation.value}
        with _tracer.start_as_current_span(f"tickets.{operation.value}") as span:
            with track_duration(self._duration, labels=labels):
                try:
                    caller = self._guard.authorize(identity, operation)
                    span.set_attribute("enduser.id", str(caller.user_id))
                    span.set_attribute("enduser.role", caller.role.value)
                    if deadline is None:
                        return await call(caller)
                    return await asyncio.wait_for(call(caller), timeout=deadline)
                except asyncio.TimeoutError as exc:
                    self._failures.inc(labels={**labels, "error": DeadlineExceededError.__name__})
                    logger.warning("Ticket operation %s exceeded its %.3fs deadline", operation.value, deadline)
                    raise DeadlineExceededError(
                        f"{operation.value} did not complete within {deadline} seconds"
                    ) from exc
                except TicketServiceError as exc:
                    self._failures.inc(labels={**labels, "error": type(exc).__name__})
                    raise
