from __future__ import annotations

import asyncio

import pytest

from helpdesk.identity import Identity, Role
from helpdesk.metrics.definitions import (
    TICKET_CLAIMS,
    TICKET_OPERATION_DURATION,
    TICKET_OPERATION_FAILURES,
    TICKET_TRANSITIONS,
    TICKETS_CREATED,
)
from helpdesk.tickets import (
    AlreadyClaimedError,
    AuthenticationRequiredError,
    DeadlineExceededError,
    ForbiddenError,
    TicketLifecycleEngine,
    TicketQueryService,
    TicketService,
    TicketStatus,
)


def _counter(registry, name):
    return {labels: values["value"] for labels, values in registry.counter(name).snapshot().items()}


@pytest.mark.asyncio
async def test_reporter_identity_comes_from_caller(service, specialist):
    ticket = await service.create_ticket(specialist, message="payout broken")

    assert ticket.reporter_id == specialist.user_id
    assert ticket.status is TicketStatus.IN_QUEUE


@pytest.mark.asyncio
async def test_specialist_cannot_claim_or_list(service, specialist):
    ticket = await service.create_ticket(specialist, message="payout broken")

    with pytest.raises(ForbiddenError):
        await service.claim_ticket(specialist, ticket.id)
    with pytest.raises(ForbiddenError):
        await service.list_unsolved(specialist)
    with pytest.raises(ForbiddenError):
        await service.list_by_status(specialist, "in_queue")

    stored = await service.get_ticket(specialist, ticket.id)
    assert stored.status is TicketStatus.IN_QUEUE


@pytest.mark.asyncio
async def test_anonymous_calls_require_authentication(service):
    with pytest.raises(AuthenticationRequiredError):
        await service.create_ticket(None, message="payout broken")


@pytest.mark.asyncio
async def test_claim_and_transition_flow(service, specialist, engineer, other_engineer, registry):
    ticket = await service.create_ticket(specialist, message="payout broken")

    claimed = await service.claim_ticket(engineer, ticket.id)
    assert claimed.resolver_id == engineer.user_id

    with pytest.raises(AlreadyClaimedError):
        await service.claim_ticket(other_engineer, ticket.id)

    solved = await service.transition_ticket(engineer, ticket.id, new_status="solved", result="refunded")
    assert solved.status is TicketStatus.SOLVED

    mine = await service.list_my_tickets(engineer)
    assert [item.id for item in mine.tickets] == [ticket.id]
    assert (await service.list_my_tickets(other_engineer)).total == 0

    history = await service.get_history(specialist, ticket.id)
    assert [entry.sequence for entry in history] == [1, 2, 3]

    assert _counter(registry, TICKETS_CREATED) == {(): 1.0}
    assert _counter(registry, TICKET_CLAIMS) == {("claimed",): 1.0, ("already_claimed",): 1.0}
    assert _counter(registry, TICKET_TRANSITIONS) == {("solved",): 1.0}
    assert _counter(registry, TICKET_OPERATION_FAILURES) == {("claim", "AlreadyClaimedError"): 1.0}


@pytest.mark.asyncio
async def test_operation_durations_are_recorded(service, specialist, registry):
    await service.create_ticket(specialist, message="payout broken")

    snapshot = registry.distribution(TICKET_OPERATION_DURATION).snapshot()
    assert snapshot[("create",)]["count"] == 1.0


@pytest.mark.asyncio
async def test_deadline_expiry_leaves_ticket_untouched(make_store, make_clock, registry, specialist, engineer):
    store = make_store()
    service = TicketService(
        TicketLifecycleEngine(store, clock=make_clock()),
        TicketQueryService(store),
        registry=registry,
        timeout=1.0,
    )
    ticket = await service.create_ticket(specialist, message="payout broken")

    store.delay = 0.2
    with pytest.raises(DeadlineExceededError):
        await service.claim_ticket(engineer, ticket.id, timeout=0.01)

    store.delay = 0.0
    stored = await service.get_ticket(engineer, ticket.id)
    assert stored.status is TicketStatus.IN_QUEUE
    assert stored.resolver_id is None
    assert stored.version == 1
    assert _counter(registry, TICKET_OPERATION_FAILURES) == {("claim", "DeadlineExceededError"): 1.0}


@pytest.mark.asyncio
async def test_concurrent_claims_through_service(service, specialist, registry):
    ticket = await service.create_ticket(specialist, message="payout broken")
    engineers = [Identity(user_id=100 + index, role=Role.ENGINEER) for index in range(10)]

    outcomes = await asyncio.gather(
        *(service.claim_ticket(identity, ticket.id) for identity in engineers),
        return_exceptions=True,
    )

    assert sum(1 for outcome in outcomes if not isinstance(outcome, BaseException)) == 1
    assert sum(1 for outcome in outcomes if isinstance(outcome, AlreadyClaimedError)) == 9
    assert _counter(registry, TICKET_CLAIMS) == {("claimed",): 1.0, ("already_claimed",): 9.0}
