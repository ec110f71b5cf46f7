from __future__ import annotations

import asyncio

import pytest

from helpdesk.tickets import (
    AlreadyClaimedError,
    ForbiddenError,
    InvalidTicketTransitionError,
    TicketLifecycleEngine,
    TicketNotFoundError,
    TicketStatus,
    ValidationError,
)
from helpdesk.tickets.store import TicketPatch


@pytest.fixture
def scenario_engine(make_store, make_clock):
    store = make_store(first_id=101)
    return store, TicketLifecycleEngine(store, clock=make_clock())


@pytest.mark.asyncio
async def test_claim_and_resolve_walkthrough(scenario_engine):
    store, engine = scenario_engine

    ticket = await engine.create(reporter_id=7, message="payout broken")
    assert ticket.id == 101
    assert ticket.status is TicketStatus.IN_QUEUE
    assert ticket.resolver_id is None
    assert ticket.result is None
    assert ticket.created_at == ticket.updated_at

    claimed = await engine.claim(101, engineer_id=3)
    assert claimed.status is TicketStatus.IN_PROGRESS
    assert claimed.resolver_id == 3
    assert claimed.is_claimed and not ticket.is_claimed

    with pytest.raises(AlreadyClaimedError):
        await engine.claim(101, engineer_id=9)

    solved = await engine.transition(101, engineer_id=3, new_status="solved", result="refunded")
    assert solved.status is TicketStatus.SOLVED
    assert solved.result == "refunded"
    assert solved.resolver_id == 3

    with pytest.raises(ForbiddenError):
        await engine.transition(101, engineer_id=9, new_status="solved", result="x")

    stored = await engine.get_by_id(101)
    assert stored.status is TicketStatus.SOLVED
    assert stored.result == "refunded"


@pytest.mark.asyncio
async def test_create_then_get_returns_same_ticket(engine):
    created = await engine.create(reporter_id=7, message="VPN drops every hour")
    fetched = await engine.get_by_id(created.id)

    assert fetched == created
    assert fetched.message == "VPN drops every hour"
    assert fetched.reporter_id == 7


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", "\n\t"])
async def test_create_rejects_blank_message(engine, store, message):
    with pytest.raises(ValidationError):
        await engine.create(reporter_id=7, message=message)
    assert store.all_tickets() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("reporter_id", [0, -4, True])
async def test_create_rejects_invalid_reporter(engine, reporter_id):
    with pytest.raises(ValidationError):
        await engine.create(reporter_id=reporter_id, message="printer on fire")


@pytest.mark.asyncio
async def test_get_unknown_ticket_raises_not_found(engine):
    with pytest.raises(TicketNotFoundError):
        await engine.get_by_id(404)


@pytest.mark.asyncio
async def test_claim_unknown_ticket_raises_not_found(engine):
    with pytest.raises(TicketNotFoundError):
        await engine.claim(404, engineer_id=3)


@pytest.mark.asyncio
async def test_concurrent_claims_have_exactly_one_winner(engine, store):
    ticket = await engine.create(reporter_id=7, message="payout broken")
    engineers = list(range(1, 21))

    outcomes = await asyncio.gather(
        *(engine.claim(ticket.id, engineer_id=engineer_id) for engineer_id in engineers),
        return_exceptions=True,
    )

    winners = [outcome for outcome in outcomes if not isinstance(outcome, BaseException)]
    losers = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
    assert len(winners) == 1
    assert len(losers) == len(engineers) - 1
    assert all(isinstance(loser, AlreadyClaimedError) for loser in losers)

    stored = await engine.get_by_id(ticket.id)
    assert stored.status is TicketStatus.IN_PROGRESS
    assert stored.resolver_id == winners[0].resolver_id
    assert stored.version == 2
    assert len(await store.history(ticket.id)) == 2


@pytest.mark.asyncio
async def test_transition_requires_result(engine):
    ticket = await engine.create(reporter_id=7, message="payout broken")
    await engine.claim(ticket.id, engineer_id=3)

    with pytest.raises(ValidationError):
        await engine.transition(ticket.id, engineer_id=3, new_status="rejected", result="")

    stored = await engine.get_by_id(ticket.id)
    assert stored.status is TicketStatus.IN_PROGRESS
    assert stored.result is None


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["in_queue", "in_progress", "archived"])
async def test_transition_rejects_non_terminal_targets(engine, target):
    ticket = await engine.create(reporter_id=7, message="payout broken")
    await engine.claim(ticket.id, engineer_id=3)

    with pytest.raises(InvalidTicketTransitionError):
        await engine.transition(ticket.id, engineer_id=3, new_status=target, result="done")


@pytest.mark.asyncio
async def test_transition_of_queued_ticket_is_invalid(engine, store):
    ticket = await engine.create(reporter_id=7, message="payout broken")

    with pytest.raises(InvalidTicketTransitionError):
        await engine.transition(ticket.id, engineer_id=3, new_status=TicketStatus.SOLVED, result="done")
    assert store.update_attempts == 0


@pytest.mark.asyncio
async def test_transition_by_other_engineer_is_forbidden_and_leaves_ticket(engine, store):
    ticket = await engine.create(reporter_id=7, message="payout broken")
    claimed = await engine.claim(ticket.id, engineer_id=3)
    attempts = store.update_attempts

    with pytest.raises(ForbiddenError):
        await engine.transition(ticket.id, engineer_id=9, new_status="solved", result="fixed")

    assert store.update_attempts == attempts
    assert await engine.get_by_id(ticket.id) == claimed


@pytest.mark.asyncio
async def test_terminal_ticket_cannot_transition_again(engine):
    ticket = await engine.create(reporter_id=7, message="payout broken")
    await engine.claim(ticket.id, engineer_id=3)
    await engine.transition(ticket.id, engineer_id=3, new_status="rejected", result="duplicate")

    with pytest.raises(InvalidTicketTransitionError):
        await engine.transition(ticket.id, engineer_id=3, new_status="solved", result="actually fixed")
    with pytest.raises(AlreadyClaimedError):
        await engine.claim(ticket.id, engineer_id=3)


@pytest.mark.asyncio
async def test_updates_keep_resolver_and_advance_timestamps(engine):
    created = await engine.create(reporter_id=7, message="payout broken")
    claimed = await engine.claim(created.id, engineer_id=3)
    solved = await engine.transition(created.id, engineer_id=3, new_status="solved", result="refunded")

    assert created.updated_at < claimed.updated_at < solved.updated_at
    assert claimed.created_at == created.created_at == solved.created_at
    assert [created.version, claimed.version, solved.version] == [1, 2, 3]
    assert solved.resolver_id == claimed.resolver_id == 3


@pytest.mark.asyncio
async def test_history_records_every_change_in_order(engine):
    ticket = await engine.create(reporter_id=7, message="payout broken")
    await engine.claim(ticket.id, engineer_id=3)
    await engine.transition(ticket.id, engineer_id=3, new_status="solved", result="refunded")

    entries = await engine.history(ticket.id)

    assert [entry.sequence for entry in entries] == [1, 2, 3]
    assert [entry.to_status for entry in entries] == [
        TicketStatus.IN_QUEUE,
        TicketStatus.IN_PROGRESS,
        TicketStatus.SOLVED,
    ]
    assert entries[0].from_status is None
    assert entries[0].actor_id == 7
    assert entries[1].from_status is TicketStatus.IN_QUEUE
    assert [entry.actor_id for entry in entries[1:]] == [3, 3]
    assert entries[2].note == "Ticket solved"


@pytest.mark.asyncio
async def test_history_of_unknown_ticket_raises_not_found(engine):
    with pytest.raises(TicketNotFoundError):
        await engine.history(999)


@pytest.mark.asyncio
async def test_transition_reclassifies_when_ticket_changes_underneath(engine, store):
    ticket = await engine.create(reporter_id=7, message="payout broken")
    await engine.claim(ticket.id, engineer_id=3)

    original = store.conditional_update

    async def racing_update(ticket_id, **kwargs):
        # Another request by the same engineer closes the ticket first.
        await original(
            ticket_id,
            expected=kwargs["expected"],
            patch=TicketPatch(status=TicketStatus.REJECTED, result="duplicate"),
            actor_id=kwargs["actor_id"],
            note="Ticket rejected",
        )
        return await original(ticket_id, **kwargs)

    store.conditional_update = racing_update

    with pytest.raises(InvalidTicketTransitionError):
        await engine.transition(ticket.id, engineer_id=3, new_status="solved", result="refunded")

    stored = await engine.get_by_id(ticket.id)
    assert stored.status is TicketStatus.REJECTED
    assert stored.result == "duplicate"
