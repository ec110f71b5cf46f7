from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

from .errors import (
    AlreadyClaimedError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    ValidationError,
)
from .guard import require_resolver
from .models import Ticket, TicketAuditEntry
from .state import TicketStateMachine, TicketStatus
from .store import TicketDraft, TicketPatch, TicketPredicate, TicketStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketLifecycleEngine:
    """Owns the ticket state machine and the claim race.

    The engine keeps no shared mutable state of its own. Claim arbitration is
    delegated to the store's conditional update so that exactly one engineer
    wins even across processes.
    """

    def __init__(
        self,
        store: TicketStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    async def create(self, *, reporter_id: int, message: str) -> Ticket:
        if not isinstance(reporter_id, int) or isinstance(reporter_id, bool) or reporter_id <= 0:
            raise ValidationError("reporter_id must be a positive integer")
        if not message or not message.strip():
            raise ValidationError("Ticket message must not be empty")

        draft = TicketDraft(
            message=message,
            reporter_id=reporter_id,
            status=TicketStateMachine.initial_state(),
            created_at=self._clock(),
        )
        ticket = await self._store.insert(draft)
        logger.info("Ticket %s created by user %s", ticket.id, reporter_id)
        return ticket

    async def get_by_id(self, ticket_id: int) -> Ticket:
        ticket = await self._store.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def claim(self, ticket_id: int, *, engineer_id: int) -> Ticket:
        """Bind an unclaimed ticket to ``engineer_id``.

        A single conditional update keyed on "still in queue with no resolver"
        decides the winner. Losing the race raises ``AlreadyClaimedError`` and
        is never retried here.
        """

        claimed = await self._store.conditional_update(
            ticket_id,
            expected=TicketPredicate(status=TicketStatus.IN_QUEUE, resolver_id=None),
            patch=TicketPatch(status=TicketStatus.IN_PROGRESS, resolver_id=engineer_id),
            actor_id=engineer_id,
            note="Ticket claimed",
        )
        if claimed is not None:
            logger.info("Ticket %s claimed by engineer %s", ticket_id, engineer_id)
            return claimed

        current = await self._store.get_by_id(ticket_id)
        if current is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        logger.info(
            "Engineer %s lost claim on ticket %s (resolver %s, status %s)",
            engineer_id,
            ticket_id,
            current.resolver_id,
            current.status.value,
        )
        raise AlreadyClaimedError(f"Ticket {ticket_id} is already claimed")

    async def transition(
        self,
        ticket_id: int,
        *,
        engineer_id: int,
        new_status: TicketStatus | str,
        result: str | None,
    ) -> Ticket:
        target = _coerce_status(new_status)
        if target is None or not TicketStateMachine.is_terminal(target):
            raise InvalidTicketTransitionError(f"{new_status!s} is not a terminal ticket status")
        if not result or not result.strip():
            raise ValidationError("A resolution result is required to close a ticket")

        current = await self.get_by_id(ticket_id)
        self._check_transition(current, engineer_id=engineer_id, target=target)

        updated = await self._store.conditional_update(
            ticket_id,
            expected=TicketPredicate(status=TicketStatus.IN_PROGRESS, resolver_id=engineer_id),
            patch=TicketPatch(status=target, result=result),
            actor_id=engineer_id,
            note=f"Ticket {target.value}",
        )
        if updated is not None:
            logger.info("Ticket %s moved to %s by engineer %s", ticket_id, target.value, engineer_id)
            return updated

        # The ticket changed between the read and the write; classify the new state.
        current = await self.get_by_id(ticket_id)
        self._check_transition(current, engineer_id=engineer_id, target=target)
        raise InvalidTicketTransitionError(
            f"Cannot transition ticket {ticket_id} from {current.status.value} to {target.value}"
        )

    async def history(self, ticket_id: int) -> Sequence[TicketAuditEntry]:
        await self.get_by_id(ticket_id)
        return await self._store.history(ticket_id)

    @staticmethod
    def _check_transition(ticket: Ticket, *, engineer_id: int, target: TicketStatus) -> None:
        if ticket.status is TicketStatus.IN_QUEUE:
            raise InvalidTicketTransitionError(f"Ticket {ticket.id} must be claimed before it can be resolved")
        require_resolver(ticket, engineer_id)
        if not TicketStateMachine.can_transition(ticket.status, target):
            raise InvalidTicketTransitionError(
                f"Cannot transition ticket {ticket.id} from {ticket.status.value} to {target.value}"
            )


def _coerce_status(value: TicketStatus | str) -> TicketStatus | None:
    if isinstance(value, TicketStatus):
        return value
    try:
        return TicketStatus(str(value))
    except ValueError:
        return None
