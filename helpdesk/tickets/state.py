from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    IN_QUEUE = "in_queue"
    IN_PROGRESS = "in_progress"
    SOLVED = "solved"
    REJECTED = "rejected"


TERMINAL_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.SOLVED, TicketStatus.REJECTED})


class TicketStateMachine:
    """Validate ticket lifecycle transitions.

    Claiming is the only way out of ``in_queue`` and terminal states have no
    outgoing edges.
    """

    _TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
        TicketStatus.IN_QUEUE: frozenset({TicketStatus.IN_PROGRESS}),
        TicketStatus.IN_PROGRESS: TERMINAL_STATUSES,
        TicketStatus.SOLVED: frozenset(),
        TicketStatus.REJECTED: frozenset(),
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.IN_QUEUE

    @classmethod
    def is_terminal(cls, status: TicketStatus) -> bool:
        return status in TERMINAL_STATUSES

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls._TRANSITIONS.get(current, frozenset())
