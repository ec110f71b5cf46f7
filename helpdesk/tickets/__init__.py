"""Ticket lifecycle, claim assignment and query services."""

from .engine import TicketLifecycleEngine
from .errors import (
    AlreadyClaimedError,
    AuthenticationRequiredError,
    DeadlineExceededError,
    ForbiddenError,
    InvalidTicketTransitionError,
    StoreUnavailableError,
    TicketNotFoundError,
    TicketServiceError,
    TicketStoreError,
    ValidationError,
)
from .guard import AuthorizationGuard, TicketOperation
from .models import Ticket, TicketAuditEntry, TicketPage
from .queries import TicketQueryService
from .repository import PostgresTicketStore
from .service import TicketService
from .state import TicketStateMachine, TicketStatus
from .store import TicketStore

__all__ = [
    "AlreadyClaimedError",
    "AuthenticationRequiredError",
    "AuthorizationGuard",
    "DeadlineExceededError",
    "ForbiddenError",
    "InvalidTicketTransitionError",
    "PostgresTicketStore",
    "StoreUnavailableError",
    "Ticket",
    "TicketAuditEntry",
    "TicketLifecycleEngine",
    "TicketNotFoundError",
    "TicketOperation",
    "TicketPage",
    "TicketQueryService",
    "TicketService",
    "TicketServiceError",
    "TicketStoreError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketStore",
    "ValidationError",
]
