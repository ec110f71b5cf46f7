"""Capability rules binding a caller identity to ticket operations."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping

from helpdesk.identity.models import Identity, Role

from .errors import AuthenticationRequiredError, ForbiddenError
from .models import Ticket

logger = logging.getLogger(__name__)


class TicketOperation(str, Enum):
    CREATE = "create"
    GET = "get"
    HISTORY = "history"
    CLAIM = "claim"
    TRANSITION = "transition"
    LIST_BY_STATUS = "list_by_status"
    LIST_BY_RESOLVER = "list_by_resolver"
    LIST_UNSOLVED = "list_unsolved"


# ``None`` means any authenticated caller.
_REQUIRED_ROLE: Mapping[TicketOperation, Role | None] = {
    TicketOperation.CREATE: None,
    TicketOperation.GET: None,
    TicketOperation.HISTORY: None,
    TicketOperation.CLAIM: Role.ENGINEER,
    TicketOperation.TRANSITION: Role.ENGINEER,
    TicketOperation.LIST_BY_STATUS: Role.ENGINEER,
    TicketOperation.LIST_BY_RESOLVER: Role.ENGINEER,
    TicketOperation.LIST_UNSOLVED: Role.ENGINEER,
}


class AuthorizationGuard:
    """Decide whether an identity may invoke an operation.

    Reads are open to every authenticated caller, including tickets filed by
    someone else. Everything that changes who works on a ticket, or exposes the
    queue, is reserved for engineers.
    """

    def __init__(self, required_roles: Mapping[TicketOperation, Role | None] | None = None) -> None:
        self._required_roles = dict(required_roles or _REQUIRED_ROLE)

    def authorize(self, identity: Identity | None, operation: TicketOperation) -> Identity:
        if identity is None:
            raise AuthenticationRequiredError(f"Authentication is required to {operation.value.replace('_', ' ')}")

        required = self._required_roles.get(operation)
        if required is not None and not identity.has_role(required):
            logger.info(
                "User %s with role %s denied %s",
                identity.user_id,
                identity.role.value,
                operation.value,
            )
            raise ForbiddenError("Insufficient permissions")
        return identity


def require_resolver(ticket: Ticket, engineer_id: int) -> None:
    """Only the engineer who claimed a ticket may resolve it."""

    if not ticket.is_claimed or ticket.resolver_id != engineer_id:
        raise ForbiddenError(f"Ticket {ticket.id} is assigned to another engineer")
