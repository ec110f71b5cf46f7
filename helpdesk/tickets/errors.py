"""Error taxonomy shared by the lifecycle engine, query service and guard."""

from __future__ import annotations


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class ValidationError(TicketServiceError):
    """Raised when caller input is malformed. Never retried."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class ForbiddenError(TicketServiceError):
    """Raised when the caller may not perform the requested operation."""


class AuthenticationRequiredError(ForbiddenError):
    """Raised when an operation is invoked without an authenticated identity."""


class AlreadyClaimedError(TicketServiceError):
    """Raised when a claim loses the race for an unclaimed ticket.

    Callers may re-poll the unsolved queue but must not retry the same claim.
    """


class InvalidTicketTransitionError(TicketServiceError):
    """Raised when attempting to transition to an invalid state."""


class TicketStoreError(TicketServiceError):
    """Raised when the ticket store rejects an operation for reasons unrelated to the request."""


class StoreUnavailableError(TicketStoreError):
    """Raised when the ticket store cannot be reached. Safe to retry with backoff."""


class DeadlineExceededError(TicketServiceError):
    """Raised when an operation does not complete within its request deadline."""
