"""FastAPI dependencies shared by the route modules."""

from .auth import CurrentIdentity, get_current_identity, get_identity_provider
from .tickets import TicketServiceDep, get_ticket_service

__all__ = [
    "CurrentIdentity",
    "TicketServiceDep",
    "get_current_identity",
    "get_identity_provider",
    "get_ticket_service",
]
