from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from helpdesk.dependencies.auth import CurrentIdentity
from helpdesk.dependencies.tickets import TicketServiceDep
from helpdesk.tickets.errors import (
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
from helpdesk.tickets.models import Ticket, TicketAuditEntry, TicketPage
from helpdesk.tickets.state import TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])

# Checked in order; subclasses come before their parents.
_STATUS_CODES: tuple[tuple[type[TicketServiceError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationRequiredError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (TicketNotFoundError, status.HTTP_404_NOT_FOUND),
    (AlreadyClaimedError, status.HTTP_409_CONFLICT),
    (InvalidTicketTransitionError, status.HTTP_409_CONFLICT),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TicketStoreError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (DeadlineExceededError, status.HTTP_504_GATEWAY_TIMEOUT),
)


class TicketCreateRequest(BaseModel):
    message: str = Field(..., max_length=10_000)


class TicketTransitionRequest(BaseModel):
    status: str
    result: str | None = Field(default=None, max_length=10_000)


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    message: str
    reporter_id: int
    status: TicketStatus
    resolver_id: int | None
    result: str | None
    created_at: datetime
    updated_at: datetime
    version: int


class TicketPageResponse(BaseModel):
    tickets: list[TicketResponse]
    total: int
    offset: int
    limit: int


class TicketAuditResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_id: int
    sequence: int
    from_status: TicketStatus | None
    to_status: TicketStatus
    actor_id: int
    note: str
    created_at: datetime


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_page_response(page: TicketPage) -> TicketPageResponse:
    return TicketPageResponse(
        tickets=[_to_response(ticket) for ticket in page.tickets],
        total=page.total,
        offset=page.offset,
        limit=page.limit,
    )


def _to_audit_response(entry: TicketAuditEntry) -> TicketAuditResponse:
    return TicketAuditResponse.model_validate(entry)


def _http_error(exc: TicketServiceError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    identity: CurrentIdentity,
) -> TicketResponse:
    try:
        ticket = await service.create_ticket(identity, message=payload.message)
    except TicketServiceError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.get("", response_model=TicketPageResponse, summary="List tickets with a given status")
async def list_tickets(
    service: TicketServiceDep,
    identity: CurrentIdentity,
    status_filter: str = Query(default=TicketStatus.IN_QUEUE.value, alias="status"),
    offset: int = Query(default=0),
    limit: int = Query(default=20),
) -> TicketPageResponse:
    try:
        page = await service.list_by_status(identity, status_filter, offset=offset, limit=limit)
    except TicketServiceError as exc:
        raise _http_error(exc) from exc
    return _to_page_response(page)


@router.get("/unsolved", response_model=list[TicketResponse], summary="Oldest unclaimed tickets")
async def list_unsolved(
    service: TicketServiceDep,
    identity: CurrentIdentity,
    limit: int | None = Query(default=None),
) -> list[TicketResponse]:
    try:
        tickets = await service.list_unsolved(identity, limit=limit)
    except TicketServiceError as exc:
        raise _http_error(exc) from exc
    return [_to_response(ticket) for ticket in tickets]


@router.get("/mine", response_model=TicketPageResponse, summary="Tickets claimed by the caller")
async def list_my_tickets(
    service: TicketServiceDep,
    identity: CurrentIdentity,
    offset: int = Query(default=0),
    limit: int = Query(default=20),
) -> TicketPageResponse:
    try:
        page = await service.list_my_tickets(identity, offset=offset, limit=limit)
    except TicketServiceError as exc:
        raise _http_error(exc) from exc
    return _to_page_response(page)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: int, service: TicketServiceDep, identity: CurrentIdentity) -> TicketResponse:
    try:
        ticket = await service.get_ticket(identity, ticket_id)
    except TicketServiceError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/claim", response_model=TicketResponse)
async def claim_ticket(ticket_id: int, service: TicketServiceDep, identity: CurrentIdentity) -> TicketResponse:
    try:
        ticket = await service.claim_ticket(identity, ticket_id)
    except TicketServiceError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/transition", response_model=TicketResponse)
async def transition_ticket(
    ticket_id: int,
    payload: TicketTransitionRequest,
    service: TicketServiceDep,
    identity: CurrentIdentity,
) -> TicketResponse:
    try:
        ticket = await service.transition_ticket(
            identity,
            ticket_id,
            new_status=payload.status,
            result=payload.result,
        )
    except TicketServiceError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.get("/{ticket_id}/history", response_model=list[TicketAuditResponse])
async def get_ticket_history(
    ticket_id: int, service: TicketServiceDep, identity: CurrentIdentity
) -> list[TicketAuditResponse]:
    try:
        entries = await service.get_history(identity, ticket_id)
    except TicketServiceError as exc:
        raise _http_error(exc) from exc
    return [_to_audit_response(entry) for entry in entries]
