from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from .errors import ValidationError
from .models import Ticket, TicketPage
from .state import TicketStatus
from .store import TicketOrder, TicketQuery, TicketStore

DEFAULT_MAX_PAGE_SIZE = 100
DEFAULT_UNSOLVED_LIMIT = 10


class TicketQueryService:
    """Paginated ticket listings with totals taken from the same snapshot."""

    def __init__(
        self,
        store: TicketStore,
        *,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
        unsolved_limit: int = DEFAULT_UNSOLVED_LIMIT,
    ) -> None:
        self._store = store
        self._max_page_size = max_page_size
        self._unsolved_limit = unsolved_limit

    async def list_by_status(self, status: TicketStatus | str, *, offset: int = 0, limit: int = 20) -> TicketPage:
        try:
            status = TicketStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown ticket status: {status!s}") from exc

        # Queued tickets are served oldest first so the claim queue stays fair.
        order = TicketOrder.CREATED_ASC if status is TicketStatus.IN_QUEUE else TicketOrder.UPDATED_DESC
        return await self._page(TicketQuery(status=status, order=order), offset=offset, limit=limit)

    async def list_by_resolver(self, engineer_id: int, *, offset: int = 0, limit: int = 20) -> TicketPage:
        query = TicketQuery(resolver_id=engineer_id, order=TicketOrder.UPDATED_DESC)
        return await self._page(query, offset=offset, limit=limit)

    async def list_unsolved(self, limit: int | None = None) -> Sequence[Ticket]:
        if limit is None:
            limit = self._unsolved_limit
        if limit < 0:
            raise ValidationError("limit must not be negative")
        query = TicketQuery(
            status=TicketStatus.IN_QUEUE,
            order=TicketOrder.CREATED_ASC,
            offset=0,
            limit=min(limit, self._unsolved_limit),
        )
        tickets, _ = await self._store.query(query)
        return list(tickets)

    async def _page(self, query: TicketQuery, *, offset: int, limit: int) -> TicketPage:
        if offset < 0:
            raise ValidationError("offset must not be negative")
        if limit < 0:
            raise ValidationError("limit must not be negative")
        limit = min(limit, self._max_page_size)

        tickets, total = await self._store.query(replace(query, offset=offset, limit=limit))
        return TicketPage(tickets=list(tickets), total=total, offset=offset, limit=limit)
