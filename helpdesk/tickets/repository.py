from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .errors import StoreUnavailableError, TicketStoreError
from .models import Ticket, TicketAuditEntry
from .state import TicketStatus
from .store import TicketDraft, TicketOrder, TicketPatch, TicketPredicate, TicketQuery

logger = logging.getLogger(__name__)

# Failures that say nothing about the request itself; callers may retry them.
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    asyncpg.InterfaceError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.OperatorInterventionError,
    asyncpg.exceptions.ReadOnlySQLTransactionError,
)

_TICKET_COLUMNS = "id, message, reporter_id, status, resolver_id, result, created_at, updated_at, version"

_ORDER_BY: dict[TicketOrder, str] = {
    TicketOrder.UPDATED_DESC: "updated_at DESC, id DESC",
    TicketOrder.CREATED_ASC: "created_at ASC, id ASC",
}


class PostgresTicketStore:
    """asyncpg backed storage for tickets and their append-only audit log."""

    _CREATE_TICKETS_SQL = """
    CREATE TABLE IF NOT EXISTS tickets (
        id BIGSERIAL PRIMARY KEY,
        message TEXT NOT NULL,
        reporter_id BIGINT NOT NULL,
        status TEXT NOT NULL,
        resolver_id BIGINT NULL,
        result TEXT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        CONSTRAINT tickets_status_check
            CHECK (status IN ('in_queue', 'in_progress', 'solved', 'rejected')),
        CONSTRAINT tickets_resolver_check
            CHECK ((status = 'in_queue') = (resolver_id IS NULL))
    )
    """

    _CREATE_AUDIT_SQL = """
    CREATE TABLE IF NOT EXISTS ticket_audit_logs (
        ticket_id BIGINT NOT NULL REFERENCES tickets(id),
        sequence INTEGER NOT NULL,
        from_status TEXT NULL,
        to_status TEXT NOT NULL,
        actor_id BIGINT NOT NULL,
        note TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        PRIMARY KEY (ticket_id, sequence)
    )
    """

    _CREATE_INDEXES_SQL = """
    CREATE INDEX IF NOT EXISTS tickets_status_updated_idx ON tickets (status, updated_at DESC);
    CREATE INDEX IF NOT EXISTS tickets_status_created_idx ON tickets (status, created_at);
    CREATE INDEX IF NOT EXISTS tickets_resolver_updated_idx ON tickets (resolver_id, updated_at DESC)
    """

    _INSERT_TICKET_SQL = f"""
    INSERT INTO tickets (message, reporter_id, status, created_at, updated_at, version)
    VALUES ($1, $2, $3, $4, $4, 1)
    RETURNING {_TICKET_COLUMNS}
    """

    _SELECT_TICKET_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE id = $1
    """

    # resolver_id and result are only ever written once, so COALESCE keeps
    # whatever is already stored when the patch leaves them unset.
    _CONDITIONAL_UPDATE_SQL = f"""
    UPDATE tickets
    SET status = $2,
        resolver_id = COALESCE($3::bigint, resolver_id),
        result = COALESCE($4::text, result),
        updated_at = GREATEST(clock_timestamp(), updated_at + INTERVAL '1 microsecond'),
        version = version + 1
    WHERE id = $1
      AND status = $5
      AND resolver_id IS NOT DISTINCT FROM $6::bigint
    RETURNING {_TICKET_COLUMNS}
    """

    _QUERY_FILTER_SQL = """
    FROM tickets
    WHERE ($1::text IS NULL OR status = $1::text)
      AND ($2::bigint IS NULL OR resolver_id = $2::bigint)
    """

    _INSERT_AUDIT_SQL = """
    INSERT INTO ticket_audit_logs (ticket_id, sequence, from_status, to_status, actor_id, note, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7)
    """

    _SELECT_AUDIT_SQL = """
    SELECT ticket_id, sequence, from_status, to_status, actor_id, note, created_at
    FROM ticket_audit_logs
    WHERE ticket_id = $1
    ORDER BY sequence ASC
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        async with self._connection() as connection:
            await connection.execute(self._CREATE_TICKETS_SQL)
            await connection.execute(self._CREATE_AUDIT_SQL)
            await connection.execute(self._CREATE_INDEXES_SQL)

    async def insert(self, draft: TicketDraft, *, note: str = "Ticket created") -> Ticket:
        async with self._connection() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    self._INSERT_TICKET_SQL,
                    draft.message,
                    draft.reporter_id,
                    draft.status.value,
                    draft.created_at,
                )
                if row is None:
                    raise TicketStoreError("Ticket insert returned no row")
                ticket = self._row_to_ticket(row)
                await self._insert_audit(
                    connection,
                    ticket=ticket,
                    from_status=None,
                    actor_id=draft.reporter_id,
                    note=note,
                )
        return ticket

    async def get_by_id(self, ticket_id: int) -> Ticket | None:
        async with self._connection() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def conditional_update(
        self,
        ticket_id: int,
        *,
        expected: TicketPredicate,
        patch: TicketPatch,
        actor_id: int,
        note: str,
    ) -> Ticket | None:
        async with self._connection() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    self._CONDITIONAL_UPDATE_SQL,
                    ticket_id,
                    patch.status.value,
                    patch.resolver_id,
                    patch.result,
                    expected.status.value,
                    expected.resolver_id,
                )
                if row is None:
                    return None
                ticket = self._row_to_ticket(row)
                await self._insert_audit(
                    connection,
                    ticket=ticket,
                    from_status=expected.status,
                    actor_id=actor_id,
                    note=note,
                )
        return ticket

    async def query(self, query: TicketQuery) -> tuple[list[Ticket], int]:
        """Return one page and the total match count.

        Both statements run in a single read-only ``REPEATABLE READ``
        transaction, so the total is computed from the same snapshot as the page.
        """

        status = None if query.status is None else query.status.value
        select_sql = (
            f"SELECT {_TICKET_COLUMNS} {self._QUERY_FILTER_SQL}"
            f" ORDER BY {_ORDER_BY[query.order]} LIMIT $3 OFFSET $4"
        )
        count_sql = f"SELECT COUNT(*) {self._QUERY_FILTER_SQL}"
        async with self._connection() as connection:
            async with connection.transaction(isolation="repeatable_read", readonly=True):
                rows = await connection.fetch(select_sql, status, query.resolver_id, query.limit, query.offset)
                total = await connection.fetchval(count_sql, status, query.resolver_id)
        return [self._row_to_ticket(row) for row in rows], int(total or 0)

    async def history(self, ticket_id: int) -> list[TicketAuditEntry]:
        async with self._connection() as connection:
            rows = await connection.fetch(self._SELECT_AUDIT_SQL, ticket_id)
        return [self._row_to_audit(row) for row in rows]

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        try:
            async with self._pool.acquire() as connection:
                yield connection
        except _TRANSIENT_ERRORS as exc:
            logger.warning("Ticket store unavailable: %s", exc)
            raise StoreUnavailableError("Ticket store is unavailable") from exc
        except asyncpg.PostgresError as exc:
            sqlstate = getattr(exc, "sqlstate", None)
            logger.error("Ticket store rejected statement (SQLSTATE %s): %s", sqlstate, exc)
            raise TicketStoreError(f"Ticket store error {sqlstate}") from exc

    async def _insert_audit(
        self,
        connection: Any,
        *,
        ticket: Ticket,
        from_status: TicketStatus | None,
        actor_id: int,
        note: str,
    ) -> None:
        await connection.execute(
            self._INSERT_AUDIT_SQL,
            ticket.id,
            ticket.version,
            None if from_status is None else from_status.value,
            ticket.status.value,
            actor_id,
            note,
            ticket.updated_at,
        )

    @staticmethod
    def _row_to_ticket(row: Any) -> Ticket:
        resolver_id = row["resolver_id"]
        return Ticket(
            id=int(row["id"]),
            message=str(row["message"]),
            reporter_id=int(row["reporter_id"]),
            status=TicketStatus(str(row["status"])),
            resolver_id=None if resolver_id is None else int(resolver_id),
            result=row["result"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            version=int(row["version"]),
        )

    @staticmethod
    def _row_to_audit(row: Any) -> TicketAuditEntry:
        from_status = row["from_status"]
        return TicketAuditEntry(
            ticket_id=int(row["ticket_id"]),
            sequence=int(row["sequence"]),
            from_status=TicketStatus(str(from_status)) if from_status else None,
            to_status=TicketStatus(str(row["to_status"])),
            actor_id=int(row["actor_id"]),
            note=str(row["note"]),
            created_at=row["created_at"],
        )
