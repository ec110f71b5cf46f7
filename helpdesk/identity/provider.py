from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Mapping, Protocol

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import SessionTable, UserTable

from .models import Identity, Role, Session

logger = logging.getLogger(__name__)


class AuthenticationError(PermissionError):
    """Raised when a session token does not map to a live session."""


class IdentityProviderUnavailableError(RuntimeError):
    """Raised when the session store cannot be queried."""


class IdentityProvider(Protocol):
    async def authenticate(self, session_token: str) -> Identity:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlIdentityProvider:
    """Resolve session tokens against the ``sessions`` and ``users`` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine
        self._clock = clock

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def get_session(self, session_token: str) -> Session | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SessionTable, UserTable)
                    .join(UserTable, UserTable.id == SessionTable.user_id)
                    .where(SessionTable.session_id == session_token)
                )
                row = result.first()
        except (DBAPIError, OSError) as exc:
            logger.warning("Session lookup failed: %s", exc)
            raise IdentityProviderUnavailableError("Identity provider is unavailable") from exc
        if row is None:
            return None
        session_row, user_row = row
        return Session(
            session_id=session_row.session_id,
            user_id=int(user_row.id),
            role=Role.ENGINEER if user_row.is_engineer else Role.SPECIALIST,
            expires_at=_ensure_aware(session_row.exp_at),
        )

    async def authenticate(self, session_token: str) -> Identity:
        if not session_token:
            raise AuthenticationError("Missing session token")
        record = await self.get_session(session_token)
        if record is None:
            raise AuthenticationError("Invalid authentication credentials")
        if record.expires_at <= self._clock():
            logger.info("Rejected expired session for user %s", record.user_id)
            raise AuthenticationError("Session expired")
        return Identity(user_id=record.user_id, role=record.role)


class StaticIdentityProvider:
    """Fixed token to identity mapping for local development and tests."""

    def __init__(self, tokens: Mapping[str, Identity]) -> None:
        self._tokens = dict(tokens)

    async def authenticate(self, session_token: str) -> Identity:
        identity = self._tokens.get(session_token)
        if identity is None:
            raise AuthenticationError("Invalid authentication credentials")
        return identity


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
