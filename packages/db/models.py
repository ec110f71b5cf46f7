"""SQLModel table definitions for the identity data owned by the helpdesk."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, String
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class UserTable(SQLModel, table=True):
    """Helpdesk accounts; engineers resolve tickets, everyone else files them."""

    __tablename__ = "users"

    id: int | None = Field(default=None, sa_column=Column(BigInteger, primary_key=True, autoincrement=True))
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    is_engineer: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class SessionTable(SQLModel, table=True):
    """Opaque session tokens issued at login."""

    __tablename__ = "sessions"

    session_id: str = Field(sa_column=Column(String(64), primary_key=True))
    user_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    exp_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
