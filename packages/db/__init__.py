"""Database models and utilities."""

from .models import SessionTable, UserTable

__all__ = [
    "SessionTable",
    "UserTable",
]
