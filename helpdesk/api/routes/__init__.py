"""Route modules exposed by the API package."""

from . import metrics, ping, tickets

__all__ = ["metrics", "ping", "tickets"]
