"""Route modules exposed by the API package."""

from . import me, ping, tickets

__all__ = ["me", "ping", "tickets"]
