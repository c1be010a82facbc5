"""Route modules exposed by the API package."""

from . import attachments, categories, people, ping, tickets

__all__ = ["attachments", "categories", "people", "ping", "tickets"]
