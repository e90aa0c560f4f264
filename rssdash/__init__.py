"""RSS news dashboard: feed polling, in-memory news filtering and a WSGI JSON API."""

__version__ = "1.0.0"