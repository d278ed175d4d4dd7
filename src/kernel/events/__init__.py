"""
Audit logging infrastructure.

Provides append-only audit logging with immutable events.
"""

from src.kernel.events.event_store import EventStore

__all__ = [
    "EventStore",
]
