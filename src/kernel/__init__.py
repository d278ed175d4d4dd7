"""
Kernel Layer

Foundational components the SRS engine builds on:
- Data models (identity, lesson content, item progress, XP ledger)
- Immutable Event Log (all engine mutations logged)
- Identity Core (bearer-token verification, user lookup)

Invariants:
- All state changes logged in the same transaction; logs immutable
- Stage-0 progress is never persisted
"""

from src.kernel.models import (
    User,
    UserRole,
    Lesson,
    Character,
    Word,
    ItemKind,
    ItemProgress,
    WeeklyXP,
    EventLog,
    EventType,
)

__all__ = [
    # User & Identity
    "User",
    "UserRole",
    # Content
    "Lesson",
    "Character",
    "Word",
    # Progress
    "ItemKind",
    "ItemProgress",
    "WeeklyXP",
    # Event Log
    "EventLog",
    "EventType",
]
