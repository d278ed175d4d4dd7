"""
Kernel Data Models

Core SQLAlchemy models: identity, lesson content, per-item SRS progress,
the weekly XP ledger and the audit log.
"""

from src.kernel.models.base import Base, TimestampMixin, generate_uuid
from src.kernel.models.user import User, UserRole
from src.kernel.models.content import Lesson, Character, Word
from src.kernel.models.progress import ItemKind, ItemProgress, WeeklyXP
from src.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    # User
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
