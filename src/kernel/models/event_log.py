"""
Append-only audit log of engine mutations.

Learning, reviews, burns, XP credits and resets each add one row in the
same transaction as the state change they describe; rows are never
updated or deleted.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, generate_uuid, utcnow


class EventType(str, Enum):
    LESSON_ITEMS_LEARNED = "lesson.items_learned"
    LESSONS_SKIPPED = "lesson.skipped_to_level"
    REVIEW_APPLIED = "review.applied"
    ITEM_BURNED = "item.burned"
    ITEM_UNBURNED = "item.unburned"
    XP_CREDITED = "xp.credited"
    PROGRESS_RESET = "progress.reset"


class EventLog(Base):
    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # What changed: item_progress, weekly_xp, user or lesson
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    # Who changed it
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True, index=True)

    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_id}>"
