"""
Progress models - per-item SRS state and the weekly XP ledger.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_uuid


class ItemKind(str, Enum):
    """The two kinds of learnable items."""
    CHARACTER = "character"
    WORD = "word"


class ItemProgress(Base, TimestampMixin):
    """
    One learner's SRS state for one item.

    A missing row means "not started" (stage 0); stage-0 rows are never
    written. next_review_at is NULL exactly when the item is burned
    (stage 9), and burned_at is set exactly then; both are enforced by
    check constraints as well as by the engine.
    """

    __tablename__ = "item_progress"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Points at characters.id or words.id depending on item_kind
    item_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False)
    item_kind: Mapped[ItemKind] = mapped_column(String(20), nullable=False)

    stage: Mapped[int] = mapped_column(Integer, nullable=False)

    meaning_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    meaning_incorrect: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reading_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reading_incorrect: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    next_review_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    burned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Set once the +50 mastery bonus has been paid for this item
    mastery_bonus_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", "item_kind", name="uq_item_progress_user_item"),
        CheckConstraint("stage >= 1 AND stage <= 9", name="ck_item_progress_stage_range"),
        CheckConstraint(
            "(stage = 9) = (next_review_at IS NULL)",
            name="ck_item_progress_next_review_iff_not_burned",
        ),
        CheckConstraint(
            "(stage = 9) = (burned_at IS NOT NULL)",
            name="ck_item_progress_burned_at_iff_burned",
        ),
        Index("ix_item_progress_due", "user_id", "stage", "next_review_at"),
    )

    @property
    def burned(self) -> bool:
        return self.stage == 9


class WeeklyXP(Base):
    """
    XP accumulated by one user in one Monday-aligned week.

    Rows are only ever incremented; a new week starts a new row.
    """

    __tablename__ = "weekly_xp"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    week_end: Mapped[date] = mapped_column(Date, nullable=False)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_weekly_xp_user_week"),
        CheckConstraint("xp >= 0", name="ck_weekly_xp_non_negative"),
    )
