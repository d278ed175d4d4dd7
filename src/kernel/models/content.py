"""
Content models - lessons (levels) and the learnable items they own.

Content is read-only for the engine. Each lesson is one level; its
characters and words are the items a learner must start before the next
level unlocks.
"""

import uuid
from typing import List, Optional

from sqlalchemy import ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kernel.models.base import Base, TimestampMixin, generate_uuid


class Lesson(Base, TimestampMixin):
    """A content level (1..100)."""

    __tablename__ = "lessons"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid,
    )
    level: Mapped[int] = mapped_column(Integer, unique=True, index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    characters: Mapped[List["Character"]] = relationship(
        "Character",
        back_populates="lesson",
        order_by="Character.sort_order",
    )
    words: Mapped[List["Word"]] = relationship(
        "Word",
        back_populates="lesson",
        order_by="Word.sort_order",
    )

    def __repr__(self) -> str:
        return f"<Lesson {self.level}: {self.title}>"


class Character(Base):
    """A single logographic character (kanji) with its meanings and readings."""

    __tablename__ = "characters"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid,
    )
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    character: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    meanings: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    primary_meaning: Mapped[str] = mapped_column(String(255), nullable=False)
    kun_readings: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    on_readings: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    lesson: Mapped["Lesson"] = relationship("Lesson", back_populates="characters")

    @property
    def readings(self) -> List[str]:
        return [*self.kun_readings, *self.on_readings]


class Word(Base):
    """A vocabulary word; may be written in kana only or include characters."""

    __tablename__ = "words"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid,
    )
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    word: Mapped[str] = mapped_column(String(64), nullable=False)
    reading: Mapped[str] = mapped_column(String(128), nullable=False)
    meanings: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    primary_meaning: Mapped[str] = mapped_column(String(255), nullable=False)
    part_of_speech: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    lesson: Mapped["Lesson"] = relationship("Lesson", back_populates="words")

    @property
    def readings(self) -> List[str]:
        return [self.reading]
