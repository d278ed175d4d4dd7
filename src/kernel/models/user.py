"""
User model for identity resolution.

Accounts are provisioned by the identity provider; this service only reads
them to resolve bearer tokens, render leaderboard names and feed the
subscription access policy.
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_uuid


class UserRole(str, Enum):
    """User roles in the system."""
    LEARNER = "learner"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
    )
    username_hidden: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        String(50),
        default=UserRole.LEARNER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    # Mirrored from the billing provider; "active" unlocks paid levels
    subscription_status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )

    @property
    def display_name(self) -> str:
        """Name shown on public views such as the leaderboard."""
        if self.username_hidden:
            return f"User {str(self.id)[:8]}"
        return self.username or self.email.split("@")[0]

    def __repr__(self) -> str:
        return f"<User {self.email}>"
