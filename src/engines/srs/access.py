"""
Subscription access policy.

Decides per (user, level) whether content may be used. The deployment picks
a policy through settings.access_mode; billing itself lives elsewhere and
is only visible here through User.subscription_status.
"""

from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Iterable, List, Mapping

from src.config import Settings
from src.engines.srs.errors import SubscriptionRequiredError
from src.kernel.models.user import User, UserRole

ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})

# First lesson level of each JLPT band, N5 (easiest) to N1
JLPT_START_LEVELS: Mapping[int, int] = MappingProxyType({
    5: 1,
    4: 11,
    3: 26,
    2: 51,
    1: 76,
})


def jlpt_number(level: int) -> int:
    """JLPT band number for a lesson level (5 = easiest, 1 = hardest)."""
    for band in (1, 2, 3, 4):
        if level >= JLPT_START_LEVELS[band]:
            return band
    return 5


def jlpt_label(level: int) -> str:
    return f"N{jlpt_number(level)}"


def has_active_subscription(user: User) -> bool:
    return (user.subscription_status or "").lower() in ACTIVE_SUBSCRIPTION_STATUSES


class AccessPolicy(ABC):
    """Allow/deny decision for a user and a content level."""

    @abstractmethod
    def can_access(self, user: User, level: int) -> bool:
        pass

    def accessible_levels(self, user: User, levels: Iterable[int]) -> List[int]:
        return [level for level in levels if self.can_access(user, level)]

    def require(self, user: User, level: int) -> None:
        """Raise SubscriptionRequiredError unless the level is allowed."""
        if not self.can_access(user, level):
            raise SubscriptionRequiredError(level)


class BetaAccessPolicy(AccessPolicy):
    """Beta mode: every level is open to everyone."""

    def can_access(self, user: User, level: int) -> bool:
        return True


class TieredAccessPolicy(AccessPolicy):
    """Free levels for everyone; the rest need an active subscription."""

    def __init__(self, free_level_max: int = 10):
        self.free_level_max = free_level_max

    def can_access(self, user: User, level: int) -> bool:
        if level <= self.free_level_max:
            return True
        if user.role == UserRole.ADMIN:
            return True
        return has_active_subscription(user)


def build_access_policy(settings: Settings) -> AccessPolicy:
    if settings.access_mode == "tiered":
        return TieredAccessPolicy(free_level_max=settings.free_level_max)
    return BetaAccessPolicy()
