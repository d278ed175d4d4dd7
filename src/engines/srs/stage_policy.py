"""
Stage Policy - the fixed 10-stage SRS state machine.

Stage 0 means "not started" and is never persisted. Stages 1-4 are the
apprentice tiers, 5-6 guru, 7 master, 8 enlightened and 9 burned (no more
reviews). Intervals are indexed by destination stage.
"""

from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from src.engines.srs.errors import SRSValidationError

LOCKED_STAGE = 0
FIRST_STAGE = 1
GURU_STAGE = 5
BURNED_STAGE = 9

STAGE_INTERVALS: Mapping[int, timedelta] = MappingProxyType({
    1: timedelta(hours=4),
    2: timedelta(hours=8),
    3: timedelta(days=1),
    4: timedelta(days=2),
    5: timedelta(days=7),
    6: timedelta(days=14),
    7: timedelta(days=30),
    8: timedelta(days=120),
})

STAGE_NAMES: Mapping[int, str] = MappingProxyType({
    0: "Locked",
    1: "Apprentice 1",
    2: "Apprentice 2",
    3: "Apprentice 3",
    4: "Apprentice 4",
    5: "Guru 1",
    6: "Guru 2",
    7: "Master",
    8: "Enlightened",
    9: "Burned",
})


class StageTier(str, Enum):
    """Coarse grouping of stages used for summaries."""
    LOCKED = "locked"
    APPRENTICE = "apprentice"
    GURU = "guru"
    MASTER = "master"
    ENLIGHTENED = "enlightened"
    BURNED = "burned"


def _check_stage(stage: int) -> None:
    if stage not in STAGE_NAMES:
        raise SRSValidationError(f"Stage must be between 0 and 9, got {stage}")


def next_stage(stage: int, correct: bool) -> int:
    """
    Stage after one graded answer.

    Correct answers climb one stage (capped at burned). Wrong answers drop
    one stage below guru and two stages from guru upwards, never below 1.
    """
    _check_stage(stage)
    if stage == LOCKED_STAGE:
        raise SRSValidationError("Items that have not been started cannot be reviewed")
    if correct:
        return min(BURNED_STAGE, stage + 1)
    drop = 2 if stage >= GURU_STAGE else 1
    return max(FIRST_STAGE, stage - drop)


def interval_for(stage: int) -> Optional[timedelta]:
    """Wait before the next review after landing on `stage`; None when burned."""
    _check_stage(stage)
    if stage == LOCKED_STAGE:
        raise SRSValidationError("Stage 0 has no review interval")
    return STAGE_INTERVALS.get(stage)


def next_review_at(stage: int, now: datetime) -> Optional[datetime]:
    interval = interval_for(stage)
    return now + interval if interval is not None else None


def is_due(next_review: Optional[datetime], now: datetime) -> bool:
    """True once a scheduled review time has passed. Burned items are never due."""
    return next_review is not None and next_review <= now


def stage_name(stage: int) -> str:
    _check_stage(stage)
    return STAGE_NAMES[stage]


def stage_tier(stage: int) -> StageTier:
    _check_stage(stage)
    if stage == LOCKED_STAGE:
        return StageTier.LOCKED
    if stage < GURU_STAGE:
        return StageTier.APPRENTICE
    if stage < 7:
        return StageTier.GURU
    if stage == 7:
        return StageTier.MASTER
    if stage == 8:
        return StageTier.ENLIGHTENED
    return StageTier.BURNED


def format_time_until_review(next_review: Optional[datetime], now: datetime) -> str:
    """Short human-readable countdown, e.g. "Now", "3h 12m" or "2d 4h"."""
    if next_review is None:
        return "No review scheduled"
    if is_due(next_review, now):
        return "Now"

    minutes = int((next_review - now).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"
