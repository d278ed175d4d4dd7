"""
SRS engine error taxonomy.

Every engine failure is raised synchronously and mapped to an HTTP response
by the application exception handlers; nothing here is retried or recovered
into a default state.
"""

from typing import Any, Dict, Optional


class SRSError(Exception):
    """Base class for progress-engine errors."""

    status_code: int = 400
    code: str = "srs_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ForbiddenError(SRSError):
    """Operation not permitted for this user (e.g. reviewing a burned item)."""

    status_code = 403
    code = "forbidden"


class LevelLockedError(ForbiddenError):
    """The previous level is not complete yet."""

    code = "level_locked"

    def __init__(self, level: int):
        super().__init__(
            f"Level {level} is locked. Complete level {level - 1} first.",
            {"level": level},
        )
        self.level = level


class SubscriptionRequiredError(SRSError):
    """The access policy denies this level to this user."""

    status_code = 402
    code = "subscription_required"

    def __init__(self, level: int):
        super().__init__(
            f"Level {level} requires an active subscription.",
            {"level": level},
        )
        self.level = level


class NotFoundError(SRSError):
    """Record, item or level does not exist, or belongs to another user."""

    status_code = 404
    code = "not_found"


class SRSValidationError(SRSError):
    """Malformed engine input that passed request-schema validation."""

    status_code = 422
    code = "validation_error"


class ConcurrentUpdateError(SRSError):
    """A concurrent writer changed the record first; nothing was applied."""

    status_code = 409
    code = "concurrent_update"
