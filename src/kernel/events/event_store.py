"""
Append-only audit log access.

Engine services call EventStore.log() inside the request transaction, so a
rolled-back request leaves no audit row behind.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.models.event_log import EventLog, EventType


def _json_safe(value: Any) -> Any:
    """UUIDs, dates and enums to strings, recursing into dicts and lists."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    return value


class EventStore:
    """
    Writes and queries EventLog rows.

    Usage:
        await EventStore(session).log(
            EventType.REVIEW_APPLIED,
            entity_type="item_progress",
            entity_id=record.id,
            user_id=user.id,
            payload={"from_stage": 4, "to_stage": 5},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> EventLog:
        """Add one event to the current unit of work; it is flushed with the state change."""
        event = EventLog(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=_json_safe(payload or {}),
        )
        self.session.add(event)
        return event

    async def get_user_activity(
        self,
        user_id: uuid.UUID,
        event_types: Optional[Sequence[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Events triggered by a user, newest first, optionally filtered by type."""
        query = select(EventLog).where(EventLog.user_id == user_id)
        if event_types:
            query = query.where(EventLog.event_type.in_([t.value for t in event_types]))
        return await self._newest_first(query, limit)

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        limit: int = 100,
    ) -> List[EventLog]:
        """Everything logged against one entity, newest first."""
        query = select(EventLog).where(
            EventLog.entity_type == entity_type,
            EventLog.entity_id == entity_id,
        )
        return await self._newest_first(query, limit)

    async def _newest_first(self, query, limit: int) -> List[EventLog]:
        result = await self.session.execute(
            query.order_by(desc(EventLog.created_at)).limit(limit)
        )
        return list(result.scalars().all())
