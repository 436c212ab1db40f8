"""
Raw check-in event store.

Wraps the ``checkin_events`` table and hands raw events back as opaque
key/value bags (``RawCheckInEvent``), so that the normalizer sees the same
shape regardless of whether a field lives in a column or in ``payload``.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from checkin_console.db.models import CheckInEvent, Employee

logger = logging.getLogger(__name__)


@dataclass
class RawCheckInEvent:
    id: str
    data: dict[str, Any] = field(default_factory=dict)


def _to_raw(row: CheckInEvent) -> RawCheckInEvent:
    data = dict(row.payload or {})
    if row.user_id is not None:
        data.setdefault("userId", row.user_id)
    if row.recorded_at is not None:
        recorded_at = row.recorded_at
        # SQLite hands timezone-aware columns back naive; they were stored as UTC
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=timezone.utc)
        data["timestamp"] = recorded_at
    return RawCheckInEvent(id=row.id, data=data)


def _owned_by(stmt, user_id: str):
    # legacy rows may carry the owner only inside the payload
    return stmt.where(
        or_(
            CheckInEvent.user_id == user_id,
            CheckInEvent.payload["userId"].as_string() == user_id,
        )
    )


class EventStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def query(self, user_id: str | None = None) -> list[RawCheckInEvent]:
        """Equality-scoped list; no range predicate, callers filter by date themselves."""
        stmt = select(CheckInEvent).order_by(CheckInEvent.recorded_at.desc())
        if user_id:
            stmt = _owned_by(stmt, user_id)
        result = await self.db.execute(stmt)
        rows = result.scalars().all()
        logger.debug("Event store query user_id=%s returned %d rows", user_id, len(rows))
        return [_to_raw(row) for row in rows]

    async def get(self, event_id: str) -> RawCheckInEvent | None:
        row = await self.db.get(CheckInEvent, event_id)
        return _to_raw(row) if row is not None else None

    async def recent(self, limit: int, user_id: str | None = None) -> list[RawCheckInEvent]:
        stmt = (
            select(CheckInEvent)
            .where(CheckInEvent.recorded_at.is_not(None))
            .order_by(CheckInEvent.recorded_at.desc())
            .limit(limit)
        )
        if user_id:
            stmt = _owned_by(stmt, user_id)
        result = await self.db.execute(stmt)
        return [_to_raw(row) for row in result.scalars().all()]

    async def count(self, since: datetime | None = None) -> int:
        stmt = select(func.count()).select_from(CheckInEvent)
        if since is not None:
            stmt = stmt.where(CheckInEvent.recorded_at >= since)
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def add(
        self,
        user_id: str,
        recorded_at: datetime,
        payload: dict[str, Any],
        event_id: str | None = None,
    ) -> RawCheckInEvent:
        row = CheckInEvent(
            id=event_id or uuid.uuid4().hex,
            user_id=user_id,
            recorded_at=recorded_at,
            payload=payload,
        )
        self.db.add(row)
        await self.db.commit()
        return _to_raw(row)

    async def load_profiles(self, user_ids: set[str]) -> dict[str, Employee]:
        """Employee profiles keyed by the user id exactly as the events carry it."""
        ids: dict[uuid.UUID, list[str]] = {}
        for raw_id in user_ids:
            try:
                ids.setdefault(uuid.UUID(raw_id), []).append(raw_id)
            except (TypeError, ValueError, AttributeError):
                continue
        if not ids:
            return {}
        result = await self.db.execute(select(Employee).where(Employee.id.in_(list(ids))))
        profiles: dict[str, Employee] = {}
        for emp in result.scalars().all():
            for raw_id in ids[emp.id]:
                profiles[raw_id] = emp
        return profiles
