"""
Check-in API routes.

Field staff post their own check-ins; the dashboard reads the most recent
ones and a handful of counters.  Events are stored in the same loose shape
the report pipeline normalizes, so they go through ``normalize`` on the way
out like any legacy event would.
"""

import logging
from datetime import datetime, time, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from checkin_console.core.config import settings
from checkin_console.core.middleware import get_current_user, require_role
from checkin_console.db.models import Employee
from checkin_console.db.session import get_db
from checkin_console.roles import is_operational_role
from checkin_console.schemas.checkin import CheckInCreate, DashboardStats
from checkin_console.schemas.report import CheckInOut
from checkin_console.services.event_store import EventStore
from checkin_console.services.normalizer import normalize, report_timezone

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/",
    response_model=CheckInOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record a check-in for the current user",
)
async def create_checkin(
    body: CheckInCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
) -> CheckInOut:
    store = EventStore(db)
    payload = {
        "username": current_user.username,
        "location": {
            "latitude": body.latitude,
            "longitude": body.longitude,
            "accuracy": body.accuracy,
        },
        "photoUrl": body.photo_url,
        "deviceInfo": body.device_info,
    }
    try:
        raw = await store.add(str(current_user.id), datetime.now(timezone.utc), payload)
    except (SQLAlchemyError, OSError) as exc:
        logger.exception("Falha ao registrar check-in de %s", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Erro ao registrar check-in: {exc}",
        )

    record = normalize(raw)
    logger.info("Check-in %s registrado por %s", raw.id, current_user.email)
    return CheckInOut.from_record(record)


@router.get("/recent", response_model=list[CheckInOut], summary="Most recent check-ins")
async def recent_checkins(
    limit: int | None = Query(default=None, ge=1, le=200),
    user_id: str | None = Query(default=None, description="Only this employee's check-ins"),
    db: AsyncSession = Depends(get_db),
    _current_user: Employee = Depends(require_role("admin")),
) -> list[CheckInOut]:
    store = EventStore(db)
    raw_events = await store.recent(limit or settings.RECENT_CHECKINS_LIMIT, user_id=user_id)
    user_ids = {str(e.data["userId"]) for e in raw_events if e.data.get("userId")}
    profiles = await store.load_profiles(user_ids)

    out = []
    for raw in raw_events:
        record = normalize(raw, profiles)
        if record is not None:
            out.append(CheckInOut.from_record(record))
    return out


@router.get("/stats", response_model=DashboardStats, summary="Dashboard counters")
async def dashboard_stats(
    db: AsyncSession = Depends(get_db),
    _current_user: Employee = Depends(require_role("admin")),
) -> DashboardStats:
    store = EventStore(db)
    tz = report_timezone()

    result = await db.execute(select(Employee.role, Employee.status))
    employees = result.all()
    total_employees = len(employees)
    operational = sum(1 for role, _ in employees if is_operational_role(role))
    blocked = sum(1 for _, st in employees if st == "blocked")

    today_start = datetime.combine(datetime.now(tz).date(), time.min, tzinfo=tz)
    checkins_today = await store.count(since=today_start.astimezone(timezone.utc))
    total_checkins = await store.count()

    latest = None
    for raw in await store.recent(1):
        record = normalize(raw, await store.load_profiles({str(raw.data.get("userId") or "")}))
        if record is not None:
            latest = CheckInOut.from_record(record)

    return DashboardStats(
        total_employees=total_employees,
        operational_employees=operational,
        blocked_employees=blocked,
        checkins_today=checkins_today,
        total_checkins=total_checkins,
        latest_checkin=latest,
    )


@router.get("/{event_id}", response_model=CheckInOut, summary="One check-in by id")
async def get_checkin(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    _current_user: Employee = Depends(require_role("admin")),
) -> CheckInOut:
    store = EventStore(db)
    raw = await store.get(event_id)
    record = None
    if raw is not None:
        profiles = await store.load_profiles({str(raw.data.get("userId") or "")})
        record = normalize(raw, profiles)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Check-in não encontrado",
        )
    return CheckInOut.from_record(record)
