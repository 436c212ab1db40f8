"""
Report query engine.

generate_report() runs the whole reconciliation pass for one request:

  1. expand the calendar dates to inclusive full-day bounds in the report
     timezone (00:00:00.000 – 23:59:59.999)
  2. query the event store, scoped by employee when one is given
  3. normalize every raw event and re-check it against the bounds; the
     store cannot compare legacy timestamp shapes, so this check is always
     done here
  4. sort newest first and publish the batch with placeholder addresses
  5. start one geocoding task per record; each task reports back through an
     ``AddressPatch`` and never reorders the list
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime, time, tzinfo

from sqlalchemy.exc import SQLAlchemyError

from checkin_console.schemas.report import ReportRequest
from checkin_console.services.event_store import EventStore
from checkin_console.services.geocoding import GeocodingResolver
from checkin_console.services.normalizer import (
    ADDRESS_UNAVAILABLE,
    CheckInRecord,
    normalize,
    report_timezone,
)
from checkin_console.services.report_state import (
    AddressPatch,
    EmployeeInfo,
    ReportRegistry,
    ReportState,
)

logger = logging.getLogger(__name__)

_END_OF_DAY = time(23, 59, 59, 999000)


class ReportQueryError(Exception):
    """The event store could not be queried; nothing was published."""


def day_bounds(start_date: date, end_date: date, tz: tzinfo) -> tuple[datetime, datetime]:
    return (
        datetime.combine(start_date, time.min, tzinfo=tz),
        datetime.combine(end_date, _END_OF_DAY, tzinfo=tz),
    )


class ReportEngine:
    def __init__(
        self,
        store: EventStore,
        resolver: GeocodingResolver,
        registry: ReportRegistry | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.registry = registry
        self.tz = tz or report_timezone()

    async def generate_report(self, request: ReportRequest, owner: str = "") -> ReportState:
        start, end = day_bounds(request.start_date, request.end_date, self.tz)

        try:
            raw_events = await self.store.query(request.employee_id)
            user_ids = {str(e.data["userId"]) for e in raw_events if e.data.get("userId")}
            if request.employee_id:
                user_ids.add(request.employee_id)
            profiles = await self.store.load_profiles(user_ids)
        # asyncpg surfaces a refused connection as a bare OSError
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Falha ao consultar check-ins para o relatório")
            raise ReportQueryError(str(exc)) from exc

        records: list[CheckInRecord] = []
        discarded = 0
        out_of_range = 0
        for raw in raw_events:
            record = normalize(raw, profiles, self.tz)
            if record is None:
                discarded += 1
                continue
            if not (start <= record.timestamp <= end):
                out_of_range += 1
                continue
            records.append(record)

        records.sort(key=lambda r: r.timestamp, reverse=True)

        employee = None
        if request.employee_id:
            employee = _employee_info(request.employee_id, profiles.get(request.employee_id), records)

        generation = self.registry.next_generation() if self.registry is not None else 1
        state = ReportState(
            generation=generation,
            start_date=request.start_date,
            end_date=request.end_date,
            records=records,
            employee_id=request.employee_id,
            employee=employee,
        )

        if self.registry is not None:
            self.registry.publish(owner, state)
            registry = self.registry

            def apply(patch: AddressPatch) -> bool:
                return registry.apply(owner, patch)
        else:
            apply = state.apply_patch

        logger.info(
            "Relatório %s: período=%s..%s funcionário=%s lidos=%d válidos=%d "
            "descartados=%d fora_do_período=%d",
            state.report_id, request.start_date, request.end_date, request.employee_id or "todos",
            len(raw_events), len(records), discarded, out_of_range,
        )

        self._spawn_address_tasks(state, apply)
        return state

    def _spawn_address_tasks(
        self,
        state: ReportState,
        apply: Callable[[AddressPatch], bool],
    ) -> None:
        for record in state.records:
            if not record.location.has_coordinates:
                record.address = ADDRESS_UNAVAILABLE
                continue
            task = asyncio.create_task(
                self._resolve_one(state.generation, record.id, record.location.latitude,
                                  record.location.longitude, apply)
            )
            state.track(task)

    async def _resolve_one(
        self,
        generation: int,
        record_id: str,
        latitude: float,
        longitude: float,
        apply: Callable[[AddressPatch], bool],
    ) -> None:
        address = await self.resolver.resolve_address(latitude, longitude)
        apply(AddressPatch(generation, record_id, address))


def _employee_info(employee_id: str, profile, records: list[CheckInRecord]) -> EmployeeInfo:
    if profile is not None:
        return EmployeeInfo(
            id=employee_id,
            name=profile.username or profile.email,
            phone=profile.phone,
            email=profile.email,
            role=profile.role,
        )
    name = records[0].username if records else "funcionario"
    return EmployeeInfo(id=employee_id, name=name)
