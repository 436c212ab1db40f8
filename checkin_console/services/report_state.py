"""
Held report state and the address-patch reducer.

A generated report is published once, sorted, with placeholder addresses.
Geocoding tasks then send ``AddressPatch`` messages back; the reducer applies
each one to the record with the same id, and only if the patch belongs to the
report generation that is still held.  A new report for the same owner bumps
the generation, so patches from tasks of the replaced report are dropped.
"""

import asyncio
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Literal

from checkin_console.services.normalizer import ADDRESS_PLACEHOLDER, CheckInRecord

logger = logging.getLogger(__name__)

ReportStatus = Literal["ready", "empty"]


@dataclass(frozen=True)
class AddressPatch:
    generation: int
    record_id: str
    address: str


@dataclass
class EmployeeInfo:
    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    role: str | None = None


@dataclass
class ReportState:
    generation: int
    start_date: date
    end_date: date
    records: list[CheckInRecord]
    employee_id: str | None = None
    employee: EmployeeInfo | None = None
    report_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _index: dict[str, CheckInRecord] = field(init=False, repr=False, default_factory=dict)
    _tasks: set[asyncio.Task] = field(init=False, repr=False, default_factory=set)

    def __post_init__(self) -> None:
        self._index = {record.id: record for record in self.records}

    @property
    def status(self) -> ReportStatus:
        return "ready" if self.records else "empty"

    @property
    def pending_addresses(self) -> int:
        return sum(1 for record in self.records if record.address == ADDRESS_PLACEHOLDER)

    def apply_patch(self, patch: AddressPatch) -> bool:
        """Set one record's address; no-op for other generations or unknown ids."""
        if patch.generation != self.generation:
            return False
        record = self._index.get(patch.record_id)
        if record is None:
            return False
        record.address = patch.address
        return True

    def track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def settled(self) -> None:
        """Wait until every address task spawned for this report has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ReportRegistry:
    """The report each principal currently holds, keyed by owner id."""

    def __init__(self) -> None:
        self._current: dict[str, ReportState] = {}
        self._generations = itertools.count(1)

    def next_generation(self) -> int:
        return next(self._generations)

    def publish(self, owner: str, state: ReportState) -> None:
        previous = self._current.get(owner)
        if previous is not None:
            logger.debug(
                "Report %s (generation %d) replaced for owner %s",
                previous.report_id, previous.generation, owner,
            )
        self._current[owner] = state

    def current(self, owner: str) -> ReportState | None:
        return self._current.get(owner)

    def apply(self, owner: str, patch: AddressPatch) -> bool:
        state = self._current.get(owner)
        if state is None or state.generation != patch.generation:
            logger.debug(
                "Stale address patch discarded (owner=%s, generation=%d, record=%s)",
                owner, patch.generation, patch.record_id,
            )
            return False
        return state.apply_patch(patch)

    def clear(self, owner: str) -> None:
        self._current.pop(owner, None)


report_registry = ReportRegistry()


def get_report_registry() -> ReportRegistry:
    return report_registry
