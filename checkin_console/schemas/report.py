from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, model_validator


class ReportRequest(BaseModel):
    start_date: date
    end_date: date
    employee_id: str | None = None

    @model_validator(mode="after")
    def check_range(self) -> "ReportRequest":
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        if self.employee_id is not None and not self.employee_id.strip():
            self.employee_id = None
        return self


class LocationOut(BaseModel):
    latitude: float
    longitude: float
    accuracy: float


class CheckInOut(BaseModel):
    id: str
    user_id: str
    username: str
    timestamp: datetime
    location: LocationOut
    photo_url: str | None
    address: str
    device_info: str

    @classmethod
    def from_record(cls, record) -> "CheckInOut":
        return cls(
            id=record.id,
            user_id=record.user_id,
            username=record.username,
            timestamp=record.timestamp,
            location=LocationOut(
                latitude=record.location.latitude,
                longitude=record.location.longitude,
                accuracy=record.location.accuracy,
            ),
            photo_url=record.photo_url,
            address=record.address,
            device_info=record.device_info,
        )


class ReportEmployee(BaseModel):
    id: str
    name: str
    phone: str | None
    email: str | None
    role: str | None
    role_display: str


class ReportResponse(BaseModel):
    report_id: str
    generation: int
    status: Literal["ready", "empty"]
    notice: str | None = None
    start_date: date
    end_date: date
    employee: ReportEmployee | None = None
    total: int
    pending_addresses: int
    records: list[CheckInOut]
