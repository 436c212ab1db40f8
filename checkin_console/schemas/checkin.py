from pydantic import BaseModel, Field

from checkin_console.schemas.report import CheckInOut


class CheckInCreate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float = Field(default=0.0, ge=0)
    photo_url: str | None = None
    device_info: str | None = None


class DashboardStats(BaseModel):
    total_employees: int
    operational_employees: int
    blocked_employees: int
    checkins_today: int
    total_checkins: int
    latest_checkin: CheckInOut | None
