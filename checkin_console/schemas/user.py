from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from checkin_console.roles import role_display_name

Role = Literal["admin", "security", "vigia", "porteiro", "zelador", "rh", "supervisor", "sdf"]


class EmployeeCreate(BaseModel):
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    phone: str | None = None
    role: Role = "security"


class EmployeeUpdate(BaseModel):
    username: str | None = None
    email: str | None = None
    phone: str | None = None
    role: Role | None = None
    password: str | None = Field(default=None, min_length=6)


class BlockRequest(BaseModel):
    reason: str = "Bloqueado pelo administrador"


class EmployeeResponse(BaseModel):
    id: UUID
    username: str
    email: str
    phone: str | None
    role: str
    role_display: str
    status: str
    block_reason: str | None
    blocked_at: datetime | None
    created_at: datetime | None

    @classmethod
    def from_employee(cls, employee) -> "EmployeeResponse":
        return cls(
            id=employee.id,
            username=employee.username,
            email=employee.email,
            phone=employee.phone,
            role=employee.role,
            role_display=role_display_name(employee.role),
            status=employee.status,
            block_reason=employee.block_reason,
            blocked_at=employee.blocked_at,
            created_at=employee.created_at,
        )
