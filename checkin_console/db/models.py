import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from checkin_console.roles import ROLES


class Base(DeclarativeBase):
    pass


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        Enum(*ROLES, name="employee_role"),
        nullable=False,
        default="security",
    )
    status: Mapped[str] = mapped_column(
        Enum("active", "blocked", name="employee_status"),
        nullable=False,
        default="active",
    )
    block_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    blocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    blocked_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_blocked(self) -> bool:
        return self.status == "blocked"

    def __repr__(self) -> str:
        return f"<Employee id={self.id} email={self.email} role={self.role}>"


class CheckInEvent(Base):
    """Raw check-in as written by the mobile client.

    Only the store key, the owner and the native timestamp are columns; every
    other field (including legacy timestamp and location shapes) lives in
    ``payload`` exactly as it was received.
    """

    __tablename__ = "checkin_events"

    __table_args__ = (
        Index("ix_checkin_events_user_time", "user_id", "recorded_at"),
        Index("ix_checkin_events_recorded_at", "recorded_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    recorded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payload: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return (
            f"<CheckInEvent id={self.id} user_id={self.user_id} "
            f"recorded_at={self.recorded_at}>"
        )
