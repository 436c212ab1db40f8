import logging
import math
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from checkin_console.core.middleware import require_role
from checkin_console.core.security import hash_password
from checkin_console.db.models import Employee
from checkin_console.db.session import get_db
from checkin_console.roles import ROLE_LABELS
from checkin_console.schemas.user import (
    BlockRequest,
    EmployeeCreate,
    EmployeeResponse,
    EmployeeUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_employee_or_404(employee_id: uuid.UUID, db: AsyncSession) -> Employee:
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    employee = result.scalar_one_or_none()
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Funcionário não encontrado",
        )
    return employee


async def _ensure_email_free(email: str, db: AsyncSession, exclude: uuid.UUID | None = None) -> None:
    q = select(Employee.id).where(Employee.email == email)
    if exclude is not None:
        q = q.where(Employee.id != exclude)
    existing = await db.execute(q)
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Email '{email}' já está em uso",
        )


@router.get("/roles", summary="Role taxonomy with display names")
async def list_roles(
    _current_user: Employee = Depends(require_role("admin")),
) -> list[dict]:
    return [{"value": key, "label": label} for key, label in ROLE_LABELS.items()]


@router.post(
    "/",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an employee account (admin only)",
)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(require_role("admin")),
) -> EmployeeResponse:
    # The account is created here, server-side; the admin's own session is untouched
    email = body.email.strip().lower()
    await _ensure_email_free(email, db)

    employee = Employee(
        username=body.username.strip(),
        email=email,
        phone=body.phone,
        role=body.role,
        status="active",
        password_hash=hash_password(body.password),
        created_by=current_user.id,
    )
    db.add(employee)
    await db.commit()
    await db.refresh(employee)
    logger.info("Funcionário criado: %s (id=%s) por %s", employee.email, employee.id, current_user.id)
    return EmployeeResponse.from_employee(employee)


@router.get("/", summary="List employees with pagination and optional search")
async def list_employees(
    search: str | None = Query(default=None, description="Filter by name or email (partial, case-insensitive)"),
    status_filter: str | None = Query(default=None, alias="status", pattern="^(active|blocked)$"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _current_user: Employee = Depends(require_role("admin")),
) -> dict:
    q = select(Employee)
    if search:
        q = q.where(
            Employee.username.ilike(f"%{search}%")
            | Employee.email.ilike(f"%{search}%")
        )
    if status_filter:
        q = q.where(Employee.status == status_filter)
    q = q.order_by(Employee.username)

    result = await db.execute(q)
    all_employees = result.scalars().all()
    total = len(all_employees)
    offset = (page - 1) * per_page
    page_employees = all_employees[offset : offset + per_page]

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total > 0 else 1,
        "items": [EmployeeResponse.from_employee(e) for e in page_employees],
    }


@router.get("/{employee_id}", response_model=EmployeeResponse, summary="Get one employee")
async def get_employee(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _current_user: Employee = Depends(require_role("admin")),
) -> EmployeeResponse:
    return EmployeeResponse.from_employee(await _get_employee_or_404(employee_id, db))


@router.patch("/{employee_id}", response_model=EmployeeResponse, summary="Update employee data")
async def update_employee(
    employee_id: uuid.UUID,
    body: EmployeeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(require_role("admin")),
) -> EmployeeResponse:
    employee = await _get_employee_or_404(employee_id, db)

    if body.email is not None:
        email = body.email.strip().lower()
        await _ensure_email_free(email, db, exclude=employee.id)
        employee.email = email
    if body.username is not None:
        employee.username = body.username.strip()
    if body.phone is not None:
        employee.phone = body.phone
    if body.role is not None:
        if employee.id == current_user.id and body.role != "admin":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Você não pode remover seu próprio acesso de administrador",
            )
        employee.role = body.role
    if body.password is not None:
        employee.password_hash = hash_password(body.password)

    employee.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(employee)
    return EmployeeResponse.from_employee(employee)


@router.delete(
    "/{employee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an employee (admin only)",
)
async def delete_employee(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(require_role("admin")),
) -> None:
    if employee_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Você não pode excluir sua própria conta",
        )
    employee = await _get_employee_or_404(employee_id, db)
    await db.delete(employee)
    await db.commit()
    logger.info("Funcionário excluído: id=%s por %s", employee_id, current_user.id)


@router.post("/{employee_id}/block", response_model=EmployeeResponse, summary="Block an employee")
async def block_employee(
    employee_id: uuid.UUID,
    body: BlockRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(require_role("admin")),
) -> EmployeeResponse:
    if employee_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Você não pode bloquear sua própria conta",
        )
    employee = await _get_employee_or_404(employee_id, db)
    now = datetime.now(timezone.utc)
    employee.status = "blocked"
    employee.block_reason = (body.reason if body else None) or BlockRequest().reason
    employee.blocked_at = now
    employee.blocked_by = current_user.id
    employee.updated_at = now
    await db.commit()
    await db.refresh(employee)
    logger.info("Funcionário bloqueado: id=%s motivo='%s'", employee_id, employee.block_reason)
    return EmployeeResponse.from_employee(employee)


@router.post("/{employee_id}/unblock", response_model=EmployeeResponse, summary="Unblock an employee")
async def unblock_employee(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(require_role("admin")),
) -> EmployeeResponse:
    employee = await _get_employee_or_404(employee_id, db)
    employee.status = "active"
    employee.block_reason = None
    employee.blocked_at = None
    employee.blocked_by = None
    employee.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(employee)
    logger.info("Funcionário desbloqueado: id=%s por %s", employee_id, current_user.id)
    return EmployeeResponse.from_employee(employee)
