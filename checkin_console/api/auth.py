import logging
import uuid

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from checkin_console.core.middleware import get_current_user
from checkin_console.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from checkin_console.db.models import Employee
from checkin_console.db.session import get_db
from checkin_console.schemas.auth import LoginRequest, TokenResponse
from checkin_console.schemas.user import EmployeeResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_REFRESH_TOKEN_COOKIE = "refresh_token"


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=_REFRESH_TOKEN_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=False,
        max_age=86400,
    )


@router.post("/login", response_model=TokenResponse, summary="Email and password login")
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    result = await db.execute(select(Employee).where(Employee.email == body.email.strip().lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        logger.info("Login recusado para '%s'", body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email ou senha inválidos",
        )

    if user.is_blocked:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Conta bloqueada",
        )

    data = {"sub": str(user.id)}
    _set_refresh_cookie(response, create_refresh_token(data))
    return TokenResponse(access_token=create_access_token(data))


@router.post("/refresh", response_model=TokenResponse, summary="Issue a new access token")
async def refresh(
    response: Response,
    refresh_token: str | None = Cookie(default=None, alias=_REFRESH_TOKEN_COOKIE),
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired refresh token",
    )
    if not refresh_token:
        raise unauthorized
    try:
        payload = decode_token(refresh_token)
    except JWTError:
        raise unauthorized
    if payload.get("type") != "refresh":
        raise unauthorized

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise unauthorized

    result = await db.execute(select(Employee).where(Employee.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or user.is_blocked:
        raise unauthorized

    data = {"sub": str(user.id)}
    _set_refresh_cookie(response, create_refresh_token(data))
    return TokenResponse(access_token=create_access_token(data))


@router.post("/logout", summary="Drop the refresh cookie")
async def logout(response: Response) -> dict:
    response.delete_cookie(_REFRESH_TOKEN_COOKIE)
    return {"detail": "ok"}


@router.get("/me", response_model=EmployeeResponse, summary="Current authenticated profile")
async def get_me(current_user: Employee = Depends(get_current_user)) -> EmployeeResponse:
    return EmployeeResponse.from_employee(current_user)
