"""Auth routes: register, login, logout."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.core.auth import (
    extract_bearer_token,
    get_current_user_id,
    login_user,
    logout_user,
    register_user,
)
from zona_fiscal.core.security import client_ip
from zona_fiscal.dependencies import get_db
from zona_fiscal.schemas.user import LoginRequest, RegisterRequest
from zona_fiscal.services.notification_service import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_dispatcher),
):
    user = await register_user(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        ip_address=client_ip(request),
    )
    notifications.new_user(user.name or user.email, user.email)
    return {"success": True, "user_id": user.id}


@router.post("/login")
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    user, token = await login_user(db, email=body.email, password=body.password)
    return {"success": True, "token": token, "user_id": user.id}


@router.post("/logout", status_code=204)
async def logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    await logout_user(db, token=extract_bearer_token(request))
