"""Authentication: register, login, logout, and the bearer-token auth gate.

Login issues an opaque bearer token backed by a server-side session.
The gate validates that token and, for admin routes, a permission.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

import bcrypt
from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.config import settings
from zona_fiscal.core.errors import (
    AuthRejected,
    Forbidden,
    InvalidRequest,
    Unauthorized,
    error_response,
)
from zona_fiscal.core.security import log_security_event
from zona_fiscal.dependencies import get_db
from zona_fiscal.models.audit import AuditAction, LegalBasis
from zona_fiscal.models.base import as_utc, utcnow
from zona_fiscal.models.session import Session
from zona_fiscal.models.user import User
from zona_fiscal.services import audit_service, permission_service

logger = logging.getLogger(__name__)

SESSION_DURATION_HOURS = 24
BEARER_PREFIX = "Bearer "


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _generate_token() -> str:
    """Generate a cryptographically secure session token."""
    return secrets.token_hex(32)


async def register_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: str | None = None,
    ip_address: str | None = None,
) -> User:
    """Register a new user. Raises InvalidRequest if the e-mail is taken or reserved."""
    email = email.strip().lower()
    if email in settings.super_admin_email_set:
        logger.warning("Registration attempt with a reserved super-admin e-mail")
        raise InvalidRequest("Email não disponível para cadastro")

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise InvalidRequest("Email já cadastrado")

    user = User(email=email, name=name, password_hash=hash_password(password))
    db.add(user)
    await db.flush()

    await audit_service.log_data_processing(
        db,
        user_id=user.id,
        action=AuditAction.create,
        data_type="user_profile",
        purpose="Cadastro de conta",
        legal_basis=LegalBasis.contract,
        ip_address=ip_address,
    )
    return user


async def login_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
) -> tuple[User, str]:
    """Authenticate, create a session, return (user, token).

    Anonymized accounts cannot log in until reactivated.
    """
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password, user.password_hash):
        raise Unauthorized("Email ou senha inválidos")

    if user.anonymized:
        raise Forbidden("Conta anonimizada")

    token = _generate_token()
    db.add(
        Session(
            user_id=user.id,
            token=token,
            expires_at=utcnow() + timedelta(hours=SESSION_DURATION_HOURS),
        )
    )
    await db.flush()
    logger.info("Session created for user %s", user.id)
    return user, token


async def logout_user(db: AsyncSession, *, token: str) -> None:
    """Revoke a session token."""
    result = await db.execute(select(Session).where(Session.token == token))
    session = result.scalar_one_or_none()
    if session is None:
        return
    session.revoked = True
    await db.flush()


def extract_bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if not header or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


async def verify_token(db: AsyncSession, token: str) -> str | None:
    """Return the user id behind a live session token, or None."""
    result = await db.execute(select(Session).where(Session.token == token))
    session = result.scalar_one_or_none()
    if session is None or session.revoked:
        return None
    if as_utc(session.expires_at) < utcnow():
        return None

    result = await db.execute(select(User.id).where(User.id == session.user_id))
    return result.scalar_one_or_none()


@dataclass
class AuthResult:
    success: bool
    user_id: str | None = None
    error: JSONResponse | None = None


async def verify_auth(
    request: Request,
    db: AsyncSession,
    required_permission: str | None = None,
) -> AuthResult:
    """Auth gate: bearer token, then (optionally) a permission check.

    Failures carry a ready-to-send 401/403 response and are logged as
    security events.
    """
    token = extract_bearer_token(request)
    if token is None:
        log_security_event("Unauthorized request - no token", {}, request)
        return AuthResult(
            success=False,
            error=error_response("Não autorizado - token ausente", 401, request),
        )

    user_id = await verify_token(db, token)
    if user_id is None:
        log_security_event("Unauthorized request - invalid token", {}, request)
        return AuthResult(
            success=False,
            error=error_response("Não autorizado - token inválido", 401, request),
        )

    if required_permission:
        permissions = await permission_service.get_user_permissions(db, user_id)
        if not permissions.allows(required_permission):
            log_security_event(
                "Permission denied",
                {"userId": user_id, "permission": required_permission},
                request,
            )
            return AuthResult(
                success=False,
                error=error_response("Acesso negado - permissões insuficientes", 403, request),
            )

    request.state.user_id = user_id
    return AuthResult(success=True, user_id=user_id)


async def get_current_user_id(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> str:
    """FastAPI dependency: bearer-authenticated caller id."""
    auth = await verify_auth(request, db)
    if not auth.success:
        raise AuthRejected(auth.error)
    return auth.user_id


def require_permission(permission: str):
    """FastAPI dependency factory: caller id, gated on an admin permission."""

    async def _dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),
    ) -> str:
        auth = await verify_auth(request, db, permission)
        if not auth.success:
            raise AuthRejected(auth.error)
        return auth.user_id

    return _dependency
