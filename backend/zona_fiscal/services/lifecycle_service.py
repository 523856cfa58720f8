"""Account lifecycle: anonymization, permanent deletion and reactivation.

States: Active -> Anonymized -> RevertRequested (request "pending")
-> AwaitingApproval ("awaiting_approval") -> Reactivated ("approved")
or RevertRejected ("rejected", user stays anonymized).

Request status only moves forward. Every transition runs inside the caller's
session, so the user update, request update and audit append commit or roll
back together. Status changes are compare-and-swap updates; the loser of a
concurrent race sees "already processed".
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.config import settings
from zona_fiscal.core.errors import InvalidRequest, NotFound
from zona_fiscal.models.audit import AuditAction, LegalBasis
from zona_fiscal.models.base import as_utc, utcnow
from zona_fiscal.models.consent import UserConsent
from zona_fiscal.models.goal import Goal
from zona_fiscal.models.reactivation import (
    OPEN_STATUSES,
    ReactivationRequest,
    ReactivationStatus,
)
from zona_fiscal.models.report import Report
from zona_fiscal.models.session import Session
from zona_fiscal.models.transaction import Transaction
from zona_fiscal.models.user import User
from zona_fiscal.services import audit_service

logger = logging.getLogger(__name__)

ANONYMIZED_NAME = "[DADOS REMOVIDOS]"
DEFAULT_ANONYMIZATION_REASON = "Solicitação do usuário"

ALREADY_PROCESSED = "Esta solicitação já foi processada"
TOKEN_EXPIRED = "Token expirado"


@dataclass(frozen=True)
class Contact:
    """Name and e-mail captured before personal data is scrubbed."""

    email: str
    name: str | None


def anonymized_email(user_id: str) -> str:
    return f"anonimizado_{user_id}@removido.com"


def expires_at(request: ReactivationRequest) -> datetime:
    return as_utc(request.requested_at) + timedelta(days=settings.reactivation_token_days)


def is_expired(request: ReactivationRequest, now: datetime | None = None) -> bool:
    """Strictly after the window: a request exactly at the boundary is still valid."""
    return (now or utcnow()) > expires_at(request)


async def _get_user(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def _get_request(db: AsyncSession, token: str) -> ReactivationRequest | None:
    result = await db.execute(
        select(ReactivationRequest).where(ReactivationRequest.token == token)
    )
    return result.scalar_one_or_none()


async def _revoke_sessions(db: AsyncSession, user_id: str) -> None:
    await db.execute(update(Session).where(Session.user_id == user_id).values(revoked=True))


async def _compare_and_set_status(
    db: AsyncSession,
    request: ReactivationRequest,
    expected: ReactivationStatus,
    new: ReactivationStatus,
    **values,
) -> None:
    result = await db.execute(
        update(ReactivationRequest)
        .where(
            ReactivationRequest.token == request.token,
            ReactivationRequest.status == expected,
        )
        .values(status=new, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidRequest(ALREADY_PROCESSED)
    await db.refresh(request)


# Active -> Anonymized / deleted


async def anonymize_user(
    db: AsyncSession,
    user_id: str,
    *,
    reason: str | None = None,
    ip_address: str | None = None,
) -> Contact:
    """Scrub personal data and mark the account anonymized (soft delete)."""
    user = await _get_user(db, user_id)
    if user is None:
        raise NotFound("Usuário não encontrado")

    contact = Contact(email=user.email, name=user.name)

    user.name = ANONYMIZED_NAME
    user.email = anonymized_email(user_id)
    user.cpf = None
    user.cnpj = None
    user.phone = None
    user.address = None
    user.photo_url = None
    user.anonymized = True
    user.anonymized_at = utcnow()
    user.anonymization_reason = reason or DEFAULT_ANONYMIZATION_REASON
    await db.flush()

    await _revoke_sessions(db, user_id)

    await audit_service.log_data_processing(
        db,
        user_id=user_id,
        action=AuditAction.anonymize,
        data_type="user_profile",
        purpose="Exercício do direito ao esquecimento (LGPD Art. 18, VI)",
        legal_basis=LegalBasis.legal_obligation,
        ip_address=ip_address,
    )
    logger.info("User %s anonymized", user_id)
    return contact


async def delete_user_permanently(
    db: AsyncSession,
    user_id: str,
    *,
    reason: str | None = None,
    admin_id: str | None = None,
    ip_address: str | None = None,
) -> Contact:
    """Irreversibly remove the user and everything they own.

    Scope: transactions, reports, goals, consent document, sessions,
    reactivation requests, then the user row. Audit records are retained.
    """
    user = await _get_user(db, user_id)
    if user is None:
        raise NotFound("Usuário não encontrado")

    contact = Contact(email=user.email, name=user.name)

    for model in (Transaction, Report, Goal, UserConsent, Session):
        await db.execute(delete(model).where(model.user_id == user_id))
    await db.execute(delete(ReactivationRequest).where(ReactivationRequest.user_id == user_id))

    # Logged before the user row goes
    await audit_service.log_data_processing(
        db,
        user_id=user_id,
        action=AuditAction.delete,
        data_type="all_user_data",
        purpose=reason or "Exercício do direito à exclusão (LGPD Art. 18, VI)",
        legal_basis=LegalBasis.legal_obligation,
        admin_id=admin_id,
        ip_address=ip_address,
    )

    await db.delete(user)
    await db.flush()
    logger.info("User %s permanently deleted", user_id)
    return contact


# Anonymized -> RevertRequested


async def request_revert(
    db: AsyncSession,
    user_id: str,
    *,
    admin_id: str,
) -> tuple[ReactivationRequest, Contact]:
    """Open (or re-issue) a reactivation request for an anonymized user."""
    user = await _get_user(db, user_id)
    if user is None:
        raise NotFound("Usuário não encontrado")
    if not user.anonymized:
        raise InvalidRequest("Usuário não está anonimizado")

    existing = await _get_request(db, user_id)
    if existing is not None and existing.status == ReactivationStatus.awaiting_approval:
        raise InvalidRequest("Já existe uma solicitação aguardando aprovação")

    now = utcnow()
    user.reverting_anonymization = True
    user.revert_requested_at = now
    user.revert_requested_by = admin_id

    if existing is None:
        request = ReactivationRequest(token=user_id, user_id=user_id, requested_by=admin_id)
        db.add(request)
    else:
        # A new cycle after a pending, approved or rejected request
        request = existing
        request.requested_by = admin_id
        request.submitted_data = None
        request.submitted_at = None
        request.ip_address = None
        request.user_agent = None
        request.approved_at = None
        request.approved_by = None
        request.rejected_at = None
        request.rejected_by = None
    request.status = ReactivationStatus.pending
    request.requested_at = now
    request.original_anonymization_date = user.anonymized_at
    request.original_anonymization_reason = user.anonymization_reason
    await db.flush()

    await audit_service.log_data_processing(
        db,
        user_id=user_id,
        action=AuditAction.revert_anonymization,
        data_type="user_profile",
        purpose="Reversão de anonimização solicitada pelo admin",
        legal_basis=LegalBasis.legal_obligation,
        admin_id=admin_id,
    )
    return request, Contact(email=user.email, name=user.name)


# RevertRequested -> AwaitingApproval


async def validate_token(
    db: AsyncSession,
    token: str,
    *,
    now: datetime | None = None,
) -> ReactivationRequest:
    """Existence, "pending" status and 7-day window; raises on any failure."""
    request = await _get_request(db, token)
    if request is None:
        raise NotFound("Token inválido ou não encontrado")
    if request.status != ReactivationStatus.pending:
        raise InvalidRequest(ALREADY_PROCESSED)
    if is_expired(request, now):
        raise InvalidRequest(TOKEN_EXPIRED)
    return request


async def submit_reactivation(
    db: AsyncSession,
    *,
    token: str,
    name: str,
    email: str,
    cpf: str,
    phone: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> ReactivationRequest:
    request = await validate_token(db, token, now=now)

    await _compare_and_set_status(
        db,
        request,
        ReactivationStatus.pending,
        ReactivationStatus.awaiting_approval,
        submitted_at=now or utcnow(),
        submitted_data={"name": name, "email": email, "cpf": cpf, "phone": phone},
        ip_address=ip_address,
        user_agent=user_agent,
    )

    await audit_service.log_data_processing(
        db,
        user_id=request.user_id,
        action=AuditAction.reactivation_data_submitted,
        data_type="user_profile",
        purpose="Usuário forneceu dados para reativação de conta anonimizada",
        legal_basis=LegalBasis.consent,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return request


# AwaitingApproval -> Reactivated / RevertRejected


async def _get_decidable_request(db: AsyncSession, token: str) -> ReactivationRequest:
    request = await _get_request(db, token)
    if request is None:
        raise NotFound("Solicitação não encontrada")
    if request.status == ReactivationStatus.pending:
        raise InvalidRequest("Aguardando envio dos dados pelo usuário")
    if request.status != ReactivationStatus.awaiting_approval:
        raise InvalidRequest(ALREADY_PROCESSED)
    return request


async def approve_reactivation(
    db: AsyncSession,
    token: str,
    *,
    admin_id: str,
) -> ReactivationRequest:
    """Restore the user from the submitted data and close the request."""
    request = await _get_decidable_request(db, token)
    user = await _get_user(db, request.user_id)
    if user is None:
        raise NotFound("Usuário não encontrado")

    submitted = request.submitted_data or {}
    new_email = (submitted.get("email") or "").strip().lower()
    if not new_email:
        raise InvalidRequest("Dados de reativação incompletos")

    result = await db.execute(
        select(User.id).where(User.email == new_email, User.id != user.id)
    )
    if result.scalar_one_or_none() is not None:
        raise InvalidRequest("Email já está em uso por outra conta")

    now = utcnow()
    await _compare_and_set_status(
        db,
        request,
        ReactivationStatus.awaiting_approval,
        ReactivationStatus.approved,
        approved_at=now,
        approved_by=admin_id,
    )

    user.name = submitted.get("name")
    user.email = new_email
    user.cpf = submitted.get("cpf")
    user.phone = submitted.get("phone") or None
    user.anonymized = False
    user.reverting_anonymization = False
    user.reactivated_at = now
    user.reactivated_by = admin_id
    await db.flush()

    await audit_service.log_data_processing(
        db,
        user_id=request.user_id,
        action=AuditAction.reactivation_approved,
        data_type="user_profile",
        purpose="Conta anonimizada reativada pelo admin",
        legal_basis=LegalBasis.consent,
        admin_id=admin_id,
    )
    logger.info("Reactivation %s approved by %s", token, admin_id)
    return request


async def reject_reactivation(
    db: AsyncSession,
    token: str,
    *,
    admin_id: str,
) -> ReactivationRequest:
    """Close the request as rejected. The user record is left untouched."""
    request = await _get_decidable_request(db, token)

    await _compare_and_set_status(
        db,
        request,
        ReactivationStatus.awaiting_approval,
        ReactivationStatus.rejected,
        rejected_at=utcnow(),
        rejected_by=admin_id,
    )

    await audit_service.log_data_processing(
        db,
        user_id=request.user_id,
        action=AuditAction.reactivation_rejected,
        data_type="user_profile",
        purpose="Solicitação de reativação rejeitada pelo admin",
        legal_basis=LegalBasis.legal_obligation,
        admin_id=admin_id,
    )
    logger.info("Reactivation %s rejected by %s", token, admin_id)
    return request


# Read models for the admin panel


async def list_anonymized_users(db: AsyncSession) -> list[User]:
    result = await db.execute(
        select(User).where(User.anonymized == True).order_by(User.anonymized_at.desc())  # noqa: E712
    )
    return list(result.scalars().all())


async def list_open_requests(db: AsyncSession) -> list[ReactivationRequest]:
    result = await db.execute(
        select(ReactivationRequest)
        .where(ReactivationRequest.status.in_(OPEN_STATUSES))
        .order_by(ReactivationRequest.requested_at.desc())
    )
    return list(result.scalars().all())


def serialize_request(request: ReactivationRequest) -> dict:
    def _iso(dt: datetime | None) -> str | None:
        return as_utc(dt).isoformat() if dt else None

    status = request.status.value if hasattr(request.status, "value") else request.status
    return {
        "token": request.token,
        "userId": request.user_id,
        "status": status,
        "requestedAt": _iso(request.requested_at),
        "requestedBy": request.requested_by,
        "expiresAt": expires_at(request).isoformat(),
        "originalAnonymizationDate": _iso(request.original_anonymization_date),
        "originalAnonymizationReason": request.original_anonymization_reason,
        "submittedData": request.submitted_data,
        "submittedAt": _iso(request.submitted_at),
        "approvedAt": _iso(request.approved_at),
        "approvedBy": request.approved_by,
        "rejectedAt": _iso(request.rejected_at),
        "rejectedBy": request.rejected_by,
    }
