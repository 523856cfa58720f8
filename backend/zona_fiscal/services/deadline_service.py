"""Deadline checker for LGPD data-subject requests.

The controller has 15 days to answer (LGPD Art. 18). Once a day, triggered
externally, this module finds requests with 3 or fewer days left and e-mails
every admin about each one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.config import settings
from zona_fiscal.models.audit import AuditAction, LegalBasis
from zona_fiscal.models.base import as_utc, utcnow
from zona_fiscal.models.reactivation import ReactivationRequest, ReactivationStatus
from zona_fiscal.models.user import AdminRole, User
from zona_fiscal.services import audit_service
from zona_fiscal.services.email_service import EmailService

logger = logging.getLogger(__name__)

TRACKED_ACTIONS = [AuditAction.export, AuditAction.delete, AuditAction.anonymize]

ACTION_TYPE_NAMES = {
    AuditAction.export: "Exportação de Dados",
    AuditAction.delete: "Exclusão de Dados",
    AuditAction.anonymize: "Anonimização de Dados",
    AuditAction.revert_anonymization: "Reversão de Anonimização",
}
REACTIVATION_TYPE_NAME = "Reativação de Conta"
DEFAULT_TYPE_NAME = "Solicitação LGPD"


@dataclass
class PendingRequest:
    id: str
    user_id: str
    requested_at: datetime
    type: str
    days_remaining: int


def action_type_name(action) -> str:
    try:
        return ACTION_TYPE_NAMES.get(AuditAction(action), DEFAULT_TYPE_NAME)
    except ValueError:
        return DEFAULT_TYPE_NAME


def days_remaining(requested_at: datetime, now: datetime) -> int:
    days_since = (now - as_utc(requested_at)).days
    return settings.lgpd_response_deadline_days - days_since


def _needs_alert(remaining: int) -> bool:
    return 0 < remaining <= settings.deadline_alert_days


async def check_pending_requests(
    db: AsyncSession, now: datetime | None = None
) -> list[PendingRequest]:
    """Requests whose response deadline is 1 to 3 days away."""
    now = now or utcnow()
    pending: list[PendingRequest] = []

    result = await db.execute(
        select(ReactivationRequest).where(
            ReactivationRequest.status == ReactivationStatus.awaiting_approval
        )
    )
    for request in result.scalars().all():
        remaining = days_remaining(request.requested_at, now)
        if _needs_alert(remaining):
            pending.append(
                PendingRequest(
                    id=request.token,
                    user_id=request.user_id,
                    requested_at=as_utc(request.requested_at),
                    type=REACTIVATION_TYPE_NAME,
                    days_remaining=remaining,
                )
            )

    window_start = now - timedelta(days=settings.lgpd_response_deadline_days)
    window_end = now - timedelta(
        days=settings.lgpd_response_deadline_days - settings.deadline_alert_days
    )
    records = await audit_service.get_records_by_action(
        db, TRACKED_ACTIONS, since=window_start, until=window_end
    )
    for record in records:
        remaining = days_remaining(record.timestamp, now)
        if _needs_alert(remaining):
            pending.append(
                PendingRequest(
                    id=record.id,
                    user_id=record.user_id,
                    requested_at=as_utc(record.timestamp),
                    type=action_type_name(record.action),
                    days_remaining=remaining,
                )
            )

    return pending


async def get_alert_recipients(db: AsyncSession) -> list[str]:
    """Admin e-mails, falling back to the configured super admins."""
    result = await db.execute(
        select(User.email).where(
            User.admin_role.in_([AdminRole.admin, AdminRole.super_admin]),
            User.anonymized.is_(False),
        )
    )
    emails = [email for email in result.scalars().all() if email]
    if emails:
        return emails
    return sorted(settings.super_admin_email_set)


async def send_deadline_alerts(
    db: AsyncSession,
    email_service: EmailService | None = None,
    now: datetime | None = None,
) -> int:
    """E-mail every admin about each request near its deadline; returns e-mails sent."""
    pending = await check_pending_requests(db, now=now)
    if not pending:
        logger.info("No LGPD requests near their deadline")
        return 0

    logger.warning("%d LGPD requests near their deadline", len(pending))
    email_service = email_service or EmailService()
    recipients = await get_alert_recipients(db)

    sent = 0
    for request in pending:
        for admin_email in recipients:
            if await email_service.send_deadline_reminder(
                admin_email,
                request.type,
                request.days_remaining,
                request.requested_at,
            ):
                sent += 1

        await audit_service.log_data_processing(
            db,
            user_id=request.user_id,
            action=AuditAction.deadline_alert_sent,
            data_type="notification",
            purpose=f"Alerta de prazo LGPD enviado ({request.days_remaining} dias restantes)",
            legal_basis=LegalBasis.legal_obligation,
            detail={"requestId": request.id, "type": request.type},
        )

    logger.info("%d deadline alert e-mails sent", sent)
    return sent


async def run_daily_check(
    db: AsyncSession,
    email_service: EmailService | None = None,
    now: datetime | None = None,
) -> int:
    logger.info("Starting daily LGPD deadline check")
    alerts_sent = await send_deadline_alerts(db, email_service=email_service, now=now)
    logger.info("Daily LGPD deadline check finished: %d alerts sent", alerts_sent)
    return alerts_sent
