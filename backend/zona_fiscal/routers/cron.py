"""Cron-triggered jobs. There is no in-process scheduler."""

import hmac

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.config import settings
from zona_fiscal.core.auth import extract_bearer_token
from zona_fiscal.core.errors import Unauthorized
from zona_fiscal.core.security import log_security_event
from zona_fiscal.dependencies import get_db
from zona_fiscal.models.base import utcnow
from zona_fiscal.services import deadline_service
from zona_fiscal.services.email_service import EmailService, get_email_service

router = APIRouter(prefix="/cron", tags=["cron"])


def _authorize_cron(request: Request) -> None:
    if not settings.cron_secret:
        return
    token = extract_bearer_token(request) or ""
    if not hmac.compare_digest(token.encode(), settings.cron_secret.encode()):
        log_security_event("Unauthorized cron job attempt", {}, request)
        raise Unauthorized()


@router.get("/lgpd-deadline-check")
async def lgpd_deadline_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    _authorize_cron(request)
    alerts_sent = await deadline_service.run_daily_check(db, email_service=email_service)
    log_security_event("LGPD deadline check executed", {"alertsSent": alerts_sent}, request)
    return {
        "success": True,
        "message": "Verificação de prazos LGPD executada com sucesso",
        "timestamp": utcnow().isoformat(),
        "alertsSent": alerts_sent,
    }
