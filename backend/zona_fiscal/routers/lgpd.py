"""Data-subject routes: consent, deletion, export and reactivation."""

import json
import time

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.core.auth import get_current_user_id
from zona_fiscal.core.errors import AppError, Forbidden, InvalidRequest
from zona_fiscal.core.security import client_ip, client_user_agent, log_security_event
from zona_fiscal.dependencies import get_db
from zona_fiscal.models.base import as_utc
from zona_fiscal.models.consent import ConsentType
from zona_fiscal.schemas.consent import ConsentUpdate
from zona_fiscal.schemas.lgpd import DeleteAccountRequest, SubmitReactivationRequest
from zona_fiscal.services import consent_service, export_service, lifecycle_service
from zona_fiscal.services.notification_service import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="/lgpd", tags=["lgpd"])


def json_attachment(payload: dict, filename: str) -> Response:
    return Response(
        content=json.dumps(payload, indent=2, ensure_ascii=False),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/consent")
async def get_consent(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    consent = await consent_service.get_user_consent(db, user_id)
    if consent is None:
        return {"success": True, "consents": {}, "hasConsented": False}
    return {
        "success": True,
        "consents": consent.consents,
        "lastUpdated": as_utc(consent.last_updated).isoformat(),
        "consentVersion": consent.consent_version,
        "hasConsented": True,
    }


@router.post("/consent")
async def save_consent(
    body: ConsentUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    consents = {
        ConsentType(name): granted
        for name, granted in body.model_dump(exclude_none=True).items()
    }
    await consent_service.save_user_consent(
        db,
        user_id=user_id,
        consents=consents,
        ip_address=client_ip(request) or "unknown",
        user_agent=client_user_agent(request, "unknown"),
    )
    return {"success": True, "message": "Consentimentos salvos com sucesso"}


@router.post("/delete-account")
async def delete_account(
    body: DeleteAccountRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationDispatcher = Depends(get_dispatcher),
):
    if not body.password_verified:
        log_security_event(
            "Account deletion attempt without password verification", {"userId": user_id}, request
        )
        raise Forbidden("Senha deve ser verificada antes de prosseguir")

    ip = client_ip(request)
    if body.delete_type == "anonymize":
        contact = await lifecycle_service.anonymize_user(
            db, user_id, reason=body.reason, ip_address=ip
        )
        message = "Seus dados foram anonimizados com sucesso. Você será desconectado."
    else:
        contact = await lifecycle_service.delete_user_permanently(
            db, user_id, reason=body.reason, ip_address=ip
        )
        message = "Sua conta e todos os seus dados foram excluídos permanentemente."

    notifications.deletion_confirmation(contact.email, contact.name, body.delete_type)
    return {"success": True, "message": message, "type": body.delete_type}


@router.get("/export-data")
async def export_data(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    payload = await export_service.export_user_data(db, user_id, ip_address=client_ip(request))
    return json_attachment(payload, f"meus-dados-{user_id}-{_now_ms()}.json")


@router.post("/submit-reactivation")
async def submit_reactivation(
    body: SubmitReactivationRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    try:
        reactivation = await lifecycle_service.submit_reactivation(
            db,
            token=body.token,
            name=body.name,
            email=body.email,
            cpf=body.cpf,
            phone=body.phone,
            ip_address=client_ip(request) or "unknown",
            user_agent=client_user_agent(request, "unknown"),
        )
    except AppError:
        log_security_event("Rejected reactivation submission", {"token": body.token}, request)
        raise

    log_security_event(
        "Reactivation data submitted",
        {"userId": reactivation.user_id, "token": body.token},
        request,
    )
    return {
        "success": True,
        "message": "Seus dados foram recebidos. Aguarde aprovação do administrador.",
    }


@router.get("/validate-reactivation-token")
async def validate_reactivation_token(
    token: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    if not token:
        raise InvalidRequest("Token é obrigatório")
    reactivation = await lifecycle_service.validate_token(db, token)
    return {"success": True, "valid": True, "userId": reactivation.user_id}
