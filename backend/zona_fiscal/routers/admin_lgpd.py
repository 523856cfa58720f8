"""Admin LGPD routes: anonymized users, audit trail, exports and reactivation."""

import time

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.core.auth import require_permission
from zona_fiscal.core.errors import InvalidRequest
from zona_fiscal.core.security import client_ip, log_security_event
from zona_fiscal.dependencies import get_db
from zona_fiscal.models.audit import AuditAction, LegalBasis
from zona_fiscal.models.base import as_utc
from zona_fiscal.routers.lgpd import json_attachment
from zona_fiscal.schemas.admin_lgpd import (
    ApproveReactivationRequest,
    DeleteUserPermanentlyRequest,
    RevertAnonymizationRequest,
)
from zona_fiscal.services import audit_service, export_service, lifecycle_service, metrics_service
from zona_fiscal.services.notification_service import NotificationDispatcher, get_dispatcher
from zona_fiscal.services.permission_service import PERMISSIONS

router = APIRouter(prefix="/admin/lgpd", tags=["admin-lgpd"])


def _require_user_id(user_id: str | None) -> str:
    if not user_id:
        raise InvalidRequest("userId é obrigatório")
    return user_id


@router.get("/anonymized-users")
async def anonymized_users(
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(require_permission(PERMISSIONS.LGPD_VIEW_USERS)),
):
    users = await lifecycle_service.list_anonymized_users(db)
    items = [
        {
            "userId": user.id,
            "anonymizedAt": as_utc(user.anonymized_at).isoformat() if user.anonymized_at else None,
            "anonymizationReason": user.anonymization_reason or "Não informado",
            "originalEmail": user.email,
            "revertingAnonymization": user.reverting_anonymization,
            "canRevert": True,
        }
        for user in users
    ]
    return {"success": True, "users": items, "total": len(items)}


@router.get("/audit-logs")
async def audit_logs(
    request: Request,
    user_id: str | None = Query(None, alias="userId"),
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(require_permission(PERMISSIONS.LGPD_VIEW_LOGS)),
):
    user_id = _require_user_id(user_id)
    records = await audit_service.get_user_audit_log(db, user_id)
    logs = [audit_service.serialize_record(record) for record in records]

    await audit_service.log_data_processing(
        db,
        user_id=user_id,
        action=AuditAction.view_logs,
        data_type="audit_log",
        purpose="Consulta do histórico de tratamento de dados pelo admin",
        legal_basis=LegalBasis.legal_obligation,
        admin_id=admin_id,
        ip_address=client_ip(request),
    )
    return {"success": True, "logs": logs, "total": len(logs), "userId": user_id}


@router.get("/export-user-data")
async def export_user_data(
    request: Request,
    user_id: str | None = Query(None, alias="userId"),
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(require_permission(PERMISSIONS.LGPD_EXPORT_DATA)),
):
    user_id = _require_user_id(user_id)
    payload = await export_service.export_user_data(
        db, user_id, admin_id=admin_id, ip_address=client_ip(request)
    )
    log_security_event("Admin exported user data", {"userId": user_id, "adminId": admin_id}, request)
    return json_attachment(payload, f"user-data-{user_id}-{int(time.time() * 1000)}.json")


@router.get("/reactivation-requests")
async def reactivation_requests(
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(require_permission(PERMISSIONS.LGPD_VIEW_USERS)),
):
    requests = await lifecycle_service.list_open_requests(db)
    items = [lifecycle_service.serialize_request(r) for r in requests]
    return {"success": True, "requests": items, "total": len(items)}


@router.post("/revert-anonymization")
async def revert_anonymization(
    body: RevertAnonymizationRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(require_permission(PERMISSIONS.LGPD_REVERT_ANONYMIZATION)),
    notifications: NotificationDispatcher = Depends(get_dispatcher),
):
    reactivation, contact = await lifecycle_service.request_revert(
        db, body.user_id, admin_id=admin_id
    )
    notifications.reactivation_request(
        body.contact_email or contact.email, reactivation.token, contact.name
    )
    log_security_event(
        "Anonymization revert requested", {"userId": body.user_id, "adminId": admin_id}, request
    )
    return {
        "success": True,
        "message": "Solicitação de reversão criada com sucesso. O usuário será notificado.",
        "reactivationRequestId": reactivation.token,
    }


@router.post("/approve-reactivation")
async def approve_reactivation(
    body: ApproveReactivationRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(require_permission(PERMISSIONS.LGPD_REVERT_ANONYMIZATION)),
):
    if body.approved:
        reactivation = await lifecycle_service.approve_reactivation(
            db, body.token, admin_id=admin_id
        )
        log_security_event(
            "Reactivation approved", {"userId": reactivation.user_id, "adminId": admin_id}, request
        )
        message = "Reativação aprovada com sucesso. O usuário pode fazer login novamente."
    else:
        reactivation = await lifecycle_service.reject_reactivation(
            db, body.token, admin_id=admin_id
        )
        log_security_event(
            "Reactivation rejected", {"userId": reactivation.user_id, "adminId": admin_id}, request
        )
        message = "Reativação rejeitada."
    return {"success": True, "message": message}


@router.post("/delete-user-permanently")
async def delete_user_permanently(
    body: DeleteUserPermanentlyRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(require_permission(PERMISSIONS.LGPD_DELETE_PERMANENTLY)),
):
    await lifecycle_service.delete_user_permanently(
        db,
        body.user_id,
        reason=body.reason or "Exclusão solicitada pelo admin",
        admin_id=admin_id,
        ip_address=client_ip(request),
    )
    log_security_event(
        "User permanently deleted by admin", {"userId": body.user_id, "adminId": admin_id}, request
    )
    return {
        "success": True,
        "message": "Todos os dados do usuário foram excluídos permanentemente.",
    }


@router.get("/metrics")
async def metrics(
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(require_permission(PERMISSIONS.LGPD_VIEW_LOGS)),
):
    result = await metrics_service.compute_metrics(db)
    return {"success": True, **result}
