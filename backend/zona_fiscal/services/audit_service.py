"""Audit service: append-only LGPD data-processing trail.

All writes are append-only. No update or delete methods are exposed.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.models.audit import AuditAction, DataProcessingAudit, LegalBasis

MAX_AUDIT_RESULTS = 100


async def log_data_processing(
    db: AsyncSession,
    *,
    user_id: str,
    action: AuditAction,
    data_type: str,
    purpose: str,
    legal_basis: LegalBasis,
    admin_id: str | None = None,
    detail: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> DataProcessingAudit:
    """Append one audit record."""
    record = DataProcessingAudit(
        user_id=user_id,
        action=action,
        data_type=data_type,
        purpose=purpose,
        legal_basis=legal_basis,
        admin_id=admin_id,
        detail=detail,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(record)
    await db.flush()
    return record


async def get_user_audit_log(
    db: AsyncSession,
    user_id: str,
    *,
    limit: int = MAX_AUDIT_RESULTS,
) -> list[DataProcessingAudit]:
    """A user's audit trail, most recent first, capped at 100 records."""
    limit = max(1, min(limit, MAX_AUDIT_RESULTS))
    stmt = (
        select(DataProcessingAudit)
        .where(DataProcessingAudit.user_id == user_id)
        .order_by(DataProcessingAudit.timestamp.desc(), DataProcessingAudit.id.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_records_by_action(
    db: AsyncSession,
    actions: list[AuditAction],
    *,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[DataProcessingAudit]:
    """Records of the given actions, optionally bounded by timestamp."""
    stmt = select(DataProcessingAudit).where(DataProcessingAudit.action.in_(actions))
    if since is not None:
        stmt = stmt.where(DataProcessingAudit.timestamp >= since)
    if until is not None:
        stmt = stmt.where(DataProcessingAudit.timestamp <= until)
    stmt = stmt.order_by(DataProcessingAudit.timestamp.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


def serialize_record(record: DataProcessingAudit) -> dict:
    return {
        "id": record.id,
        "userId": record.user_id,
        "action": record.action.value if hasattr(record.action, "value") else record.action,
        "dataType": record.data_type,
        "timestamp": record.timestamp.isoformat() if record.timestamp else None,
        "purpose": record.purpose,
        "legalBasis": (
            record.legal_basis.value if hasattr(record.legal_basis, "value") else record.legal_basis
        ),
        "adminId": record.admin_id,
        "ipAddress": record.ip_address,
        "userAgent": record.user_agent,
        "detail": record.detail,
    }
