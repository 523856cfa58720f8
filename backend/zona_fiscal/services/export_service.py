"""Export service: the LGPD portability bundle (Art. 18, V).

Includes the profile, consent document, transactions, reports and goals.
Every export is recorded in the audit trail.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.models.audit import AuditAction, LegalBasis
from zona_fiscal.models.base import utcnow
from zona_fiscal.models.goal import Goal
from zona_fiscal.models.report import Report
from zona_fiscal.models.transaction import Transaction
from zona_fiscal.models.user import User
from zona_fiscal.services import audit_service, consent_service


def _serialize_datetime(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


def _serialize_decimal(d: Decimal | None) -> str | None:
    if d is None:
        return None
    return str(d)


def _serialize_enum(val) -> str | None:
    """Extract string value from an enum or pass through a raw string.

    SQLAlchemy with native_enum=False may return raw strings from the DB
    instead of reconstructing the Python enum, depending on session state.
    """
    if val is None:
        return None
    return val.value if hasattr(val, "value") else str(val)


def serialize_profile(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "cpf": user.cpf,
        "cnpj": user.cnpj,
        "phone": user.phone,
        "address": user.address,
        "photoURL": user.photo_url,
        "anonymized": user.anonymized,
        "anonymizedAt": _serialize_datetime(user.anonymized_at),
        "anonymizationReason": user.anonymization_reason,
        "revertingAnonymization": user.reverting_anonymization,
        "reactivatedAt": _serialize_datetime(user.reactivated_at),
        "adminRole": _serialize_enum(user.admin_role),
        "createdAt": _serialize_datetime(user.created_at),
        "updatedAt": _serialize_datetime(user.updated_at),
    }


async def export_user_data(
    db: AsyncSession,
    user_id: str,
    *,
    admin_id: str | None = None,
    ip_address: str | None = None,
) -> dict:
    """Export all user data as a JSON-serializable dict."""
    data: dict = {}

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is not None:
        data["profile"] = serialize_profile(user)

    consent = await consent_service.get_user_consent(db, user_id)
    if consent is not None:
        data["consents"] = {
            "userId": consent.user_id,
            "consents": consent.consents,
            "lastUpdated": _serialize_datetime(consent.last_updated),
            "consentVersion": consent.consent_version,
        }

    result = await db.execute(
        select(Transaction)
        .where(Transaction.user_id == user_id)
        .order_by(Transaction.transaction_date.asc())
    )
    data["transactions"] = [
        {
            "id": t.id,
            "description": t.description,
            "amount": _serialize_decimal(t.amount),
            "currency": t.currency,
            "transactionDate": _serialize_datetime(t.transaction_date),
            "type": _serialize_enum(t.transaction_type),
            "scope": _serialize_enum(t.scope),
            "category": t.category,
        }
        for t in result.scalars().all()
    ]

    result = await db.execute(select(Report).where(Report.user_id == user_id))
    data["reports"] = [
        {
            "id": r.id,
            "title": r.title,
            "periodStart": _serialize_datetime(r.period_start),
            "periodEnd": _serialize_datetime(r.period_end),
            "content": r.content,
            "createdAt": _serialize_datetime(r.created_at),
        }
        for r in result.scalars().all()
    ]

    result = await db.execute(select(Goal).where(Goal.user_id == user_id))
    data["goals"] = [
        {
            "id": g.id,
            "title": g.title,
            "category": g.category,
            "targetAmount": _serialize_decimal(g.target_amount),
            "currentAmount": _serialize_decimal(g.current_amount),
            "targetDate": _serialize_datetime(g.target_date),
            "isActive": g.is_active,
        }
        for g in result.scalars().all()
    ]

    await audit_service.log_data_processing(
        db,
        user_id=user_id,
        action=AuditAction.export,
        data_type="all_user_data",
        purpose="Exercício do direito de portabilidade (LGPD Art. 18, V)",
        legal_basis=LegalBasis.legal_obligation,
        admin_id=admin_id,
        ip_address=ip_address,
    )

    return {
        "exportDate": utcnow().isoformat(),
        "userId": user_id,
        "data": data,
    }
