"""Consent service: one consent document per user.

Each save overwrites the whole document and is logged to the audit trail.
Essential cookies are always considered granted.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.config import settings
from zona_fiscal.models.audit import AuditAction, LegalBasis
from zona_fiscal.models.base import utcnow
from zona_fiscal.models.consent import ConsentType, UserConsent
from zona_fiscal.services import audit_service


async def save_user_consent(
    db: AsyncSession,
    *,
    user_id: str,
    consents: dict[ConsentType, bool],
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> UserConsent:
    now = utcnow()
    timestamp = now.isoformat()
    document = {
        ConsentType(ct).value: {
            "granted": bool(granted),
            "timestamp": timestamp,
            "ipAddress": ip_address,
            "userAgent": user_agent,
        }
        for ct, granted in consents.items()
    }

    record = await get_user_consent(db, user_id)
    if record is None:
        record = UserConsent(user_id=user_id)
        db.add(record)
    record.consents = document
    record.last_updated = now
    record.consent_version = settings.consent_version
    await db.flush()

    await audit_service.log_data_processing(
        db,
        user_id=user_id,
        action=AuditAction.update,
        data_type="user_consent",
        purpose="Atualização de consentimentos LGPD",
        legal_basis=LegalBasis.consent,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return record


async def get_user_consent(db: AsyncSession, user_id: str) -> UserConsent | None:
    result = await db.execute(select(UserConsent).where(UserConsent.user_id == user_id))
    return result.scalar_one_or_none()


async def has_consent(db: AsyncSession, user_id: str, consent_type: ConsentType) -> bool:
    if consent_type == ConsentType.essential:
        return True
    record = await get_user_consent(db, user_id)
    if record is None:
        return False
    entry = record.consents.get(consent_type.value)
    return bool(entry and entry.get("granted"))
