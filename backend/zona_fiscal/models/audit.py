import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, String, func
from sqlalchemy.orm import Mapped, mapped_column

from zona_fiscal.models.base import Base, generate_id, utcnow


class AuditAction(str, enum.Enum):
    create = "create"
    read = "read"
    update = "update"
    delete = "delete"
    export = "export"
    anonymize = "anonymize"
    revert_anonymization = "revert_anonymization"
    reactivation_data_submitted = "reactivation_data_submitted"
    reactivation_approved = "reactivation_approved"
    reactivation_rejected = "reactivation_rejected"
    view_logs = "view_logs"
    deadline_alert_sent = "deadline_alert_sent"


class LegalBasis(str, enum.Enum):
    consent = "consent"
    contract = "contract"
    legal_obligation = "legal_obligation"
    legitimate_interest = "legitimate_interest"


class DataProcessingAudit(Base):
    """Append-only LGPD data-processing trail. No UPDATE or DELETE at application level.

    user_id carries no foreign key: records outlive a permanently deleted user.
    """

    __tablename__ = "data_processing_audit"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, native_enum=False, length=64), nullable=False, index=True
    )
    data_type: Mapped[str] = mapped_column(String(100), nullable=False)
    purpose: Mapped[str] = mapped_column(String(500), nullable=False)
    legal_basis: Mapped[LegalBasis] = mapped_column(
        Enum(LegalBasis, native_enum=False, length=32), nullable=False
    )
    admin_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
