import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from zona_fiscal.models.base import Base, utcnow


class ReactivationStatus(str, enum.Enum):
    pending = "pending"
    awaiting_approval = "awaiting_approval"
    approved = "approved"
    rejected = "rejected"


OPEN_STATUSES = (ReactivationStatus.pending, ReactivationStatus.awaiting_approval)


class ReactivationRequest(Base):
    """Pending reversal of an anonymization. The token equals the user id at creation."""

    __tablename__ = "reactivation_requests"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    status: Mapped[ReactivationStatus] = mapped_column(
        Enum(ReactivationStatus, native_enum=False, length=32),
        default=ReactivationStatus.pending,
        nullable=False,
        index=True,
    )
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    requested_by: Mapped[str] = mapped_column(String(128), nullable=False)
    original_anonymization_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    original_anonymization_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Filled by the end user
    submitted_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # Admin decision
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
