import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from zona_fiscal.models.base import Base, utcnow


class ConsentType(str, enum.Enum):
    essential = "essential"
    analytics = "analytics"
    marketing = "marketing"
    personalization = "personalization"
    data_processing = "data_processing"
    data_sharing = "data_sharing"


class UserConsent(Base):
    """One consent document per user, overwritten wholesale on each save."""

    __tablename__ = "user_consents"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    # consent type -> {"granted", "timestamp", "ipAddress", "userAgent"}
    consents: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    consent_version: Mapped[str] = mapped_column(String(20), nullable=False)
