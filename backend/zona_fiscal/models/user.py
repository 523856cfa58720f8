import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from zona_fiscal.models.base import Base, TimestampMixin, generate_id


class AdminRole(str, enum.Enum):
    none = "none"
    admin = "admin"
    super_admin = "super_admin"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True, default=generate_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Personal data scrubbed on anonymization
    cpf: Mapped[str | None] = mapped_column(String(14), nullable=True)
    cnpj: Mapped[str | None] = mapped_column(String(18), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # LGPD lifecycle
    anonymized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    anonymization_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    anonymized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reverting_anonymization: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revert_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revert_requested_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reactivated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Admin access
    admin_role: Mapped[AdminRole] = mapped_column(
        Enum(AdminRole, native_enum=False),
        default=AdminRole.none,
        nullable=False,
    )
    admin_permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
