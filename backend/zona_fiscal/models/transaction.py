import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from zona_fiscal.models.base import Base, TimestampMixin, generate_id


class TransactionType(str, enum.Enum):
    income = "income"
    expense = "expense"


class TransactionScope(str, enum.Enum):
    """Freelancers mix both; every transaction is tagged with one."""

    personal = "personal"
    business = "business"


class Transaction(TimestampMixin, Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2), nullable=False
    )  # Always positive; type indicates direction
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="BRL")
    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, native_enum=False), nullable=False
    )
    scope: Mapped[TransactionScope] = mapped_column(
        Enum(TransactionScope, native_enum=False),
        default=TransactionScope.personal,
        nullable=False,
    )
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
