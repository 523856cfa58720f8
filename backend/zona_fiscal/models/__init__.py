# Import all models so Base.metadata is populated for create_all.
from zona_fiscal.models.base import Base  # noqa: F401
from zona_fiscal.models.user import User  # noqa: F401
from zona_fiscal.models.session import Session  # noqa: F401
from zona_fiscal.models.consent import UserConsent  # noqa: F401
from zona_fiscal.models.audit import DataProcessingAudit  # noqa: F401
from zona_fiscal.models.reactivation import ReactivationRequest  # noqa: F401
from zona_fiscal.models.transaction import Transaction  # noqa: F401
from zona_fiscal.models.report import Report  # noqa: F401
from zona_fiscal.models.goal import Goal  # noqa: F401
