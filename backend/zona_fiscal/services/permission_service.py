"""Permission resolver: maps a user to an admin capability set.

Resolution never raises. A missing user or a failed lookup resolves to
"no permissions", so callers deny access.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.config import settings
from zona_fiscal.models.user import AdminRole, User

logger = logging.getLogger(__name__)

WILDCARD = "all"


class PERMISSIONS:
    # LGPD
    LGPD_VIEW_USERS = "lgpd:view_users"
    LGPD_VIEW_LOGS = "lgpd:view_logs"
    LGPD_EXPORT_DATA = "lgpd:export_data"
    LGPD_REVERT_ANONYMIZATION = "lgpd:revert_anonymization"
    LGPD_DELETE_PERMANENTLY = "lgpd:delete_permanently"

    # Users
    USERS_VIEW = "users:view"
    USERS_EDIT = "users:edit"
    USERS_DELETE = "users:delete"

    # Payments
    PAYMENTS_VIEW = "payments:view"
    PAYMENTS_REFUND = "payments:refund"

    # Plans
    PLANS_VIEW = "plans:view"
    PLANS_EDIT = "plans:edit"

    # Marketing
    MARKETING_VIEW = "marketing:view"
    MARKETING_EDIT = "marketing:edit"

    # Support
    SUPPORT_VIEW = "support:view"
    SUPPORT_REPLY = "support:reply"


@dataclass(frozen=True)
class AdminPermissions:
    is_super_admin: bool = False
    is_admin: bool = False
    permissions: frozenset[str] = field(default_factory=frozenset)
    role: AdminRole | None = None

    def allows(self, permission: str) -> bool:
        if self.is_super_admin:
            return True
        return permission in self.permissions or WILDCARD in self.permissions


NO_PERMISSIONS = AdminPermissions()


def is_super_admin(email: str | None, super_admin_emails: Iterable[str] | None = None) -> bool:
    if not email:
        return False
    emails = settings.super_admin_email_set if super_admin_emails is None else {
        e.lower() for e in super_admin_emails
    }
    return email.lower() in emails


def resolve_permissions(
    user: User | None,
    super_admin_emails: Iterable[str] | None = None,
) -> AdminPermissions:
    """Pure resolution from a loaded user record."""
    if user is None:
        return NO_PERMISSIONS

    super_admin = is_super_admin(user.email, super_admin_emails)
    has_admin_role = user.admin_role in (AdminRole.admin, AdminRole.super_admin)
    stored = frozenset(user.admin_permissions or ())

    return AdminPermissions(
        is_super_admin=super_admin,
        is_admin=super_admin or has_admin_role,
        permissions=frozenset({WILDCARD}) if super_admin else stored,
        role=user.admin_role,
    )


async def get_user_permissions(
    db: AsyncSession,
    user_id: str,
    super_admin_emails: Iterable[str] | None = None,
) -> AdminPermissions:
    try:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
    except Exception:
        logger.exception("Permission lookup failed for user %s", user_id)
        return NO_PERMISSIONS
    return resolve_permissions(user, super_admin_emails)


async def has_permission(db: AsyncSession, user_id: str, permission: str) -> bool:
    permissions = await get_user_permissions(db, user_id)
    return permissions.allows(permission)


async def require_admin(db: AsyncSession, user_id: str) -> bool:
    permissions = await get_user_permissions(db, user_id)
    return permissions.is_admin
