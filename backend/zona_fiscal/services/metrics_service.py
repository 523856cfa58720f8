"""LGPD compliance dashboard aggregate."""

from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.config import settings
from zona_fiscal.models.audit import AuditAction, DataProcessingAudit
from zona_fiscal.models.base import as_utc, utcnow
from zona_fiscal.models.reactivation import ReactivationRequest, ReactivationStatus
from zona_fiscal.models.user import User

OVERDUE_ACTIONS = [
    AuditAction.export,
    AuditAction.delete,
    AuditAction.anonymize,
    AuditAction.revert_anonymization,
]
RECENT_WINDOW_DAYS = 30


def _action_key(action) -> str:
    return action.value if hasattr(action, "value") else str(action)


async def _count(db: AsyncSession, stmt) -> int:
    result = await db.execute(stmt)
    return result.scalar_one()


async def _average_response_days(db: AsyncSession) -> int:
    result = await db.execute(
        select(ReactivationRequest).where(
            ReactivationRequest.status.in_(
                [ReactivationStatus.approved, ReactivationStatus.rejected]
            )
        )
    )
    durations = []
    for request in result.scalars().all():
        answered_at = request.approved_at or request.rejected_at
        if request.requested_at and answered_at:
            durations.append((as_utc(answered_at) - as_utc(request.requested_at)).days)
    if not durations:
        return 0
    # Half-up rounding of the mean whole-day response time
    return int(sum(durations) / len(durations) + 0.5)


async def compute_metrics(db: AsyncSession, now: datetime | None = None) -> dict:
    now = now or utcnow()
    deadline_start = now - timedelta(days=settings.lgpd_response_deadline_days)
    urgent_start = now - timedelta(
        days=settings.lgpd_response_deadline_days - settings.deadline_alert_days
    )
    recent_start = now - timedelta(days=RECENT_WINDOW_DAYS)

    total_anonymized = await _count(
        db, select(func.count()).select_from(User).where(User.anonymized.is_(True))
    )
    pending_reactivations = await _count(
        db,
        select(func.count())
        .select_from(ReactivationRequest)
        .where(ReactivationRequest.status == ReactivationStatus.awaiting_approval),
    )
    overdue = await _count(
        db,
        select(func.count())
        .select_from(DataProcessingAudit)
        .where(
            DataProcessingAudit.action.in_(OVERDUE_ACTIONS),
            DataProcessingAudit.timestamp < deadline_start,
        ),
    )
    urgent = await _count(
        db,
        select(func.count())
        .select_from(ReactivationRequest)
        .where(
            ReactivationRequest.status == ReactivationStatus.awaiting_approval,
            ReactivationRequest.requested_at < urgent_start,
        ),
    )

    result = await db.execute(
        select(DataProcessingAudit.action, func.count())
        .where(DataProcessingAudit.timestamp >= recent_start)
        .group_by(DataProcessingAudit.action)
    )
    action_counts = {_action_key(action): count for action, count in result.all()}

    return {
        "metrics": {
            "totalAnonymized": total_anonymized,
            "pendingReactivations": pending_reactivations,
            "overdueRequests": overdue,
            "requestsLast30Days": sum(action_counts.values()),
            "exportsLast30Days": action_counts.get(AuditAction.export.value, 0),
            "averageResponseDays": await _average_response_days(db),
            "urgentRequests": urgent,
            "actionCounts": action_counts,
        },
        "updatedAt": now.isoformat(),
    }
