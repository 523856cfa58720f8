"""Account lifecycle: anonymize, delete, revert, submit, approve, reject."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from zona_fiscal.core.errors import InvalidRequest, NotFound
from zona_fiscal.models.audit import AuditAction, DataProcessingAudit
from zona_fiscal.models.base import utcnow
from zona_fiscal.models.consent import ConsentType, UserConsent
from zona_fiscal.models.reactivation import ReactivationRequest, ReactivationStatus
from zona_fiscal.models.session import Session
from zona_fiscal.models.transaction import Transaction, TransactionType
from zona_fiscal.models.user import User
from zona_fiscal.services import consent_service, lifecycle_service

ADMIN_ID = "admin-1"


async def _count_actions(db: AsyncSession, action: AuditAction, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(DataProcessingAudit)
        .where(DataProcessingAudit.action == action, DataProcessingAudit.user_id == user_id)
    )
    return result.scalar_one()


async def _anonymized_user(make_user, db: AsyncSession, user_id: str = "u1") -> User:
    user = await make_user(f"{user_id}@example.com", user_id=user_id, cpf="111.222.333-44")
    await lifecycle_service.anonymize_user(db, user.id)
    return user


async def _submitted_request(make_user, db: AsyncSession, user_id: str = "u1") -> ReactivationRequest:
    await _anonymized_user(make_user, db, user_id)
    await lifecycle_service.request_revert(db, user_id, admin_id=ADMIN_ID)
    return await lifecycle_service.submit_reactivation(
        db,
        token=user_id,
        name="Maria Restaurada",
        email="Maria.Nova@example.com",
        cpf="123.456.789-00",
        phone="+55 11 99999-0000",
    )


# Anonymize / delete


@pytest.mark.asyncio
async def test_anonymize_scrubs_personal_data(db_session: AsyncSession, make_user, make_token):
    user = await make_user(
        "maria@example.com",
        user_id="u1",
        cpf="111.222.333-44",
        cnpj="11.222.333/0001-44",
        phone="+55 11 90000-0000",
        address="Rua A, 1",
        photo_url="https://cdn.example.com/p.png",
    )
    await make_token(user)

    contact = await lifecycle_service.anonymize_user(db_session, user.id, ip_address="10.0.0.1")

    assert contact.email == "maria@example.com"
    assert contact.name == "Maria Silva"
    assert user.name == "[DADOS REMOVIDOS]"
    assert user.email == "anonimizado_u1@removido.com"
    assert user.cpf is None
    assert user.cnpj is None
    assert user.phone is None
    assert user.address is None
    assert user.photo_url is None
    assert user.anonymized is True
    assert user.anonymized_at is not None
    assert user.anonymization_reason == "Solicitação do usuário"
    assert await _count_actions(db_session, AuditAction.anonymize, "u1") == 1

    result = await db_session.execute(select(Session).where(Session.user_id == "u1"))
    assert all(s.revoked for s in result.scalars().all())


@pytest.mark.asyncio
async def test_anonymize_keeps_given_reason(db_session: AsyncSession, make_user):
    user = await make_user()
    await lifecycle_service.anonymize_user(db_session, user.id, reason="Não uso mais")
    assert user.anonymization_reason == "Não uso mais"


@pytest.mark.asyncio
async def test_anonymize_unknown_user(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await lifecycle_service.anonymize_user(db_session, "ghost")


@pytest.mark.asyncio
async def test_permanent_delete_removes_owned_data(db_session: AsyncSession, make_user, make_token):
    user = await make_user("gone@example.com", user_id="u9")
    await make_token(user)
    db_session.add(
        Transaction(
            user_id=user.id,
            description="Aluguel",
            amount=Decimal("900.00"),
            transaction_date=datetime(2024, 1, 5, tzinfo=timezone.utc),
            transaction_type=TransactionType.expense,
        )
    )
    await db_session.flush()
    await consent_service.save_user_consent(
        db_session, user_id=user.id, consents={ConsentType.analytics: True}
    )

    contact = await lifecycle_service.delete_user_permanently(db_session, "u9", reason="Pedido")

    assert contact.email == "gone@example.com"
    for model in (Transaction, UserConsent, Session):
        result = await db_session.execute(
            select(func.count()).select_from(model).where(model.user_id == "u9")
        )
        assert result.scalar_one() == 0
    result = await db_session.execute(select(User).where(User.id == "u9"))
    assert result.scalar_one_or_none() is None
    # The trail outlives the user
    assert await _count_actions(db_session, AuditAction.delete, "u9") == 1
    assert await _count_actions(db_session, AuditAction.update, "u9") == 1


@pytest.mark.asyncio
async def test_permanent_delete_unknown_user(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await lifecycle_service.delete_user_permanently(db_session, "ghost")


# Revert


@pytest.mark.asyncio
async def test_request_revert_creates_pending_request(db_session: AsyncSession, make_user):
    user = await _anonymized_user(make_user, db_session)

    request, contact = await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)

    assert request.token == "u1"
    assert request.user_id == "u1"
    assert request.status == ReactivationStatus.pending
    assert request.requested_by == ADMIN_ID
    assert request.original_anonymization_reason == "Solicitação do usuário"
    assert contact.email == "anonimizado_u1@removido.com"
    assert user.reverting_anonymization is True
    assert user.revert_requested_by == ADMIN_ID
    assert await _count_actions(db_session, AuditAction.revert_anonymization, "u1") == 1


@pytest.mark.asyncio
async def test_request_revert_unknown_user(db_session: AsyncSession):
    with pytest.raises(NotFound, match="Usuário não encontrado"):
        await lifecycle_service.request_revert(db_session, "ghost", admin_id=ADMIN_ID)


@pytest.mark.asyncio
async def test_request_revert_requires_anonymized_user(db_session: AsyncSession, make_user):
    await make_user(user_id="u1")
    with pytest.raises(InvalidRequest, match="Usuário não está anonimizado"):
        await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)


@pytest.mark.asyncio
async def test_request_revert_reissues_pending(db_session: AsyncSession, make_user):
    await _anonymized_user(make_user, db_session)
    first, _ = await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)
    first.requested_at = utcnow() - timedelta(days=6)
    await db_session.flush()

    again, _ = await lifecycle_service.request_revert(db_session, "u1", admin_id="admin-2")

    assert again.token == "u1"
    assert again.status == ReactivationStatus.pending
    assert again.requested_by == "admin-2"
    assert not lifecycle_service.is_expired(again, utcnow() + timedelta(days=6))


@pytest.mark.asyncio
async def test_request_revert_refuses_to_move_backward(db_session: AsyncSession, make_user):
    await _submitted_request(make_user, db_session)
    with pytest.raises(InvalidRequest):
        await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)

    result = await db_session.execute(
        select(ReactivationRequest).where(ReactivationRequest.token == "u1")
    )
    assert result.scalar_one().status == ReactivationStatus.awaiting_approval


@pytest.mark.asyncio
async def test_request_revert_after_rejection_starts_new_cycle(db_session: AsyncSession, make_user):
    await _submitted_request(make_user, db_session)
    await lifecycle_service.reject_reactivation(db_session, "u1", admin_id=ADMIN_ID)

    request, _ = await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)

    assert request.status == ReactivationStatus.pending
    assert request.submitted_data is None
    assert request.rejected_at is None


# Token validation and submission


@pytest.mark.asyncio
async def test_validate_token(db_session: AsyncSession, make_user):
    await _anonymized_user(make_user, db_session)
    await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)

    request = await lifecycle_service.validate_token(db_session, "u1")
    assert request.user_id == "u1"


@pytest.mark.asyncio
async def test_validate_unknown_token(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await lifecycle_service.validate_token(db_session, "nope")


@pytest.mark.asyncio
async def test_expiry_boundary(db_session: AsyncSession, make_user):
    await _anonymized_user(make_user, db_session)
    request, _ = await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)
    deadline = lifecycle_service.expires_at(request)

    assert not lifecycle_service.is_expired(request, deadline)
    assert lifecycle_service.is_expired(request, deadline + timedelta(seconds=1))


@pytest.mark.asyncio
async def test_eight_day_old_token_is_expired(db_session: AsyncSession, make_user):
    await _anonymized_user(make_user, db_session)
    request, _ = await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)
    request.requested_at = utcnow() - timedelta(days=8)
    await db_session.flush()

    with pytest.raises(InvalidRequest, match="Token expirado"):
        await lifecycle_service.validate_token(db_session, "u1")
    with pytest.raises(InvalidRequest, match="Token expirado"):
        await lifecycle_service.submit_reactivation(
            db_session, token="u1", name="Maria", email="m@example.com", cpf="123.456.789-00"
        )
    assert request.status == ReactivationStatus.pending


@pytest.mark.asyncio
async def test_submit_moves_to_awaiting_approval(db_session: AsyncSession, make_user):
    request = await _submitted_request(make_user, db_session)

    assert request.status == ReactivationStatus.awaiting_approval
    assert request.submitted_data["name"] == "Maria Restaurada"
    assert request.submitted_data["cpf"] == "123.456.789-00"
    assert request.submitted_at is not None
    assert await _count_actions(db_session, AuditAction.reactivation_data_submitted, "u1") == 1


@pytest.mark.asyncio
async def test_resubmit_is_already_processed(db_session: AsyncSession, make_user):
    await _submitted_request(make_user, db_session)

    with pytest.raises(InvalidRequest, match="já foi processada"):
        await lifecycle_service.submit_reactivation(
            db_session, token="u1", name="Outra", email="o@example.com", cpf="123.456.789-00"
        )
    assert await _count_actions(db_session, AuditAction.reactivation_data_submitted, "u1") == 1


# Approve / reject


@pytest.mark.asyncio
async def test_approve_restores_user(db_session: AsyncSession, make_user):
    await _submitted_request(make_user, db_session)

    request = await lifecycle_service.approve_reactivation(db_session, "u1", admin_id=ADMIN_ID)

    assert request.status == ReactivationStatus.approved
    assert request.approved_by == ADMIN_ID
    result = await db_session.execute(select(User).where(User.id == "u1"))
    user = result.scalar_one()
    assert user.anonymized is False
    assert user.reverting_anonymization is False
    assert user.name == "Maria Restaurada"
    assert user.email == "maria.nova@example.com"
    assert user.cpf == "123.456.789-00"
    assert user.reactivated_by == ADMIN_ID
    assert await _count_actions(db_session, AuditAction.reactivation_approved, "u1") == 1


@pytest.mark.asyncio
async def test_second_decision_is_already_processed(db_session: AsyncSession, make_user):
    await _submitted_request(make_user, db_session)
    await lifecycle_service.approve_reactivation(db_session, "u1", admin_id=ADMIN_ID)

    with pytest.raises(InvalidRequest, match="já foi processada"):
        await lifecycle_service.approve_reactivation(db_session, "u1", admin_id="admin-2")
    with pytest.raises(InvalidRequest, match="já foi processada"):
        await lifecycle_service.reject_reactivation(db_session, "u1", admin_id="admin-2")
    assert await _count_actions(db_session, AuditAction.reactivation_approved, "u1") == 1
    assert await _count_actions(db_session, AuditAction.reactivation_rejected, "u1") == 0


@pytest.mark.asyncio
async def test_concurrent_decisions_first_writer_wins(
    db_session: AsyncSession, make_user, session_factory
):
    await _submitted_request(make_user, db_session)
    await db_session.commit()

    async with session_factory() as slow_admin, session_factory() as fast_admin:
        # The slow admin has already read the request as awaiting approval
        result = await slow_admin.execute(
            select(ReactivationRequest).where(ReactivationRequest.token == "u1")
        )
        assert result.scalar_one().status == ReactivationStatus.awaiting_approval

        await lifecycle_service.reject_reactivation(fast_admin, "u1", admin_id="admin-fast")
        await fast_admin.commit()

        with pytest.raises(InvalidRequest, match="já foi processada"):
            await lifecycle_service.approve_reactivation(slow_admin, "u1", admin_id="admin-slow")
        await slow_admin.rollback()

    async with session_factory() as check:
        user = (await check.execute(select(User).where(User.id == "u1"))).scalar_one()
        request = (
            await check.execute(
                select(ReactivationRequest).where(ReactivationRequest.token == "u1")
            )
        ).scalar_one()
        assert user.anonymized is True
        assert request.status == ReactivationStatus.rejected
        assert request.rejected_by == "admin-fast"
        assert request.approved_at is None
        assert await _count_actions(check, AuditAction.reactivation_approved, "u1") == 0
        assert await _count_actions(check, AuditAction.reactivation_rejected, "u1") == 1


@pytest.mark.asyncio
async def test_decision_requires_submitted_data(db_session: AsyncSession, make_user):
    await _anonymized_user(make_user, db_session)
    await lifecycle_service.request_revert(db_session, "u1", admin_id=ADMIN_ID)

    with pytest.raises(InvalidRequest, match="Aguardando envio"):
        await lifecycle_service.approve_reactivation(db_session, "u1", admin_id=ADMIN_ID)


@pytest.mark.asyncio
async def test_decision_unknown_request(db_session: AsyncSession):
    with pytest.raises(NotFound, match="Solicitação não encontrada"):
        await lifecycle_service.reject_reactivation(db_session, "nope", admin_id=ADMIN_ID)


@pytest.mark.asyncio
async def test_approve_refuses_email_in_use(db_session: AsyncSession, make_user):
    await make_user("maria.nova@example.com", user_id="other")
    await _submitted_request(make_user, db_session)

    with pytest.raises(InvalidRequest, match="Email já está em uso"):
        await lifecycle_service.approve_reactivation(db_session, "u1", admin_id=ADMIN_ID)


@pytest.mark.asyncio
async def test_reject_leaves_user_untouched(db_session: AsyncSession, make_user):
    await _submitted_request(make_user, db_session)
    result = await db_session.execute(select(User).where(User.id == "u1"))
    user = result.scalar_one()
    before = (user.name, user.email, user.anonymized, user.anonymized_at, user.reverting_anonymization)

    request = await lifecycle_service.reject_reactivation(db_session, "u1", admin_id=ADMIN_ID)

    assert request.status == ReactivationStatus.rejected
    assert request.rejected_by == ADMIN_ID
    await db_session.refresh(user)
    after = (user.name, user.email, user.anonymized, user.anonymized_at, user.reverting_anonymization)
    assert after == before
    assert user.anonymized is True
    assert await _count_actions(db_session, AuditAction.reactivation_rejected, "u1") == 1


# Read models


@pytest.mark.asyncio
async def test_list_open_requests_excludes_closed(db_session: AsyncSession, make_user):
    await _submitted_request(make_user, db_session, "u1")
    await _anonymized_user(make_user, db_session, "u2")
    await lifecycle_service.request_revert(db_session, "u2", admin_id=ADMIN_ID)
    await _submitted_request(make_user, db_session, "u3")
    await lifecycle_service.reject_reactivation(db_session, "u3", admin_id=ADMIN_ID)

    open_requests = await lifecycle_service.list_open_requests(db_session)
    assert {r.token for r in open_requests} == {"u1", "u2"}


@pytest.mark.asyncio
async def test_list_anonymized_users(db_session: AsyncSession, make_user):
    await _anonymized_user(make_user, db_session, "u1")
    await make_user("active@example.com", user_id="u2")

    users = await lifecycle_service.list_anonymized_users(db_session)
    assert [u.id for u in users] == ["u1"]


@pytest.mark.asyncio
async def test_serialize_request(db_session: AsyncSession, make_user):
    request = await _submitted_request(make_user, db_session)
    data = lifecycle_service.serialize_request(request)
    assert data["token"] == "u1"
    assert data["status"] == "awaiting_approval"
    assert data["submittedData"]["email"] == "Maria.Nova@example.com"
    assert data["expiresAt"] is not None
