'''
Races between independent sessions on a shared SQLite file. Each task
gets its own connection, so the guarded UPDATEs are what keep the ledger
correct, not a shared identity map.
'''
import asyncio
import pytest
from decimal import Decimal
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from drivebook_backend.database import models as db_models
from drivebook_backend.database.db_enums import PaymentStatus
from drivebook_backend.database.engine import build_engine
from drivebook_backend.database.models import Base
from drivebook_backend.services.directory_service import LearnerDirectoryService
from drivebook_backend.services.ledger_service import BalanceLedger
from drivebook_backend.services.payment_service import PaymentService

from tests.database import factories


@pytest.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    finally:
        await engine.dispose()


async def seed(session_factory, *rows) -> None:
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


async def balance_of(session_factory, learner_id) -> Decimal:
    async with session_factory() as session:
        return await BalanceLedger(db=session).get_balance(learner_id)


@pytest.mark.anyio
class TestConcurrentReconciliation:

    async def test_racing_success_deliveries_credit_once(
        self, session_factory, mock_gateway, mock_notifications
    ):
        print("\n--- Testing concurrent success deliveries across sessions ---")
        learner = factories.LearnerFactory.build(balance=Decimal("100.00"))
        payment = factories.PaymentFactory.build(learner_id=learner.id, amount=Decimal("50.00"))
        await seed(session_factory, learner, payment)

        async def deliver() -> PaymentStatus:
            async with session_factory() as session:
                service = PaymentService(
                    db=session,
                    ledger=BalanceLedger(db=session),
                    learners=LearnerDirectoryService(db=session),
                    gateway=mock_gateway,
                    notifications=mock_notifications,
                )
                result = await service.mark_succeeded(payment.stripe_payment_intent_id)
                await session.commit()
                return result.status

        statuses = await asyncio.gather(*(deliver() for _ in range(6)))

        assert statuses == [PaymentStatus.SUCCEEDED] * 6
        assert await balance_of(session_factory, learner.id) == Decimal("150.00")
        mock_notifications.send_receipt.assert_awaited_once()

    async def test_success_racing_cancellation_has_one_winner(
        self, session_factory, mock_gateway, mock_notifications
    ):
        learner = factories.LearnerFactory.build(balance=Decimal("0.00"))
        payment = factories.PaymentFactory.build(learner_id=learner.id, amount=Decimal("30.00"))
        await seed(session_factory, learner, payment)

        async def apply(action: str) -> None:
            async with session_factory() as session:
                service = PaymentService(
                    db=session,
                    ledger=BalanceLedger(db=session),
                    learners=LearnerDirectoryService(db=session),
                    gateway=mock_gateway,
                    notifications=mock_notifications,
                )
                await getattr(service, action)(payment.stripe_payment_intent_id)
                await session.commit()

        await asyncio.gather(apply("mark_succeeded"), apply("mark_cancelled"), apply("mark_succeeded"))

        async with session_factory() as session:
            final = await session.get(db_models.Payments, payment.id)
        balance = await balance_of(session_factory, learner.id)
        if final.status == PaymentStatus.SUCCEEDED:
            assert balance == Decimal("30.00")
        else:
            assert final.status == PaymentStatus.CANCELLED
            assert balance == Decimal("0.00")


@pytest.mark.anyio
class TestConcurrentDebits:

    async def test_racing_debits_never_overdraw(self, session_factory):
        print("\n--- Testing concurrent debits across sessions ---")
        learner = factories.LearnerFactory.build(balance=Decimal("100.00"))
        await seed(session_factory, learner)

        async def spend() -> bool:
            async with session_factory() as session:
                result = await BalanceLedger(db=session).debit(learner.id, Decimal("30.00"))
                await session.commit()
                return result.succeeded

        outcomes = await asyncio.gather(*(spend() for _ in range(6)))

        assert outcomes.count(True) == 3
        assert await balance_of(session_factory, learner.id) == Decimal("10.00")

    async def test_racing_credits_all_land(self, session_factory):
        learner = factories.LearnerFactory.build(balance=Decimal("0.00"))
        await seed(session_factory, learner)

        async def top_up() -> None:
            async with session_factory() as session:
                await BalanceLedger(db=session).credit(learner.id, Decimal("12.50"))
                await session.commit()

        await asyncio.gather(*(top_up() for _ in range(8)))

        assert await balance_of(session_factory, learner.id) == Decimal("100.00")
