'''
The learner balance ledger.

Learners.balance is only ever changed here, and only through single
conditional UPDATE statements, so concurrent requests cannot overdraw it.
'''
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..common.exceptions import NotFoundError
from ..common.logger import log
from ..core.money import to_money


class DebitResult(BaseModel):
    """
    Outcome of a debit. `succeeded=False` means the balance guard
    rejected it; `balance` is the balance after the attempt either way.
    """
    succeeded: bool
    balance: Decimal


class BalanceLedger:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def _reload(self, learner_id: UUID) -> db_models.Learners:
        """Re-reads the learner so any copy in the session sees the new balance."""
        # Pending attribute changes would be overwritten by populate_existing.
        await self.db.flush()
        stmt = (
            select(db_models.Learners)
            .filter(db_models.Learners.id == learner_id)
            .execution_options(populate_existing=True)
        )
        learner = (await self.db.execute(stmt)).scalars().first()
        if learner is None:
            raise NotFoundError(f"Learner {learner_id} not found.", field="learner_id")
        return learner

    async def get_balance(self, learner_id: UUID) -> Decimal:
        learner = await self._reload(learner_id)
        return to_money(learner.balance)

    async def credit(self, learner_id: UUID, amount: Decimal) -> Decimal:
        """
        Adds `amount` to the balance, including when it is negative.
        Returns the new balance.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValueError("Credit amount must be positive.")

        log.info(f"Crediting {amount} to learner {learner_id}.")
        await self.db.flush()
        stmt = (
            update(db_models.Learners)
            .where(db_models.Learners.id == learner_id)
            .values(balance=db_models.Learners.balance + amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(f"Learner {learner_id} not found.", field="learner_id")

        learner = await self._reload(learner_id)
        return to_money(learner.balance)

    async def debit(self, learner_id: UUID, amount: Decimal, allow_negative: bool = False) -> DebitResult:
        """
        Subtracts `amount` only if the balance still covers it at write time.

        With allow_negative=True the guard is dropped; this is for amounts
        the learner owes (refunds of spent credit, fees, completed unpaid lessons).
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValueError("Debit amount must be positive.")

        stmt = (
            update(db_models.Learners)
            .where(db_models.Learners.id == learner_id)
            .values(balance=db_models.Learners.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if not allow_negative:
            stmt = stmt.where(db_models.Learners.balance >= amount)

        await self.db.flush()
        result = await self.db.execute(stmt)
        learner = await self._reload(learner_id)
        balance = to_money(learner.balance)

        if result.rowcount == 0:
            log.warning(f"Debit of {amount} refused for learner {learner_id}: balance is {balance}.")
            return DebitResult(succeeded=False, balance=balance)

        log.info(f"Debited {amount} from learner {learner_id}; balance now {balance}.")
        return DebitResult(succeeded=True, balance=balance)
