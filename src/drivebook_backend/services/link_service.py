'''
Learner-instructor relationship records: lesson counters and the
per-instructor prepaid balance.
'''
import datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import LinkEvent, LinkStatus
from ..common.exceptions import NotFoundError
from ..common.logger import log
from ..core.money import to_money
from .directory_service import InstructorDirectoryService, LearnerDirectoryService
from .interfaces import InstructorDirectory, LearnerDirectory

_LINK_COUNTERS = {
    LinkEvent.BOOKED: "total_lessons",
    LinkEvent.COMPLETED: "completed_lessons",
    LinkEvent.CANCELLED: "cancelled_lessons",
}
_LEARNER_COUNTERS = {
    LinkEvent.BOOKED: "total_lessons",
    LinkEvent.COMPLETED: "completed_lessons",
}


class LinkService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        learners: Annotated[LearnerDirectory, Depends(LearnerDirectoryService)],
        instructors: Annotated[InstructorDirectory, Depends(InstructorDirectoryService)],
    ):
        self.db = db
        self.learners = learners
        self.instructors = instructors

    async def _find(self, learner_id: UUID, instructor_id: UUID, refresh: bool = False) -> Optional[db_models.LearnerInstructorLinks]:
        stmt = select(db_models.LearnerInstructorLinks).filter(
            db_models.LearnerInstructorLinks.learner_id == learner_id,
            db_models.LearnerInstructorLinks.instructor_id == instructor_id,
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return (await self.db.execute(stmt)).scalars().first()

    async def get_link(self, learner_id: UUID, instructor_id: UUID) -> db_models.LearnerInstructorLinks:
        link = await self._find(learner_id, instructor_id, refresh=True)
        if link is None:
            raise NotFoundError("No relationship with this instructor.", field="instructor_id")
        return link

    async def list_links(self, learner_id: UUID) -> list[db_models.LearnerInstructorLinks]:
        stmt = (
            select(db_models.LearnerInstructorLinks)
            .filter(db_models.LearnerInstructorLinks.learner_id == learner_id)
            .order_by(db_models.LearnerInstructorLinks.started_at)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def get_or_create_link(self, learner_id: UUID, instructor_id: UUID) -> db_models.LearnerInstructorLinks:
        """
        Creating the first link also makes the instructor the learner's
        primary one. An ended link is reactivated.
        """
        link = await self._find(learner_id, instructor_id)
        if link is None:
            learner = await self.learners.find_by_id(learner_id)
            await self.instructors.find_by_id(instructor_id)

            log.info(f"Linking learner {learner_id} to instructor {instructor_id}.")
            link = db_models.LearnerInstructorLinks(learner_id=learner_id, instructor_id=instructor_id)
            self.db.add(link)
            await self.db.flush()

            if learner.primary_instructor_id is None:
                await self.learners.assign_primary_instructor(learner_id, instructor_id)

        if link.status == LinkStatus.ENDED:
            log.info(f"Reactivating ended link between learner {learner_id} and instructor {instructor_id}.")
            link.status = LinkStatus.ACTIVE
            link.ended_at = None
            await self.db.flush()

        return link

    async def record_lesson(self, learner_id: UUID, instructor_id: UUID, event: LinkEvent, amount: Optional[Decimal] = None) -> None:
        """
        Bumps the counters for a lesson event. Never touches either balance.
        `amount` (completed lessons only) is added to total_spent.
        """
        await self.get_or_create_link(learner_id, instructor_id)

        counter = _LINK_COUNTERS[event]
        link_table = db_models.LearnerInstructorLinks
        values = {
            counter: getattr(link_table, counter) + 1,
            "last_lesson_at": datetime.datetime.now(datetime.timezone.utc),
        }
        if event == LinkEvent.COMPLETED and amount:
            values["total_spent"] = link_table.total_spent + to_money(amount)

        await self.db.execute(
            update(link_table)
            .where(link_table.learner_id == learner_id, link_table.instructor_id == instructor_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        learner_counter = _LEARNER_COUNTERS.get(event)
        if learner_counter:
            await self.db.execute(
                update(db_models.Learners)
                .where(db_models.Learners.id == learner_id)
                .values({learner_counter: getattr(db_models.Learners, learner_counter) + 1})
                .execution_options(synchronize_session=False)
            )
        log.info(f"Recorded '{event.value}' lesson for learner {learner_id} with instructor {instructor_id}.")

    async def add_link_balance(self, learner_id: UUID, instructor_id: UUID, amount: Decimal) -> db_models.LearnerInstructorLinks:
        """Credits the per-instructor balance (e.g. cash paid to the instructor directly)."""
        amount = to_money(amount)
        await self.get_or_create_link(learner_id, instructor_id)
        link_table = db_models.LearnerInstructorLinks
        await self.db.execute(
            update(link_table)
            .where(link_table.learner_id == learner_id, link_table.instructor_id == instructor_id)
            .values(balance=link_table.balance + amount, total_spent=link_table.total_spent + amount)
            .execution_options(synchronize_session=False)
        )
        log.info(f"Added {amount} to link balance of learner {learner_id} with instructor {instructor_id}.")
        return await self.get_link(learner_id, instructor_id)

    async def deduct_link_balance(self, learner_id: UUID, instructor_id: UUID, amount: Decimal) -> Optional[db_models.LearnerInstructorLinks]:
        """
        Conditional debit of the per-instructor balance.
        Returns None when the balance does not cover `amount`.
        """
        amount = to_money(amount)
        link_table = db_models.LearnerInstructorLinks
        result = await self.db.execute(
            update(link_table)
            .where(
                link_table.learner_id == learner_id,
                link_table.instructor_id == instructor_id,
                link_table.balance >= amount,
            )
            .values(balance=link_table.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            log.warning(f"Link balance debit of {amount} refused for learner {learner_id} with instructor {instructor_id}.")
            return None
        return await self.get_link(learner_id, instructor_id)

    async def set_primary_instructor(self, learner_id: UUID, instructor_id: UUID) -> db_models.LearnerInstructorLinks:
        link = await self._find(learner_id, instructor_id)
        if link is None or link.status != LinkStatus.ACTIVE:
            raise NotFoundError("No active relationship with this instructor.", field="instructor_id")
        await self.learners.assign_primary_instructor(learner_id, instructor_id)
        return link
