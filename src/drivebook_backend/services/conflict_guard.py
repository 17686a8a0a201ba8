'''
Overlap checks against lessons that occupy their time interval.
'''
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import OCCUPYING_LESSON_STATUSES, UserRole
from ..common.logger import log


class ConflictGuard:
    """
    Answers "is this party already busy over [start, end)?".
    Only scheduled and completed lessons count.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    @staticmethod
    def _party_column(party_role: UserRole):
        if party_role == UserRole.INSTRUCTOR:
            return db_models.Lessons.instructor_id
        if party_role == UserRole.LEARNER:
            return db_models.Lessons.learner_id
        raise ValueError(f"Unsupported party role: {party_role}")

    async def has_conflict(
        self,
        party_id: UUID,
        party_role: UserRole,
        start: datetime,
        end: datetime,
        exclude_lesson_id: Optional[UUID] = None,
    ) -> bool:
        column = self._party_column(party_role)
        stmt = select(db_models.Lessons.id).filter(
            column == party_id,
            db_models.Lessons.status.in_(OCCUPYING_LESSON_STATUSES),
            db_models.Lessons.start_time < end,
            db_models.Lessons.end_time > start,
        )
        if exclude_lesson_id is not None:
            stmt = stmt.filter(db_models.Lessons.id != exclude_lesson_id)

        clash = (await self.db.execute(stmt.limit(1))).scalars().first()
        if clash is not None:
            log.info(f"{party_role.value.capitalize()} {party_id} is busy over {start}-{end} (lesson {clash}).")
            return True
        return False

    async def occupied_intervals(
        self,
        instructor_id: UUID,
        window_start: datetime,
        window_end: datetime,
    ) -> list[tuple[datetime, datetime]]:
        """Occupying lesson intervals for an instructor that touch the window."""
        stmt = (
            select(db_models.Lessons.start_time, db_models.Lessons.end_time)
            .filter(
                db_models.Lessons.instructor_id == instructor_id,
                db_models.Lessons.status.in_(OCCUPYING_LESSON_STATUSES),
                db_models.Lessons.start_time < window_end,
                db_models.Lessons.end_time > window_start,
            )
            .order_by(db_models.Lessons.start_time)
        )
        rows = (await self.db.execute(stmt)).all()
        return [(row.start_time, row.end_time) for row in rows]
