'''
SQL-backed learner and instructor directories.
'''
from typing import Optional, Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..common.exceptions import NotFoundError
from ..common.logger import log
from .interfaces import InstructorDirectory, LearnerDirectory


class LearnerDirectoryService(LearnerDirectory):
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def find_by_id(self, learner_id: UUID) -> db_models.Learners:
        learner = await self.db.get(db_models.Learners, learner_id)
        if learner is None:
            log.warning(f"Learner {learner_id} not found.")
            raise NotFoundError(f"Learner {learner_id} not found.", field="learner_id")
        return learner

    async def assign_primary_instructor(self, learner_id: UUID, instructor_id: UUID) -> None:
        log.info(f"Setting primary instructor of learner {learner_id} to {instructor_id}.")
        learner = await self.find_by_id(learner_id)
        learner.primary_instructor_id = instructor_id
        await self.db.flush()

    async def find_or_create_by_email(
        self,
        email: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
    ) -> db_models.Learners:
        normalized = email.strip().lower()
        stmt = select(db_models.Learners).filter(func.lower(db_models.Learners.email) == normalized)
        learner = (await self.db.execute(stmt)).scalars().first()
        if learner:
            return learner

        log.info(f"Creating learner record for {normalized} on first contact.")
        learner = db_models.Learners(
            email=normalized,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )
        self.db.add(learner)
        await self.db.flush()
        await self.db.refresh(learner)
        return learner


class InstructorDirectoryService(InstructorDirectory):
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def find_by_id(self, instructor_id: UUID) -> db_models.Instructors:
        instructor = await self.db.get(db_models.Instructors, instructor_id)
        if instructor is None:
            log.warning(f"Instructor {instructor_id} not found.")
            raise NotFoundError(f"Instructor {instructor_id} not found.", field="instructor_id")
        return instructor

    async def find_by_username(self, username: str) -> db_models.Instructors:
        stmt = select(db_models.Instructors).filter(
            func.lower(db_models.Instructors.username) == username.strip().lower()
        )
        instructor = (await self.db.execute(stmt)).scalars().first()
        if instructor is None:
            log.warning(f"Instructor '{username}' not found.")
            raise NotFoundError("Instructor not found.", field="username")
        return instructor
