'''
Instructor availability: the weekly pattern, per-date overrides, and the
open slots derived from them.
'''
from datetime import date, datetime, time, timedelta
from typing import Annotated, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import DayOfWeek
from ..common.exceptions import NotFoundError
from ..common.logger import log
from ..core.slots import SlotResolver
from ..models import availability as availability_models
from .conflict_guard import ConflictGuard
from .directory_service import InstructorDirectoryService
from .interfaces import InstructorDirectory

WORKING_DAYS = (
    DayOfWeek.MONDAY,
    DayOfWeek.TUESDAY,
    DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY,
    DayOfWeek.FRIDAY,
)
DEFAULT_INTERVALS = [{"start": "09:00", "end": "17:00"}]


class AvailabilityService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        conflict_guard: Annotated[ConflictGuard, Depends(ConflictGuard)],
        instructors: Annotated[InstructorDirectory, Depends(InstructorDirectoryService)],
    ):
        self.db = db
        self.conflict_guard = conflict_guard
        self.instructors = instructors

    # --- Weekly pattern ---

    async def get_weekly_availability(self, instructor_id: UUID) -> list[db_models.WeeklyAvailability]:
        """
        Returns one record per weekday, Monday first. Missing days are
        created with defaults: weekdays 09:00-17:00, weekends closed.
        """
        stmt = select(db_models.WeeklyAvailability).filter(
            db_models.WeeklyAvailability.instructor_id == instructor_id
        )
        existing = {row.day_of_week: row for row in (await self.db.execute(stmt)).scalars().all()}

        missing = [day for day in DayOfWeek if day not in existing]
        if missing:
            log.info(f"Creating default weekly availability for instructor {instructor_id}: {[d.value for d in missing]}")
            for day in missing:
                is_working_day = day in WORKING_DAYS
                row = db_models.WeeklyAvailability(
                    instructor_id=instructor_id,
                    day_of_week=day,
                    intervals=list(DEFAULT_INTERVALS) if is_working_day else [],
                    is_available=is_working_day,
                )
                self.db.add(row)
                existing[day] = row
            await self.db.flush()

        return [existing[day] for day in DayOfWeek]

    async def update_weekly_availability(
        self,
        instructor_id: UUID,
        update_data: availability_models.WeeklyAvailabilityUpdate,
    ) -> list[db_models.WeeklyAvailability]:
        """Upserts each listed day, replacing its intervals and flag."""
        log.info(f"Updating weekly availability for instructor {instructor_id}.")
        rows = {row.day_of_week: row for row in await self.get_weekly_availability(instructor_id)}

        for day_input in update_data.days:
            row = rows[day_input.day_of_week]
            row.intervals = [interval.model_dump() for interval in day_input.intervals]
            row.is_available = day_input.is_available

        await self.db.flush()
        return [rows[day] for day in DayOfWeek]

    # --- Overrides ---

    async def get_overrides(
        self,
        instructor_id: UUID,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[db_models.AvailabilityOverrides]:
        stmt = select(db_models.AvailabilityOverrides).filter(
            db_models.AvailabilityOverrides.instructor_id == instructor_id
        )
        if from_date is not None:
            stmt = stmt.filter(db_models.AvailabilityOverrides.date >= from_date)
        if to_date is not None:
            stmt = stmt.filter(db_models.AvailabilityOverrides.date <= to_date)
        stmt = stmt.order_by(db_models.AvailabilityOverrides.date)
        return list((await self.db.execute(stmt)).scalars().all())

    async def create_override(
        self,
        instructor_id: UUID,
        override_data: availability_models.OverrideCreate,
    ) -> db_models.AvailabilityOverrides:
        """Creates the override for a date, or replaces the existing one."""
        stmt = select(db_models.AvailabilityOverrides).filter(
            db_models.AvailabilityOverrides.instructor_id == instructor_id,
            db_models.AvailabilityOverrides.date == override_data.date,
        )
        override = (await self.db.execute(stmt)).scalars().first()
        if override is None:
            override = db_models.AvailabilityOverrides(instructor_id=instructor_id, date=override_data.date)
            self.db.add(override)
            log.info(f"Creating availability override for instructor {instructor_id} on {override_data.date}.")
        else:
            log.info(f"Replacing availability override for instructor {instructor_id} on {override_data.date}.")

        override.intervals = [interval.model_dump() for interval in override_data.intervals]
        override.is_available = override_data.is_available
        override.reason = override_data.reason
        await self.db.flush()
        await self.db.refresh(override)
        return override

    async def delete_override(self, instructor_id: UUID, override_date: date) -> None:
        stmt = select(db_models.AvailabilityOverrides).filter(
            db_models.AvailabilityOverrides.instructor_id == instructor_id,
            db_models.AvailabilityOverrides.date == override_date,
        )
        override = (await self.db.execute(stmt)).scalars().first()
        if override is None:
            raise NotFoundError(f"No availability override on {override_date}.", field="date")
        await self.db.delete(override)
        await self.db.flush()
        log.info(f"Deleted availability override for instructor {instructor_id} on {override_date}.")

    # --- Slots ---

    async def resolve_slots(
        self,
        instructor_id: UUID,
        start_date: date,
        end_date: date,
        duration_minutes: int,
    ) -> SlotResolver:
        """
        Loads everything the slot computation needs and returns the
        (lazy, restartable) resolver over it.
        """
        instructor = await self.instructors.find_by_id(instructor_id)
        tz = ZoneInfo(instructor.timezone)

        weekly_rows = await self.get_weekly_availability(instructor_id)
        weekly = {
            row.day_of_week: availability_models.DayPattern.model_validate(row)
            for row in weekly_rows
        }
        overrides = {
            row.date: availability_models.DayPattern.model_validate(row)
            for row in await self.get_overrides(instructor_id, start_date, end_date)
        }

        window_start = datetime.combine(start_date, time.min, tzinfo=tz)
        window_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz)
        busy = await self.conflict_guard.occupied_intervals(instructor_id, window_start, window_end)

        log.info(
            f"Resolving slots for instructor {instructor_id} from {start_date} to {end_date} "
            f"({duration_minutes} min, {len(overrides)} overrides, {len(busy)} busy intervals)."
        )
        return SlotResolver(
            start_date=start_date,
            end_date=end_date,
            duration_minutes=duration_minutes,
            weekly=weekly,
            overrides=overrides,
            busy=busy,
            tz=tz,
        )
