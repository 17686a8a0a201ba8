'''
Pydantic models for weekly availability, date overrides and bookable slots.
'''
import re
from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..database.db_enums import DayOfWeek

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def hhmm_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_hhmm(value: int) -> str:
    return f"{value // 60:02d}:{value % 60:02d}"


# --- 1. Shared building blocks ---

class TimeInterval(BaseModel):
    """A wall-clock interval within one day, e.g. 09:00-17:00."""
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError("Times must be in HH:MM 24-hour format.")
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "TimeInterval":
        if hhmm_to_minutes(self.start) >= hhmm_to_minutes(self.end):
            raise ValueError("Interval start must be before its end.")
        return self

    @property
    def start_minutes(self) -> int:
        return hhmm_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return hhmm_to_minutes(self.end)


class DayPattern(BaseModel):
    """The effective open intervals for one day, as SlotResolver consumes them."""
    intervals: list[TimeInterval] = []
    is_available: bool = True

    model_config = ConfigDict(from_attributes=True, frozen=True)


# --- 2. API Input Models (for POST/PUT) ---

class WeeklyDayInput(BaseModel):
    day_of_week: DayOfWeek
    intervals: list[TimeInterval] = []
    is_available: bool = True


class WeeklyAvailabilityUpdate(BaseModel):
    """
    Replaces the listed days wholesale. Days not listed are left untouched.
    """
    days: list[WeeklyDayInput]

    @field_validator("days")
    @classmethod
    def _unique_days(cls, days: list[WeeklyDayInput]) -> list[WeeklyDayInput]:
        seen = [day.day_of_week for day in days]
        if len(seen) != len(set(seen)):
            raise ValueError("Each day of the week may appear at most once.")
        return days


class OverrideCreate(BaseModel):
    date: date
    intervals: list[TimeInterval] = []
    is_available: bool = False
    reason: Optional[str] = None


# --- 3. API Output Models (for GET) ---

class WeeklyDayRead(BaseModel):
    day_of_week: DayOfWeek
    intervals: list[TimeInterval]
    is_available: bool

    model_config = ConfigDict(from_attributes=True)


class OverrideRead(BaseModel):
    id: UUID
    date: date
    intervals: list[TimeInterval]
    is_available: bool
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Slot(BaseModel):
    """One bookable slot, in the instructor's local wall-clock time."""
    date: date
    start_time: str
    end_time: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.date.isoformat()} {self.start_time}-{self.end_time}"


class SlotQuery(BaseModel):
    start_date: date
    end_date: date
    duration: int = Field(default=60, gt=0, le=480)

    @model_validator(mode="after")
    def _check_range(self) -> "SlotQuery":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date.")
        return self
