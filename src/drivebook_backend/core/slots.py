'''
Bookable-slot computation.

SlotResolver turns an instructor's weekly pattern, date overrides and
committed lessons into the open slots for a date range. It performs no
I/O: the availability service loads the inputs and hands them over.
'''
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Mapping, Optional
from zoneinfo import ZoneInfo

from ..common.config import settings
from ..database.db_enums import DayOfWeek
from ..models.availability import DayPattern, Slot, minutes_to_hhmm

MINUTES_PER_DAY = 24 * 60


def intervals_overlap(start_a, end_a, start_b, end_b) -> bool:
    """Half-open intervals [start_a, end_a) and [start_b, end_b) overlap."""
    return start_a < end_b and start_b < end_a


def _minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


class SlotResolver:
    """
    A finite, restartable sequence of open slots.

    Each iteration recomputes from the inputs captured at construction,
    so iterating twice yields the same slots in the same order.
    """
    def __init__(
        self,
        start_date: date,
        end_date: date,
        duration_minutes: int,
        weekly: Mapping[DayOfWeek, DayPattern],
        overrides: Mapping[date, DayPattern],
        busy: Iterable[tuple[datetime, datetime]],
        tz: ZoneInfo | str = "UTC",
        step_minutes: Optional[int] = None,
    ):
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive.")
        self.start_date = start_date
        self.end_date = end_date
        self.duration = duration_minutes
        self.step = step_minutes or settings.SLOT_STEP_MINUTES
        self.tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        self.weekly = dict(weekly)
        self.overrides = dict(overrides)
        self._busy_by_date = self._project_busy(busy)

    def _project_busy(self, busy: Iterable[tuple[datetime, datetime]]) -> dict[date, tuple[tuple[int, int], ...]]:
        """
        Converts committed lessons to per-date minute ranges in the
        instructor's local time. A lesson crossing midnight lands on both days.
        """
        by_date: dict[date, list[tuple[int, int]]] = defaultdict(list)
        for start, end in busy:
            local_start = start.astimezone(self.tz)
            local_end = end.astimezone(self.tz)
            day = local_start.date()
            while day <= local_end.date():
                day_start = _minute_of_day(local_start) if day == local_start.date() else 0
                day_end = _minute_of_day(local_end) if day == local_end.date() else MINUTES_PER_DAY
                if day_end > day_start:
                    by_date[day].append((day_start, day_end))
                day += timedelta(days=1)
        return {day: tuple(sorted(ranges)) for day, ranges in by_date.items()}

    def effective_pattern(self, day: date) -> Optional[DayPattern]:
        """
        The override for the date when one exists (even a closed one),
        otherwise the weekly pattern for that weekday.
        """
        override = self.overrides.get(day)
        if override is not None:
            return override
        return self.weekly.get(DayOfWeek.from_weekday(day.weekday()))

    def slots_for_day(self, day: date) -> Iterator[Slot]:
        pattern = self.effective_pattern(day)
        if pattern is None or not pattern.is_available:
            return

        busy = self._busy_by_date.get(day, ())
        for interval in sorted(pattern.intervals, key=lambda i: i.start_minutes):
            limit = min(interval.end_minutes, MINUTES_PER_DAY)
            candidate = interval.start_minutes
            while candidate + self.duration <= limit:
                candidate_end = candidate + self.duration
                if not any(intervals_overlap(candidate, candidate_end, b_start, b_end) for b_start, b_end in busy):
                    yield Slot(
                        date=day,
                        start_time=minutes_to_hhmm(candidate),
                        end_time=minutes_to_hhmm(candidate_end),
                    )
                candidate += self.step

    def __iter__(self) -> Iterator[Slot]:
        day = self.start_date
        while day <= self.end_date:
            yield from self.slots_for_day(day)
            day += timedelta(days=1)

    def __repr__(self) -> str:
        return (
            f"SlotResolver({self.start_date.isoformat()}..{self.end_date.isoformat()}, "
            f"duration={self.duration}, step={self.step}, tz={self.tz.key})"
        )
