import pytest
from datetime import date, datetime, timezone

from drivebook_backend.core.slots import SlotResolver, intervals_overlap
from drivebook_backend.database.db_enums import DayOfWeek
from drivebook_backend.models.availability import DayPattern, TimeInterval

MONDAY = date(2026, 11, 2)
TUESDAY = date(2026, 11, 3)
SUMMER_MONDAY = date(2026, 6, 1)


def pattern(*intervals: tuple[str, str], is_available: bool = True) -> DayPattern:
    return DayPattern(
        intervals=[TimeInterval(start=start, end=end) for start, end in intervals],
        is_available=is_available,
    )


def starts(resolver) -> list[str]:
    return [slot.start_time for slot in resolver]


class TestSlotResolver:

    def test_monday_morning_sixty_minute_slots(self):
        print("\n--- Testing Monday 09:00-12:00 with 60 min lessons ---")
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "12:00"))},
            overrides={},
            busy=[],
        )

        slots = list(resolver)

        assert starts(slots) == ["09:00", "09:30", "10:00", "10:30", "11:00"]
        assert slots[-1].end_time == "12:00"
        assert all(slot.date == MONDAY for slot in slots)

    def test_closed_override_beats_weekly_pattern(self):
        print("\n--- Testing closed override on a working Monday ---")
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "17:00"))},
            overrides={MONDAY: pattern(is_available=False)},
            busy=[],
        )
        assert list(resolver) == []

    def test_open_override_replaces_weekly_intervals(self):
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "17:00"))},
            overrides={MONDAY: pattern(("14:00", "15:30"))},
            busy=[],
        )
        assert starts(resolver) == ["14:00", "14:30"]

    def test_available_override_with_no_intervals_yields_nothing(self):
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "17:00"))},
            overrides={MONDAY: pattern(is_available=True)},
            busy=[],
        )
        assert list(resolver) == []

    def test_unavailable_or_missing_weekday_is_skipped(self):
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=TUESDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "12:00"), is_available=False)},
            overrides={},
            busy=[],
        )
        assert list(resolver) == []

    def test_busy_lesson_removes_overlapping_candidates(self):
        print("\n--- Testing slot exclusion around a committed lesson ---")
        busy = [(datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc), datetime(2026, 11, 2, 11, 0, tzinfo=timezone.utc))]
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "12:00"))},
            overrides={},
            busy=busy,
        )
        assert starts(resolver) == ["09:00", "11:00"]

    def test_busy_lessons_are_projected_into_instructor_timezone(self):
        print("\n--- Testing UTC lesson against BST availability ---")
        # 09:00-10:00 UTC is 10:00-11:00 in London during summer time.
        busy = [(datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc), datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc))]
        resolver = SlotResolver(
            start_date=SUMMER_MONDAY,
            end_date=SUMMER_MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "12:00"))},
            overrides={},
            busy=busy,
            tz="Europe/London",
        )
        assert starts(resolver) == ["09:00", "11:00"]

    def test_lesson_crossing_midnight_blocks_the_next_morning(self):
        busy = [(datetime(2026, 11, 1, 23, 30, tzinfo=timezone.utc), datetime(2026, 11, 2, 0, 30, tzinfo=timezone.utc))]
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("00:00", "02:00"))},
            overrides={},
            busy=busy,
        )
        assert starts(resolver) == ["00:30", "01:00"]

    def test_range_is_inclusive_and_stops_at_end_date(self):
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=TUESDAY,
            duration_minutes=120,
            weekly={
                DayOfWeek.MONDAY: pattern(("09:00", "11:00")),
                DayOfWeek.TUESDAY: pattern(("13:00", "15:00")),
                DayOfWeek.WEDNESDAY: pattern(("09:00", "17:00")),
            },
            overrides={},
            busy=[],
        )
        slots = list(resolver)
        assert [(slot.date, slot.start_time) for slot in slots] == [(MONDAY, "09:00"), (TUESDAY, "13:00")]

    def test_multiple_intervals_are_walked_in_order(self):
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("14:00", "15:00"), ("09:00", "10:00"))},
            overrides={},
            busy=[],
        )
        assert starts(resolver) == ["09:00", "14:00"]

    def test_iterating_twice_gives_the_same_slots(self):
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=TUESDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "12:00")), DayOfWeek.TUESDAY: pattern(("09:00", "10:00"))},
            overrides={},
            busy=[],
        )
        first = list(resolver)
        second = list(resolver)
        assert first == second
        assert len(first) == 6

    def test_custom_step(self):
        resolver = SlotResolver(
            start_date=MONDAY,
            end_date=MONDAY,
            duration_minutes=60,
            weekly={DayOfWeek.MONDAY: pattern(("09:00", "11:00"))},
            overrides={},
            busy=[],
            step_minutes=15,
        )
        assert starts(resolver) == ["09:00", "09:15", "09:30", "09:45", "10:00"]

    def test_non_positive_duration_is_rejected(self):
        with pytest.raises(ValueError):
            SlotResolver(MONDAY, MONDAY, 0, weekly={}, overrides={}, busy=[])


class TestIntervalsOverlap:

    def test_adjacent_intervals_do_not_overlap(self):
        assert intervals_overlap(540, 600, 600, 660) is False

    def test_partial_overlap(self):
        assert intervals_overlap(540, 600, 570, 630) is True

    def test_containment(self):
        assert intervals_overlap(540, 720, 600, 630) is True
