import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

from drivebook_backend.core.money import percent_of, to_money
from drivebook_backend.core.pricing import no_show_fee, quote_cancellation, resolve_lesson_price
from drivebook_backend.database.db_enums import CancelledBy, LessonType

NOW = datetime(2026, 11, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def instructor() -> SimpleNamespace:
    return SimpleNamespace(
        hourly_rate=Decimal("40.00"),
        lesson_types=[
            {"type": "standard", "price": 45.0, "duration": 60},
            {"type": "mock-test", "price": 60.0, "duration": 90},
        ],
        free_cancellation_hours=48,
        late_cancellation_hours=24,
        late_cancellation_charge_percent=50,
        very_late_cancellation_charge_percent=100,
        no_show_charge_percent=100,
    )


class TestLessonPrice:

    def test_lesson_type_price_for_its_own_duration(self, instructor):
        assert resolve_lesson_price(instructor, LessonType.STANDARD, 60) == Decimal("45.00")

    def test_lesson_type_price_is_pro_rated(self, instructor):
        assert resolve_lesson_price(instructor, LessonType.STANDARD, 90) == Decimal("67.50")
        assert resolve_lesson_price(instructor, LessonType.MOCK_TEST, 60) == Decimal("40.00")

    def test_unknown_type_falls_back_to_hourly_rate(self, instructor):
        assert resolve_lesson_price(instructor, LessonType.MOTORWAY, 120) == Decimal("80.00")

    def test_accepts_plain_string_type(self, instructor):
        assert resolve_lesson_price(instructor, "standard", 30) == Decimal("22.50")


class TestCancellationQuote:

    def test_instructor_cancellation_is_always_free(self, instructor):
        quote = quote_cancellation(instructor, Decimal("45.00"), NOW + timedelta(hours=1), CancelledBy.INSTRUCTOR, now=NOW)
        assert quote.tier == "instructor-cancelled"
        assert quote.fee == Decimal("0.00")
        assert quote.refund == Decimal("45.00")

    def test_free_window(self, instructor):
        quote = quote_cancellation(instructor, Decimal("45.00"), NOW + timedelta(hours=72), CancelledBy.LEARNER, now=NOW)
        assert (quote.tier, quote.fee, quote.refund) == ("free", Decimal("0.00"), Decimal("45.00"))

    def test_late_window(self, instructor):
        quote = quote_cancellation(instructor, Decimal("45.00"), NOW + timedelta(hours=30), CancelledBy.LEARNER, now=NOW)
        assert quote.tier == "late"
        assert quote.charge_percent == 50
        assert quote.fee == Decimal("22.50")
        assert quote.refund == Decimal("22.50")
        assert quote.hours_until_lesson == 30.0

    def test_very_late_window(self, instructor):
        quote = quote_cancellation(instructor, Decimal("45.00"), NOW + timedelta(hours=2), CancelledBy.LEARNER, now=NOW)
        assert (quote.tier, quote.fee, quote.refund) == ("very-late", Decimal("45.00"), Decimal("0.00"))

    def test_boundary_belongs_to_the_cheaper_tier(self, instructor):
        quote = quote_cancellation(instructor, Decimal("45.00"), NOW + timedelta(hours=48), CancelledBy.LEARNER, now=NOW)
        assert quote.tier == "free"

    def test_past_lesson_reports_zero_hours(self, instructor):
        quote = quote_cancellation(instructor, Decimal("45.00"), NOW - timedelta(hours=3), CancelledBy.LEARNER, now=NOW)
        assert quote.hours_until_lesson == 0
        assert quote.tier == "very-late"


class TestMoney:

    def test_no_show_fee(self, instructor):
        instructor.no_show_charge_percent = 75
        assert no_show_fee(instructor, Decimal("45.00")) == Decimal("33.75")

    def test_rounding_is_half_up(self):
        assert to_money(Decimal("2.345")) == Decimal("2.35")
        assert to_money(0.1 + 0.2) == Decimal("0.30")
        assert to_money(7) == Decimal("7.00")

    def test_percent_of(self):
        assert percent_of(Decimal("33.33"), 50) == Decimal("16.67")
