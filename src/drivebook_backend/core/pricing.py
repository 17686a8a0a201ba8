'''
Lesson pricing and the cancellation-fee policy. Pure functions over
instructor settings; no database access.
'''
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from ..database.db_enums import CancelledBy, LessonType
from .money import ZERO, percent_of, to_money


class CancellationQuote(BaseModel):
    """What cancelling a lesson now would cost, and what goes back to the learner."""
    fee: Decimal
    refund: Decimal
    charge_percent: int
    tier: str
    hours_until_lesson: float


def resolve_lesson_price(instructor, lesson_type: LessonType, duration_minutes: int) -> Decimal:
    """
    Price from the instructor's lesson-type table, pro-rated by duration.
    Unknown types fall back to the hourly rate.
    """
    lesson_type = LessonType(lesson_type)
    for entry in instructor.lesson_types or []:
        if entry.get("type") == lesson_type.value:
            type_duration = entry.get("duration") or 60
            price = Decimal(str(entry["price"])) * Decimal(duration_minutes) / Decimal(type_duration)
            return to_money(price)
    return to_money(Decimal(instructor.hourly_rate or 0) * Decimal(duration_minutes) / Decimal(60))


def quote_cancellation(
    instructor,
    price: Decimal,
    start_time: datetime,
    cancelled_by: CancelledBy,
    now: Optional[datetime] = None,
) -> CancellationQuote:
    """
    Instructor cancellations are always free. Otherwise the charge depends
    on how far ahead of the lesson the cancellation happens:
    free window, late window, very late.
    """
    now = now or datetime.now(timezone.utc)
    hours_until = (start_time - now).total_seconds() / 3600
    price = to_money(price)

    if CancelledBy(cancelled_by) == CancelledBy.INSTRUCTOR:
        return CancellationQuote(
            fee=ZERO, refund=price, charge_percent=0, tier="instructor-cancelled",
            hours_until_lesson=round(max(hours_until, 0), 1),
        )

    if hours_until >= instructor.free_cancellation_hours:
        charge_percent, tier = 0, "free"
    elif hours_until >= instructor.late_cancellation_hours:
        charge_percent, tier = instructor.late_cancellation_charge_percent, "late"
    else:
        charge_percent, tier = instructor.very_late_cancellation_charge_percent, "very-late"

    fee = percent_of(price, charge_percent)
    return CancellationQuote(
        fee=fee,
        refund=to_money(price - fee),
        charge_percent=charge_percent,
        tier=tier,
        hours_until_lesson=round(max(hours_until, 0), 1),
    )


def no_show_fee(instructor, price: Decimal) -> Decimal:
    return percent_of(price, instructor.no_show_charge_percent)
