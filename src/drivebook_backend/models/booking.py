'''
Pydantic models for lessons, packages, bookings and learner relationships.
'''
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field

from ..database.db_enums import (
    CancelledBy,
    LessonPaymentStatus,
    LessonStatus,
    LessonType,
    LinkStatus,
)
from ..common.config import settings

# --- 1. API Input Models (for POST/PUT) ---

class LessonBookingRequest(BaseModel):
    """
    Books one lesson against the learner's prepaid balance.
    A naive start_time is read in the instructor's timezone.
    """
    instructor_id: Optional[UUID] = None  # falls back to the learner's primary instructor
    start_time: datetime
    duration: int = Field(default=settings.DEFAULT_LESSON_DURATION_MINUTES, gt=0, le=480)
    lesson_type: LessonType = LessonType.STANDARD
    pickup_location: Optional[str] = None
    notes: Optional[str] = None


class PackageBookingRequest(BaseModel):
    package_id: UUID
    notes: Optional[str] = None


class CancelLessonRequest(BaseModel):
    reason: Optional[str] = None


class PublicBookingRequest(BaseModel):
    """
    A booking made from an instructor's public page by a (possibly new) learner.
    Paid for by card before the lesson is confirmed.
    """
    date: date
    start_time: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    duration: int = Field(default=settings.DEFAULT_LESSON_DURATION_MINUTES, gt=0, le=480)
    lesson_type: LessonType = LessonType.STANDARD
    learner_email: EmailStr
    learner_first_name: str
    learner_last_name: str
    learner_phone: Optional[str] = None
    pickup_location: Optional[str] = None
    notes: Optional[str] = None


# --- 2. API Output Models (for GET) ---

class LessonRead(BaseModel):
    id: UUID
    instructor_id: UUID
    learner_id: UUID
    start_time: datetime
    end_time: datetime
    duration: int
    lesson_type: LessonType
    status: LessonStatus
    payment_status: LessonPaymentStatus
    price: Decimal
    pickup_location: Optional[str] = None
    notes: Optional[str] = None
    package_id: Optional[UUID] = None
    package_lesson_number: Optional[int] = None
    package_total_lessons: Optional[int] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    cancellation_fee: Optional[Decimal] = None
    cancellation_refund_amount: Optional[Decimal] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def is_placeholder(self) -> bool:
        """Package lessons that have not been given a time yet."""
        return self.package_id is not None and self.status == LessonStatus.PENDING_CONFIRMATION


class PackageRead(BaseModel):
    id: UUID
    instructor_id: UUID
    name: str
    lesson_count: int
    price: Decimal
    lesson_duration: int

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def price_per_lesson(self) -> Decimal:
        return (self.price / self.lesson_count).quantize(Decimal("0.01"))


class PackageBookingRead(BaseModel):
    package_id: UUID
    lessons: list[LessonRead]
    total_price: Decimal
    remaining_balance: Decimal


class LessonBookingRead(BaseModel):
    lesson: LessonRead
    remaining_balance: Decimal


class PublicBookingRead(BaseModel):
    """What the public page needs to finish paying out-of-band."""
    lesson_id: UUID
    payment_id: UUID
    client_secret: str
    amount: Decimal
    currency: str
    instructor_name: str


class LinkRead(BaseModel):
    id: UUID
    learner_id: UUID
    instructor_id: UUID
    balance: Decimal
    total_lessons: int
    completed_lessons: int
    cancelled_lessons: int
    total_spent: Decimal
    status: LinkStatus
    started_at: datetime
    last_lesson_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LinkBalanceChange(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
