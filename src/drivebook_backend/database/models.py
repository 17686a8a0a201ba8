from typing import Optional

from sqlalchemy import Boolean, Date, Enum, ForeignKeyConstraint, Index, Integer, Numeric, PrimaryKeyConstraint, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

from .db_enums import (
    CancelledBy,
    DayOfWeek,
    LessonPaymentStatus,
    LessonStatus,
    LessonType,
    LinkStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from .types import UTCDateTime, json_type


class Base(DeclarativeBase):
    pass


def _enum(enum_cls, name: str) -> Enum:
    """Stores the member *value* ("pending-confirmation"), not its name."""
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


MONEY = Numeric(10, 2)


class Instructors(Base):
    __tablename__ = 'instructors'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='instructors_pkey'),
        UniqueConstraint('username', name='instructors_username_key'),
        UniqueConstraint('email', name='instructors_email_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text)
    first_name: Mapped[str] = mapped_column(Text)
    last_name: Mapped[str] = mapped_column(Text)
    username: Mapped[str] = mapped_column(String(64))
    timezone: Mapped[str] = mapped_column(Text, server_default=text("'Europe/London'"), default='Europe/London')
    currency: Mapped[str] = mapped_column(String(3), server_default=text("'GBP'"), default='GBP')
    hourly_rate: Mapped[decimal.Decimal] = mapped_column(MONEY, server_default=text('0'), default=decimal.Decimal('0'))
    # [{"type": "standard", "price": 45.0, "duration": 60}, ...]
    lesson_types: Mapped[list] = mapped_column(json_type, default=list)
    accepting_new_students: Mapped[bool] = mapped_column(Boolean, server_default=text('true'), default=True)
    show_availability: Mapped[bool] = mapped_column(Boolean, server_default=text('true'), default=True)

    # Cancellation policy
    free_cancellation_hours: Mapped[int] = mapped_column(Integer, server_default=text('48'), default=48)
    late_cancellation_hours: Mapped[int] = mapped_column(Integer, server_default=text('24'), default=24)
    late_cancellation_charge_percent: Mapped[int] = mapped_column(Integer, server_default=text('50'), default=50)
    very_late_cancellation_charge_percent: Mapped[int] = mapped_column(Integer, server_default=text('100'), default=100)
    no_show_charge_percent: Mapped[int] = mapped_column(Integer, server_default=text('100'), default=100)
    allow_learner_cancellation: Mapped[bool] = mapped_column(Boolean, server_default=text('true'), default=True)

    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=_utcnow)

    weekly_availability: Mapped[list['WeeklyAvailability']] = relationship(
        'WeeklyAvailability', back_populates='instructor', cascade='all, delete-orphan'
    )
    availability_overrides: Mapped[list['AvailabilityOverrides']] = relationship(
        'AvailabilityOverrides', back_populates='instructor', cascade='all, delete-orphan'
    )
    lessons: Mapped[list['Lessons']] = relationship('Lessons', back_populates='instructor')
    packages: Mapped[list['Packages']] = relationship('Packages', back_populates='instructor')

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Learners(Base):
    __tablename__ = 'learners'
    __table_args__ = (
        ForeignKeyConstraint(['primary_instructor_id'], ['instructors.id'], ondelete='SET NULL', name='learners_primary_instructor_id_fkey'),
        PrimaryKeyConstraint('id', name='learners_pkey'),
        UniqueConstraint('email', name='learners_email_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text)
    first_name: Mapped[str] = mapped_column(Text)
    last_name: Mapped[str] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    # Only ever written through BalanceLedger.
    balance: Mapped[decimal.Decimal] = mapped_column(MONEY, server_default=text('0'), default=decimal.Decimal('0'))
    primary_instructor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    total_lessons: Mapped[int] = mapped_column(Integer, server_default=text('0'), default=0)
    completed_lessons: Mapped[int] = mapped_column(Integer, server_default=text('0'), default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=_utcnow)

    primary_instructor: Mapped[Optional['Instructors']] = relationship('Instructors')
    lessons: Mapped[list['Lessons']] = relationship('Lessons', back_populates='learner')

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class WeeklyAvailability(Base):
    __tablename__ = 'weekly_availability'
    __table_args__ = (
        ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE', name='weekly_availability_instructor_id_fkey'),
        PrimaryKeyConstraint('id', name='weekly_availability_pkey'),
        UniqueConstraint('instructor_id', 'day_of_week', name='weekly_availability_instructor_day_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    instructor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    day_of_week: Mapped[DayOfWeek] = mapped_column(_enum(DayOfWeek, 'day_of_week_enum'))
    # [{"start": "09:00", "end": "17:00"}, ...]
    intervals: Mapped[list] = mapped_column(json_type, default=list)
    is_available: Mapped[bool] = mapped_column(Boolean, server_default=text('true'), default=True)

    instructor: Mapped['Instructors'] = relationship('Instructors', back_populates='weekly_availability')


class AvailabilityOverrides(Base):
    __tablename__ = 'availability_overrides'
    __table_args__ = (
        ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE', name='availability_overrides_instructor_id_fkey'),
        PrimaryKeyConstraint('id', name='availability_overrides_pkey'),
        UniqueConstraint('instructor_id', 'date', name='availability_overrides_instructor_date_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    instructor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    date: Mapped[datetime.date] = mapped_column(Date)
    intervals: Mapped[list] = mapped_column(json_type, default=list)
    is_available: Mapped[bool] = mapped_column(Boolean, server_default=text('false'), default=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)

    instructor: Mapped['Instructors'] = relationship('Instructors', back_populates='availability_overrides')


class Packages(Base):
    __tablename__ = 'packages'
    __table_args__ = (
        ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE', name='packages_instructor_id_fkey'),
        PrimaryKeyConstraint('id', name='packages_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    instructor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    name: Mapped[str] = mapped_column(Text)
    lesson_count: Mapped[int] = mapped_column(Integer)
    price: Mapped[decimal.Decimal] = mapped_column(MONEY)
    lesson_duration: Mapped[int] = mapped_column(Integer, server_default=text('60'), default=60)
    is_active: Mapped[bool] = mapped_column(Boolean, server_default=text('true'), default=True)

    instructor: Mapped['Instructors'] = relationship('Instructors', back_populates='packages')


class Lessons(Base):
    __tablename__ = 'lessons'
    __table_args__ = (
        ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE', name='lessons_instructor_id_fkey'),
        ForeignKeyConstraint(['learner_id'], ['learners.id'], ondelete='CASCADE', name='lessons_learner_id_fkey'),
        ForeignKeyConstraint(['package_id'], ['packages.id'], ondelete='SET NULL', name='lessons_package_id_fkey'),
        PrimaryKeyConstraint('id', name='lessons_pkey'),
        Index('ix_lessons_instructor_start', 'instructor_id', 'start_time'),
        Index('ix_lessons_learner_start', 'learner_id', 'start_time'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    instructor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    learner_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    start_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    end_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    duration: Mapped[int] = mapped_column(Integer)
    lesson_type: Mapped[LessonType] = mapped_column(_enum(LessonType, 'lesson_type_enum'), default=LessonType.STANDARD)
    status: Mapped[LessonStatus] = mapped_column(_enum(LessonStatus, 'lesson_status_enum'), default=LessonStatus.SCHEDULED)
    payment_status: Mapped[LessonPaymentStatus] = mapped_column(
        _enum(LessonPaymentStatus, 'lesson_payment_status_enum'), default=LessonPaymentStatus.PENDING
    )
    price: Mapped[decimal.Decimal] = mapped_column(MONEY)
    pickup_location: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    instructor_notes: Mapped[Optional[str]] = mapped_column(Text)

    package_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    package_lesson_number: Mapped[Optional[int]] = mapped_column(Integer)
    package_total_lessons: Mapped[Optional[int]] = mapped_column(Integer)

    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_by: Mapped[Optional[CancelledBy]] = mapped_column(_enum(CancelledBy, 'cancelled_by_enum'))
    cancellation_fee: Mapped[Optional[decimal.Decimal]] = mapped_column(MONEY)
    cancellation_refund_amount: Mapped[Optional[decimal.Decimal]] = mapped_column(MONEY)
    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    completed_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=_utcnow)

    instructor: Mapped['Instructors'] = relationship('Instructors', back_populates='lessons')
    learner: Mapped['Learners'] = relationship('Learners', back_populates='lessons')
    package: Mapped[Optional['Packages']] = relationship('Packages')


class Payments(Base):
    __tablename__ = 'payments'
    __table_args__ = (
        ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='SET NULL', name='payments_instructor_id_fkey'),
        ForeignKeyConstraint(['learner_id'], ['learners.id'], ondelete='CASCADE', name='payments_learner_id_fkey'),
        ForeignKeyConstraint(['package_id'], ['packages.id'], ondelete='SET NULL', name='payments_package_id_fkey'),
        PrimaryKeyConstraint('id', name='payments_pkey'),
        UniqueConstraint('stripe_payment_intent_id', name='payments_stripe_payment_intent_id_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[PaymentType] = mapped_column(_enum(PaymentType, 'payment_type_enum'))
    method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod, 'payment_method_enum'), default=PaymentMethod.CARD)
    instructor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    learner_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    # Stored as strings; a payment usually covers one lesson.
    lesson_ids: Mapped[list] = mapped_column(json_type, default=list)
    package_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    amount: Mapped[decimal.Decimal] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(3), server_default=text("'GBP'"), default='GBP')
    status: Mapped[PaymentStatus] = mapped_column(_enum(PaymentStatus, 'payment_status_enum'), default=PaymentStatus.PENDING)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(Text)
    stripe_client_secret: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    paid_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    refunded_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=_utcnow)

    @property
    def linked_lesson_ids(self) -> list[uuid.UUID]:
        return [uuid.UUID(str(lesson_id)) for lesson_id in (self.lesson_ids or [])]


class LearnerInstructorLinks(Base):
    __tablename__ = 'learner_instructor_links'
    __table_args__ = (
        ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE', name='links_instructor_id_fkey'),
        ForeignKeyConstraint(['learner_id'], ['learners.id'], ondelete='CASCADE', name='links_learner_id_fkey'),
        PrimaryKeyConstraint('id', name='learner_instructor_links_pkey'),
        UniqueConstraint('learner_id', 'instructor_id', name='learner_instructor_links_pair_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    instructor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    # Per-instructor prepaid credit. Independent of Learners.balance.
    balance: Mapped[decimal.Decimal] = mapped_column(MONEY, server_default=text('0'), default=decimal.Decimal('0'))
    total_lessons: Mapped[int] = mapped_column(Integer, server_default=text('0'), default=0)
    completed_lessons: Mapped[int] = mapped_column(Integer, server_default=text('0'), default=0)
    cancelled_lessons: Mapped[int] = mapped_column(Integer, server_default=text('0'), default=0)
    total_spent: Mapped[decimal.Decimal] = mapped_column(MONEY, server_default=text('0'), default=decimal.Decimal('0'))
    status: Mapped[LinkStatus] = mapped_column(_enum(LinkStatus, 'link_status_enum'), default=LinkStatus.ACTIVE)
    started_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=_utcnow)
    last_lesson_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    ended_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
