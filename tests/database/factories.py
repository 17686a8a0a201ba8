import datetime
import uuid
from decimal import Decimal

import factory
from factory.alchemy import SQLAlchemyModelFactory
from factory.faker import Faker

from drivebook_backend.database import models as db_models
from drivebook_backend.database.db_enums import (
    DayOfWeek,
    LessonPaymentStatus,
    LessonStatus,
    LessonType,
    LinkStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)

# Set by the `db_session` fixture in conftest.py before any factory is used.
test_db_session = None


def _in_three_days() -> datetime.datetime:
    moment = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=3)
    return moment.replace(minute=0, second=0, microsecond=0)


class BaseFactory(SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        # Objects are only added; tests flush the async session themselves.
        sqlalchemy_session_persistence = None

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        # This ensures the session is set before any factory is used
        if test_db_session is None:
            raise RuntimeError(
                "The 'test_db_session' global must be set by the db_session fixture before using factories."
            )
        cls._meta.sqlalchemy_session = test_db_session
        return super()._create(model_class, *args, **kwargs)


class InstructorFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    email = factory.Sequence(lambda n: f"instructor{n}@example.com")
    username = factory.Sequence(lambda n: f"instructor-{n}")
    first_name = Faker("first_name")
    last_name = Faker("last_name")
    timezone = "Europe/London"
    currency = "GBP"
    hourly_rate = Decimal("40.00")
    lesson_types = factory.LazyFunction(lambda: [
        {"type": LessonType.STANDARD.value, "price": 45.0, "duration": 60},
        {"type": LessonType.MOCK_TEST.value, "price": 60.0, "duration": 90},
    ])
    accepting_new_students = True
    show_availability = True
    free_cancellation_hours = 48
    late_cancellation_hours = 24
    late_cancellation_charge_percent = 50
    very_late_cancellation_charge_percent = 100
    no_show_charge_percent = 100
    allow_learner_cancellation = True

    class Meta:
        model = db_models.Instructors


class LearnerFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    email = factory.Sequence(lambda n: f"learner{n}@example.com")
    first_name = Faker("first_name")
    last_name = Faker("last_name")
    phone = Faker("phone_number")
    balance = Decimal("0.00")
    primary_instructor_id = None
    total_lessons = 0
    completed_lessons = 0

    class Meta:
        model = db_models.Learners


class WeeklyAvailabilityFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    day_of_week = DayOfWeek.MONDAY
    intervals = factory.LazyFunction(lambda: [{"start": "09:00", "end": "17:00"}])
    is_available = True

    class Meta:
        model = db_models.WeeklyAvailability


class AvailabilityOverrideFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    intervals = factory.LazyFunction(list)
    is_available = False
    reason = Faker("sentence", nb_words=3)

    class Meta:
        model = db_models.AvailabilityOverrides


class PackageFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    name = factory.Sequence(lambda n: f"Block of lessons #{n}")
    lesson_count = 3
    price = Decimal("100.00")
    lesson_duration = 60
    is_active = True

    class Meta:
        model = db_models.Packages


class LessonFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    start_time = factory.LazyFunction(_in_three_days)
    duration = 60
    end_time = factory.LazyAttribute(lambda o: o.start_time + datetime.timedelta(minutes=o.duration))
    lesson_type = LessonType.STANDARD
    status = LessonStatus.SCHEDULED
    payment_status = LessonPaymentStatus.PAID
    price = Decimal("45.00")
    pickup_location = Faker("street_address")

    class Meta:
        model = db_models.Lessons


class PaymentFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    type = PaymentType.TOP_UP
    method = PaymentMethod.CARD
    lesson_ids = factory.LazyFunction(list)
    amount = Decimal("50.00")
    currency = "GBP"
    status = PaymentStatus.PENDING
    stripe_payment_intent_id = factory.Sequence(lambda n: f"pi_factory_{n}")
    stripe_client_secret = factory.LazyAttribute(lambda o: f"{o.stripe_payment_intent_id}_secret")

    class Meta:
        model = db_models.Payments


class LinkFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    balance = Decimal("0.00")
    total_lessons = 0
    completed_lessons = 0
    cancelled_lessons = 0
    total_spent = Decimal("0.00")
    status = LinkStatus.ACTIVE

    class Meta:
        model = db_models.LearnerInstructorLinks
