'''
The unauthenticated booking surface on an instructor's public page.

Public bookings are paid by card before they are confirmed: the lesson is
created pending-confirmation and becomes scheduled when its payment succeeds.
'''
import datetime
from datetime import timedelta
from typing import Annotated
from zoneinfo import ZoneInfo

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import LessonPaymentStatus, LessonStatus, LinkEvent, PaymentType, UserRole
from ..common.config import settings
from ..common.exceptions import InvalidStateError, SlotConflictError
from ..common.logger import log
from ..core.pricing import resolve_lesson_price
from ..models import availability as availability_models
from ..models import booking as booking_models
from .availability_service import AvailabilityService
from .conflict_guard import ConflictGuard
from .directory_service import InstructorDirectoryService, LearnerDirectoryService
from .interfaces import InstructorDirectory, LearnerDirectory
from .link_service import LinkService
from .payment_service import PaymentService


class PublicBookingService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        availability: Annotated[AvailabilityService, Depends(AvailabilityService)],
        conflict_guard: Annotated[ConflictGuard, Depends(ConflictGuard)],
        links: Annotated[LinkService, Depends(LinkService)],
        payments: Annotated[PaymentService, Depends(PaymentService)],
        learners: Annotated[LearnerDirectory, Depends(LearnerDirectoryService)],
        instructors: Annotated[InstructorDirectory, Depends(InstructorDirectoryService)],
    ):
        self.db = db
        self.availability = availability
        self.conflict_guard = conflict_guard
        self.links = links
        self.payments = payments
        self.learners = learners
        self.instructors = instructors

    async def get_available_slots(
        self,
        username: str,
        query: availability_models.SlotQuery,
    ) -> list[availability_models.Slot]:
        instructor = await self.instructors.find_by_username(username)
        if not instructor.show_availability:
            raise InvalidStateError("Booking is not available for this instructor.")

        end_date = query.end_date
        horizon_end = query.start_date + timedelta(days=settings.AVAILABILITY_HORIZON_DAYS)
        if end_date > horizon_end:
            log.info(f"Slot query for '{username}' clamped from {end_date} to {horizon_end}.")
            end_date = horizon_end

        resolver = await self.availability.resolve_slots(instructor.id, query.start_date, end_date, query.duration)
        return list(resolver)

    async def list_packages(self, username: str) -> list[db_models.Packages]:
        instructor = await self.instructors.find_by_username(username)
        stmt = (
            select(db_models.Packages)
            .filter(db_models.Packages.instructor_id == instructor.id, db_models.Packages.is_active.is_(True))
            .order_by(db_models.Packages.price)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def book_lesson(
        self,
        username: str,
        booking_data: booking_models.PublicBookingRequest,
    ) -> booking_models.PublicBookingRead:
        """
        Holds an offered slot for a (possibly new) learner and opens the
        card payment for it. The returned client secret completes payment
        in the browser.
        """
        instructor = await self.instructors.find_by_username(username)
        if not instructor.accepting_new_students:
            raise InvalidStateError("Instructor is not accepting new students.")
        log.info(f"Public booking request for '{username}' on {booking_data.date} at {booking_data.start_time}.")

        requested = availability_models.Slot(
            date=booking_data.date,
            start_time=booking_data.start_time,
            end_time=availability_models.minutes_to_hhmm(
                availability_models.hhmm_to_minutes(booking_data.start_time) + booking_data.duration
            ),
        )
        resolver = await self.availability.resolve_slots(
            instructor.id, booking_data.date, booking_data.date, booking_data.duration
        )
        if requested not in set(resolver.slots_for_day(booking_data.date)):
            raise SlotConflictError("This time slot is no longer available.", field="start_time")

        hours, minutes = booking_data.start_time.split(":")
        start = datetime.datetime.combine(
            booking_data.date, datetime.time(int(hours), int(minutes)), tzinfo=ZoneInfo(instructor.timezone)
        )
        end = start + timedelta(minutes=booking_data.duration)

        learner = await self.learners.find_or_create_by_email(
            booking_data.learner_email,
            booking_data.learner_first_name,
            booking_data.learner_last_name,
            booking_data.learner_phone,
        )
        if await self.conflict_guard.has_conflict(learner.id, UserRole.LEARNER, start, end):
            raise SlotConflictError("You already have a lesson at this time.", field="start_time")

        price = resolve_lesson_price(instructor, booking_data.lesson_type, booking_data.duration)
        lesson = db_models.Lessons(
            instructor_id=instructor.id,
            learner_id=learner.id,
            start_time=start,
            end_time=end,
            duration=booking_data.duration,
            lesson_type=booking_data.lesson_type,
            status=LessonStatus.PENDING_CONFIRMATION,
            payment_status=LessonPaymentStatus.PENDING,
            price=price,
            pickup_location=booking_data.pickup_location,
            notes=booking_data.notes,
        )
        self.db.add(lesson)
        await self.db.flush()
        await self.links.record_lesson(learner.id, instructor.id, LinkEvent.BOOKED)

        payment = await self.payments.open_card_payment(
            PaymentType.PUBLIC_BOOKING,
            learner.id,
            price,
            instructor_id=instructor.id,
            lesson_ids=[lesson.id],
            currency=instructor.currency,
            description=f"Lesson with {instructor.full_name} on {start:%a %d %b %H:%M}",
        )
        log.info(f"Public booking: lesson {lesson.id} awaiting payment {payment.id}.")
        return booking_models.PublicBookingRead(
            lesson_id=lesson.id,
            payment_id=payment.id,
            client_secret=payment.stripe_client_secret,
            amount=payment.amount,
            currency=payment.currency,
            instructor_name=instructor.full_name,
        )
