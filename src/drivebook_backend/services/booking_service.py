'''
Lesson and package bookings paid from the learner's balance, and the
lesson lifecycle after booking (cancel, complete, no-show).
'''
import datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import (
    CancelledBy,
    LessonPaymentStatus,
    LessonStatus,
    LessonType,
    LinkEvent,
    PaymentType,
    UserRole,
    can_transition_lesson,
)
from ..common.exceptions import (
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    SlotConflictError,
    UnauthorizedRoleError,
)
from ..common.logger import log
from ..core.money import ZERO, to_money
from ..core.pricing import CancellationQuote, no_show_fee, quote_cancellation, resolve_lesson_price
from ..models import booking as booking_models
from .conflict_guard import ConflictGuard
from .directory_service import InstructorDirectoryService, LearnerDirectoryService
from .interfaces import InstructorDirectory, LearnerDirectory, NotificationGateway
from .ledger_service import BalanceLedger
from .link_service import LinkService
from .notification_service import get_notification_gateway
from .payment_service import PaymentService

# Package lessons have no time until they are scheduled.
PLACEHOLDER_TIME = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def to_instructor_time(moment: datetime.datetime, timezone_name: str) -> datetime.datetime:
    """Naive datetimes are wall-clock time in the instructor's timezone."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=ZoneInfo(timezone_name))
    return moment


class BookingService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        ledger: Annotated[BalanceLedger, Depends(BalanceLedger)],
        conflict_guard: Annotated[ConflictGuard, Depends(ConflictGuard)],
        links: Annotated[LinkService, Depends(LinkService)],
        payments: Annotated[PaymentService, Depends(PaymentService)],
        learners: Annotated[LearnerDirectory, Depends(LearnerDirectoryService)],
        instructors: Annotated[InstructorDirectory, Depends(InstructorDirectoryService)],
        notifications: Annotated[NotificationGateway, Depends(get_notification_gateway)],
    ):
        self.db = db
        self.ledger = ledger
        self.conflict_guard = conflict_guard
        self.links = links
        self.payments = payments
        self.learners = learners
        self.instructors = instructors
        self.notifications = notifications

    # --- Bookings ---

    async def ensure_slot_free(
        self,
        instructor_id: UUID,
        learner_id: UUID,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> None:
        """Raises SlotConflictError if either party already has a lesson overlapping [start, end)."""
        if await self.conflict_guard.has_conflict(instructor_id, UserRole.INSTRUCTOR, start, end):
            raise SlotConflictError("This time slot conflicts with an existing lesson.", field="start_time")
        if await self.conflict_guard.has_conflict(learner_id, UserRole.LEARNER, start, end):
            raise SlotConflictError("You already have a lesson at this time.", field="start_time")

    async def book_lesson(
        self,
        learner_id: UUID,
        booking_data: booking_models.LessonBookingRequest,
    ) -> booking_models.LessonBookingRead:
        """
        Books a single lesson paid from the learner's global balance.
        Each step is a precondition for the next; the debit re-checks the
        balance in its WHERE clause.
        """
        log.info(f"Learner {learner_id} booking a {booking_data.duration} min lesson at {booking_data.start_time}.")
        learner = await self.learners.find_by_id(learner_id)

        instructor_id = booking_data.instructor_id or learner.primary_instructor_id
        if instructor_id is None:
            raise NotFoundError("No instructor specified. Please select an instructor first.", field="instructor_id")
        instructor = await self.instructors.find_by_id(instructor_id)

        # 1. Price
        price = resolve_lesson_price(instructor, booking_data.lesson_type, booking_data.duration)

        # 2. Balance
        balance = to_money(learner.balance)
        if balance < price:
            raise InsufficientBalanceError(
                f"Insufficient balance. Need {price} but you have {balance}. Please top up first.",
                field="balance",
            )

        # 3. Conflicts
        start = to_instructor_time(booking_data.start_time, instructor.timezone)
        end = start + datetime.timedelta(minutes=booking_data.duration)
        await self.ensure_slot_free(instructor.id, learner_id, start, end)

        # 4. Debit
        debit = await self.ledger.debit(learner_id, price)
        if not debit.succeeded:
            raise InsufficientBalanceError("Insufficient balance.", field="balance")

        # 5. Lesson
        lesson = db_models.Lessons(
            instructor_id=instructor.id,
            learner_id=learner_id,
            start_time=start,
            end_time=end,
            duration=booking_data.duration,
            lesson_type=booking_data.lesson_type,
            status=LessonStatus.SCHEDULED,
            payment_status=LessonPaymentStatus.PAID,
            price=price,
            pickup_location=booking_data.pickup_location,
            notes=booking_data.notes,
        )
        self.db.add(lesson)
        await self.db.flush()
        log.info(f"Lesson {lesson.id} booked for learner {learner_id} with instructor {instructor.id} at {price}.")

        # 6. Relationship counters (never the link balance)
        await self.links.record_lesson(learner_id, instructor.id, LinkEvent.BOOKED)

        # 7. Audit record
        try:
            async with self.db.begin_nested():
                await self.payments.record_balance_payment(
                    PaymentType.LESSON_BOOKING,
                    learner_id,
                    instructor.id,
                    price,
                    lesson_ids=[lesson.id],
                    description=f"Lesson with {instructor.full_name} on {start:%a %d %b %H:%M}",
                )
        except Exception as e:
            log.error(f"Could not record booking payment for lesson {lesson.id}: {e}", exc_info=True)

        await self._send_confirmation(learner.email, lesson)
        return booking_models.LessonBookingRead(
            lesson=booking_models.LessonRead.model_validate(lesson),
            remaining_balance=debit.balance,
        )

    async def book_package(
        self,
        learner_id: UUID,
        booking_data: booking_models.PackageBookingRequest,
    ) -> booking_models.PackageBookingRead:
        """
        Buys a package from the balance and creates one unscheduled
        placeholder lesson per package lesson.
        """
        log.info(f"Learner {learner_id} booking package {booking_data.package_id}.")
        learner = await self.learners.find_by_id(learner_id)

        package = await self.db.get(db_models.Packages, booking_data.package_id)
        if package is None or not package.is_active:
            raise NotFoundError("Package not found or no longer available.", field="package_id")
        instructor = await self.instructors.find_by_id(package.instructor_id)

        price = to_money(package.price)
        balance = to_money(learner.balance)
        if balance < price:
            raise InsufficientBalanceError(
                f"Insufficient balance. Need {price} but you have {balance}. Please top up first.",
                field="balance",
            )

        debit = await self.ledger.debit(learner_id, price)
        if not debit.succeeded:
            raise InsufficientBalanceError("Insufficient balance.", field="balance")

        # Any rounding remainder against the package total is not redistributed.
        price_per_lesson = to_money(price / package.lesson_count)
        lessons = []
        for number in range(1, package.lesson_count + 1):
            label = f"Package: {package.name} - Lesson {number}/{package.lesson_count}"
            lesson = db_models.Lessons(
                instructor_id=instructor.id,
                learner_id=learner_id,
                start_time=PLACEHOLDER_TIME,
                end_time=PLACEHOLDER_TIME,
                duration=package.lesson_duration,
                lesson_type=LessonType.STANDARD,
                status=LessonStatus.PENDING_CONFIRMATION,
                payment_status=LessonPaymentStatus.PAID,
                price=price_per_lesson,
                package_id=package.id,
                package_lesson_number=number,
                package_total_lessons=package.lesson_count,
                notes=f"{booking_data.notes} ({label})" if booking_data.notes else label,
            )
            self.db.add(lesson)
            lessons.append(lesson)
        await self.db.flush()
        log.info(f"Package {package.id} booked for learner {learner_id}: {len(lessons)} placeholder lessons at {price_per_lesson}.")

        await self.links.record_lesson(learner_id, instructor.id, LinkEvent.BOOKED)

        try:
            async with self.db.begin_nested():
                await self.payments.record_balance_payment(
                    PaymentType.PACKAGE_BOOKING,
                    learner_id,
                    instructor.id,
                    price,
                    lesson_ids=[lesson.id for lesson in lessons],
                    package_id=package.id,
                    description=f"Package: {package.name} ({package.lesson_count} lessons)",
                )
        except Exception as e:
            log.error(f"Could not record package payment for package {package.id}: {e}", exc_info=True)

        return booking_models.PackageBookingRead(
            package_id=package.id,
            lessons=[booking_models.LessonRead.model_validate(lesson) for lesson in lessons],
            total_price=price,
            remaining_balance=debit.balance,
        )

    async def _send_confirmation(self, email: str, lesson: db_models.Lessons) -> None:
        try:
            await self.notifications.send_booking_confirmation(email, {
                "id": str(lesson.id),
                "start_time": lesson.start_time.isoformat(),
                "duration": lesson.duration,
            })
        except Exception as e:
            log.error(f"Could not send booking confirmation for lesson {lesson.id}: {e}", exc_info=True)

    # --- Reads ---

    async def list_lessons(
        self,
        party_id: UUID,
        party_role: UserRole,
        status: Optional[LessonStatus] = None,
    ) -> list[db_models.Lessons]:
        column = db_models.Lessons.instructor_id if party_role == UserRole.INSTRUCTOR else db_models.Lessons.learner_id
        stmt = select(db_models.Lessons).filter(column == party_id)
        if status is not None:
            stmt = stmt.filter(db_models.Lessons.status == status)
        stmt = stmt.order_by(db_models.Lessons.start_time, db_models.Lessons.package_lesson_number)
        return list((await self.db.execute(stmt)).scalars().all())

    async def get_lesson_for(self, lesson_id: UUID, party_id: UUID, party_role: UserRole) -> db_models.Lessons:
        """The lesson, if the caller is its instructor or learner."""
        lesson = await self.db.get(db_models.Lessons, lesson_id)
        owner = None
        if lesson is not None:
            owner = lesson.instructor_id if party_role == UserRole.INSTRUCTOR else lesson.learner_id
        if lesson is None or owner != party_id:
            raise NotFoundError("Lesson not found.", field="lesson_id")
        return lesson

    # --- Lifecycle ---

    def _require_transition(self, lesson: db_models.Lessons, target: LessonStatus, action: str) -> None:
        if not can_transition_lesson(lesson.status, target):
            raise InvalidStateError(
                f"Only scheduled lessons can be {action}; this one is {lesson.status.value}.",
                field="status",
            )

    async def preview_cancellation(self, lesson_id: UUID, party_id: UUID, party_role: UserRole) -> CancellationQuote:
        lesson = await self.get_lesson_for(lesson_id, party_id, party_role)
        instructor = await self.instructors.find_by_id(lesson.instructor_id)
        return quote_cancellation(instructor, lesson.price, lesson.start_time, CancelledBy(party_role.value))

    async def cancel_lesson(
        self,
        lesson_id: UUID,
        party_id: UUID,
        party_role: UserRole,
        reason: Optional[str] = None,
    ) -> db_models.Lessons:
        """
        Cancels a scheduled lesson under the instructor's policy.

        A lesson paid in advance gets its price minus the fee back on the
        balance. An unpaid lesson is charged only the fee.
        """
        lesson = await self.get_lesson_for(lesson_id, party_id, party_role)
        if lesson.status != LessonStatus.SCHEDULED:
            raise InvalidStateError("Only scheduled lessons can be cancelled.", field="status")

        instructor = await self.instructors.find_by_id(lesson.instructor_id)
        cancelled_by = CancelledBy(party_role.value)
        if cancelled_by == CancelledBy.LEARNER and not instructor.allow_learner_cancellation:
            raise UnauthorizedRoleError(
                "Your instructor does not allow learner-initiated cancellations. Please contact your instructor directly."
            )

        quote = quote_cancellation(instructor, lesson.price, lesson.start_time, cancelled_by)
        was_paid = lesson.payment_status == LessonPaymentStatus.PAID
        returned = quote.refund if was_paid else ZERO

        lesson.status = LessonStatus.CANCELLED
        lesson.cancellation_reason = reason
        lesson.cancelled_by = cancelled_by
        lesson.cancellation_fee = quote.fee
        lesson.cancellation_refund_amount = returned
        lesson.cancelled_at = datetime.datetime.now(datetime.timezone.utc)
        if was_paid and quote.fee == ZERO:
            lesson.payment_status = LessonPaymentStatus.REFUNDED
        elif not was_paid and quote.fee == ZERO:
            lesson.payment_status = LessonPaymentStatus.WAIVED
        await self.db.flush()
        log.info(
            f"Lesson {lesson.id} cancelled by {cancelled_by.value} ({quote.tier}): "
            f"fee {quote.fee}, returned {returned}."
        )

        await self._apply_fee_and_refund(
            lesson, instructor, fee=quote.fee, refund=returned, was_paid=was_paid, label=f"cancelled by {cancelled_by.value}"
        )
        await self.links.record_lesson(lesson.learner_id, lesson.instructor_id, LinkEvent.CANCELLED)
        return lesson

    async def _apply_fee_and_refund(
        self,
        lesson: db_models.Lessons,
        instructor: db_models.Instructors,
        fee: Decimal,
        refund: Decimal,
        was_paid: bool,
        label: str,
    ) -> None:
        """
        Paid lessons: the fee is kept out of the prepaid price and the rest
        is credited back. Unpaid lessons: the fee is owed, so it is debited
        even if that takes the balance negative.
        """
        lesson_date = f"{lesson.start_time.astimezone(ZoneInfo(instructor.timezone)):%a %d %b}"
        if refund > ZERO:
            await self.ledger.credit(lesson.learner_id, refund)
        if fee > ZERO and not was_paid:
            await self.ledger.debit(lesson.learner_id, fee, allow_negative=True)

        try:
            async with self.db.begin_nested():
                if fee > ZERO:
                    await self.payments.record_balance_payment(
                        PaymentType.CANCELLATION_FEE, lesson.learner_id, lesson.instructor_id, fee,
                        lesson_ids=[lesson.id],
                        description=f"Cancellation fee - lesson on {lesson_date} ({label})",
                    )
                if refund > ZERO:
                    await self.payments.record_balance_payment(
                        PaymentType.REFUND, lesson.learner_id, lesson.instructor_id, refund,
                        lesson_ids=[lesson.id],
                        description=f"Cancellation refund - lesson on {lesson_date}",
                    )
        except Exception as e:
            log.error(f"Could not record fee/refund payments for lesson {lesson.id}: {e}", exc_info=True)

    async def complete_lesson(
        self,
        lesson_id: UUID,
        instructor_id: UUID,
        instructor_notes: Optional[str] = None,
    ) -> db_models.Lessons:
        """
        Marks a scheduled lesson completed. An unpaid lesson is charged now;
        the balance may go negative (the learner owes the instructor).
        """
        lesson = await self.get_lesson_for(lesson_id, instructor_id, UserRole.INSTRUCTOR)
        self._require_transition(lesson, LessonStatus.COMPLETED, "completed")

        lesson.status = LessonStatus.COMPLETED
        lesson.completed_at = datetime.datetime.now(datetime.timezone.utc)
        if instructor_notes:
            lesson.instructor_notes = instructor_notes
        await self.db.flush()

        if lesson.payment_status != LessonPaymentStatus.PAID:
            debit = await self.ledger.debit(lesson.learner_id, lesson.price, allow_negative=True)
            log.info(f"Charged {lesson.price} for completed unpaid lesson {lesson.id}; balance now {debit.balance}.")

        await self.links.record_lesson(lesson.learner_id, lesson.instructor_id, LinkEvent.COMPLETED, amount=lesson.price)
        log.info(f"Lesson {lesson.id} completed.")
        return lesson

    async def mark_no_show(self, lesson_id: UUID, instructor_id: UUID) -> db_models.Lessons:
        """The learner did not turn up; the instructor's no-show charge applies."""
        lesson = await self.get_lesson_for(lesson_id, instructor_id, UserRole.INSTRUCTOR)
        self._require_transition(lesson, LessonStatus.NO_SHOW, "marked as no-show")
        instructor = await self.instructors.find_by_id(lesson.instructor_id)

        fee = no_show_fee(instructor, lesson.price)
        was_paid = lesson.payment_status == LessonPaymentStatus.PAID
        refund = to_money(lesson.price - fee) if was_paid else ZERO

        lesson.status = LessonStatus.NO_SHOW
        lesson.cancellation_fee = fee
        lesson.cancellation_refund_amount = refund
        lesson.cancelled_by = CancelledBy.INSTRUCTOR
        lesson.cancellation_reason = "Learner did not attend"
        lesson.cancelled_at = datetime.datetime.now(datetime.timezone.utc)
        await self.db.flush()
        log.info(f"Lesson {lesson.id} marked no-show: fee {fee}, returned {refund}.")

        await self._apply_fee_and_refund(lesson, instructor, fee=fee, refund=refund, was_paid=was_paid, label="no-show")
        await self.links.record_lesson(lesson.learner_id, lesson.instructor_id, LinkEvent.CANCELLED)
        return lesson
