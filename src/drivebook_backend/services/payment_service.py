'''
Payment records and their reconciliation against gateway events.

Every status change after creation is a conditional UPDATE whose WHERE
clause names the legal source statuses, so webhook and confirm calls can
race or repeat without double-crediting: whoever's UPDATE matches the row
owns the side effects, everyone else gets the stored record back.
'''
import datetime
from decimal import Decimal
from typing import Annotated, Optional, Sequence
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import (
    CancelledBy,
    LessonPaymentStatus,
    LessonStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    can_transition_lesson,
    sources_for_payment,
)
from ..common.config import settings
from ..common.exceptions import InternalInconsistencyError, InvalidStateError, NotFoundError
from ..common.logger import log
from ..core.money import to_money
from ..models import payment as payment_models
from .directory_service import LearnerDirectoryService
from .interfaces import LearnerDirectory, NotificationGateway, PaymentGateway
from .ledger_service import BalanceLedger
from .notification_service import get_notification_gateway
from .payment_gateway import get_payment_gateway

# Gateway event type -> handler name
WEBHOOK_HANDLERS = {
    "payment_intent.succeeded": "mark_succeeded",
    "payment_intent.payment_failed": "mark_failed",
    "payment_intent.canceled": "mark_cancelled",
    "charge.refunded": "mark_refunded",
}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class PaymentService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        ledger: Annotated[BalanceLedger, Depends(BalanceLedger)],
        learners: Annotated[LearnerDirectory, Depends(LearnerDirectoryService)],
        gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
        notifications: Annotated[NotificationGateway, Depends(get_notification_gateway)],
    ):
        self.db = db
        self.ledger = ledger
        self.learners = learners
        self.gateway = gateway
        self.notifications = notifications

    # --- Reads ---

    async def _reload(self, payment_id: UUID) -> db_models.Payments:
        await self.db.flush()
        stmt = (
            select(db_models.Payments)
            .filter(db_models.Payments.id == payment_id)
            .execution_options(populate_existing=True)
        )
        payment = (await self.db.execute(stmt)).scalars().first()
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found.", field="payment_id")
        return payment

    async def get_by_intent(self, intent_id: str) -> db_models.Payments:
        stmt = (
            select(db_models.Payments)
            .filter(db_models.Payments.stripe_payment_intent_id == intent_id)
            .execution_options(populate_existing=True)
        )
        payment = (await self.db.execute(stmt)).scalars().first()
        if payment is None:
            raise NotFoundError(f"No payment for intent {intent_id}.", field="intent_id")
        return payment

    async def list_payments(
        self,
        learner_id: Optional[UUID] = None,
        instructor_id: Optional[UUID] = None,
        status: Optional[PaymentStatus] = None,
    ) -> list[db_models.Payments]:
        stmt = select(db_models.Payments)
        if learner_id is not None:
            stmt = stmt.filter(db_models.Payments.learner_id == learner_id)
        if instructor_id is not None:
            stmt = stmt.filter(db_models.Payments.instructor_id == instructor_id)
        if status is not None:
            stmt = stmt.filter(db_models.Payments.status == status)
        stmt = stmt.order_by(db_models.Payments.created_at.desc())
        return list((await self.db.execute(stmt)).scalars().all())

    # --- Creation ---

    async def record_balance_payment(
        self,
        payment_type: PaymentType,
        learner_id: UUID,
        instructor_id: Optional[UUID],
        amount: Decimal,
        lesson_ids: Sequence[UUID] = (),
        package_id: Optional[UUID] = None,
        description: Optional[str] = None,
    ) -> db_models.Payments:
        """Audit record for money moved on the balance; born succeeded."""
        payment = db_models.Payments(
            type=payment_type,
            method=PaymentMethod.BALANCE,
            instructor_id=instructor_id,
            learner_id=learner_id,
            lesson_ids=[str(lesson_id) for lesson_id in lesson_ids],
            package_id=package_id,
            amount=to_money(amount),
            currency=settings.DEFAULT_CURRENCY,
            status=PaymentStatus.SUCCEEDED,
            description=description,
            paid_at=_utcnow(),
        )
        self.db.add(payment)
        await self.db.flush()
        return payment

    async def open_card_payment(
        self,
        payment_type: PaymentType,
        learner_id: UUID,
        amount: Decimal,
        instructor_id: Optional[UUID] = None,
        lesson_ids: Sequence[UUID] = (),
        currency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> db_models.Payments:
        """
        Opens a gateway intent and records the pending payment for it.
        A gateway failure leaves nothing behind on our side.
        """
        amount = to_money(amount)
        currency = (currency or settings.DEFAULT_CURRENCY).upper()
        metadata = {
            "type": payment_type.value,
            "learner_id": str(learner_id),
            "instructor_id": str(instructor_id) if instructor_id else "",
            "lesson_ids": ",".join(str(lesson_id) for lesson_id in lesson_ids),
        }
        intent = await self.gateway.create_intent(amount, currency, metadata)

        payment = db_models.Payments(
            type=payment_type,
            method=PaymentMethod.CARD,
            instructor_id=instructor_id,
            learner_id=learner_id,
            lesson_ids=[str(lesson_id) for lesson_id in lesson_ids],
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            stripe_payment_intent_id=intent.id,
            stripe_client_secret=intent.client_secret,
            description=description,
        )
        self.db.add(payment)
        await self.db.flush()
        log.info(f"Opened {payment_type.value} payment {payment.id} ({amount} {currency}) for intent {intent.id}.")
        return payment

    async def create_payment_intent(
        self,
        learner_id: UUID,
        intent_data: payment_models.PaymentIntentCreate,
    ) -> payment_models.PaymentIntentRead:
        """A balance top-up, or a card payment for the learner's unpaid lessons."""
        await self.learners.find_by_id(learner_id)

        lesson_ids = list(dict.fromkeys(intent_data.lesson_ids))
        instructor_id = intent_data.instructor_id
        if lesson_ids:
            stmt = select(db_models.Lessons).filter(
                db_models.Lessons.id.in_(lesson_ids),
                db_models.Lessons.learner_id == learner_id,
            )
            lessons = list((await self.db.execute(stmt)).scalars().all())
            if len(lessons) != len(lesson_ids):
                raise NotFoundError("One or more lessons were not found.", field="lesson_ids")
            for lesson in lessons:
                if lesson.payment_status != LessonPaymentStatus.PENDING:
                    raise InvalidStateError(f"Lesson {lesson.id} is already {lesson.payment_status.value}.", field="lesson_ids")
                if lesson.status in (LessonStatus.CANCELLED, LessonStatus.NO_SHOW):
                    raise InvalidStateError(f"Lesson {lesson.id} is {lesson.status.value}.", field="lesson_ids")
            amount = to_money(sum((lesson.price for lesson in lessons), Decimal("0")))
            payment_type = PaymentType.LESSON_PAYMENT
            instructor_id = instructor_id or lessons[0].instructor_id
        else:
            amount = to_money(intent_data.amount)
            payment_type = PaymentType.TOP_UP

        payment = await self.open_card_payment(
            payment_type,
            learner_id,
            amount,
            instructor_id=instructor_id,
            lesson_ids=lesson_ids,
            description=intent_data.description,
        )
        return payment_models.PaymentIntentRead(
            payment_id=payment.id,
            intent_id=payment.stripe_payment_intent_id,
            client_secret=payment.stripe_client_secret,
            amount=payment.amount,
            currency=payment.currency,
        )

    # --- Reconciliation ---

    async def _claim(self, intent_id: str, target: PaymentStatus, **values) -> bool:
        """Moves the payment to `target` if it is in a legal source status."""
        await self.db.flush()
        result = await self.db.execute(
            update(db_models.Payments)
            .where(
                db_models.Payments.stripe_payment_intent_id == intent_id,
                db_models.Payments.status.in_(sources_for_payment(target)),
            )
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_succeeded(self, intent_id: str) -> db_models.Payments:
        """
        Credits the learner exactly once per intent. If the credit fails the
        claim is undone so a later delivery can retry.
        """
        payment = await self.get_by_intent(intent_id)
        if not await self._claim(intent_id, PaymentStatus.SUCCEEDED, paid_at=_utcnow()):
            payment = await self._reload(payment.id)
            log.info(f"Payment {payment.id} ({intent_id}) already {payment.status.value}; nothing to credit.")
            return payment

        try:
            async with self.db.begin_nested():
                balance = await self.ledger.credit(payment.learner_id, payment.amount)
        except Exception as e:
            log.error(f"Credit failed for payment {payment.id} after claiming it: {e}", exc_info=True)
            await self.db.execute(
                update(db_models.Payments)
                .where(
                    db_models.Payments.id == payment.id,
                    db_models.Payments.status == PaymentStatus.SUCCEEDED,
                )
                .values(status=PaymentStatus.PENDING, paid_at=None)
                .execution_options(synchronize_session=False)
            )
            raise InternalInconsistencyError(
                f"Payment {payment.id} was confirmed but could not be credited; it has been reset to pending."
            ) from e

        log.info(f"Payment {payment.id} succeeded: credited {payment.amount}, balance now {balance}.")
        payment = await self._reload(payment.id)
        await self._settle_lessons(payment)

        try:
            learner = await self.learners.find_by_id(payment.learner_id)
            await self.notifications.send_receipt(learner.email, {
                "id": str(payment.id),
                "amount": str(payment.amount),
                "currency": payment.currency,
                "type": payment.type.value,
            })
        except Exception as e:
            log.error(f"Could not send receipt for payment {payment.id}: {e}", exc_info=True)
        return payment

    async def _linked_lessons(self, payment: db_models.Payments) -> list[db_models.Lessons]:
        lesson_ids = payment.linked_lesson_ids
        if not lesson_ids:
            return []
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.id.in_(lesson_ids),
            db_models.Lessons.learner_id == payment.learner_id,
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def _settle_lessons(self, payment: db_models.Payments) -> None:
        """
        Marks the lessons the payment was for as paid and confirms a public
        booking waiting on it. The credit already covers them, so nothing
        further moves on the balance. Failures here are logged; the credit
        stands.
        """
        try:
            async with self.db.begin_nested():
                for lesson in await self._linked_lessons(payment):
                    if lesson.payment_status == LessonPaymentStatus.PAID:
                        continue
                    if lesson.status in (LessonStatus.CANCELLED, LessonStatus.NO_SHOW):
                        log.warning(f"Lesson {lesson.id} is {lesson.status.value}; leaving payment {payment.id} as credit.")
                        continue

                    lesson.payment_status = LessonPaymentStatus.PAID
                    if (
                        payment.type == PaymentType.PUBLIC_BOOKING
                        and lesson.status == LessonStatus.PENDING_CONFIRMATION
                        and can_transition_lesson(lesson.status, LessonStatus.SCHEDULED)
                    ):
                        lesson.status = LessonStatus.SCHEDULED
                        log.info(f"Lesson {lesson.id} confirmed by payment {payment.id}.")
        except Exception as e:
            log.error(f"Failed to settle lessons for payment {payment.id}: {e}", exc_info=True)

    async def mark_failed(self, intent_id: str) -> db_models.Payments:
        """Only a pending payment can fail; anything later is ignored. No ledger effect."""
        payment = await self.get_by_intent(intent_id)
        claimed = await self._claim(intent_id, PaymentStatus.FAILED)
        payment = await self._reload(payment.id)
        if claimed:
            log.info(f"Payment {payment.id} ({intent_id}) failed at the gateway.")
        else:
            log.info(f"Ignoring failure for payment {payment.id}: already {payment.status.value}.")
        return payment

    async def mark_cancelled(self, intent_id: str) -> db_models.Payments:
        """Cancels the payment and any lesson still waiting on it."""
        payment = await self.get_by_intent(intent_id)
        if not await self._claim(intent_id, PaymentStatus.CANCELLED):
            payment = await self._reload(payment.id)
            log.info(f"Ignoring cancellation for payment {payment.id}: already {payment.status.value}.")
            return payment

        now = _utcnow()
        for lesson in await self._linked_lessons(payment):
            if lesson.status == LessonStatus.PENDING_CONFIRMATION:
                lesson.status = LessonStatus.CANCELLED
                lesson.cancelled_by = CancelledBy.SYSTEM
                lesson.cancellation_reason = "Payment was cancelled"
                lesson.cancelled_at = now
                log.info(f"Lesson {lesson.id} cancelled with its payment {payment.id}.")
        await self.db.flush()
        return await self._reload(payment.id)

    async def mark_refunded(self, intent_id: str) -> db_models.Payments:
        """
        Takes the refunded amount back off the balance, which may go
        negative if the credit has already been spent.
        """
        payment = await self.get_by_intent(intent_id)
        if not await self._claim(intent_id, PaymentStatus.REFUNDED, refunded_at=_utcnow()):
            payment = await self._reload(payment.id)
            log.info(f"Ignoring refund for payment {payment.id}: status is {payment.status.value}.")
            return payment

        try:
            async with self.db.begin_nested():
                debit = await self.ledger.debit(payment.learner_id, payment.amount, allow_negative=True)
        except Exception as e:
            log.error(f"Debit failed for refunded payment {payment.id}: {e}", exc_info=True)
            await self.db.execute(
                update(db_models.Payments)
                .where(
                    db_models.Payments.id == payment.id,
                    db_models.Payments.status == PaymentStatus.REFUNDED,
                )
                .values(status=PaymentStatus.SUCCEEDED, refunded_at=None)
                .execution_options(synchronize_session=False)
            )
            raise InternalInconsistencyError(
                f"Refund of payment {payment.id} could not be applied to the balance; it has been reset to succeeded."
            ) from e
        log.info(f"Payment {payment.id} refunded: debited {payment.amount}, balance now {debit.balance}.")

        try:
            async with self.db.begin_nested():
                for lesson in await self._linked_lessons(payment):
                    lesson.payment_status = LessonPaymentStatus.REFUNDED
        except Exception as e:
            log.error(f"Failed to mark lessons refunded for payment {payment.id}: {e}", exc_info=True)
        return await self._reload(payment.id)

    async def confirm_payment(self, intent_id: str) -> db_models.Payments:
        """
        Pull-side reconciliation: asks the gateway for the intent's status
        and applies it. Safe to call any number of times.
        """
        payment = await self.get_by_intent(intent_id)
        if payment.status in (PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED, PaymentStatus.CANCELLED):
            log.info(f"Payment {payment.id} is already {payment.status.value}; confirm is a no-op.")
            return payment

        intent = await self.gateway.retrieve_intent(intent_id)
        log.info(f"Gateway reports intent {intent_id} as '{intent.status}'.")
        if intent.status == "succeeded":
            return await self.mark_succeeded(intent_id)
        if intent.status == "canceled":
            return await self.mark_cancelled(intent_id)
        return payment

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> payment_models.WebhookAck:
        """
        Verifies the event signature first; nothing is read or written
        for an event that does not verify.
        """
        event = self.gateway.construct_event(payload, signature)
        log.info(f"Webhook event {event.id} received: {event.type} for intent {event.intent_id}.")

        handler_name = WEBHOOK_HANDLERS.get(event.type)
        if handler_name is None or not event.intent_id:
            log.info(f"Webhook event type {event.type} ignored.")
            return payment_models.WebhookAck(event_type=event.type)

        try:
            payment = await getattr(self, handler_name)(event.intent_id)
        except NotFoundError:
            # Not one of ours (e.g. created outside this service); ack so the gateway stops retrying.
            log.warning(f"Webhook for unknown intent {event.intent_id} acknowledged without action.")
            return payment_models.WebhookAck(event_type=event.type)

        return payment_models.WebhookAck(event_type=event.type, payment_id=payment.id, status=payment.status)
