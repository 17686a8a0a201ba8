'''
Learner notifications. Delivery itself (email templates, SMTP) lives outside
this service; here the messages are logged so they can be picked up by the
mail worker.
'''
from typing import Any

from ..common.logger import log
from .interfaces import NotificationGateway


class LogNotificationGateway(NotificationGateway):
    """
    Writes each notification to the application log. Never raises.
    """
    async def send_receipt(self, learner_email: str, payment: dict[str, Any]) -> None:
        try:
            log.info(
                f"Receipt queued for {learner_email}: "
                f"{payment.get('amount')} {payment.get('currency')} ({payment.get('type')}), payment {payment.get('id')}"
            )
        except Exception as e:
            log.error(f"Failed to queue receipt for {learner_email}: {e}", exc_info=True)

    async def send_booking_confirmation(self, learner_email: str, lesson: dict[str, Any]) -> None:
        try:
            log.info(
                f"Booking confirmation queued for {learner_email}: lesson {lesson.get('id')} "
                f"at {lesson.get('start_time')} ({lesson.get('duration')} min)"
            )
        except Exception as e:
            log.error(f"Failed to queue booking confirmation for {learner_email}: {e}", exc_info=True)


def get_notification_gateway() -> NotificationGateway:
    return LogNotificationGateway()
