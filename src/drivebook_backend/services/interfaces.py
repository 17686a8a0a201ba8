"""
Abstract interfaces for the collaborators the booking and payment services use.

Services depend on these instead of on each other's concrete classes, which
keeps the import graph acyclic and lets tests swap in mocks.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from ..database import models as db_models
from ..models.payment import GatewayEvent, GatewayIntent


class LearnerDirectory(ABC):
    """Read access to learners plus the two writes booking needs."""

    @abstractmethod
    async def find_by_id(self, learner_id: UUID) -> db_models.Learners:
        """
        Returns the learner.

        Raises:
            NotFoundError: no learner has this id
        """
        pass

    @abstractmethod
    async def assign_primary_instructor(self, learner_id: UUID, instructor_id: UUID) -> None:
        pass

    @abstractmethod
    async def find_or_create_by_email(
        self,
        email: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
    ) -> db_models.Learners:
        """Emails are matched case-insensitively and stored lower-cased."""
        pass


class InstructorDirectory(ABC):

    @abstractmethod
    async def find_by_id(self, instructor_id: UUID) -> db_models.Instructors:
        """
        Raises:
            NotFoundError: no instructor has this id
        """
        pass

    @abstractmethod
    async def find_by_username(self, username: str) -> db_models.Instructors:
        """
        Raises:
            NotFoundError: no instructor has this username
        """
        pass


class NotificationGateway(ABC):
    """
    Outbound learner notifications. Fire-and-forget: implementations log
    their own failures and never raise into the caller.
    """

    @abstractmethod
    async def send_receipt(self, learner_email: str, payment: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def send_booking_confirmation(self, learner_email: str, lesson: dict[str, Any]) -> None:
        pass


class PaymentGateway(ABC):
    """
    The card-payment provider. Every method raises ExternalGatewayError
    (or WebhookSignatureError) instead of provider-specific exceptions.
    """

    @abstractmethod
    async def create_intent(self, amount: Decimal, currency: str, metadata: dict[str, str]) -> GatewayIntent:
        """
        Opens an intent for `amount` in major units (pounds).

        Returns:
            GatewayIntent carrying the intent id and the client secret
        """
        pass

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        pass

    @abstractmethod
    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        """
        Verifies the signature and parses an inbound event.

        Raises:
            WebhookSignatureError: the signature is missing or does not verify
        """
        pass
