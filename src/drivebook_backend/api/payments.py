'''
API endpoints for card payments and the gateway webhook.
'''
from typing import Annotated, Any, List, Optional
from fastapi import APIRouter, Depends, Header, Query, Request, status

from ..database.db_enums import PaymentStatus, UserRole
from ..models import payment as payment_models
from ..services.security import Principal, get_current_learner, verify_token_and_get_principal
from ..services.payment_service import PaymentService

class PaymentsAPI:
    """
    Opening intents, pull-side confirmation and push-side (webhook)
    reconciliation. Both confirmation paths converge on the same
    exactly-once state change.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/payments",
            tags=["Payments"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_payments,
                methods=["GET"],
                response_model=List[payment_models.PaymentRead])

        self.router.add_api_route(
                "/create-intent",
                self.create_intent,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=payment_models.PaymentIntentRead)

        self.router.add_api_route(
                "/confirm/{intent_id}",
                self.confirm_payment,
                methods=["POST"],
                response_model=payment_models.PaymentRead)

        self.router.add_api_route(
                "/webhook",
                self.webhook,
                methods=["POST"],
                response_model=payment_models.WebhookAck)

    async def list_payments(
        self,
        current_user: Annotated[Principal, Depends(verify_token_and_get_principal)],
        payment_service: Annotated[PaymentService, Depends(PaymentService)],
        payment_status: Annotated[Optional[PaymentStatus], Query(alias="status")] = None,
    ) -> List[Any]:
        if current_user.role == UserRole.INSTRUCTOR:
            return await payment_service.list_payments(instructor_id=current_user.id, status=payment_status)
        return await payment_service.list_payments(learner_id=current_user.id, status=payment_status)

    async def create_intent(
        self,
        intent_data: payment_models.PaymentIntentCreate,
        current_user: Annotated[Principal, Depends(get_current_learner)],
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ) -> Any:
        """
        Opens a card payment for a top-up or for unpaid lessons.
        """
        return await payment_service.create_payment_intent(current_user.id, intent_data)

    async def confirm_payment(
        self,
        intent_id: str,
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ) -> Any:
        """
        Called by the client after the card step. Unauthenticated so that
        public bookings can confirm; the gateway's answer is the only input.
        """
        return await payment_service.confirm_payment(intent_id)

    async def webhook(
        self,
        request: Request,
        payment_service: Annotated[PaymentService, Depends(PaymentService)],
        stripe_signature: Annotated[Optional[str], Header()] = None,
    ) -> Any:
        payload = await request.body()
        return await payment_service.handle_webhook(payload, stripe_signature)

# Instantiate the class and export its router
payments_api = PaymentsAPI()
router = payments_api.router
