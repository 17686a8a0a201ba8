'''
Stripe implementation of the payment-gateway boundary.

The stripe SDK is synchronous, so every network call runs in a worker
thread to keep the event loop free.
'''
import asyncio
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

import stripe

from ..common.config import settings
from ..common.exceptions import ExternalGatewayError, WebhookSignatureError
from ..common.logger import log
from ..models.payment import GatewayEvent, GatewayIntent
from .interfaces import PaymentGateway


def to_minor_units(amount: Decimal) -> int:
    """£12.34 -> 1234"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _field(obj: Any, key: str) -> Any:
    try:
        return obj[key]
    except KeyError:
        return None


def _intent_from_stripe(intent: Any) -> GatewayIntent:
    metadata = _field(intent, "metadata")
    return GatewayIntent(
        id=intent["id"],
        status=intent["status"],
        client_secret=_field(intent, "client_secret"),
        amount=_field(intent, "amount"),
        currency=_field(intent, "currency"),
        metadata=dict(metadata) if metadata else {},
    )


class StripeGateway(PaymentGateway):
    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

    def _require_key(self) -> str:
        if not self.secret_key:
            log.error("Stripe secret key is not configured.")
            raise ExternalGatewayError("Payment gateway is not configured.")
        return self.secret_key

    async def create_intent(self, amount: Decimal, currency: str, metadata: dict[str, str]) -> GatewayIntent:
        api_key = self._require_key()
        log.info(f"Creating Stripe payment intent for {amount} {currency}.")
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=to_minor_units(amount),
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                api_key=api_key,
            )
        except stripe.StripeError as e:
            log.error(f"Stripe rejected payment intent creation: {e}", exc_info=True)
            raise ExternalGatewayError(f"Failed to create payment intent: {e.user_message or str(e)}")
        return _intent_from_stripe(intent)

    async def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        api_key = self._require_key()
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, intent_id, api_key=api_key)
        except stripe.StripeError as e:
            log.error(f"Failed to retrieve Stripe intent {intent_id}: {e}", exc_info=True)
            raise ExternalGatewayError(f"Failed to retrieve payment intent {intent_id}.")
        return _intent_from_stripe(intent)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        if not self.webhook_secret:
            log.error("Stripe webhook secret is not configured.")
            raise ExternalGatewayError("Webhook secret not configured.")
        if not signature:
            log.warning("Webhook rejected: missing Stripe-Signature header.")
            raise WebhookSignatureError("Missing webhook signature.")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            log.warning(f"Invalid webhook signature: {e}")
            raise WebhookSignatureError("Invalid webhook signature.")
        except ValueError as e:
            log.warning(f"Invalid webhook payload: {e}")
            raise WebhookSignatureError("Invalid webhook payload.")

        data_object = event["data"]["object"]
        key = "payment_intent" if event["type"].startswith("charge.") else "id"
        intent_id = _field(data_object, key)
        return GatewayEvent(id=event["id"], type=event["type"], intent_id=intent_id)


def get_payment_gateway() -> PaymentGateway:
    return StripeGateway()
