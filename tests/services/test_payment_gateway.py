import hashlib
import hmac
import json
import time
import pytest
import stripe
from decimal import Decimal

from drivebook_backend.common.exceptions import ExternalGatewayError, WebhookSignatureError
from drivebook_backend.services.payment_gateway import StripeGateway, to_minor_units

WEBHOOK_SECRET = "whsec_unit_test"


def signed(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """A Stripe-Signature header for `payload`, computed the way Stripe does."""
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event_payload(event_type: str, data_object: dict) -> bytes:
    return json.dumps({
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }).encode()


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway(secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)


class TestMinorUnits:

    def test_pounds_to_pence(self):
        assert to_minor_units(Decimal("45.00")) == 4500
        assert to_minor_units(Decimal("12.345")) == 1235
        assert to_minor_units(Decimal("0.01")) == 1


class TestConstructEvent:

    def test_valid_intent_event(self, gateway: StripeGateway):
        print("\n--- Testing a correctly signed webhook ---")
        payload = event_payload("payment_intent.succeeded", {"id": "pi_123", "object": "payment_intent"})

        event = gateway.construct_event(payload, signed(payload))

        assert event.type == "payment_intent.succeeded"
        assert event.intent_id == "pi_123"

    def test_charge_event_points_at_its_intent(self, gateway: StripeGateway):
        payload = event_payload("charge.refunded", {"id": "ch_1", "object": "charge", "payment_intent": "pi_456"})
        event = gateway.construct_event(payload, signed(payload))
        assert event.intent_id == "pi_456"

    def test_missing_signature(self, gateway: StripeGateway):
        payload = event_payload("payment_intent.succeeded", {"id": "pi_123"})
        with pytest.raises(WebhookSignatureError):
            gateway.construct_event(payload, None)

    def test_forged_signature(self, gateway: StripeGateway):
        print("\n--- Testing a webhook signed with the wrong secret ---")
        payload = event_payload("payment_intent.succeeded", {"id": "pi_123"})
        with pytest.raises(WebhookSignatureError):
            gateway.construct_event(payload, signed(payload, secret="whsec_attacker"))

    def test_tampered_payload(self, gateway: StripeGateway):
        payload = event_payload("payment_intent.succeeded", {"id": "pi_123"})
        header = signed(payload)
        tampered = payload.replace(b"pi_123", b"pi_999")
        with pytest.raises(WebhookSignatureError):
            gateway.construct_event(tampered, header)

    def test_unconfigured_secret(self):
        gateway = StripeGateway(secret_key="sk_test_123", webhook_secret=None)
        gateway.webhook_secret = None
        with pytest.raises(ExternalGatewayError):
            gateway.construct_event(b"{}", "t=1,v1=abc")


@pytest.mark.anyio
class TestIntents:

    async def test_create_intent_sends_minor_units(self, gateway: StripeGateway, mocker):
        create = mocker.patch(
            "stripe.PaymentIntent.create",
            return_value={"id": "pi_new", "status": "requires_payment_method", "client_secret": "pi_new_secret", "amount": 4500},
        )

        intent = await gateway.create_intent(Decimal("45.00"), "GBP", {"type": "top-up"})

        assert intent.id == "pi_new"
        assert intent.client_secret == "pi_new_secret"
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 4500
        assert kwargs["currency"] == "gbp"
        assert kwargs["metadata"] == {"type": "top-up"}
        assert kwargs["api_key"] == "sk_test_123"

    async def test_stripe_errors_become_gateway_errors(self, gateway: StripeGateway, mocker):
        mocker.patch("stripe.PaymentIntent.create", side_effect=stripe.StripeError("card network unavailable"))
        with pytest.raises(ExternalGatewayError):
            await gateway.create_intent(Decimal("45.00"), "GBP", {})

    async def test_retrieve_intent(self, gateway: StripeGateway, mocker):
        mocker.patch("stripe.PaymentIntent.retrieve", return_value={"id": "pi_1", "status": "succeeded"})
        intent = await gateway.retrieve_intent("pi_1")
        assert intent.status == "succeeded"

    async def test_missing_secret_key(self, mocker):
        gateway = StripeGateway(secret_key=None, webhook_secret=WEBHOOK_SECRET)
        gateway.secret_key = None
        create = mocker.patch("stripe.PaymentIntent.create")
        with pytest.raises(ExternalGatewayError):
            await gateway.create_intent(Decimal("10.00"), "GBP", {})
        create.assert_not_called()
