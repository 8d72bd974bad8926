from collections import namedtuple
from decimal import Decimal, InvalidOperation

import stripe
from flask import current_app

from billing.errors import GatewayError, InvalidAmountError, PaymentRequestError
from billing.pricing import to_minor_units

# metadata is what we attached at creation (user_id, booking_id)
PaymentIntentInfo = namedtuple(
    "PaymentIntentInfo", ["id", "amount", "currency", "status", "metadata"], defaults=(None,)
)
CreatedIntent = namedtuple("CreatedIntent", ["client_secret", "payment_intent_id", "amount"])


def parse_amount(amount, max_amount) -> Decimal:
    """Validate a major-unit amount coming from a caller."""
    if amount is None or isinstance(amount, bool):
        raise InvalidAmountError()
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError()
    if not value.is_finite() or value <= 0 or to_minor_units(value) <= 0:
        raise InvalidAmountError()
    if max_amount is not None and value > Decimal(str(max_amount)):
        raise InvalidAmountError("Amount exceeds maximum allowed")
    return value


def _plain_metadata(value) -> dict:
    if not value:
        return {}
    return {key: value[key] for key in value.keys()}


class StripeGateway:
    """
    Thin adapter over Stripe PaymentIntents.

    Only two calls leave the process: create (before the client pays) and
    retrieve (server-side verification at confirm time). Each gateway owns its
    StripeClient, so timeout and retry settings never leak into the global
    stripe module. Transport and API failures surface as GatewayError so the
    caller's unit of work rolls back.
    """

    def __init__(self, api_key, timeout=10, max_retries=0, max_amount=None):
        self.max_amount = max_amount
        self.client = None
        if api_key:
            self.client = stripe.StripeClient(
                api_key,
                http_client=stripe.new_default_http_client(timeout=timeout),
                max_network_retries=max_retries,
            )

    def _require_client(self):
        if self.client is None:
            current_app.logger.error("Stripe secret key missing (STRIPE_SECRET_KEY)")
            raise GatewayError("Payment provider not configured", retryable=False)
        return self.client

    def create_intent(self, amount, currency: str, metadata=None) -> CreatedIntent:
        value = parse_amount(amount, self.max_amount)
        client = self._require_client()

        params = {
            "amount": to_minor_units(value),
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
        }
        if metadata:
            params["metadata"] = {key: str(val) for key, val in metadata.items()}

        try:
            intent = client.payment_intents.create(params=params)
        except (stripe.CardError, stripe.InvalidRequestError) as exc:
            current_app.logger.warning("Stripe rejected payment intent: %s", exc)
            raise PaymentRequestError(getattr(exc, "user_message", None) or "Invalid payment request")
        except stripe.StripeError as exc:
            current_app.logger.error("Stripe create payment intent failed: %s", exc)
            raise GatewayError()

        return CreatedIntent(
            client_secret=intent["client_secret"],
            payment_intent_id=intent["id"],
            amount=intent["amount"],
        )

    def retrieve_intent(self, intent_id: str) -> PaymentIntentInfo:
        client = self._require_client()
        try:
            intent = client.payment_intents.retrieve(intent_id)
        except stripe.InvalidRequestError as exc:
            current_app.logger.warning("Stripe could not find payment intent %s: %s", intent_id, exc)
            raise PaymentRequestError("Payment not found")
        except stripe.StripeError as exc:
            current_app.logger.error("Stripe retrieve payment intent failed: %s", exc)
            raise GatewayError()

        return PaymentIntentInfo(
            id=intent["id"],
            amount=int(intent["amount"]),
            currency=(intent["currency"] or "").lower(),
            status=intent["status"],
            metadata=_plain_metadata(intent.get("metadata")),
        )


def init_gateway(app, gateway=None):
    if gateway is None:
        gateway = StripeGateway(
            api_key=app.config.get("STRIPE_SECRET_KEY"),
            timeout=app.config.get("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10),
            max_retries=app.config.get("PAYMENT_GATEWAY_MAX_RETRIES", 0),
            max_amount=app.config.get("PAYMENT_MAX_AMOUNT"),
        )
    app.extensions["payment_gateway"] = gateway
    return gateway


def get_gateway():
    return current_app.extensions["payment_gateway"]
